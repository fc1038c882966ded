# scripts/smoke_match.py
import sys, logging
sys.path.append("src")

from smeta_calc.adapters.catalog import load_catalog
from smeta_calc.adapters.import_rows import load_import_rows
from smeta_calc.matcher import match_batch, transfer_to_estimate, format_match_info
from smeta_calc.costing import calculate_totals
from smeta_calc.utils.utils_number import format_currency_with_symbol

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

catalog_path = "data/rates.xlsx"
rows_path = "data/import.xlsx"

catalog = load_catalog(catalog_path)
rows = load_import_rows(rows_path)

outcomes = match_batch(rows, catalog)

for o in outcomes:
    row = o["row"]
    status = o["status"].value
    if o["errors"]:
        print(f"[{status}] {row['work_name']!r}: {'; '.join(o['errors'])}")
    elif o["candidates"]:
        best = o["candidates"][0]
        print(f"[{status}] {row['work_name']!r} -> {best['rate_name']!r}\n  {format_match_info(best)}")
    elif o["material_candidates"]:
        mat = o["material_candidates"][0]
        print(f"[{status}] {row['work_name']!r} ~ материал {mat['material_name']!r} ({mat['score']:.0%})")
    else:
        print(f"[{status}] {row['work_name']!r}")

estimate, skipped = transfer_to_estimate(outcomes, catalog)
totals = calculate_totals(estimate)
print(f"\nВ смету: {len(estimate)} строк | на проверку: {len(skipped)}")
print(f"Итого для заказчика: {format_currency_with_symbol(totals['grand_total'])}")
