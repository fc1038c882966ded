# src/smeta_calc/exporters/excel.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import pandas as pd
from openpyxl.utils import get_column_letter

from ..coefficients import Coefficients, DEFAULT_COEFFICIENTS
from ..costing import calculate_row, calculate_totals, group_summaries
from ..models import EstimateRow

logger = logging.getLogger(__name__)

ESTIMATE_SHEET = "Смета"
SUMMARY_SHEET = "Итоги"

_ESTIMATE_COLUMNS = (
    "№", "Тип", "Тип материала", "Наименование работ", "Ед. изм.", "Объем",
    "Коэф. расхода", "Цена работы", "Цена мат-ла", "Доставка",
    "Цена мат-ла с доставкой", "Прямые затраты", "Материалы в КП",
    "Работы в КП", "Цена для заказчика",
)
_ESTIMATE_MONEY = _ESTIMATE_COLUMNS[7:]

_SUMMARY_COLUMNS = (
    "Заказчик", "Объем", "Строк", "Работы ПЗ", "Материалы ПЗ", "Субподряд ПЗ",
    "Материалы в КП", "Работы в КП", "Итого",
)
_SUMMARY_MONEY = _SUMMARY_COLUMNS[3:]


def _autofit_columns(ws) -> None:
    """Ширина колонок по содержимому (openpyxl worksheet)."""
    for i, col in enumerate(ws.columns, start=1):
        max_len = 0
        for cell in col:
            val = cell.value
            val_str = str(val) if val is not None else ""
            if len(val_str) > max_len:
                max_len = len(val_str)
        ws.column_dimensions[get_column_letter(i)].width = min(max_len + 2, 80)


def _apply_number_format(ws, headers: Sequence[str], fmt: str) -> None:
    header_row = [c.value for c in next(ws.iter_rows(min_row=1, max_row=1))]
    idx = [header_row.index(h) for h in headers if h in header_row]
    for r in ws.iter_rows(min_row=2):
        for i in idx:
            r[i].number_format = fmt


def estimate_frame(
    rows: Sequence[EstimateRow],
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
    round_decimals: int = 2,
) -> pd.DataFrame:
    records = []
    for n, row in enumerate(rows, start=1):
        calc = calculate_row(row, coefficients)
        records.append((
            n,
            str(getattr(row.get("row_type"), "value", row.get("row_type")) or ""),
            row.get("material_type") or "",
            row.get("work_name") or "",
            row.get("unit") or "",
            row.get("volume"),
            row.get("material_coef"),
            row.get("work_price"),
            row.get("mat_price_no_delivery"),
            row.get("delivery"),
            row.get("mat_price_with_delivery"),
            calc["total"],
            calc["materials_in_kp"],
            calc["works_in_kp"],
            calc["customer_price"],
        ))
    df = pd.DataFrame.from_records(records, columns=list(_ESTIMATE_COLUMNS))
    for col in _ESTIMATE_MONEY:
        df[col] = pd.to_numeric(df[col], errors="coerce").round(round_decimals)
    return df


def summary_frame(
    rows: Sequence[EstimateRow],
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
    round_decimals: int = 2,
) -> pd.DataFrame:
    records = [
        (
            g["customer_name"] or "(без группы)",
            g["volume"],
            g["rows"],
            g["work_direct"],
            g["material_direct"],
            g["sub_direct"],
            g["materials_in_kp"],
            g["works_in_kp"],
            g["customer_price"],
        )
        for g in group_summaries(rows, coefficients)
    ]
    totals = calculate_totals(rows, coefficients)
    records.append((
        "ВСЕГО", None, len(rows),
        sum(r[3] for r in records), sum(r[4] for r in records), sum(r[5] for r in records),
        totals["total_materials"], totals["total_works"], totals["grand_total"],
    ))
    df = pd.DataFrame.from_records(records, columns=list(_SUMMARY_COLUMNS))
    for col in _SUMMARY_MONEY:
        df[col] = pd.to_numeric(df[col], errors="coerce").round(round_decimals)
    return df


def export_estimate_excel(
    rows: Sequence[EstimateRow],
    path: str | Path,
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
    *,
    round_decimals: int = 2,
    number_format_currency: str = '#,##0.00',
) -> Path:
    """
    Сохраняет смету в Excel:
      - лист 'Смета' (строки с ценами, прямыми затратами и ценой для заказчика)
      - лист 'Итоги' (суммы по группам 'Заказчик' и строка 'ВСЕГО')
    Возвращает Path созданного файла.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df_rows = estimate_frame(rows, coefficients, round_decimals)
    df_sum = summary_frame(rows, coefficients, round_decimals)

    with pd.ExcelWriter(path, engine="openpyxl") as xlw:
        df_rows.to_excel(xlw, sheet_name=ESTIMATE_SHEET, index=False)
        df_sum.to_excel(xlw, sheet_name=SUMMARY_SHEET, index=False)

        wb = xlw.book
        ws_rows = wb[ESTIMATE_SHEET]
        _autofit_columns(ws_rows)
        _apply_number_format(ws_rows, _ESTIMATE_MONEY, number_format_currency)

        ws_sum = wb[SUMMARY_SHEET]
        _autofit_columns(ws_sum)
        _apply_number_format(ws_sum, _SUMMARY_MONEY, number_format_currency)

    logger.info("Смета сохранена: %s (%d строк)", path, len(df_rows))
    return path
