# src/smeta_calc/adapters/catalog.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from ..catalog import RateCatalog
from ..exceptions import EstimateFormatError, MissingSheetError
from ..models import Material, Rate, RateMaterial, Unit
from ..utils.utils_number import to_number
from ..utils.utils_text import norm_text
from .tabular import build_lookup, cell, cell_text, find_header_row, pick_col

logger = logging.getLogger(__name__)

RATES_SHEET = "Расценки"
RATE_MATERIALS_SHEET = "Материалы расценок"
UNITS_SHEET = "Единицы"
MATERIALS_SHEET = "Материалы"

# ---------- Колонки листов ----------

_RATE_COLS = {
    "id":          ("id",),
    "code":        ("код", "шифр", "code"),
    "name":        ("наименование", "name"),
    "unit":        ("ед. изм.", "ед изм", "единица", "unit"),
    "base_price":  ("базовая цена", "цена", "base_price"),
    "category":    ("категория", "category"),
    "subcategory": ("подкатегория", "subcategory"),
    "is_active":   ("активна", "активность", "is_active"),
    "description": ("описание", "description"),
}
_RATE_REQUIRED = ("code", "name", "unit", "base_price")

_MATERIAL_COLS = {
    "rate":        ("код расценки", "расценка", "rate_id"),
    "name":        ("материал", "наименование", "name"),
    "unit":        ("ед. изм.", "ед изм", "единица", "unit"),
    "consumption": ("расход", "коэф. расхода", "consumption"),
    "unit_price":  ("цена", "unit_price"),
}
_MATERIAL_REQUIRED = ("rate", "name")

_UNIT_COLS = {
    "id":         ("id",),
    "name":       ("наименование", "name"),
    "short_name": ("сокращение", "обозначение", "short_name"),
}

_CATALOG_MATERIAL_COLS = {
    "id":          ("id",),
    "code":        ("артикул", "код", "code"),
    "name":        ("наименование", "name"),
    "unit":        ("ед. изм.", "ед изм", "единица", "unit"),
    "category":    ("категория", "category"),
    "price":       ("цена закупки", "цена", "price"),
    "supplier":    ("поставщик", "бренд", "supplier"),
    "is_active":   ("активен", "активна", "is_active"),
    "description": ("описание", "description"),
}

_FALSE_WORDS = {"нет", "no", "false", "0", "неактивна"}


def _parse_active(v: object) -> bool:
    if v is None or (isinstance(v, float) and pd.isna(v)):
        return True
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    return norm_text(v) not in _FALSE_WORDS


def _read_sheet(xls: pd.ExcelFile, sheet: str, header_token: str, required: bool = True):
    if sheet not in xls.sheet_names:
        if required:
            raise MissingSheetError(sheet, list(xls.sheet_names))
        logger.info("Лист %r отсутствует; пропускаем.", sheet)
        return None, None
    df_raw = xls.parse(sheet, header=None)
    header_row = find_header_row(df_raw, (header_token,))
    if header_row is None:
        header_row = 0
        logger.warning("[%s] Заголовок не найден; используем первую строку.", sheet)
    return df_raw, header_row


def _rows(df_raw: pd.DataFrame, header_row: int):
    for values in df_raw.iloc[header_row + 1:].itertuples(index=False):
        values = list(values)
        if all(cell(values, i) is None for i in range(len(values))):
            continue
        yield values


def _load_rates(xls: pd.ExcelFile) -> List[Rate]:
    df_raw, header_row = _read_sheet(xls, RATES_SHEET, "наименование")
    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols = {k: pick_col(lookup, c, required=k in _RATE_REQUIRED) for k, c in _RATE_COLS.items()}

    rates: List[Rate] = []
    for n, values in enumerate(_rows(df_raw, header_row), start=1):
        code = cell_text(values, cols["code"])
        name = cell_text(values, cols["name"])
        if not name:
            logger.warning("[%s] Расценка без наименования (код %r); пропускаем.", RATES_SHEET, code)
            continue
        rate = Rate(
            id=cell_text(values, cols["id"]) or code or f"rate-{n}",
            code=code,
            name=name,
            unit=cell_text(values, cols["unit"]),
            base_price=to_number(cell(values, cols["base_price"])),
            category=cell_text(values, cols["category"]),
            subcategory=cell_text(values, cols["subcategory"]),
            is_active=_parse_active(cell(values, cols["is_active"])),
        )
        description = cell_text(values, cols["description"])
        if description:
            rate["description"] = description
        rates.append(rate)
    logger.info("[%s] Расценок: %d", RATES_SHEET, len(rates))
    return rates


def _load_rate_materials(xls: pd.ExcelFile, rates: List[Rate]) -> List[RateMaterial]:
    df_raw, header_row = _read_sheet(xls, RATE_MATERIALS_SHEET, "материал", required=False)
    if df_raw is None:
        return []
    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols = {k: pick_col(lookup, c, required=k in _MATERIAL_REQUIRED) for k, c in _MATERIAL_COLS.items()}

    # ссылка на расценку допускается и по id, и по коду
    ref_to_id: Dict[str, str] = {}
    for r in rates:
        ref_to_id[r["code"]] = r["id"]
        ref_to_id[r["id"]] = r["id"]

    out: List[RateMaterial] = []
    orphans = 0
    for values in _rows(df_raw, header_row):
        ref = cell_text(values, cols["rate"])
        rate_id = ref_to_id.get(ref)
        if rate_id is None:
            orphans += 1
            continue
        out.append(RateMaterial(
            rate_id=rate_id,
            name=cell_text(values, cols["name"]),
            unit=cell_text(values, cols["unit"]),
            consumption=to_number(cell(values, cols["consumption"])) or 1.0,
            unit_price=to_number(cell(values, cols["unit_price"])),
        ))
    if orphans:
        logger.warning("[%s] %d материал(ов) ссылаются на неизвестные расценки.", RATE_MATERIALS_SHEET, orphans)
    return out


def _load_units(xls: pd.ExcelFile) -> List[Unit]:
    df_raw, header_row = _read_sheet(xls, UNITS_SHEET, "наименование", required=False)
    if df_raw is None:
        return []
    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols = {
        "id": pick_col(lookup, _UNIT_COLS["id"], required=False),
        "name": pick_col(lookup, _UNIT_COLS["name"]),
        "short_name": pick_col(lookup, _UNIT_COLS["short_name"]),
    }
    units: List[Unit] = []
    for n, values in enumerate(_rows(df_raw, header_row), start=1):
        short = cell_text(values, cols["short_name"])
        units.append(Unit(
            id=cell_text(values, cols["id"]) or short or f"unit-{n}",
            name=cell_text(values, cols["name"]),
            short_name=short,
        ))
    return units


def _load_materials(xls: pd.ExcelFile) -> List[Material]:
    df_raw, header_row = _read_sheet(xls, MATERIALS_SHEET, "наименование", required=False)
    if df_raw is None:
        return []
    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols = {k: pick_col(lookup, c, required=k == "name") for k, c in _CATALOG_MATERIAL_COLS.items()}

    materials: List[Material] = []
    for n, values in enumerate(_rows(df_raw, header_row), start=1):
        name = cell_text(values, cols["name"])
        if not name:
            continue
        code = cell_text(values, cols["code"])
        material = Material(
            id=cell_text(values, cols["id"]) or code or f"material-{n}",
            code=code,
            name=name,
            unit=cell_text(values, cols["unit"]),
            category=cell_text(values, cols["category"]),
            price=to_number(cell(values, cols["price"])),
            is_active=_parse_active(cell(values, cols["is_active"])),
        )
        for key in ("supplier", "description"):
            text = cell_text(values, cols[key])
            if text:
                material[key] = text  # type: ignore[literal-required]
        materials.append(material)
    logger.info("[%s] Материалов: %d", MATERIALS_SHEET, len(materials))
    return materials


def _load_json(path: Path) -> RateCatalog:
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise EstimateFormatError(f"Некорректный JSON справочника {path.name}: {e}") from e
    if not isinstance(raw, dict) or "rates" not in raw:
        raise EstimateFormatError(f"В {path.name} нет ключа 'rates'")

    rates = [
        Rate(
            id=str(r.get("id") or r.get("code")),
            code=str(r.get("code", "")),
            name=str(r.get("name", "")),
            unit=str(r.get("unit", "")),
            base_price=to_number(r.get("base_price")),
            category=str(r.get("category") or ""),
            subcategory=str(r.get("subcategory") or ""),
            is_active=_parse_active(r.get("is_active")),
        )
        for r in raw["rates"]
    ]
    rate_materials = [
        RateMaterial(
            rate_id=str(m["rate_id"]),
            name=str(m.get("name", "")),
            unit=str(m.get("unit", "")),
            consumption=to_number(m.get("consumption")) or 1.0,
            unit_price=to_number(m.get("unit_price")),
        )
        for m in raw.get("rate_materials", [])
    ]
    units = [
        Unit(id=str(u.get("id") or u.get("short_name")), name=str(u.get("name", "")),
             short_name=str(u.get("short_name", "")))
        for u in raw.get("units", [])
    ]
    materials = [
        Material(
            id=str(m.get("id") or m.get("code")),
            code=str(m.get("code") or ""),
            name=str(m.get("name", "")),
            unit=str(m.get("unit") or ""),
            category=str(m.get("category") or ""),
            price=to_number(m.get("price")),
            is_active=_parse_active(m.get("is_active")),
            **({"supplier": str(m["supplier"])} if m.get("supplier") else {}),
        )
        for m in raw.get("materials", [])
    ]
    return RateCatalog.build(rates, rate_materials, units, materials)


def load_catalog(path: str | Path) -> RateCatalog:
    """
    Загружает справочник расценок: книга Excel (листы 'Расценки',
    'Материалы расценок', 'Единицы', 'Материалы') или JSON
    {"rates": [...], "rate_materials": [...], "units": [...], "materials": [...]}.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Файл справочника не найден: {p}")

    if p.suffix.lower() == ".json":
        catalog = _load_json(p)
    else:
        xls = pd.ExcelFile(p)
        rates = _load_rates(xls)
        catalog = RateCatalog.build(
            rates, _load_rate_materials(xls, rates), _load_units(xls), _load_materials(xls),
        )

    logger.info(
        "Справочник %s: расценок=%d, материалов расценок=%d, единиц=%d, материалов=%d",
        p.name, len(catalog.rates), len(catalog.rate_materials), len(catalog.units), len(catalog.materials),
    )
    return catalog
