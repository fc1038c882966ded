# src/smeta_calc/adapters/estimate_sheet.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from ..cascade import new_row
from ..exceptions import EstimateFormatError
from ..models import EstimateRow, RowType, MATERIAL_PRIMARY, MATERIAL_AUXILIARY
from ..utils.utils_number import to_number
from ..utils.utils_text import norm_text
from .tabular import build_lookup, cell, cell_text, find_header_row, pick_col, read_raw_table

logger = logging.getLogger(__name__)

# ---------- Раскладка тендерной сметы (11 колонок) ----------

_POSITIONS = {
    "number": 0,          # № п/п
    "customer": 1,        # Заказчик / раб / мат ...
    "material_type": 2,   # Тип материала
    "work_name": 3,       # Наименование работ
    "unit": 4,            # Ед. изм.
    "volume": 5,          # Объем
    "material_coef": 6,   # Коэф. расхода
    "work_price": 7,      # Цена работы
    "mat_price": 8,       # Цена мат-ла с НДС без доставки
    "delivery": 9,        # Доставка
    "total": 10,          # Итого
}
TENDER_COLUMNS = len(_POSITIONS)

_COL_CANDIDATES = {
    "number":        ("№ п/п", "№", "номер"),
    "customer":      ("заказчик", "тип строки"),
    "material_type": ("тип материала",),
    "work_name":     ("наименование работ", "наименование"),
    "unit":          ("ед. изм.", "ед изм", "единица"),
    "volume":        ("объем", "объём", "количество"),
    "material_coef": ("коэф. расхода", "коэф"),
    "work_price":    ("цена работы",),
    "mat_price":     ("цена мат-ла", "цена материала", "цена мат"),
    "delivery":      ("доставка",),
    "total":         ("итого", "сумма"),
}
_REQUIRED = ("customer", "work_name", "volume")

_HEADER_TOKENS = ("наименование", "объем")


def parse_row_type(text: str) -> RowType:
    """
    Тип строки по колонке 'Заказчик': явные 'раб'/'мат'/'суб-раб'/'суб-мат',
    иначе 'Заказчик' (слово 'заказчик' или текст длиннее 5 символов), иначе работа.
    """
    t = (text or "").strip()
    low = t.lower()
    for kind in (RowType.WORK, RowType.MATERIAL, RowType.SUB_WORK, RowType.SUB_MATERIAL):
        if low == kind.value:
            return kind
    if "заказчик" in low or len(t) > 5:
        return RowType.CUSTOMER
    return RowType.WORK


def parse_material_type(text: str) -> str:
    t = norm_text(text)
    if t.startswith("основ"):
        return MATERIAL_PRIMARY
    if t.startswith("вспом"):
        return MATERIAL_AUXILIARY
    return ""


def _map_columns(df_raw, header_row: int | None) -> dict[str, int | None]:
    if header_row is None:
        if df_raw.shape[1] < TENDER_COLUMNS:
            raise EstimateFormatError(
                f"Недостаточно колонок: ожидается {TENDER_COLUMNS}, получено {df_raw.shape[1]}",
                details={"columns": int(df_raw.shape[1])},
            )
        return dict(_POSITIONS)

    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols: dict[str, int | None] = {}
    for key, candidates in _COL_CANDIDATES.items():
        cols[key] = pick_col(lookup, candidates, required=key in _REQUIRED)
    return cols


def load_estimate_rows(
    path: str | Path,
    sheet: str | int | None = 0,
    *,
    require_price: bool = True,
) -> List[EstimateRow]:
    """
    Читает тендерную смету (xlsx или CSV ';'/tab) в список строк сметы.

    Заголовок ищется в первых строках; если его нет, колонки берутся
    по фиксированным позициям. Строки без наименования пропускаются;
    при `require_price` пропускаются и строки (кроме 'Заказчик') без цены и итога.
    """
    df_raw = read_raw_table(path, sheet)
    if df_raw.empty:
        raise EstimateFormatError(f"Пустая таблица: {path}")

    header_row = find_header_row(df_raw, _HEADER_TOKENS)
    if header_row is None:
        logger.warning("Заголовок не найден в %s; используем фиксированные позиции колонок.", path)
        start = 0
    else:
        logger.info("Строка заголовка: %d", header_row + 1)
        start = header_row + 1
    cols = _map_columns(df_raw, header_row)

    rows: List[EstimateRow] = []
    skipped = 0
    for line_no, values in enumerate(df_raw.iloc[start:].itertuples(index=False), start=start + 1):
        values = list(values)
        if all(cell(values, i) is None for i in range(len(values))):
            continue

        work_name = cell_text(values, cols["work_name"])
        kind = parse_row_type(cell_text(values, cols["customer"]))

        work_price = to_number(cell(values, cols["work_price"]))
        mat_price = to_number(cell(values, cols["mat_price"]))
        delivery = to_number(cell(values, cols["delivery"]))
        total = to_number(cell(values, cols["total"]))

        if kind is RowType.WORK or kind is RowType.SUB_WORK:
            unit_price = work_price
        elif kind is RowType.MATERIAL or kind is RowType.SUB_MATERIAL:
            unit_price = mat_price
        else:
            unit_price = work_price or mat_price

        if not work_name:
            skipped += 1
            logger.warning("Строка %d: нет наименования работ; пропускаем.", line_no)
            continue
        if require_price and kind is not RowType.CUSTOMER and unit_price <= 0 and total <= 0:
            skipped += 1
            logger.warning("Строка %d (%r): нет цены и итога; пропускаем.", line_no, work_name)
            continue

        volume = to_number(cell(values, cols["volume"]))
        rows.append(new_row(
            volume,
            row_type=kind,
            material_type=parse_material_type(cell_text(values, cols["material_type"])),
            work_name=work_name,
            unit=cell_text(values, cols["unit"]),
            material_coef=to_number(cell(values, cols["material_coef"])) or 1.0,
            work_price=work_price,
            mat_price_no_delivery=mat_price,
            delivery=delivery,
            mat_price_with_delivery=mat_price + delivery,
        ))

    if skipped:
        logger.warning("Пропущено строк: %d", skipped)
    logger.info("Загружено строк сметы: %d из %s", len(rows), path)
    return rows
