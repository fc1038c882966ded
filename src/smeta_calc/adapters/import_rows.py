# src/smeta_calc/adapters/import_rows.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from ..models import ImportedRow
from ..utils.utils_number import to_number
from .tabular import build_lookup, cell, cell_text, find_header_row, pick_col, read_raw_table

logger = logging.getLogger(__name__)

_COL_CANDIDATES = {
    "work_name":   ("наименование работ", "наименование", "работа", "name"),
    "unit":        ("ед. изм.", "ед изм", "единица", "unit"),
    "volume":      ("объем", "объём", "количество", "кол-во", "volume"),
    "subcategory": ("подкатегория", "subcategory"),
    "category":    ("категория", "category"),
    "description": ("описание", "description"),
    "article":     ("артикул", "article"),
    "brand":       ("бренд", "производитель", "brand"),
}
_REQUIRED = ("work_name", "unit", "volume")


def load_import_rows(path: str | Path, sheet: str | int | None = 0) -> List[ImportedRow]:
    """
    Читает файл импорта (xlsx/csv) для сопоставления с расценками.

    Обязательные колонки: наименование, единица, объём. Категория и
    подкатегория необязательны на уровне файла: строки без подкатегории
    получат ошибку проверки при сопоставлении, а не здесь.
    """
    df_raw = read_raw_table(path, sheet)
    header_row = find_header_row(df_raw, ("наименование",))
    if header_row is None:
        header_row = 0
        logger.warning("Заголовок не найден в %s; считаем заголовком первую строку.", path)

    lookup = build_lookup(df_raw.iloc[header_row].tolist())
    cols = {
        key: pick_col(lookup, candidates, required=key in _REQUIRED)
        for key, candidates in _COL_CANDIDATES.items()
    }
    if cols["subcategory"] is None:
        logger.warning("В %s нет колонки 'Подкатегория': все строки получат ошибку проверки.", path)

    rows: List[ImportedRow] = []
    for line_no, values in enumerate(
        df_raw.iloc[header_row + 1:].itertuples(index=False), start=header_row + 2
    ):
        values = list(values)
        if all(cell(values, i) is None for i in range(len(values))):
            continue
        row = ImportedRow(
            id=f"row-{line_no}",
            work_name=cell_text(values, cols["work_name"]),
            unit=cell_text(values, cols["unit"]),
            volume=to_number(cell(values, cols["volume"])),
            subcategory=cell_text(values, cols["subcategory"]),
            category=cell_text(values, cols["category"]),
        )
        for key in ("description", "article", "brand"):
            text = cell_text(values, cols[key])
            if text:
                row[key] = text  # type: ignore[literal-required]
        rows.append(row)

    logger.info("Строк для сопоставления: %d (%s)", len(rows), path)
    return rows
