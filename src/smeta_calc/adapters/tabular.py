# src/smeta_calc/adapters/tabular.py
"""
Общие помощники адаптеров: чтение таблицы (xlsx/xls/csv) без заголовка,
поиск строки заголовка и сопоставление колонок по синонимам.
"""
from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd

from ..exceptions import EstimateFormatError
from ..utils.utils_text import norm_text

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")
CSV_SUFFIXES = (".csv", ".txt", ".tsv")
CSV_ENCODINGS = ("utf-8-sig", "cp1251")
CSV_SEPARATOR = re.compile(r"[;\t]")


def read_raw_table(path: str | Path, sheet: str | int | None = 0) -> pd.DataFrame:
    """
    Читает лист/CSV целиком, без заголовка, все ячейки как есть.
    CSV: разделитель ';' или табуляция; кодировка utf-8, затем cp1251.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Файл не найден: {p}")

    suffix = p.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(p, sheet_name=sheet if sheet is not None else 0, header=None)

    if suffix in CSV_SUFFIXES:
        return _read_csv(p)

    raise EstimateFormatError(f"Неподдерживаемый формат файла: {p.suffix or p.name}")


def _decode(p: Path) -> str:
    data = p.read_bytes()
    last: Exception | None = None
    for enc in CSV_ENCODINGS:
        try:
            text = data.decode(enc)
        except UnicodeDecodeError as e:
            last = e
            continue
        logger.info("CSV %s прочитан в кодировке %s", p.name, enc)
        return text
    raise EstimateFormatError(f"Не удалось определить кодировку {p.name}: {last}")


def _read_csv(p: Path) -> pd.DataFrame:
    text = _decode(p)
    # ширина по самой длинной строке: строка-заголовок таблицы над шапкой
    # (название тендера и т.п.) короче остальных
    width = max((len(CSV_SEPARATOR.split(line)) for line in text.splitlines() if line.strip()), default=0)
    if width == 0:
        return pd.DataFrame()
    try:
        return pd.read_csv(
            io.StringIO(text), sep=CSV_SEPARATOR.pattern, engine="python", header=None,
            names=list(range(width)), dtype=str, skip_blank_lines=True,
        )
    except pd.errors.ParserError as e:
        raise EstimateFormatError(f"Не удалось разобрать CSV {p.name}", details={"error": str(e)}) from e


def find_header_row(
    df_raw: pd.DataFrame,
    required: Sequence[str],
    max_scan: int = 20,
) -> int | None:
    """Первая строка, в ячейках которой встречаются все `required` (после нормализации)."""
    tokens = [norm_text(t) for t in required]
    for i in range(min(max_scan, len(df_raw))):
        cells = [norm_text(v) for v in df_raw.iloc[i].tolist()]
        if all(any(t in c for c in cells) for t in tokens):
            return i
    return None


def build_lookup(header: Iterable[object]) -> dict[str, int]:
    """Нормализованное имя колонки -> позиция (первое вхождение)."""
    lookup: dict[str, int] = {}
    for pos, name in enumerate(header):
        key = norm_text(name)
        if key and key not in lookup:
            lookup[key] = pos
    return lookup


def pick_col(
    lookup: dict[str, int],
    candidates: Iterable[str],
    required: bool = True,
) -> int | None:
    # сначала точное совпадение, затем по началу имени
    candidates = tuple(candidates)
    for c in candidates:
        c_norm = norm_text(c)
        if c_norm in lookup:
            return lookup[c_norm]
    for c in candidates:
        c_norm = norm_text(c)
        for k, pos in lookup.items():
            if c_norm and k.startswith(c_norm):
                return pos
    if required:
        raise EstimateFormatError(f"Не найдена колонка, подходящая под: {candidates}")
    return None


def cell(values: Sequence[object], pos: int | None) -> object:
    if pos is None or pos >= len(values):
        return None
    v = values[pos]
    if isinstance(v, float) and pd.isna(v):
        return None
    return v


def cell_text(values: Sequence[object], pos: int | None) -> str:
    v = cell(values, pos)
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return str(v).strip().strip('"').strip()
