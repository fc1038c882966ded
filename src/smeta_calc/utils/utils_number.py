from __future__ import annotations

import math
import re
from typing import Optional

import pandas as pd


def smart_to_float(x) -> Optional[float]:
    """Строка в формате ru/EN -> float. Числа возвращаются как есть; '-' или пусто -> None."""
    if x is None or (isinstance(x, float) and pd.isna(x)):
        return None
    if isinstance(x, bool):
        return float(x)
    if isinstance(x, (int, float)):
        return float(x)
    s = str(x).strip()
    if s in ("", "-"):
        return None
    # пробелы-разделители тысяч: '1 234,50', '1 234,50'
    s = re.sub(r"[^0-9\.,-]", "", s)
    has_dot, has_comma = "." in s, "," in s
    if has_dot and has_comma:
        s = s.replace(".", "").replace(",", ".")  # . = тысячи, , = дробная часть
    elif has_comma and not has_dot:
        s = s.replace(",", ".")                   # только запятая -> дробная часть
    try:
        return float(s)
    except ValueError:
        return None


def to_number(x, default: float = 0.0) -> float:
    """Как parseFloat(...) || 0: всё нечисловое превращается в default."""
    v = smart_to_float(x)
    if v is None or math.isnan(v):
        return default
    return v


def format_currency(value: float) -> str:
    """Формат ru-RU с двумя знаками, разряды через неразрывный пробел: 1234.5 -> '1 234,50'."""
    s = f"{value:,.2f}"
    return s.replace(",", "\u00a0").replace(".", ",")


def format_currency_with_symbol(value: float) -> str:
    return f"{format_currency(value)} ₽"
