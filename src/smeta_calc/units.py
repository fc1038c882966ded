# src/smeta_calc/units.py
from __future__ import annotations

import re
from typing import Iterable, Optional

from .models import Unit

# синонимы единиц -> каноническое короткое обозначение
_UNIT_PATTERNS = (
    (r"(м\^?2|м2|квм|мкв|квадрат\w*метр\w*)", "м2"),
    (r"(м\^?3|м3|кубм|мкуб|кубическ\w*метр\w*)", "м3"),
    (r"(шт|штука|штуки|штук|ед|единица)", "шт"),
    (r"(компл|комплект|комплекта|комплектов)", "компл"),
    (r"(кг|килограмм|килограммов)", "кг"),
    (r"(т|тн|тонна|тонн|тонны)", "т"),
    (r"(л|литр|литров)", "л"),
    # погонный метр считается тем же метром
    (r"(м|метр|метров|пм|погм|мп|погонн\w*метр\w*)", "м"),
)


def normalize_unit(unit: Optional[str]) -> str:
    """Нормализует единицу измерения: 'кв.м', 'м²', 'М2' -> 'м2'."""
    if not isinstance(unit, str):
        return ""
    s = unit.lower().strip().replace("ё", "е")
    s = s.replace("²", "2").replace("³", "3")
    compact = "".join(ch for ch in s if ch not in " .,")
    for pattern, normalized in _UNIT_PATTERNS:
        if re.fullmatch(pattern, compact):
            return normalized
    return compact


def units_match(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_unit(a), normalize_unit(b)
    return bool(na) and na == nb


def resolve_unit(text: Optional[str], units: Iterable[Unit]) -> Optional[Unit]:
    """
    Ищет единицу в справочнике: точное короткое имя, короткое имя без учёта
    регистра, вхождение текста в полное имя, затем по синонимам.
    """
    if not text or not str(text).strip():
        return None
    text = str(text).strip()
    low = text.lower()
    units = list(units)

    for u in units:
        if u.get("short_name") == text:
            return u
    for u in units:
        if (u.get("short_name") or "").lower() == low:
            return u
    for u in units:
        if low in (u.get("name") or "").lower():
            return u
    norm = normalize_unit(text)
    for u in units:
        if normalize_unit(u.get("short_name")) == norm:
            return u
    return None
