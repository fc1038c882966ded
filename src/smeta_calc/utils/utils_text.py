from __future__ import annotations

import re
import unicodedata
import pandas as pd
from rapidfuzz.distance import Levenshtein


def norm_text(s: str | float | int | None) -> str:
    """
    Нормализует текст для сравнений:
    - приводит к строке (NaN/None -> "")
    - NFKC + casefold, 'ё' -> 'е'
    - пунктуация заменяется пробелом
    - схлопывает повторные пробелы
    """
    if not isinstance(s, str):
        s = "" if s is None or (isinstance(s, float) and pd.isna(s)) else str(s)
    s = unicodedata.normalize("NFKC", s).casefold().replace("ё", "е")
    s = re.sub(r"[^\w\s]", " ", s)
    s = s.replace("_", " ")
    s = re.sub(r"\s+", " ", s).strip()
    return s


def is_blank(s: object) -> bool:
    if s is None:
        return True
    if isinstance(s, float) and pd.isna(s):
        return True
    return not str(s).strip()


def name_similarity(a: str | None, b: str | None) -> float:
    """
    Схожесть наименований в [0, 1]:
      - 1.0 для совпадающих нормализованных строк;
      - если одна строка содержит другую: len(короткой) / len(длинной);
      - иначе нормализованный Левенштейн (1 - dist / max_len).
    Симметрична.
    """
    s1 = norm_text(a)
    s2 = norm_text(b)
    if s1 == s2:
        return 1.0 if s1 else 0.0
    if not s1 or not s2:
        return 0.0
    if s1 in s2 or s2 in s1:
        return min(len(s1), len(s2)) / max(len(s1), len(s2))
    return Levenshtein.normalized_similarity(s1, s2)
