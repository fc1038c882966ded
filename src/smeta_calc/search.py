# src/smeta_calc/search.py
"""
Нечёткий поиск по справочникам: сопоставление строки импорта с материалами
и ручной поиск по расценкам и материалам.

Оценка текста в [0, 1] = взвешенное среднее ratio / token_sort / token_set
(rapidfuzz) после нормализации и замены синонимов.
"""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Dict, Iterable, List, Mapping, Optional

from rapidfuzz import fuzz

from .catalog import RateCatalog
from .models import ImportedRow, Material, MaterialMatchResult, SearchHit
from .units import units_match
from .utils.utils_text import is_blank, norm_text

logger = logging.getLogger(__name__)

MATERIAL_MIN_SCORE = 0.7
MANUAL_MIN_SCORE = 0.5
DEFAULT_MAX_RESULTS = 10

# веса критериев при сопоставлении строки с материалом
MATERIAL_WEIGHTS: Dict[str, int] = {
    "name": 50,
    "article": 30,
    "brand": 20,
}

# каноническое слово -> синонимы
SYNONYMS: Dict[str, tuple] = {
    "кабель": ("провод", "шнур", "cable"),
    "выключатель": ("переключатель", "switch", "выкл"),
    "розетка": ("socket", "outlet", "разъем"),
    "светильник": ("лампа", "lamp", "light", "освещение"),
    "щит": ("щиток", "шкаф", "panel", "бокс"),
    "труба": ("трубка", "pipe", "tube"),
    "автоматический выключатель": ("автомат", "выключатель автоматический", "circuit breaker"),
    "контактор": ("contactor", "пускатель"),
    "реле": ("relay",),
    "датчик": ("sensor", "сенсор"),
}

_SYNONYM_TO_CANON = {syn: canon for canon, syns in SYNONYMS.items() for syn in syns}
# длинные синонимы первыми, чтобы 'выключатель автоматический' не разбился на части
_SYNONYM_RE = re.compile(
    r"\b(" + "|".join(re.escape(s) for s in sorted(_SYNONYM_TO_CANON, key=len, reverse=True)) + r")\b"
)


@lru_cache(maxsize=10000)
def normalize_query(text: Optional[str]) -> str:
    """norm_text + замена синонимов каноническим словом."""
    s = norm_text(text)
    if not s:
        return ""
    return _SYNONYM_RE.sub(lambda m: _SYNONYM_TO_CANON[m.group(1)], s)


def text_score(a: Optional[str], b: Optional[str]) -> float:
    s1 = normalize_query(a)
    s2 = normalize_query(b)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    score = (
        0.3 * fuzz.ratio(s1, s2)
        + 0.4 * fuzz.token_sort_ratio(s1, s2)
        + 0.3 * fuzz.token_set_ratio(s1, s2)
    )
    return score / 100.0


def weighted_score(
    query: Mapping[str, Optional[str]],
    candidate: Mapping[str, Optional[str]],
    weights: Mapping[str, int],
) -> float:
    """
    Взвешенная оценка по критериям. Учитываются только критерии, заданные
    в запросе; пустое поле у кандидата даёт 0 по своему критерию.
    """
    total = 0.0
    total_weight = 0
    for key, weight in weights.items():
        if weight <= 0 or is_blank(query.get(key)):
            continue
        total += text_score(query.get(key), candidate.get(key)) * weight
        total_weight += weight
    return total / total_weight if total_weight else 0.0


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return norm_text(a) == norm_text(b)


def find_matching_materials(
    row: ImportedRow,
    materials: Iterable[Material],
    *,
    min_score: float = MATERIAL_MIN_SCORE,
    category: Optional[str] = None,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> List[MaterialMatchResult]:
    """
    Кандидаты-материалы для строки импорта: наименование, артикул, бренд
    (поставщик). `category` - фильтр по категории материала.
    """
    query = {
        "name": row.get("work_name"),
        "article": row.get("article"),
        "brand": row.get("brand"),
    }
    matches: List[MaterialMatchResult] = []
    for m in materials:
        if not m.get("is_active", True):
            continue
        if category and not _same(category, m.get("category")):
            continue
        candidate = {"name": m.get("name"), "article": m.get("code"), "brand": m.get("supplier")}
        score = weighted_score(query, candidate, MATERIAL_WEIGHTS)
        if score < min_score:
            continue
        matches.append(MaterialMatchResult(
            material_id=m["id"],
            material_name=m["name"],
            material_code=m.get("code", ""),
            score=score,
            unit_match=units_match(row.get("unit"), m.get("unit")),
        ))

    matches = sorted(matches, key=lambda x: x["score"], reverse=True)[:max_results]
    logger.debug(
        "Материалы для %r: найдено=%d, лучший=%s",
        row.get("work_name"), len(matches), matches[0]["material_name"] if matches else None,
    )
    return matches


def manual_search(
    query: str,
    catalog: RateCatalog,
    *,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    max_results: int = DEFAULT_MAX_RESULTS,
    min_score: float = MANUAL_MIN_SCORE,
) -> List[SearchHit]:
    """
    Ручной поиск по расценкам и материалам. Запрос сравнивается с наименованием
    и с кодом/артикулом, берётся лучшая из двух оценок. Фильтр по подкатегории
    оставляет только расценки (у материалов её нет). При равной оценке
    расценки идут раньше материалов, внутри - в порядке справочника.
    """
    if is_blank(query):
        return []

    hits: List[SearchHit] = []
    for r in catalog.active_rates():
        if category and not _same(category, r.get("category")):
            continue
        if subcategory and not _same(subcategory, r.get("subcategory")):
            continue
        hits.append(_hit("rate", query, r["id"], r.get("code", ""), r["name"], r.get("unit", ""), r.get("category", "")))

    if not subcategory:
        for m in catalog.active_materials():
            if category and not _same(category, m.get("category")):
                continue
            hits.append(_hit("material", query, m["id"], m.get("code", ""), m["name"], m.get("unit", ""), m.get("category", "")))

    found = sorted((h for h in hits if h["score"] >= min_score), key=lambda h: h["score"], reverse=True)
    top = found[:max_results]
    logger.info(
        "Ручной поиск %r: кандидатов=%d, найдено=%d, показано=%d",
        query, len(hits), len(found), len(top),
    )
    return top


def _hit(kind: str, query: str, item_id: str, code: str, name: str, unit: str, category: str) -> SearchHit:
    return SearchHit(
        kind=kind,
        item_id=item_id,
        code=code,
        name=name,
        unit=unit,
        category=category,
        score=max(text_score(query, name), text_score(query, code)),
    )
