# src/smeta_calc/matcher.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .cascade import apply_rate, new_row, update_field
from .catalog import RateCatalog
from .models import (
    EstimateRow,
    ImportedRow,
    MatchOutcome,
    MatchStatus,
    Rate,
    RateMatchResult,
    RowType,
)
from .search import MATERIAL_MIN_SCORE, find_matching_materials
from .units import units_match
from .utils.utils_number import to_number
from .utils.utils_text import is_blank, name_similarity, norm_text

logger = logging.getLogger(__name__)

MIN_NAME_SIMILARITY = 0.5
DEFAULT_AUTO_MATCH_THRESHOLD = 0.9
EXACT_MATCH_THRESHOLD = 0.95
UNIT_MATCH_BONUS = 0.05

COMMITTABLE = frozenset({MatchStatus.EXACT, MatchStatus.GOOD, MatchStatus.MANUAL})

ProgressCallback = Callable[[int, int], None]


# ---------- проверка строки ----------

def validate_row(row: ImportedRow) -> List[str]:
    """Возвращает список ошибок строки; пустой список = строка валидна."""
    errors: List[str] = []
    if is_blank(row.get("work_name")):
        errors.append("Отсутствует наименование работ")
    if is_blank(row.get("unit")):
        errors.append("Отсутствует единица измерения")
    if to_number(row.get("volume")) <= 0:
        errors.append("Некорректный объём")
    # обязательное поле: без подкатегории строка в сопоставление не попадает
    if is_blank(row.get("subcategory")):
        errors.append("ОБЯЗАТЕЛЬНО: отсутствует подкатегория")
    return errors


# ---------- фильтры и оценка ----------

def _same(a: Optional[str], b: Optional[str]) -> bool:
    return bool(norm_text(a)) and norm_text(a) == norm_text(b)


def match_type_for(name_score: float) -> str:
    if name_score >= EXACT_MATCH_THRESHOLD:
        return "exact_name"
    if name_score >= 0.75:
        return "high_similarity"
    if name_score >= 0.6:
        return "medium_similarity"
    return "low_similarity"


def find_matching_rates(
    row: ImportedRow,
    rates: Iterable[Rate],
    min_score: float = MIN_NAME_SIMILARITY,
) -> List[RateMatchResult]:
    """
    Кандидаты-расценки для строки импорта.

    Правила:
      1. Подкатегория - только точное совпадение (после нормализации).
      2. Категория - точное совпадение, если указана в строке.
      3. Наименование - нечёткое сравнение, не ниже `min_score`.
      4. Совпадение единиц не обязательно, но даёт +0.05 к score (максимум 1.0).
    Сортировка по убыванию score; при равенстве сохраняется порядок справочника.
    """
    if is_blank(row.get("subcategory")):
        logger.warning("Строка без подкатегории не сопоставляется: %r", row.get("work_name"))
        return []

    matches: List[RateMatchResult] = []
    for rate in rates:
        if not rate.get("is_active", True):
            continue
        if not _same(row.get("subcategory"), rate.get("subcategory")):
            continue

        category_match = True
        if not is_blank(row.get("category")):
            category_match = _same(row.get("category"), rate.get("category"))
            if not category_match:
                continue

        name_score = name_similarity(row.get("work_name"), rate.get("name"))
        if name_score < min_score:
            continue

        unit_ok = units_match(row.get("unit"), rate.get("unit"))
        score = min(1.0, name_score + UNIT_MATCH_BONUS) if unit_ok else name_score

        matches.append(RateMatchResult(
            rate_id=rate["id"],
            rate_name=rate["name"],
            rate_code=rate.get("code", ""),
            score=score,
            match_type=match_type_for(name_score),
            category_match=category_match,
            subcategory_match=True,
            unit_match=unit_ok,
        ))

    # sorted() устойчива: при равном score порядок справочника сохраняется
    matches = sorted(matches, key=lambda m: m["score"], reverse=True)
    logger.debug(
        "Сопоставление %r: кандидатов=%d, лучший=%s",
        row.get("work_name"), len(matches), matches[0]["rate_name"] if matches else None,
    )
    return matches


def match_quality(score: float, threshold: float = DEFAULT_AUTO_MATCH_THRESHOLD) -> str:
    """Полоса качества: exact (>= 0.95 и >= порога), good (>= порога), review."""
    if score >= threshold and score >= EXACT_MATCH_THRESHOLD:
        return "exact"
    if score >= threshold:
        return "good"
    return "review"


def _status_for(quality: str) -> MatchStatus:
    return {
        "exact": MatchStatus.EXACT,
        "good": MatchStatus.GOOD,
    }.get(quality, MatchStatus.REVIEW)


# ---------- обработка строк ----------

def match_row(
    row: ImportedRow,
    catalog: RateCatalog,
    *,
    auto_match_threshold: float = DEFAULT_AUTO_MATCH_THRESHOLD,
    min_score: float = MIN_NAME_SIMILARITY,
    material_min_score: float = MATERIAL_MIN_SCORE,
) -> MatchOutcome:
    """
    Проверка + сопоставление одной строки с расценками и материалами.
    Нет расценок, но есть материал -> 'partial'. Никогда не бросает исключений по данным.
    """
    errors = validate_row(row)
    if errors:
        return MatchOutcome(
            row=row,
            status=MatchStatus.VALIDATION_ERROR,
            quality=None,
            candidates=[],
            selected=None,
            material_candidates=[],
            errors=errors,
        )

    candidates = find_matching_rates(row, catalog.active_rates(), min_score=min_score)
    materials = find_matching_materials(row, catalog.active_materials(), min_score=material_min_score)
    if not candidates:
        return MatchOutcome(
            row=row,
            status=MatchStatus.PARTIAL if materials else MatchStatus.NO_MATCH,
            quality=None,
            candidates=[],
            selected=None,
            material_candidates=materials,
            errors=[],
        )

    best = candidates[0]
    quality = match_quality(best["score"], auto_match_threshold)
    status = _status_for(quality)
    return MatchOutcome(
        row=row,
        status=status,
        quality=quality,
        candidates=candidates,
        # ниже порога автоматически ничего не выбирается
        selected=best if status in COMMITTABLE else None,
        material_candidates=materials,
        errors=[],
    )


def match_batch(
    rows: Sequence[ImportedRow],
    catalog: RateCatalog,
    *,
    auto_match_threshold: float = DEFAULT_AUTO_MATCH_THRESHOLD,
    min_score: float = MIN_NAME_SIMILARITY,
    material_min_score: float = MATERIAL_MIN_SCORE,
    progress: Optional[ProgressCallback] = None,
) -> List[MatchOutcome]:
    """
    Последовательное сопоставление всех строк. Ошибочные строки получают свой
    статус и не прерывают пакет. `progress(done, total)` вызывается после каждой строки.
    """
    total = len(rows)
    out: List[MatchOutcome] = []
    for i, row in enumerate(rows, start=1):
        out.append(match_row(
            row, catalog,
            auto_match_threshold=auto_match_threshold,
            min_score=min_score,
            material_min_score=material_min_score,
        ))
        if progress is not None:
            progress(i, total)

    counts = summarize_statuses(out)
    logger.info("Сопоставление завершено: %d строк; %s", total, counts)
    return out


def summarize_statuses(outcomes: Iterable[MatchOutcome]) -> Dict[str, int]:
    counts: Dict[str, int] = {s.value: 0 for s in MatchStatus}
    for o in outcomes:
        counts[MatchStatus(o["status"]).value] += 1
    return counts


# ---------- ручной выбор и перенос в смету ----------

def select_candidate(
    outcome: MatchOutcome,
    rate_id: str,
    catalog: Optional[RateCatalog] = None,
) -> MatchOutcome:
    """
    Ручной выбор расценки. Выбор из списка кандидатов или, если передан
    справочник, любой расценки из него (например, найденной через search.manual_search).
    Строку с ошибкой проверки выбрать нельзя: возвращается без изменений.
    """
    if MatchStatus(outcome["status"]) is MatchStatus.VALIDATION_ERROR:
        logger.warning("Строка с ошибками проверки не может быть выбрана вручную: %s", outcome["errors"])
        return outcome

    chosen = next((c for c in outcome["candidates"] if c["rate_id"] == rate_id), None)
    if chosen is None and catalog is not None:
        rate = catalog.get_rate(rate_id)
        if rate is not None:
            row = outcome["row"]
            name_score = name_similarity(row.get("work_name"), rate.get("name"))
            unit_ok = units_match(row.get("unit"), rate.get("unit"))
            chosen = RateMatchResult(
                rate_id=rate["id"],
                rate_name=rate["name"],
                rate_code=rate.get("code", ""),
                score=name_score,
                match_type=match_type_for(name_score),
                category_match=_same(row.get("category"), rate.get("category")),
                subcategory_match=_same(row.get("subcategory"), rate.get("subcategory")),
                unit_match=unit_ok,
            )
    if chosen is None:
        logger.warning("Расценка %r не найдена для ручного выбора", rate_id)
        return outcome

    return MatchOutcome(
        row=outcome["row"],
        status=MatchStatus.MANUAL,
        quality=outcome["quality"],
        candidates=outcome["candidates"],
        selected=chosen,
        material_candidates=outcome.get("material_candidates", []),
        errors=[],
    )


def is_committable(outcome: MatchOutcome) -> bool:
    return MatchStatus(outcome["status"]) in COMMITTABLE and outcome["selected"] is not None


def transfer_to_estimate(
    outcomes: Iterable[MatchOutcome],
    catalog: RateCatalog,
    rows: Sequence[EstimateRow] = (),
) -> Tuple[List[EstimateRow], List[MatchOutcome]]:
    """
    Переносит подтверждённые строки в смету: для каждой - строка 'Заказчик'
    (наименование, ед., объём из импорта), строка работы по выбранной расценке
    и строки материалов расценки. Возвращает (строки сметы, пропущенные строки).
    """
    out: List[EstimateRow] = list(rows)
    skipped: List[MatchOutcome] = []

    for outcome in outcomes:
        if not is_committable(outcome):
            skipped.append(outcome)
            continue
        rate = catalog.get_rate(outcome["selected"]["rate_id"])
        if rate is None:
            logger.warning("Расценка %r отсутствует в справочнике", outcome["selected"]["rate_id"])
            skipped.append(outcome)
            continue

        imported = outcome["row"]
        # единица приводится к обозначению из справочника, если оно там есть
        unit = catalog.resolve_unit(imported.get("unit"))
        customer = new_row(
            0.0,
            row_type=RowType.CUSTOMER,
            work_name=imported.get("work_name", ""),
            unit=unit["short_name"] if unit and unit.get("short_name") else imported.get("unit", ""),
        )
        work = new_row(0.0)
        out.extend([customer, work])
        out = update_field(out, customer["id"], "volume", to_number(imported.get("volume")))
        out = apply_rate(out, work["id"], rate, catalog.materials_for(rate["id"]))

    if skipped:
        logger.info("Не перенесено в смету: %d строк(и) без подтверждённой расценки", len(skipped))
    return out, skipped


def format_match_info(match: RateMatchResult) -> str:
    parts: List[str] = []
    if match["category_match"]:
        parts.append("✓ Категория")
    if match["subcategory_match"]:
        parts.append("✓ Подкатегория")
    parts.append(f"Наименование: {match['score'] * 100:.0f}%")
    parts.append("✓ Ед.изм." if match["unit_match"] else "⚠ Разные ед.изм.")
    return " • ".join(parts)
