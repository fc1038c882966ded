# src/smeta_calc/models.py
from __future__ import annotations

from enum import Enum
from typing import TypedDict, NotRequired, Dict, List, Optional


# =========================
# Строки сметы (калькулятор)
# =========================
class RowType(str, Enum):
    """Тип строки сметы. Набор закрытый."""
    CUSTOMER = "Заказчик"
    WORK = "раб"
    MATERIAL = "мат"
    SUB_WORK = "суб-раб"
    SUB_MATERIAL = "суб-мат"


WORK_TYPES = frozenset({RowType.WORK, RowType.SUB_WORK})
MATERIAL_TYPES = frozenset({RowType.MATERIAL, RowType.SUB_MATERIAL})

# Тип материала: '' (не указан), 'основ' (основной), 'вспом' (вспомогательный)
MATERIAL_PRIMARY = "основ"
MATERIAL_AUXILIARY = "вспом"


class EstimateRow(TypedDict):
    """
    Строка сметы. Группа = строка 'Заказчик' + все строки до следующего 'Заказчик'.
    """
    id: str
    row_type: RowType
    material_type: str
    work_name: str
    unit: str
    volume: float
    # для строк кроме 'Заказчик' повторяет volume
    work_volume: float
    material_coef: float
    work_price: float
    mat_price_no_delivery: float
    delivery: float
    mat_price_with_delivery: float
    # только для отображения
    is_collapsed: NotRequired[bool]


class RowCalculation(TypedDict):
    """Промежуточные и итоговые суммы строки (колонки M, O..AC, AF, AG таблицы)."""
    total: float
    work_pz: float
    work_sm: float
    mat_mbp: float
    mat_pz: float
    sub_pz: float
    warranty: float
    work16: float
    work_growth: float
    mat_growth: float
    unforeseen: float
    sub_ooz: float
    work_mat_ooz: float
    work_mat_ofz: float
    work_mat_profit: float
    sub_profit: float
    materials_in_kp: float
    works_in_kp: float
    customer_price: float


class GroupSummary(TypedDict):
    """Итоги группы 'Заказчик'."""
    customer_id: Optional[str]
    customer_name: str
    volume: float
    rows: int
    work_direct: float
    material_direct: float
    sub_direct: float
    materials_in_kp: float
    works_in_kp: float
    customer_price: float


# =========================
# Справочники
# =========================
class Unit(TypedDict):
    id: str
    name: str
    short_name: str


class Rate(TypedDict):
    """Расценка из сборника."""
    id: str
    code: str
    name: str
    unit: str
    base_price: float
    category: str
    subcategory: str
    is_active: bool
    description: NotRequired[str]


class RateMaterial(TypedDict):
    """Материал, входящий в расценку, с коэффициентом расхода."""
    rate_id: str
    name: str
    unit: str
    consumption: float
    unit_price: float


class Material(TypedDict):
    """Позиция справочника материалов (вне расценок)."""
    id: str
    # артикул
    code: str
    name: str
    unit: str
    category: str
    price: float
    is_active: bool
    supplier: NotRequired[str]
    description: NotRequired[str]


# =========================
# Импорт и сопоставление
# =========================
class ImportedRow(TypedDict):
    """Строка из Excel/Google Sheets для сопоставления с расценками."""
    id: str
    work_name: str
    unit: str
    volume: float
    subcategory: str
    category: str
    description: NotRequired[str]
    article: NotRequired[str]
    brand: NotRequired[str]


class MatchStatus(str, Enum):
    EXACT = "exact"
    GOOD = "good"
    REVIEW = "review"
    # расценка не найдена, но найден материал
    PARTIAL = "partial"
    NO_MATCH = "no_match"
    VALIDATION_ERROR = "validation_error"
    MANUAL = "manual"


class RateMatchResult(TypedDict):
    rate_id: str
    rate_name: str
    rate_code: str
    score: float
    # 'exact_name' | 'high_similarity' | 'medium_similarity' | 'low_similarity'
    match_type: str
    category_match: bool
    subcategory_match: bool
    unit_match: bool


class MaterialMatchResult(TypedDict):
    material_id: str
    material_name: str
    material_code: str
    score: float
    unit_match: bool


class SearchHit(TypedDict):
    """Результат ручного поиска по справочнику."""
    # 'rate' | 'material'
    kind: str
    item_id: str
    code: str
    name: str
    unit: str
    category: str
    score: float


class MatchOutcome(TypedDict):
    """Результат сопоставления одной импортированной строки."""
    row: ImportedRow
    status: MatchStatus
    # 'exact' | 'good' | 'review' (только если есть кандидаты-расценки)
    quality: Optional[str]
    candidates: List[RateMatchResult]
    selected: Optional[RateMatchResult]
    material_candidates: List[MaterialMatchResult]
    errors: List[str]


# Быстрый доступ
RateDict = Dict[str, Rate]   # id -> расценка


__all__ = [
    "RowType",
    "WORK_TYPES",
    "MATERIAL_TYPES",
    "MATERIAL_PRIMARY",
    "MATERIAL_AUXILIARY",
    "EstimateRow",
    "RowCalculation",
    "GroupSummary",
    "Unit",
    "Rate",
    "RateMaterial",
    "Material",
    "ImportedRow",
    "MatchStatus",
    "RateMatchResult",
    "MaterialMatchResult",
    "SearchHit",
    "MatchOutcome",
    "RateDict",
]
