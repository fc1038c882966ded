# src/smeta_calc/costing.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .cascade import iter_groups, row_type_of
from .coefficients import Coefficients, DEFAULT_COEFFICIENTS, as_dict
from .models import (
    EstimateRow,
    GroupSummary,
    RowCalculation,
    RowType,
    MATERIAL_PRIMARY,
)
from .utils.utils_number import to_number

logger = logging.getLogger(__name__)


def direct_cost(row: EstimateRow) -> float:
    """Прямые затраты: объём × цена работы (работы) или × цена материала с доставкой (материалы)."""
    kind = row_type_of(row)
    volume = to_number(row.get("volume"))
    if kind in (RowType.WORK, RowType.SUB_WORK):
        return volume * to_number(row.get("work_price"))
    if kind in (RowType.MATERIAL, RowType.SUB_MATERIAL):
        return volume * to_number(row.get("mat_price_with_delivery"))
    return 0.0


def calculate_row(
    row: EstimateRow,
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
) -> RowCalculation:
    """
    Расчёт строки по цепочке накруток (колонки M, O..AC, AF, AG).
    Каждый слой строится на результатах предыдущих, поэтому порядок фиксирован.
    """
    c: Dict[str, float] = as_dict(coefficients)
    kind = row_type_of(row)
    material_type = row.get("material_type") or ""

    total = direct_cost(row)                                   # M

    work_pz = total if kind is RowType.WORK else 0.0           # O
    work_sm = work_pz * c["sm"]                                # P
    mat_mbp = work_pz * c["mbp"]                               # Q
    mat_pz = total if kind is RowType.MATERIAL else 0.0        # R
    sub_pz = total if kind in (RowType.SUB_WORK, RowType.SUB_MATERIAL) else 0.0  # S
    warranty = work_pz * c["warranty"]                         # T
    work16 = (work_pz + work_sm) * (1 + c["work16"])           # U
    work_growth = (work16 + mat_mbp) * (1 + c["work_growth"])  # V
    mat_growth = mat_pz * (1 + c["mat_growth"])                # W
    unforeseen = (work16 + mat_mbp + mat_pz) * (1 + c["unforeseen"])  # X
    sub_ooz = sub_pz * (1 + c["sub_ooz"])                      # Y
    work_mat_ooz = (
        work_growth + mat_growth + unforeseen - work16 - mat_pz - mat_mbp
    ) * (1 + c["work_mat_ooz"])                                # Z
    work_mat_ofz = work_mat_ooz * (1 + c["work_mat_ofz"])      # AA
    work_mat_profit = work_mat_ofz * (1 + c["work_mat_profit"])  # AB
    sub_profit = sub_ooz * (1 + c["sub_profit"])               # AC

    # AD/AF - материалы в КП: только основные материалы
    if kind is RowType.MATERIAL and material_type == MATERIAL_PRIMARY:
        materials_in_kp = mat_pz
    elif kind is RowType.SUB_MATERIAL and material_type == MATERIAL_PRIMARY:
        materials_in_kp = sub_pz
    else:
        materials_in_kp = 0.0

    # AG - работы в КП
    if kind is RowType.SUB_WORK:
        works_in_kp = sub_profit
    elif kind is RowType.WORK:
        works_in_kp = work_mat_profit + warranty
    elif kind is RowType.MATERIAL:
        # вспомогательный или не указанный тип целиком уходит в работы
        works_in_kp = work_mat_profit - materials_in_kp
    elif kind is RowType.SUB_MATERIAL:
        works_in_kp = sub_profit - materials_in_kp
    else:
        works_in_kp = 0.0

    return RowCalculation(
        total=total,
        work_pz=work_pz,
        work_sm=work_sm,
        mat_mbp=mat_mbp,
        mat_pz=mat_pz,
        sub_pz=sub_pz,
        warranty=warranty,
        work16=work16,
        work_growth=work_growth,
        mat_growth=mat_growth,
        unforeseen=unforeseen,
        sub_ooz=sub_ooz,
        work_mat_ooz=work_mat_ooz,
        work_mat_ofz=work_mat_ofz,
        work_mat_profit=work_mat_profit,
        sub_profit=sub_profit,
        materials_in_kp=materials_in_kp,
        works_in_kp=works_in_kp,
        customer_price=materials_in_kp + works_in_kp,
    )


def calculate_totals(
    rows: Sequence[EstimateRow],
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
) -> Dict[str, float]:
    """Общие итоги сметы: материалы в КП, работы в КП, всего."""
    total_materials = 0.0
    total_works = 0.0
    for row in rows:
        calc = calculate_row(row, coefficients)
        total_materials += calc["materials_in_kp"]
        total_works += calc["works_in_kp"]
    return {
        "total_materials": total_materials,
        "total_works": total_works,
        "grand_total": total_materials + total_works,
    }


def calculate_customer_totals(
    rows: Sequence[EstimateRow],
    customer_index: int,
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
) -> Dict[str, float]:
    """
    Суммы для строки 'Заказчик': материалы в КП из строк мат/суб-мат и работы
    в КП из всех строк группы (в них уже учтены накрутки).
    """
    materials_in_kp = 0.0
    works_in_kp = 0.0
    for row in rows[customer_index + 1:]:
        kind = row_type_of(row)
        if kind is RowType.CUSTOMER:
            break
        calc = calculate_row(row, coefficients)
        if kind in (RowType.MATERIAL, RowType.SUB_MATERIAL):
            materials_in_kp += calc["materials_in_kp"]
        works_in_kp += calc["works_in_kp"]
    return {"materials_in_kp": materials_in_kp, "works_in_kp": works_in_kp}


def _summarize(
    rows: Sequence[EstimateRow],
    customer_index: Optional[int],
    members: List[int],
    coefficients: Coefficients,
) -> GroupSummary:
    customer = rows[customer_index] if customer_index is not None else None
    summary = GroupSummary(
        customer_id=customer["id"] if customer else None,
        customer_name=(customer.get("work_name") or "") if customer else "",
        volume=to_number(customer.get("volume")) if customer else 0.0,
        rows=len(members),
        work_direct=0.0,
        material_direct=0.0,
        sub_direct=0.0,
        materials_in_kp=0.0,
        works_in_kp=0.0,
        customer_price=0.0,
    )
    for i in members:
        calc = calculate_row(rows[i], coefficients)
        summary["work_direct"] += calc["work_pz"]
        summary["material_direct"] += calc["mat_pz"]
        summary["sub_direct"] += calc["sub_pz"]
        summary["materials_in_kp"] += calc["materials_in_kp"]
        summary["works_in_kp"] += calc["works_in_kp"]
    summary["customer_price"] = summary["materials_in_kp"] + summary["works_in_kp"]
    return summary


def group_summaries(
    rows: Sequence[EstimateRow],
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
) -> List[GroupSummary]:
    """Итоги по каждой группе 'Заказчик' (строки до первого 'Заказчик' идут отдельной группой)."""
    out = [_summarize(rows, ci, members, coefficients) for ci, members in iter_groups(rows)]
    logger.debug("Итоги посчитаны для %d групп(ы)", len(out))
    return out
