"""
Построители строк сметы и расценок для тестов.
"""

from smeta_calc.cascade import new_row
from smeta_calc.models import Rate, RowType


def customer(volume=0.0, name="Кладка стен"):
    return new_row(volume, row_type=RowType.CUSTOMER, work_name=name)


def work(volume=0.0, name="Кладка кирпичная", price=0.0, kind=RowType.WORK):
    return new_row(volume, row_type=kind, work_name=name, work_price=price)


def material(volume=0.0, coef=1.0, name="Кирпич", price=0.0, material_type="основ", kind=RowType.MATERIAL):
    return new_row(
        volume,
        row_type=kind,
        work_name=name,
        material_type=material_type,
        material_coef=coef,
        mat_price_no_delivery=price,
        mat_price_with_delivery=price,
    )


def make_rate(rate_id, name, subcategory="Кладка", category="Стены", unit="м3", price=1500.0, active=True):
    return Rate(
        id=rate_id,
        code=f"К-{rate_id}",
        name=name,
        unit=unit,
        base_price=price,
        category=category,
        subcategory=subcategory,
        is_active=active,
    )
