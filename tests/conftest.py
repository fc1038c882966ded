"""
Общие фикстуры: справочник расценок и строка импорта.
"""

import pytest

from builders import make_rate
from smeta_calc.catalog import RateCatalog
from smeta_calc.models import Material, RateMaterial, Unit


@pytest.fixture
def catalog():
    rates = [
        make_rate("r1", "Кладка кирпичная из кирпича"),
        make_rate("r2", "Кладка кирпичная", subcategory="Отделка"),
        make_rate("r3", "Штукатурка стен", unit="м2", price=450.0),
    ]
    materials = [
        RateMaterial(rate_id="r1", name="Кирпич", unit="шт", consumption=400, unit_price=12.0),
        RateMaterial(rate_id="r1", name="Раствор", unit="м3", consumption=0, unit_price=3000.0),
    ]
    units = [
        Unit(id="u1", name="Кубический метр", short_name="м3"),
        Unit(id="u2", name="Квадратный метр", short_name="м2"),
        Unit(id="u3", name="Штука", short_name="шт"),
    ]
    stock = [
        Material(id="m1", code="КР-150", name="Кирпич керамический М150", unit="шт",
                 category="Кирпич", price=14.0, is_active=True, supplier="ЛСР"),
        Material(id="m2", code="ЦП-500", name="Цемент М500", unit="т",
                 category="Вяжущие", price=6200.0, is_active=True),
        Material(id="m3", code="КР-100", name="Кирпич силикатный", unit="шт",
                 category="Кирпич", price=9.0, is_active=False),
    ]
    return RateCatalog.build(rates, materials, units, stock)


@pytest.fixture
def imported_row():
    return {
        "id": "row-2",
        "work_name": "Кладка кирпичная",
        "unit": "м3",
        "volume": 10.0,
        "subcategory": "Кладка",
        "category": "",
    }
