import pytest

from builders import customer, material, work
from smeta_calc.coefficients import make_coefficients
from smeta_calc.costing import (
    calculate_customer_totals,
    calculate_row,
    calculate_totals,
    direct_cost,
    group_summaries,
)
from smeta_calc.models import RowType
from smeta_calc.utils.utils_number import format_currency, format_currency_with_symbol


def test_direct_cost_by_row_type():
    assert direct_cost(work(10, price=100)) == 1000
    assert direct_cost(material(10, price=50)) == 500
    assert direct_cost(customer(10)) == 0


def test_work_row_markup_chain():
    calc = calculate_row(work(10, price=100))
    assert calc["total"] == 1000
    assert calc["work_sm"] == pytest.approx(60)
    assert calc["mat_mbp"] == pytest.approx(80)
    assert calc["warranty"] == pytest.approx(50)
    assert calc["work16"] == pytest.approx(1696)
    assert calc["work_growth"] == pytest.approx(1953.6)
    assert calc["unforeseen"] == pytest.approx(1829.28)
    assert calc["work_mat_ooz"] == pytest.approx(2207.568)
    assert calc["work_mat_ofz"] == pytest.approx(2649.0816)
    assert calc["work_mat_profit"] == pytest.approx(2913.98976)
    assert calc["materials_in_kp"] == 0
    assert calc["works_in_kp"] == pytest.approx(2963.98976)
    assert calc["customer_price"] == pytest.approx(2963.98976)


def test_primary_material_splits_offer():
    calc = calculate_row(material(10, price=50))
    assert calc["mat_pz"] == 500
    assert calc["work_mat_profit"] == pytest.approx(820.38)
    assert calc["materials_in_kp"] == 500
    assert calc["works_in_kp"] == pytest.approx(320.38)
    assert calc["customer_price"] == pytest.approx(820.38)


def test_auxiliary_material_goes_to_works():
    calc = calculate_row(material(10, price=50, material_type="вспом"))
    assert calc["materials_in_kp"] == 0
    assert calc["works_in_kp"] == pytest.approx(820.38)


def test_subcontract_rows():
    sub_work = calculate_row(work(1, price=1000, kind=RowType.SUB_WORK))
    assert sub_work["sub_pz"] == 1000
    assert sub_work["works_in_kp"] == pytest.approx(1276)

    sub_mat = calculate_row(material(2, price=100, kind=RowType.SUB_MATERIAL))
    assert sub_mat["materials_in_kp"] == 200
    assert sub_mat["works_in_kp"] == pytest.approx(55.2)


def test_customer_row_has_no_cost():
    calc = calculate_row(customer(10))
    assert calc["customer_price"] == 0


def test_calculation_is_idempotent():
    row = work(3.3, price=123.45)
    assert calculate_row(row) == calculate_row(row)


def test_custom_coefficients():
    calc = calculate_row(work(10, price=100), make_coefficients({"sm": 0.0}))
    assert calc["work_sm"] == 0
    assert calc["work16"] == pytest.approx(1600)


def test_totals_and_groups():
    rows = [
        customer(10, name="Стены"),
        work(10, price=100),
        material(10, price=50),
        customer(1, name="Кровля"),
        work(1, price=1000, kind=RowType.SUB_WORK),
    ]
    totals = calculate_totals(rows)
    assert totals["total_materials"] == pytest.approx(500)
    assert totals["total_works"] == pytest.approx(2963.98976 + 320.38 + 1276)
    assert totals["grand_total"] == pytest.approx(totals["total_materials"] + totals["total_works"])

    groups = group_summaries(rows)
    assert [g["customer_name"] for g in groups] == ["Стены", "Кровля"]
    assert groups[0]["rows"] == 2
    assert groups[0]["work_direct"] == 1000
    assert groups[0]["material_direct"] == 500
    assert groups[0]["customer_price"] == pytest.approx(2963.98976 + 820.38)
    assert groups[1]["sub_direct"] == 1000

    first = calculate_customer_totals(rows, 0)
    assert first["materials_in_kp"] == pytest.approx(500)
    assert first["works_in_kp"] == pytest.approx(2963.98976 + 320.38)


def test_format_currency():
    assert format_currency(1234.5) == "1\u00a0234,50"
    assert format_currency(0) == "0,00"
    assert format_currency_with_symbol(1000000) == "1\u00a0000\u00a0000,00 ₽"
