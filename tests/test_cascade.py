import math

import pytest

from builders import customer, material, work, make_rate
from smeta_calc.cascade import (
    add_row,
    apply_material,
    apply_rate,
    delete_row,
    find_customer_index,
    insert_row_after,
    iter_groups,
    new_row,
    toggle_collapse,
    update_field,
)
from smeta_calc.costing import calculate_row
from smeta_calc.models import MATERIAL_PRIMARY, RateMaterial, RowType


def _volumes(rows):
    return [r["volume"] for r in rows]


# ---------- цена материала с доставкой ----------

def test_price_with_delivery_follows_either_edit():
    m = material()
    rows = update_field([m], m["id"], "mat_price_no_delivery", 100)
    rows = update_field(rows, m["id"], "delivery", 20)
    assert rows[0]["mat_price_with_delivery"] == 120

    rows = update_field(rows, m["id"], "mat_price_no_delivery", "80")
    assert rows[0]["mat_price_with_delivery"] == 100


def test_price_with_delivery_treats_garbage_as_zero():
    m = material()
    rows = update_field([m], m["id"], "delivery", 15)
    rows = update_field(rows, m["id"], "mat_price_no_delivery", "abc")
    assert rows[0]["mat_price_with_delivery"] == 15


# ---------- каскад от 'Заказчик' ----------

def test_customer_volume_cascades_to_group():
    c, w, m = customer(), work(), material(coef=2)
    rows = update_field([c, w, m], c["id"], "volume", 10)
    assert _volumes(rows) == [10, 10, 20]
    assert rows[1]["work_volume"] == 10
    assert rows[2]["work_volume"] == 20


def test_work_volume_edit_updates_materials_below():
    c, w, m = customer(), work(), material(coef=2)
    rows = update_field([c, w, m], c["id"], "volume", 10)
    rows = update_field(rows, w["id"], "volume", 15)
    assert _volumes(rows) == [10, 15, 30]
    assert rows[1]["work_volume"] == 15


def test_customer_cascade_stops_at_next_customer():
    c1, w1, c2, w2 = customer(), work(), customer(3), work(3)
    rows = update_field([c1, w1, c2, w2], c1["id"], "volume", 5)
    assert _volumes(rows) == [5, 5, 3, 3]


def test_customer_cascade_material_without_work_uses_group_volume():
    c, m = customer(), material(coef=2)
    rows = update_field([c, m], c["id"], "volume", 7)
    assert rows[1]["volume"] == 14


def test_work_cascade_stops_at_next_work():
    c, w1, m1, w2, m2 = customer(4), work(4), material(4, coef=3), work(4), material(4, coef=5)
    rows = update_field([c, w1, m1, w2, m2], w1["id"], "volume", 2)
    assert _volumes(rows) == [4, 2, 6, 4, 4]


def test_sub_rows_take_part_in_cascade():
    c = customer()
    w = work(kind=RowType.SUB_WORK)
    m = material(coef=1.5, kind=RowType.SUB_MATERIAL)
    rows = update_field([c, w, m], c["id"], "volume", 10)
    assert _volumes(rows) == [10, 10, 15]


# ---------- коэффициент расхода ----------

def test_coef_edit_changes_only_that_row():
    c, w, m1, m2 = customer(10), work(10), material(10), material(10)
    rows = update_field([c, w, m1, m2], m1["id"], "material_coef", 3)
    assert _volumes(rows) == [10, 10, 30, 10]
    assert rows[2]["work_volume"] == 30


def test_coef_edit_without_work_above_changes_nothing_else():
    c, m = customer(10), material(10)
    rows = update_field([c, m], m["id"], "material_coef", 3)
    assert rows[1]["material_coef"] == 3
    assert rows[1]["volume"] == 10


def test_zero_coef_reads_as_one():
    c, w, m = customer(), work(), material(coef=0)
    rows = update_field([c, w, m], c["id"], "volume", 8)
    assert rows[2]["volume"] == 8


# ---------- прочие правила ----------

def test_update_field_is_pure():
    c, w, m = customer(), work(), material(coef=2)
    rows = [c, w, m]
    new = update_field(rows, c["id"], "volume", 10)
    assert new is not rows
    assert _volumes(rows) == [0.0, 0.0, 0.0]
    assert c["volume"] == 0.0


def test_unknown_row_returns_unchanged_copy():
    rows = [customer(1), work(1)]
    new = update_field(rows, "missing", "volume", 5)
    assert new == rows
    assert new is not rows


def test_volume_on_work_row_mirrors_work_volume():
    w = work()
    rows = update_field([w], w["id"], "volume", 3.5)
    assert rows[0]["work_volume"] == 3.5


def test_customer_volume_edit_keeps_its_work_volume():
    c = customer()
    rows = update_field([c], c["id"], "volume", 9)
    assert rows[0]["volume"] == 9
    assert rows[0]["work_volume"] == 0.0


def test_row_becoming_customer_collapses_previous_group():
    c1, w, x = customer(), work(), work()
    rows = update_field([c1, w, x], x["id"], "row_type", "Заказчик")
    assert rows[0]["is_collapsed"] is True
    assert rows[2]["row_type"] is RowType.CUSTOMER


def test_cascade_does_not_retrigger():
    c, w, m = customer(), work(), material(coef=2)
    rows = update_field([c, w, m], w["id"], "volume", 4)
    # материал пересчитан от работы, но 'Заказчик' не трогается
    assert _volumes(rows) == [0.0, 4, 8]


def test_negative_customer_volume_propagates_as_is():
    c, w, m = customer(), work(), material(coef=2)
    rows = update_field([c, w, m], c["id"], "volume", -5)
    assert _volumes(rows) == [-5, -5, -10]


def test_nan_work_volume_reads_as_zero():
    c, w, m = customer(3), work(3, price=100), material(6, coef=2, price=50)
    rows = update_field([c, w, m], w["id"], "volume", float("nan"))
    assert rows[2]["volume"] == 0

    calc = calculate_row(rows[1])
    assert calc["total"] == 0
    assert all(math.isfinite(v) for v in calc.values())


def test_unknown_row_type_leaves_rows_unchanged(caplog):
    c, w = customer(1), work(1)
    rows = [c, w]
    new = update_field(rows, w["id"], "row_type", "Разделитель")
    assert new == rows
    assert new[1]["row_type"] is RowType.WORK
    assert "Разделитель" in caplog.text


# ---------- CRUD ----------

def test_new_row_defaults():
    r = new_row(12)
    assert r["row_type"] is RowType.WORK
    assert r["unit"] == "м3"
    assert r["material_coef"] == 1.0
    assert r["volume"] == r["work_volume"] == 12
    assert r["id"] != new_row()["id"]


def test_add_row_inherits_customer_volume():
    rows = add_row([customer(6), work(6)])
    assert len(rows) == 3
    assert rows[-1]["volume"] == 6


def test_add_row_without_customer_starts_empty():
    rows = add_row([])
    assert rows[0]["volume"] == 0.0


def test_insert_row_after():
    c1, w1, c2 = customer(2), work(2), customer(9)
    rows = insert_row_after([c1, w1, c2], w1["id"])
    assert [r["id"] for r in rows][:2] == [c1["id"], w1["id"]]
    assert rows[2]["volume"] == 2
    assert rows[3]["id"] == c2["id"]


def test_delete_row_has_no_cleanup():
    c, w, m = customer(5), work(5), material(5)
    rows = delete_row([c, w, m], w["id"])
    assert [r["id"] for r in rows] == [c["id"], m["id"]]
    assert rows[1]["volume"] == 5


def test_toggle_collapse():
    c = customer()
    rows = toggle_collapse([c], c["id"])
    assert rows[0]["is_collapsed"] is True
    rows = toggle_collapse(rows, c["id"])
    assert rows[0]["is_collapsed"] is False


# ---------- группы ----------

def test_iter_groups_and_customer_lookup():
    rows = [work(), customer(), work(), material(), customer()]
    assert list(iter_groups(rows)) == [(None, [0]), (1, [2, 3]), (4, [])]
    assert find_customer_index(rows, 0) is None
    assert find_customer_index(rows, 3) == 1
    assert find_customer_index(rows, 4) == 4


# ---------- расценки и материалы ----------

def test_apply_rate_inserts_materials():
    c, w, tail = customer(10), work(), customer(1)
    rate = make_rate("r1", "Кладка кирпичная из кирпича", price=1500.0)
    materials = [
        RateMaterial(rate_id="r1", name="Кирпич", unit="шт", consumption=400, unit_price=12.0),
        RateMaterial(rate_id="r1", name="Раствор", unit="м3", consumption=0, unit_price=3000.0),
    ]
    rows = apply_rate([c, w, tail], w["id"], rate, materials)

    assert len(rows) == 5
    applied = rows[1]
    assert applied["work_name"] == "Кладка кирпичная из кирпича"
    assert applied["work_price"] == 1500.0
    assert applied["volume"] == applied["work_volume"] == 10

    brick, mortar = rows[2], rows[3]
    assert brick["row_type"] is RowType.MATERIAL
    assert brick["material_type"] == MATERIAL_PRIMARY
    assert brick["volume"] == 4000
    assert brick["mat_price_with_delivery"] == 12.0
    assert mortar["material_coef"] == 1.0
    assert mortar["volume"] == 10
    assert rows[4]["id"] == tail["id"]


def test_apply_material_uses_nearest_work_volume():
    c, w, m = customer(10), work(5), material(coef=2)
    rows = apply_material([c, w, m], m["id"], "Цемент", "кг", "150")
    assert rows[2]["work_name"] == "Цемент"
    assert rows[2]["volume"] == 10
    assert rows[2]["mat_price_with_delivery"] == 150
    assert rows[2]["row_type"] is RowType.MATERIAL


def test_apply_material_falls_back_to_customer_volume():
    c, m = customer(7), material(coef=3)
    rows = apply_material([c, m], m["id"], "Песок", "т", 900)
    assert rows[1]["volume"] == pytest.approx(21)
