import pytest

from smeta_calc.search import (
    MATERIAL_WEIGHTS,
    find_matching_materials,
    manual_search,
    normalize_query,
    text_score,
    weighted_score,
)


# ---------- нормализация и оценка ----------

def test_synonyms_fold_to_canonical_word():
    assert normalize_query("Провод ПВС") == "кабель пвс"
    assert normalize_query("Выключатель автоматический 16А") == "автоматический выключатель 16а"
    assert normalize_query(None) == ""


def test_text_score():
    assert text_score("Цемент М500", "цемент  м500") == 1.0
    assert text_score("Провод", "Кабель") == 1.0
    assert text_score("", "Кабель") == 0.0
    assert text_score("Штукатурка", "Штукатурка стен") == pytest.approx(0.86)


def test_weighted_score_counts_only_given_criteria():
    candidate = {"name": "Цемент М500", "article": "ЦП-500", "brand": None}

    assert weighted_score({"name": "Цемент М500"}, candidate, MATERIAL_WEIGHTS) == 1.0
    partial = weighted_score({"name": "Цемент М500", "article": "ЦП-999"}, candidate, MATERIAL_WEIGHTS)
    assert 0.625 <= partial < 1.0
    assert weighted_score({}, candidate, MATERIAL_WEIGHTS) == 0.0


# ---------- материалы ----------

def test_material_found_by_name(catalog):
    row = {"work_name": "Кирпич керамический М150", "unit": "шт"}
    matches = find_matching_materials(row, catalog.materials)

    assert [m["material_id"] for m in matches] == ["m1"]
    assert matches[0]["score"] == 1.0
    assert matches[0]["unit_match"] is True


def test_material_category_filter(catalog):
    row = {"work_name": "Кирпич керамический М150", "unit": "шт"}
    assert find_matching_materials(row, catalog.materials, category="Вяжущие") == []


def test_inactive_material_is_skipped(catalog):
    row = {"work_name": "Кирпич силикатный", "unit": "шт"}
    assert find_matching_materials(row, catalog.materials) == []


# ---------- ручной поиск ----------

def test_manual_search_by_name(catalog):
    hits = manual_search("Штукатурка", catalog)
    assert hits[0]["item_id"] == "r3"
    assert hits[0]["kind"] == "rate"
    assert hits[0]["score"] == pytest.approx(0.86)


def test_manual_search_by_article(catalog):
    hits = manual_search("КР-150", catalog)
    assert hits[0]["item_id"] == "m1"
    assert hits[0]["kind"] == "material"
    assert hits[0]["score"] == 1.0


def test_manual_search_subcategory_keeps_only_rates(catalog):
    hits = manual_search("Штукатурка стен", catalog, subcategory="Кладка", min_score=0)
    assert hits[0]["item_id"] == "r3"
    assert {h["kind"] for h in hits} == {"rate"}
    assert "r2" not in [h["item_id"] for h in hits]


def test_manual_search_category_filter(catalog):
    hits = manual_search("Кирпич керамический М150", catalog, category="Вяжущие", min_score=0)
    assert [h["item_id"] for h in hits] == ["m2"]


def test_manual_search_limits_and_skips_inactive(catalog):
    everything = manual_search("Кладка", catalog, min_score=0)
    assert len(everything) == 5
    assert "m3" not in [h["item_id"] for h in everything]
    assert len(manual_search("Кладка", catalog, min_score=0, max_results=1)) == 1


def test_manual_search_blank_query(catalog):
    assert manual_search("  ", catalog) == []
