import pytest

from smeta_calc.units import normalize_unit, resolve_unit, units_match


@pytest.mark.parametrize("raw,expected", [
    ("м²", "м2"),
    ("кв. м", "м2"),
    ("М3", "м3"),
    ("куб.м", "м3"),
    ("шт.", "шт"),
    ("п.м.", "м"),
    ("пог. м", "м"),
    ("Т", "т"),
    (None, ""),
])
def test_normalize_unit(raw, expected):
    assert normalize_unit(raw) == expected


def test_units_match():
    assert units_match("кв.м", "м²")
    assert units_match("м", "пог.м")
    assert not units_match("м2", "м3")
    assert not units_match("", "")


def test_resolve_unit(catalog):
    assert resolve_unit("м3", catalog.units)["id"] == "u1"
    assert resolve_unit("М2", catalog.units)["id"] == "u2"
    assert resolve_unit("штука", catalog.units)["id"] == "u3"
    assert catalog.resolve_unit("куб.м")["id"] == "u1"
    assert resolve_unit("", catalog.units) is None
    assert resolve_unit("xyz", catalog.units) is None
