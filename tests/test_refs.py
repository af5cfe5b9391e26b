"""Position reference building and flattening."""
import pytest

from pbac.features.positions import refs
from pbac.features.positions.models import Position


def test_to_ref_reads_names_ids_and_entities():
    position = Position(id=7, name="Manager")

    assert refs.to_ref("Manager") == refs.PositionName("Manager")
    assert refs.to_ref(3) == refs.PositionId(3)
    assert refs.to_ref("3") == refs.PositionId(3)
    assert refs.to_ref(position) == refs.PositionEntity(position)


def test_digit_strings_stay_names_for_membership():
    assert refs.to_ref("2024", numeric_strings=False) == refs.PositionName("2024")


def test_delimited_string_becomes_name_list():
    ref = refs.to_ref("Manager| Auditor |", delimited=True)

    assert ref == refs.PositionRefs((refs.PositionName("Manager"), refs.PositionName("Auditor")))
    assert refs.to_ref("Manager|Auditor") == refs.PositionName("Manager|Auditor")


def test_lists_and_sets_are_distinguished():
    assert refs.to_ref(["Manager", 2]).collection is False
    assert refs.to_ref({"Manager"}).collection is True


def test_to_ref_rejects_booleans_and_objects():
    with pytest.raises(TypeError):
        refs.to_ref(True)
    with pytest.raises(TypeError):
        refs.to_ref(object())


def test_flatten_descends_nested_input():
    nested = ["Manager", [1, ("Auditor", {"Clerk"})], refs.PositionRefs((refs.PositionId(9),))]

    assert list(refs.flatten(nested)) == ["Manager", 1, "Auditor", "Clerk", refs.PositionId(9)]


@pytest.mark.parametrize("value", ["", None, 0, [], refs.PositionName(""), refs.PositionId(0)])
def test_is_blank(value):
    assert refs.is_blank(value)


def test_is_numeric():
    assert refs.is_numeric(5)
    assert refs.is_numeric(" 12 ")
    assert not refs.is_numeric("12a")
    assert not refs.is_numeric(True)
