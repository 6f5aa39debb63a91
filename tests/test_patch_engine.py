"""Tests for the patch engine."""

import copy

import pytest
from pydantic import ValidationError as PydanticValidationError

from tableserver.engine.patch_engine import apply_patch, apply_patches, split_path
from tableserver.models.patch import Patch
from tableserver.util.errors import ValidationError


def _doc():
    return {
        "name": "Aria",
        "stats": {"str": 10, "dex": 14},
        "inventory": [{"name": "Rope"}, {"name": "Torch"}],
        "tags": ["elf"],
    }


class TestSimplePaths:
    def test_top_level_overwrite(self):
        doc = _doc()
        apply_patch(doc, Patch(path="name", value="Brin"))
        assert doc["name"] == "Brin"

    def test_nested_overwrite(self):
        doc = _doc()
        apply_patch(doc, Patch(path="stats.dex", value=16))
        assert doc["stats"] == {"str": 10, "dex": 16}

    def test_missing_intermediates_are_created(self):
        doc = {}
        apply_patch(doc, Patch(path="a.b.c", value=1))
        assert doc == {"a": {"b": {"c": 1}}}

    def test_scalar_on_the_way_is_replaced(self):
        doc = {"a": 5}
        apply_patch(doc, Patch(path="a.b", value=True))
        assert doc == {"a": {"b": True}}

    def test_null_value(self):
        doc = _doc()
        apply_patch(doc, Patch(path="stats.str", value=None))
        assert doc["stats"]["str"] is None

    def test_split_path(self):
        assert split_path("tokens.t1.position") == ["tokens", "t1", "position"]


class TestArrays:
    def test_single_key_array_replaces_whole_list(self):
        doc = _doc()
        apply_patch(doc, Patch(path="inventory", value=[{"name": "Sword"}]))
        assert doc["inventory"] == [{"name": "Sword"}]

    def test_index_into_existing_element(self):
        doc = _doc()
        apply_patch(doc, Patch(path="inventory.1.name", value="Lantern"))
        assert doc["inventory"] == [{"name": "Rope"}, {"name": "Lantern"}]

    def test_index_grows_array_with_empty_objects(self):
        doc = {"items": []}
        apply_patch(doc, Patch(path="items.2.name", value="Sword"))
        assert doc["items"] == [{}, {}, {"name": "Sword"}]

    def test_assign_list_element_directly(self):
        doc = {"tags": ["a"]}
        apply_patch(doc, Patch(path="tags.3", value="d"))
        assert doc["tags"] == ["a", {}, {}, "d"]

    def test_non_numeric_key_against_list_is_rejected(self):
        doc = _doc()
        with pytest.raises(ValidationError):
            apply_patch(doc, Patch(path="inventory.first.name", value="x"))

    def test_negative_key_against_list_is_rejected(self):
        doc = _doc()
        with pytest.raises(ValidationError):
            apply_patch(doc, Patch(path="inventory.-1", value="x"))

    def test_nested_list_value_is_not_a_whole_replace(self):
        doc = {"map": {"walls": [{"q": 0, "r": 0}]}}
        apply_patch(doc, Patch(path="map.walls", value=[]))
        assert doc["map"]["walls"] == []


class TestProperties:
    def test_idempotent(self):
        patch = Patch(path="inventory.4.count", value=3)
        once = _doc()
        apply_patch(once, patch)
        twice = copy.deepcopy(once)
        apply_patch(twice, patch)
        assert once == twice

    def test_deterministic(self):
        patches = [
            Patch(path="stats.wis", value=12),
            Patch(path="inventory.0.count", value=2),
            Patch(path="tags", value=["elf", "ranger"]),
        ]
        a, b = _doc(), _doc()
        apply_patches(a, patches)
        apply_patches(b, patches)
        assert a == b

    def test_value_is_copied_into_document(self):
        value = {"q": 1, "r": 2}
        patch = Patch(path="tokens.t1.position", value=value)
        doc = {}
        apply_patch(doc, patch)
        doc["tokens"]["t1"]["position"]["q"] = 99
        assert patch.value == {"q": 1, "r": 2}

    def test_later_patch_wins(self):
        doc = {}
        apply_patches(doc, [Patch(path="hp", value=5), Patch(path="hp", value=7)])
        assert doc["hp"] == 7


class TestPatchModel:
    def test_empty_path_rejected(self):
        with pytest.raises(PydanticValidationError):
            Patch(path="", value=1)

    def test_to_wire(self):
        assert Patch(path="a.b", value=[1]).to_wire() == {"path": "a.b", "value": [1]}
