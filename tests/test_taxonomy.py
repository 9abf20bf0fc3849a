"""Tests for text normalization and category alias resolution."""

import pytest

from api.taxonomy import (
    alias_table,
    aliases_for,
    category_keywords,
    category_variants,
    is_known_category,
    is_umbrella_category,
    map_alias_category,
    normalize_text,
    taxonomy_categories,
)


def test_normalize_text_strips_accents_and_case():
    assert normalize_text("Pôr do Sol") == "por do sol"
    assert normalize_text("  Açaí   da\tPraia ") == "acai da praia"


@pytest.mark.parametrize("value", [None, "", "   "])
def test_normalize_text_empty_input(value):
    assert normalize_text(value) == ""


def test_normalize_text_is_idempotent():
    once = normalize_text("Churrascaria GAÚCHA  Rodízio")
    assert normalize_text(once) == once


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Pizza", "pizzaria"),
        ("pitza", "pizzaria"),
        ("Japonês", "sushi"),
        ("japa", "sushi"),
        ("picanha", "churrascaria"),
        ("Rodízio", "churrascaria"),
        ("Bistrô", "bistro"),
        ("onde comer", "comida"),
    ],
)
def test_map_alias_category_resolves_aliases(raw, expected):
    assert map_alias_category(raw) == expected


def test_map_alias_category_keeps_unknown_categories():
    assert map_alias_category("Loja de Surf") == "loja de surf"


@pytest.mark.parametrize("value", [None, "", "  "])
def test_map_alias_category_only_empty_yields_none(value):
    assert map_alias_category(value) is None


def test_every_category_label_maps_to_itself():
    for category in taxonomy_categories():
        assert map_alias_category(category) == category
        assert is_known_category(category)


def test_keywords_and_aliases_are_normalized():
    assert "rodizio de pizza" in category_keywords("pizzaria")
    assert "japones" in aliases_for("Sushi")
    assert category_keywords("nao existe") == ()


def test_umbrella_categories():
    assert is_umbrella_category("Comida")
    assert is_umbrella_category("hospedagem")
    assert not is_umbrella_category("pizzaria")
    assert not is_umbrella_category(None)


def test_alias_table_is_read_only():
    table = alias_table()
    assert table["pizza"] == "pizzaria"
    with pytest.raises(TypeError):
        table["pizza"] = "hamburgueria"


def test_category_variants_cover_tag_and_aliases():
    variants = category_variants("Japonesa")

    assert variants[0] == "sushi"
    assert {"japonesa", "japones", "japa"} <= set(variants)
    assert category_variants("Loja de Surf") == ("loja de surf",)
    assert category_variants(None) == ()
