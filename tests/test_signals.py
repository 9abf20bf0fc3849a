"""Tests for query signal extraction."""

from api.signals import SearchSignals, extract_signals


def test_pizza_query_wants_pizzaria():
    signals = extract_signals("quero comer pizza em cabo frio")

    assert "pizzaria" in signals.wanted_categories
    assert "pizza" in signals.terms
    assert "quero" in signals.terms
    assert "em" not in signals.terms


def test_category_match_adds_its_keywords():
    signals = extract_signals("um sushi caprichado")

    assert "sushi" in signals.wanted_categories
    assert "sashimi" in signals.terms
    assert "temaki" in signals.terms


def test_hinted_category_is_resolved_through_aliases():
    signals = extract_signals("", hinted_category="japa")
    assert signals.wanted_categories == frozenset({"sushi"})


def test_umbrella_hint_is_not_wanted():
    signals = extract_signals("", hinted_category="Comida")
    assert signals.wanted_categories == frozenset()


def test_reinforcement_phrase_resolves_category():
    signals = extract_signals("melhor piconha da regiao")

    assert "piconha" in signals.terms
    assert "churrascaria" in signals.wanted_categories


def test_accented_reinforcement_phrase_matches_plain_query():
    signals = extract_signals("bar com por do sol")
    assert "por do sol" in signals.terms


def test_empty_query_has_no_signals():
    assert extract_signals(None) == SearchSignals()
    assert extract_signals("   ").as_dict() == {"terms": [], "wanted_categories": []}
