from __future__ import annotations

from dataclasses import dataclass, field
import re

from .taxonomy import (
    aliases_for,
    category_keywords,
    is_known_category,
    is_umbrella_category,
    map_alias_category,
    normalize_text,
    taxonomy_categories,
)

MIN_TOKEN_LENGTH = 4

# Slang and frequent misspellings seen in chat traffic.
REINFORCEMENT_PHRASES = (
    "piconha",
    "picanha",
    "pitza",
    "piza",
    "churras",
    "rodízio",
    "japa",
    "temaki",
    "frutos do mar",
    "hamburquer",
    "burguer",
    "vista para o mar",
    "beira mar",
    "pôr do sol",
    "barato",
    "família",
    "romântico",
    "pet friendly",
)


@dataclass(frozen=True)
class SearchSignals:
    terms: frozenset[str] = field(default_factory=frozenset)
    wanted_categories: frozenset[str] = field(default_factory=frozenset)

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "terms": sorted(self.terms),
            "wanted_categories": sorted(self.wanted_categories),
        }


def _tokens(normalized_query: str) -> list[str]:
    cleaned = re.sub(r"[^a-z0-9]+", " ", normalized_query)
    return [token for token in cleaned.split() if len(token) >= MIN_TOKEN_LENGTH]


def _category_matches(normalized_query: str, category: str) -> bool:
    if category in normalized_query:
        return True
    if any(keyword and keyword in normalized_query for keyword in category_keywords(category)):
        return True
    return any(alias and alias in normalized_query for alias in aliases_for(category))


def extract_signals(query: str | None, hinted_category: str | None = None) -> SearchSignals:
    normalized_query = normalize_text(query)
    terms: set[str] = set()
    wanted: set[str] = set()

    hinted = map_alias_category(hinted_category)
    if hinted and not is_umbrella_category(hinted):
        wanted.add(hinted)

    if normalized_query:
        for category in taxonomy_categories():
            if not _category_matches(normalized_query, category):
                continue
            wanted.add(category)
            terms.add(category)
            terms.update(category_keywords(category))

        terms.update(_tokens(normalized_query))

        for phrase in REINFORCEMENT_PHRASES:
            normalized_phrase = normalize_text(phrase)
            if normalized_phrase not in normalized_query:
                continue
            terms.add(normalized_phrase)
            resolved = map_alias_category(normalized_phrase)
            if resolved and is_known_category(resolved) and not is_umbrella_category(resolved):
                wanted.add(resolved)

    return SearchSignals(terms=frozenset(terms), wanted_categories=frozenset(wanted))
