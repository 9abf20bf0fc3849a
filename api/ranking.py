from __future__ import annotations

from dataclasses import dataclass, replace
import re
from typing import Iterable

from .config import get_settings
from .retrieval import PartnerCandidate
from .signals import SearchSignals
from .taxonomy import map_alias_category, normalize_text

settings = get_settings()

CITY_MATCH_BONUS = 0.10
CATEGORY_MATCH_BONUS = 0.10
EXACT_NAME_MIN_QUERY_LENGTH = 5

PIZZA_RE = re.compile(r"pizza|pizzaria", re.IGNORECASE)
SUSHI_RE = re.compile(r"sushi|japon|temaki", re.IGNORECASE)
MEAT_RE = re.compile(r"churrasc|churras|picanha|piconha|carne|rod[ií]zio", re.IGNORECASE)

SUSHI_CATEGORIES = {"sushi", "japonesa", "japones"}
MEAT_CATEGORIES = {"churrascaria", "carne"}


@dataclass(frozen=True)
class Affinity:
    bonus: float
    hits: int


def _candidate_text(candidate: PartnerCandidate) -> str:
    return f"{normalize_text(candidate.nome)} {normalize_text(candidate.descricao)}"


def _candidate_category(candidate: PartnerCandidate) -> str:
    return normalize_text(candidate.categoria)


def merge_candidates(
    vector_rows: Iterable[PartnerCandidate],
    text_rows: Iterable[PartnerCandidate],
) -> list[PartnerCandidate]:
    """Vector rows seed the map, text rows merge in by id keeping the best text score."""
    merged: dict[object, PartnerCandidate] = {}

    for row in vector_rows:
        if row.id is None:
            continue
        merged[row.id] = replace(row, score_text=0.0, score_final=0.0)

    for row in text_rows:
        if row.id is None:
            continue
        existing = merged.get(row.id)
        if existing is None:
            merged[row.id] = replace(row, score_vector=0.0, score_final=0.0)
        else:
            existing.score_text = max(existing.score_text or 0.0, row.score_text or 0.0)

    return list(merged.values())


def keyword_bonus(query: str, candidate: PartnerCandidate) -> float:
    category = _candidate_category(candidate)
    text = _candidate_text(candidate)
    bonus = 0.0

    if PIZZA_RE.search(query):
        if category == "pizzaria":
            bonus += 0.25
        if "pizza" in text:
            bonus += 0.20
    if SUSHI_RE.search(query):
        if category in SUSHI_CATEGORIES:
            bonus += 0.25
        if "sushi" in text or "japon" in text:
            bonus += 0.20
    if MEAT_RE.search(query):
        if category in MEAT_CATEGORIES:
            bonus += 0.20
        if "picanha" in text or "churras" in text:
            bonus += 0.15
    return bonus


def _same_category(candidate: PartnerCandidate, category_filter: str) -> bool:
    category = _candidate_category(candidate)
    if not category:
        return False
    return category == category_filter or map_alias_category(category) == category_filter


def score_candidates(
    candidates: list[PartnerCandidate],
    query: str,
    cidade_id: str | None = None,
    categoria: str | None = None,
) -> list[PartnerCandidate]:
    for candidate in candidates:
        score = settings.weight_vector * (candidate.score_vector or 0.0)
        score += settings.weight_text * (candidate.score_text or 0.0)
        if cidade_id and candidate.cidade_id is not None and str(candidate.cidade_id) == str(cidade_id):
            score += CITY_MATCH_BONUS
        if categoria and _same_category(candidate, categoria):
            score += CATEGORY_MATCH_BONUS
        score += keyword_bonus(query or "", candidate)
        candidate.score_final = score
    return candidates


def order_candidates(
    merged: list[PartnerCandidate],
    text_rows: list[PartnerCandidate],
) -> list[PartnerCandidate]:
    if not merged:
        return sorted(
            text_rows,
            key=lambda row: (-(row.score_text or 0.0), (row.nome or "").casefold()),
        )
    return sorted(merged, key=lambda row: row.score_final, reverse=True)


def exact_name_gate(candidates: list[PartnerCandidate], query: str) -> list[PartnerCandidate]:
    if len((query or "").strip()) <= EXACT_NAME_MIN_QUERY_LENGTH:
        return candidates
    normalized_query = normalize_text(query)
    matches = []
    for candidate in candidates:
        name = normalize_text(candidate.nome)
        if not name:
            continue
        if name in normalized_query or normalized_query in name:
            matches.append(candidate)
    return matches or candidates


def pizza_exclusivity(candidates: list[PartnerCandidate], query: str) -> list[PartnerCandidate]:
    if not PIZZA_RE.search(query or ""):
        return candidates
    matches = [
        candidate
        for candidate in candidates
        if _candidate_category(candidate) == "pizzaria" or "pizza" in _candidate_text(candidate)
    ]
    return matches or candidates


def compute_affinity(candidate: PartnerCandidate, signals: SearchSignals) -> Affinity:
    bonus = 0.0
    category = _candidate_category(candidate)
    if signals.wanted_categories and category:
        if category in signals.wanted_categories or map_alias_category(category) in signals.wanted_categories:
            bonus += settings.affinity_category_weight

    text = _candidate_text(candidate)
    hits = sum(1 for term in signals.terms if term and term in text)
    bonus += min(hits * settings.affinity_term_weight, settings.affinity_term_cap)
    return Affinity(bonus=bonus, hits=hits)


def relevance_gate(
    candidates: list[PartnerCandidate],
    signals: SearchSignals,
    threshold: float | None = None,
) -> list[PartnerCandidate]:
    """Keep candidates with enough affinity; fail open when none qualifies."""
    minimum = settings.affinity_threshold if threshold is None else threshold
    relevant = [
        candidate
        for candidate in candidates
        if compute_affinity(candidate, signals).bonus >= minimum - 1e-9
    ]
    return relevant or candidates
