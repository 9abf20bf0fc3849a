"""
Hybrid partner search: staged vector/text retrieval, weighted fusion and
domain gates (exact venue name, pizza exclusivity, affinity threshold).
"""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from agent.graph import run_retrieval

from .config import get_settings
from .embeddings import GeminiEmbedder
from .ranking import (
    exact_name_gate,
    merge_candidates,
    order_candidates,
    pizza_exclusivity,
    relevance_gate,
    score_candidates,
)
from .retrieval import PartnerFilters, PostgresPartnerStore
from .signals import extract_signals
from .taxonomy import is_umbrella_category, map_alias_category

settings = get_settings()
logger = logging.getLogger("bepit.search")

_default_store: PostgresPartnerStore | None = None


def _get_default_store() -> PostgresPartnerStore:
    global _default_store
    if _default_store is None:
        _default_store = PostgresPartnerStore()
    return _default_store


def resolve_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = 0
    if value == 0:
        value = settings.search_default_limit
    return max(1, min(value, settings.search_max_limit))


def hybrid_search(
    q: str | None,
    cidade_id: str | None = None,
    categoria: str | None = None,
    limit: Any = 10,
    debug: bool = False,
    store: Any = None,
    embedder: Any = None,
) -> list[dict[str, Any]] | dict[str, Any]:
    start = time.monotonic()
    request_id = uuid.uuid4().hex[:8]
    query = (q or "").strip()
    safe_limit = resolve_limit(limit)
    city_filter = (str(cidade_id).strip() if cidade_id else "") or None
    category_filter = map_alias_category(categoria)

    store = store if store is not None else _get_default_store()
    embedder = embedder if embedder is not None else GeminiEmbedder()

    signals = extract_signals(query, category_filter)
    filters = PartnerFilters(cidade_id=city_filter, categoria=category_filter)

    retrieval = run_retrieval(
        query,
        filters,
        count=safe_limit * 3,
        store=store,
        embedder=embedder,
        request_id=request_id,
    )

    merged = merge_candidates(retrieval.vector_rows, retrieval.text_rows)
    score_candidates(merged, query, cidade_id=city_filter, categoria=category_filter)
    ranked = order_candidates(merged, retrieval.text_rows)
    pre_gate = len(ranked)

    ranked = exact_name_gate(ranked, query)
    after_name_gate = len(ranked)
    ranked = pizza_exclusivity(ranked, query)
    after_pizza_gate = len(ranked)
    ranked = relevance_gate(ranked, signals)

    items = [candidate.to_dict() for candidate in ranked[:safe_limit]]

    logger.info(
        "search.done req=%s q=%r stage=%s merged=%s name_gate=%s pizza_gate=%s relevance_gate=%s returned=%s elapsed=%.2fs",
        request_id,
        query[:80],
        retrieval.stage,
        pre_gate,
        after_name_gate,
        after_pizza_gate,
        len(ranked),
        len(items),
        time.monotonic() - start,
    )

    if not debug:
        return items

    meta = {
        "request_id": request_id,
        "input": {
            "q": query,
            "cidade_id": city_filter,
            "categoria": category_filter,
            "categoria_raw": categoria,
            "limit": safe_limit,
        },
        "category_is_umbrella": bool(category_filter) and is_umbrella_category(category_filter),
        "signals": signals.as_dict(),
        "stage": retrieval.stage,
        "stages_run": retrieval.stages_run,
        "filters_used": retrieval.filters.as_dict(),
        "steps": retrieval.steps,
        "counts": {
            "vector": len(retrieval.vector_rows),
            "text": len(retrieval.text_rows),
            "merged": len(merged),
            "ranked": pre_gate,
            "after_name_gate": after_name_gate,
            "after_pizza_gate": after_pizza_gate,
            "after_relevance_gate": len(ranked),
        },
    }
    return {"items": items, "meta": meta}
