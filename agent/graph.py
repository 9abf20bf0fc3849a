from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from functools import lru_cache
import logging
import time
from typing import Any, Callable, TypedDict

from langgraph.graph import END, StateGraph

from api.config import get_settings
from api.retrieval import PartnerCandidate, PartnerFilters, candidate_from_row

settings = get_settings()
logger = logging.getLogger("bepit.retrieval")

_SEARCH_EXECUTOR = ThreadPoolExecutor(
    max_workers=max(2, settings.search_workers),
    thread_name_prefix="partner-search",
)

STAGE_PRIMARY = "primary"
STAGE_DROP_CATEGORY = "drop_category"
STAGE_DROP_CITY = "drop_city"
STAGE_LEGACY_TEXT = "legacy_text"
STAGE_TABLE_SCAN = "table_scan"
STAGE_DONE = "done"


class SearchState(TypedDict, total=False):
    request_id: str
    query: str
    count: int
    timeout: float
    store: Any
    embedder: Any
    filters: PartnerFilters
    stage: str
    stages_run: list[str]
    vector_rows: list[PartnerCandidate]
    text_rows: list[PartnerCandidate]
    steps: dict[str, dict[str, Any]]


@dataclass
class RetrievalResult:
    vector_rows: list[PartnerCandidate]
    text_rows: list[PartnerCandidate]
    filters: PartnerFilters
    stage: str
    stages_run: list[str]
    steps: dict[str, dict[str, Any]] = field(default_factory=dict)


def _step(tried: bool = False, count: int = 0, error: str | None = None) -> dict[str, Any]:
    return {"tried": tried, "count": count, "error": error}


def _await_rows(future: Future, deadline: float, timeout: float) -> tuple[list[dict[str, Any]], str | None]:
    """Wait for a lane until the stage deadline; lanes of one stage share a single budget."""
    remaining = max(0.0, deadline - time.monotonic())
    try:
        rows = future.result(timeout=remaining)
    except FutureTimeoutError:
        future.cancel()
        return [], f"timed out after {timeout:.1f}s"
    except Exception as exc:
        return [], str(exc) or exc.__class__.__name__
    return list(rows or []), None


def _submit(fn: Callable[[], list[dict[str, Any]]]) -> Future:
    return _SEARCH_EXECUTOR.submit(fn)


def _vector_enabled(state: SearchState) -> bool:
    embedder = state.get("embedder")
    return bool(state.get("query")) and embedder is not None and bool(getattr(embedder, "available", False))


def _run_lanes(state: SearchState, stage: str, filters: PartnerFilters) -> SearchState:
    """Vector and text lanes for one stage, issued concurrently."""
    start = time.monotonic()
    store = state["store"]
    embedder = state.get("embedder")
    query = state.get("query") or ""
    count = state["count"]
    timeout = state["timeout"]
    deadline = start + timeout
    steps = dict(state.get("steps") or {})

    vector_future: Future | None = None
    if _vector_enabled(state):
        vector_future = _submit(lambda: store.vector_search(embedder.embed(query), filters, count))
    text_future = _submit(lambda: store.text_search(query, filters, count))

    vector_rows: list[PartnerCandidate] = []
    if vector_future is not None:
        raw, error = _await_rows(vector_future, deadline, timeout)
        vector_rows = [candidate_from_row(row, "vector") for row in raw]
        steps[f"{stage}.vector"] = _step(True, len(vector_rows), error)
        if error:
            logger.warning("retrieve.lane_error req=%s stage=%s lane=vector error=%s", state.get("request_id"), stage, error)
    else:
        steps[f"{stage}.vector"] = _step(False)

    raw, error = _await_rows(text_future, deadline, timeout)
    text_rows = [candidate_from_row(row, "text") for row in raw]
    steps[f"{stage}.text"] = _step(True, len(text_rows), error)
    if error:
        logger.warning("retrieve.lane_error req=%s stage=%s lane=text error=%s", state.get("request_id"), stage, error)

    logger.info(
        "retrieve.stage req=%s stage=%s filters=%s vector=%s text=%s elapsed=%.2fs",
        state.get("request_id"),
        stage,
        filters.as_dict(),
        len(vector_rows),
        len(text_rows),
        time.monotonic() - start,
    )
    return {
        "filters": filters,
        "stage": stage,
        "stages_run": list(state.get("stages_run") or []) + [stage],
        "vector_rows": vector_rows,
        "text_rows": text_rows,
        "steps": steps,
    }


def _run_text_fallback(
    state: SearchState,
    stage: str,
    call: Callable[[], list[dict[str, Any]]],
    default_text_score: float,
) -> SearchState:
    start = time.monotonic()
    steps = dict(state.get("steps") or {})
    timeout = state["timeout"]
    raw, error = _await_rows(_submit(call), start + timeout, timeout)
    text_rows = [candidate_from_row(row, "text", default_text_score=default_text_score) for row in raw]
    steps[stage] = _step(True, len(text_rows), error)
    if error:
        logger.warning("retrieve.lane_error req=%s stage=%s error=%s", state.get("request_id"), stage, error)
    logger.info(
        "retrieve.stage req=%s stage=%s text=%s elapsed=%.2fs",
        state.get("request_id"),
        stage,
        len(text_rows),
        time.monotonic() - start,
    )
    update: SearchState = {
        "stages_run": list(state.get("stages_run") or []) + [stage],
        "steps": steps,
        "text_rows": text_rows,
    }
    if text_rows:
        update["stage"] = stage
    return update


def primary_node(state: SearchState) -> SearchState:
    return _run_lanes(state, STAGE_PRIMARY, state["filters"])


def drop_category_node(state: SearchState) -> SearchState:
    return _run_lanes(state, STAGE_DROP_CATEGORY, state["filters"].without_category())


def drop_city_node(state: SearchState) -> SearchState:
    return _run_lanes(state, STAGE_DROP_CITY, state["filters"].without_city())


def legacy_text_node(state: SearchState) -> SearchState:
    store = state["store"]
    filters = state["filters"]
    query = state.get("query") or ""
    count = state["count"]
    return _run_text_fallback(
        state,
        STAGE_LEGACY_TEXT,
        lambda: store.legacy_keyword_search(filters, query, count),
        settings.legacy_text_score,
    )


def table_scan_node(state: SearchState) -> SearchState:
    store = state["store"]
    filters = state["filters"]
    query = state.get("query") or ""
    count = state["count"]
    return _run_text_fallback(
        state,
        STAGE_TABLE_SCAN,
        lambda: store.table_substring_scan(query, filters, count),
        settings.table_fallback_score,
    )


def _next_stage(state: SearchState) -> str:
    ran = set(state.get("stages_run") or [])
    filters = state["filters"]
    vector_rows = state.get("vector_rows") or []
    text_rows = state.get("text_rows") or []
    total = len(vector_rows) + len(text_rows)
    has_query = bool(state.get("query"))

    if total == 0 and filters.categoria and STAGE_DROP_CATEGORY not in ran:
        return STAGE_DROP_CATEGORY
    if total == 0 and filters.cidade_id and STAGE_DROP_CITY not in ran:
        return STAGE_DROP_CITY
    if not text_rows and has_query and STAGE_LEGACY_TEXT not in ran:
        return STAGE_LEGACY_TEXT
    if not text_rows and has_query and STAGE_TABLE_SCAN not in ran:
        return STAGE_TABLE_SCAN
    return STAGE_DONE


_ROUTES = {
    STAGE_DROP_CATEGORY: STAGE_DROP_CATEGORY,
    STAGE_DROP_CITY: STAGE_DROP_CITY,
    STAGE_LEGACY_TEXT: STAGE_LEGACY_TEXT,
    STAGE_TABLE_SCAN: STAGE_TABLE_SCAN,
    STAGE_DONE: END,
}


def build_graph():
    graph = StateGraph(SearchState)
    graph.add_node(STAGE_PRIMARY, primary_node)
    graph.add_node(STAGE_DROP_CATEGORY, drop_category_node)
    graph.add_node(STAGE_DROP_CITY, drop_city_node)
    graph.add_node(STAGE_LEGACY_TEXT, legacy_text_node)
    graph.add_node(STAGE_TABLE_SCAN, table_scan_node)

    graph.set_entry_point(STAGE_PRIMARY)
    for node in (STAGE_PRIMARY, STAGE_DROP_CATEGORY, STAGE_DROP_CITY, STAGE_LEGACY_TEXT):
        graph.add_conditional_edges(node, _next_stage, _ROUTES)
    graph.add_edge(STAGE_TABLE_SCAN, END)

    return graph.compile()


@lru_cache(maxsize=1)
def get_graph():
    return build_graph()


def run_retrieval(
    query: str,
    filters: PartnerFilters,
    count: int,
    store: Any,
    embedder: Any = None,
    request_id: str | None = None,
    timeout: float | None = None,
) -> RetrievalResult:
    initial: SearchState = {
        "request_id": request_id or "",
        "query": (query or "").strip(),
        "count": count,
        "timeout": timeout if timeout is not None else settings.search_stage_timeout_seconds,
        "store": store,
        "embedder": embedder,
        "filters": filters,
        "stage": STAGE_PRIMARY,
        "stages_run": [],
        "vector_rows": [],
        "text_rows": [],
        "steps": {},
    }
    final = get_graph().invoke(initial)
    return RetrievalResult(
        vector_rows=list(final.get("vector_rows") or []),
        text_rows=list(final.get("text_rows") or []),
        filters=final.get("filters") or filters,
        stage=final.get("stage") or STAGE_PRIMARY,
        stages_run=list(final.get("stages_run") or []),
        steps=dict(final.get("steps") or {}),
    )
