"""Shared pytest fixtures for all tests."""

import threading
from typing import Any, Callable

import pytest

from api.retrieval import PartnerFilters


def partner_row(
    partner_id: str,
    nome: str,
    categoria: str | None = None,
    descricao: str | None = None,
    cidade_id: str | None = "c1",
    **scores: Any,
) -> dict[str, Any]:
    row = {
        "id": partner_id,
        "nome": nome,
        "categoria": categoria,
        "descricao": descricao,
        "cidade_id": cidade_id,
    }
    row.update(scores)
    return row


class FakeStore:
    """
    In-memory PartnerStore.

    Each lane takes a list (returned for any filters), a dict keyed by
    (cidade_id, categoria) with an optional "*" fallback, or a callable
    receiving the filters.
    """

    LANES = ("vector", "text", "legacy", "table")

    def __init__(self, errors: dict[str, Exception] | None = None, **lanes: Any) -> None:
        self.lanes = {lane: lanes.get(lane) or [] for lane in self.LANES}
        self.errors = errors or {}
        self.calls: list[tuple[str, dict[str, Any], int]] = []
        self._lock = threading.Lock()

    def _rows(self, lane: str, filters: PartnerFilters, count: int) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append((lane, filters.as_dict(), count))
        if lane in self.errors:
            raise self.errors[lane]
        table = self.lanes[lane]
        if callable(table):
            return list(table(filters))
        if isinstance(table, dict):
            key = (filters.cidade_id, filters.categoria)
            return list(table.get(key, table.get("*", [])))
        return list(table)

    def lane_calls(self, lane: str) -> list[dict[str, Any]]:
        return [filters for name, filters, _ in self.calls if name == lane]

    def vector_search(self, embedding, filters, count):
        return self._rows("vector", filters, count)

    def text_search(self, term, filters, count):
        return self._rows("text", filters, count)

    def legacy_keyword_search(self, filters, term, count):
        return self._rows("legacy", filters, count)

    def table_substring_scan(self, term, filters, count):
        return self._rows("table", filters, count)


class FakeEmbedder:
    def __init__(self, available: bool = True, dimensions: int = 768) -> None:
        self.available = available
        self.dimensions = dimensions
        self.calls: list[str] = []

    def embed(self, text: str, task_type: str = "RETRIEVAL_QUERY") -> list[float]:
        self.calls.append(text)
        return [0.1] * self.dimensions

    def embed_document(self, text: str) -> list[float]:
        return self.embed(text, task_type="RETRIEVAL_DOCUMENT")


@pytest.fixture
def make_store() -> Callable[..., FakeStore]:
    return FakeStore


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def offline_embedder() -> FakeEmbedder:
    return FakeEmbedder(available=False)
