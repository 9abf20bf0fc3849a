"""Tests for the SQL-side retrieval helpers."""

from types import SimpleNamespace
import unicodedata

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.db import Base
from api.models import Cidade, Parceiro
from api.retrieval import (
    PartnerFilters,
    PostgresPartnerStore,
    _build_filters,
    _like_pattern,
    resolve_city_id,
)


def _unaccent(value):
    if value is None:
        return None
    return "".join(ch for ch in unicodedata.normalize("NFD", value) if unicodedata.category(ch) != "Mn")


def _similarity(value, term):
    return 1.0 if term and term in (value or "") else 0.0


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Stand-ins for the Postgres unaccent / pg_trgm functions the queries call.
    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, connection_record):
        dbapi_connection.create_function("unaccent", 1, _unaccent)
        dbapi_connection.create_function("similarity", 2, _similarity)
        dbapi_connection.create_function("greatest", -1, lambda *values: max(values))

    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine)
    with factory() as db:
        db.add_all(
            [
                Cidade(id="c1", nome="Armação dos Búzios", slug="buzios"),
                Cidade(id="c2", nome="Cabo Frio", slug="cabo-frio"),
                Parceiro(id="p1", cidade_id="c1", nome="Pizza 100%", categoria="pizzaria"),
                Parceiro(id="p2", cidade_id="c2", nome="Pizzaria do Porto", categoria="pizzaria"),
                Parceiro(id="p3", cidade_id="c1", nome="Pizza Fechada", categoria="pizzaria", ativo=False),
                Parceiro(id="p4", cidade_id="c1", nome="Bar da Praia", descricao="tem pizza", bloqueado=True),
                Parceiro(id="p5", cidade_id="c1", nome="Sushi Kaze", categoria="Japonesa", descricao="sushi e temaki"),
                Parceiro(id="p6", cidade_id="c1", nome="Cantina da Pizza", categoria="Restaurante", descricao="massas"),
            ]
        )
        db.commit()
    yield factory
    engine.dispose()


@pytest.mark.parametrize(
    "term, expected",
    [("pizza", "%pizza%"), ("100%", "%100\\%%"), ("a_b", "%a\\_b%"), ("", "%"), (None, "%")],
)
def test_like_pattern_escapes_wildcards(term, expected):
    assert _like_pattern(term) == expected


def test_build_filters_always_excludes_inactive():
    sql, params = _build_filters(PartnerFilters())
    assert sql == "p.ativo AND NOT coalesce(p.bloqueado, false)"
    assert params == {}


def test_build_filters_category_matches_tag_and_aliases():
    strict_sql, strict = _build_filters(PartnerFilters(cidade_id="c1", categoria="Bistrô"))
    loose_sql, loose = _build_filters(PartnerFilters(categoria="Bistrô"), loose_category=True)

    assert "p.cidade_id = :cidade_id" in strict_sql
    assert "IN (:categoria_0, :categoria_1)" in strict_sql
    assert strict == {"cidade_id": "c1", "categoria_0": "bistro", "categoria_1": "bistros"}
    assert "LIKE :categoria_0 OR" in loose_sql
    assert loose == {"categoria_0": "%bistro%", "categoria_1": "%bistros%"}


def test_build_filters_unknown_category_matches_itself():
    _, params = _build_filters(PartnerFilters(categoria="Loja de Surf"))
    assert params == {"categoria_0": "loja de surf"}


@pytest.mark.parametrize(
    "value, expected",
    [("buzios", "c1"), ("Armacao dos Buzios", "c1"), ("CABO FRIO", "c2"), ("Arraial", None), ("", None)],
)
def test_resolve_city_id(session_factory, value, expected):
    with session_factory() as db:
        assert resolve_city_id(db, value) == expected


def test_table_scan_skips_inactive_and_blocked(session_factory):
    store = PostgresPartnerStore(session_factory)

    rows = store.table_substring_scan("pizza", PartnerFilters(), 10)

    assert [row["id"] for row in rows] == ["p6", "p1", "p2"]
    assert {row["text_score"] for row in rows} == {0.4}


def test_table_scan_applies_city_and_literal_percent(session_factory):
    store = PostgresPartnerStore(session_factory)

    assert [row["id"] for row in store.table_substring_scan("pizza", PartnerFilters(cidade_id="c2"), 10)] == ["p2"]
    assert [row["id"] for row in store.table_substring_scan("100%", PartnerFilters(), 10)] == ["p1"]


def test_table_scan_applies_category_filter(session_factory):
    store = PostgresPartnerStore(session_factory)

    rows = store.table_substring_scan("pizza", PartnerFilters(categoria="pizzaria"), 10)

    assert [row["id"] for row in rows] == ["p1", "p2"]


def test_table_scan_matches_partners_stored_under_an_alias(session_factory):
    store = PostgresPartnerStore(session_factory)

    rows = store.table_substring_scan("sushi", PartnerFilters(categoria="sushi"), 10)

    assert [row["id"] for row in rows] == ["p5"]


def test_text_search_category_filter_accepts_aliases(session_factory):
    store = PostgresPartnerStore(session_factory)

    sushi = store.text_search("temaki", PartnerFilters(categoria="sushi"), 10)
    meat = store.text_search("temaki", PartnerFilters(categoria="churrascaria"), 10)

    assert [row["id"] for row in sushi] == ["p5"]
    assert sushi[0]["text_score"] == 1.0
    assert meat == []


def test_legacy_keyword_search_loose_category_accepts_aliases(session_factory):
    store = PostgresPartnerStore(session_factory)

    rows = store.legacy_keyword_search(PartnerFilters(cidade_id="c1", categoria="sushi"), "temaki barato", 10)

    assert [row["id"] for row in rows] == ["p5"]


class _PostgresSession:
    def __init__(self):
        self.statements = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name="postgresql"))

    def execute(self, statement, params=None):
        self.statements.append((str(statement), params))
        return SimpleNamespace(mappings=lambda: SimpleNamespace(all=lambda: []))


def test_postgres_sessions_bound_statement_time():
    session = _PostgresSession()
    store = PostgresPartnerStore(lambda: session, statement_timeout_ms=1500)

    store.text_search("pizza", PartnerFilters(), 5)

    setup_sql, setup_params = session.statements[0]
    assert "set_config('statement_timeout'" in setup_sql
    assert setup_params == {"value": "1500ms"}
    assert len(session.statements) == 2


def test_statement_timeout_can_be_disabled():
    session = _PostgresSession()
    store = PostgresPartnerStore(lambda: session, statement_timeout_ms=0)

    store.vector_search([0.1, 0.2], PartnerFilters(), 5)

    assert len(session.statements) == 1
    assert "set_config" not in session.statements[0][0]
