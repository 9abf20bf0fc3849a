"""Tests for partner indexing against a throwaway SQLite database."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.db import Base
from api.indexing import (
    PartnerNotFoundError,
    bulk_index_partners,
    forget_partner_forever,
    index_partner_text,
    pause_partner_index,
    reactivate_partner_index,
    safe_join_texts,
)
from api.models import Cidade, Parceiro
from conftest import FakeEmbedder


class FailingEmbedder(FakeEmbedder):
    def embed(self, text, task_type="RETRIEVAL_QUERY"):
        if "Quebrado" in text:
            raise RuntimeError("gemini 500")
        return super().embed(text, task_type)


@pytest.fixture
def db():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    session.add(Cidade(id="c1", nome="Cabo Frio", slug="cabo-frio"))
    session.add_all(
        [
            Parceiro(id="p1", cidade_id="c1", nome="Forno Nobre", categoria="pizzaria", descricao="Pizza napolitana"),
            Parceiro(id="p2", cidade_id="c1", nome="Quebrado", categoria="bar"),
            Parceiro(id="p3", cidade_id="c1", nome="Fechado", categoria="bar", ativo=False),
            Parceiro(id="p4", cidade_id="c1", nome="Bloqueado", categoria="bar", bloqueado=True),
        ]
    )
    session.commit()
    yield session
    session.close()
    engine.dispose()


def test_safe_join_texts():
    assert safe_join_texts([" a ", {"text": "b"}, None, {"other": 1}]) == "a\n\nb"
    assert safe_join_texts([]) is None
    assert len(safe_join_texts(["x" * 9000])) == 8000


def test_index_partner_text_uses_chunks(db):
    embedder = FakeEmbedder()

    result = index_partner_text(db, "p1", ["Forno a lenha", {"text": "Rodízio às terças"}], embedder=embedder)

    assert result["dims"] == 768
    assert result["used_chunks"] == 2
    assert embedder.calls == ["Forno a lenha\n\nRodízio às terças"]
    assert db.get(Parceiro, "p1").embedding_768 is not None


def test_index_partner_text_falls_back_to_name_and_description(db):
    embedder = FakeEmbedder()

    index_partner_text(db, "p1", embedder=embedder)

    assert embedder.calls == ["Nome: Forno Nobre\n\nDescrição: Pizza napolitana"]


def test_index_unknown_partner(db):
    with pytest.raises(PartnerNotFoundError):
        index_partner_text(db, "nope", embedder=FakeEmbedder())


def test_pause_and_reactivate(db):
    pause_partner_index(db, "p1")
    partner = db.get(Parceiro, "p1")
    assert (partner.ativo, partner.bloqueado, partner.bloqueado_motivo) == (False, True, "bloqueado pelo admin")
    assert partner.embedding_768 is None

    embedder = FakeEmbedder()
    reactivate_partner_index(db, "p1", embedder=embedder)
    partner = db.get(Parceiro, "p1")
    assert (partner.ativo, partner.bloqueado, partner.bloqueado_motivo) == (True, False, None)
    assert embedder.calls == ["Forno Nobre\nCategoria: pizzaria\nPizza napolitana"]


def test_forget_partner_forever(db):
    forget_partner_forever(db, "p2")
    assert db.get(Parceiro, "p2") is None
    with pytest.raises(PartnerNotFoundError):
        forget_partner_forever(db, "p2")


def test_bulk_index_skips_inactive_and_collects_failures(db):
    summary = bulk_index_partners(db, cidade_id="c1", embedder=FailingEmbedder())

    assert summary["total_candidates"] == 2
    assert summary["processed"] == 2
    assert summary["ok"] == 1
    assert summary["fail"] == 1
    assert summary["errors"] == [{"id": "p2", "error": "gemini 500"}]


def test_bulk_index_only_missing(db):
    index_partner_text(db, "p1", embedder=FakeEmbedder())

    summary = bulk_index_partners(db, categoria="bar", embedder=FakeEmbedder())

    assert summary["processed"] == 1
    assert bulk_index_partners(db, only_missing=True, embedder=FakeEmbedder())["total_candidates"] == 0
    assert bulk_index_partners(db, only_missing=False, limit=1, embedder=FakeEmbedder())["processed"] == 1
