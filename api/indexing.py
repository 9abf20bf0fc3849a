from __future__ import annotations

import logging
import time
from typing import Any, Iterable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .config import get_settings
from .embeddings import GeminiEmbedder
from .models import Parceiro

settings = get_settings()
logger = logging.getLogger("bepit.indexing")

MAX_INDEX_CHARS = 8000
DEFAULT_BLOCK_REASON = "bloqueado pelo admin"


class PartnerNotFoundError(LookupError):
    """The partner id does not exist."""


def safe_join_texts(chunks: Iterable[Any] | None, max_len: int = MAX_INDEX_CHARS) -> str | None:
    parts = []
    for chunk in chunks or []:
        if isinstance(chunk, dict):
            value = chunk.get("text")
        else:
            value = chunk
        value = str(value or "").strip()
        if value:
            parts.append(value)
    joined = "\n\n".join(parts).strip()
    if not joined:
        return None
    return joined[:max_len]


def _get_partner(db: Session, partner_id: str) -> Parceiro:
    partner = db.get(Parceiro, partner_id)
    if partner is None:
        raise PartnerNotFoundError(f"Partner {partner_id} not found")
    return partner


def _embedder(embedder: GeminiEmbedder | None) -> GeminiEmbedder:
    return embedder if embedder is not None else GeminiEmbedder()


def index_partner_text(
    db: Session,
    partner_id: str,
    chunks: Iterable[Any] | None = None,
    embedder: GeminiEmbedder | None = None,
) -> dict[str, Any]:
    if not partner_id:
        raise ValueError("partner_id is required")
    chunk_list = list(chunks or [])

    base_text = safe_join_texts(chunk_list)
    partner = _get_partner(db, partner_id)
    if not base_text:
        name = f"Nome: {partner.nome}" if partner.nome else ""
        description = f"\n\nDescrição: {partner.descricao}" if partner.descricao else ""
        base_text = (name + description).strip()
        if not base_text:
            raise ValueError("No content to index")

    embedding = _embedder(embedder).embed_document(base_text)
    partner.embedding_768 = embedding
    db.commit()
    logger.info("index.partner id=%s chunks=%s chars=%s", partner_id, len(chunk_list), len(base_text))
    return {
        "ok": True,
        "partner_id": partner_id,
        "saved_column": "embedding_768",
        "dims": len(embedding),
        "used_chunks": len(chunk_list),
    }


def index_partner_by_id(
    db: Session,
    partner_id: str,
    reactivate: bool = False,
    embedder: GeminiEmbedder | None = None,
) -> dict[str, Any]:
    partner = _get_partner(db, partner_id)
    base_text = "\n".join(
        part
        for part in (
            partner.nome or "",
            f"Categoria: {partner.categoria}" if partner.categoria else "",
            partner.descricao or "",
        )
        if part
    )
    if not base_text:
        raise ValueError("No content to index")

    embedding = _embedder(embedder).embed_document(base_text)
    partner.embedding_768 = embedding
    if reactivate:
        partner.ativo = True
    db.commit()
    return {"ok": True, "partner_id": partner_id, "dims": len(embedding)}


def pause_partner_index(db: Session, partner_id: str, motivo: str | None = None) -> dict[str, Any]:
    partner = _get_partner(db, partner_id)
    partner.ativo = False
    partner.embedding_768 = None
    partner.bloqueado = True
    partner.bloqueado_motivo = motivo or DEFAULT_BLOCK_REASON
    db.commit()
    logger.info("index.pause id=%s reason=%r", partner_id, partner.bloqueado_motivo)
    return {"ok": True, "partner_id": partner_id}


def reactivate_partner_index(
    db: Session,
    partner_id: str,
    embedder: GeminiEmbedder | None = None,
) -> dict[str, Any]:
    result = index_partner_by_id(db, partner_id, reactivate=True, embedder=embedder)
    partner = _get_partner(db, partner_id)
    partner.bloqueado = False
    partner.bloqueado_motivo = None
    db.commit()
    logger.info("index.reactivate id=%s", partner_id)
    return result


def forget_partner_forever(db: Session, partner_id: str) -> dict[str, Any]:
    partner = _get_partner(db, partner_id)
    db.delete(partner)
    db.commit()
    logger.info("index.forget id=%s", partner_id)
    return {"ok": True, "partner_id": partner_id}


def bulk_index_partners(
    db: Session,
    cidade_id: str | None = None,
    categoria: str | None = None,
    only_missing: bool = True,
    limit: int = 500,
    embedder: GeminiEmbedder | None = None,
) -> dict[str, Any]:
    start = time.monotonic()
    safe_limit = max(1, min(int(limit or 500), settings.bulk_index_max_limit))

    query = (
        db.query(Parceiro.id)
        .filter(Parceiro.ativo.is_(True))
        .filter(or_(Parceiro.bloqueado.is_(None), Parceiro.bloqueado.is_(False)))
    )
    if cidade_id:
        query = query.filter(Parceiro.cidade_id == cidade_id)
    if categoria:
        query = query.filter(Parceiro.categoria == categoria)
    if only_missing:
        query = query.filter(Parceiro.embedding_768.is_(None))

    total = query.with_entities(func.count(Parceiro.id)).scalar() or 0
    ids = [row[0] for row in query.order_by(Parceiro.id).limit(safe_limit).all()]

    shared_embedder = _embedder(embedder)
    ok = 0
    errors: list[dict[str, str]] = []
    for partner_id in ids:
        try:
            index_partner_text(db, partner_id, [], embedder=shared_embedder)
            ok += 1
        except Exception as exc:
            db.rollback()
            errors.append({"id": partner_id, "error": str(exc)})
            logger.warning("index.bulk_error id=%s error=%s", partner_id, exc)

    logger.info(
        "index.bulk total=%s processed=%s ok=%s fail=%s elapsed=%.2fs",
        total,
        len(ids),
        ok,
        len(errors),
        time.monotonic() - start,
    )
    return {
        "total_candidates": total,
        "processed": len(ids),
        "ok": ok,
        "fail": len(errors),
        "errors": errors,
    }
