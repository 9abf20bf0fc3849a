import logging
from typing import Any, List

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .config import get_settings
from .db import get_db
from .embeddings import EmbeddingError, EmbeddingUnavailableError, GeminiEmbedder
from .hybrid_search import hybrid_search, resolve_limit
from .indexing import (
    PartnerNotFoundError,
    bulk_index_partners,
    forget_partner_forever,
    index_partner_text,
    pause_partner_index,
    reactivate_partner_index,
)
from .readiness import build_readiness_payload
from .retrieval import PostgresPartnerStore, resolve_city_id
from .traces import build_partner_query_payload, record_partner_query

settings = get_settings()
logger = logging.getLogger("bepit.api")

app = FastAPI(title="BEPIT Nexus - Partner Search")


def get_partner_store() -> PostgresPartnerStore:
    return PostgresPartnerStore()


def get_embedder() -> GeminiEmbedder:
    return GeminiEmbedder()


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_API_KEY is not configured")
    if not x_admin_key or x_admin_key != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")


class PartnerHit(BaseModel):
    id: Any
    nome: str
    categoria: str | None = None
    descricao: str | None = None
    cidade_id: Any = None
    score_vector: float = 0.0
    score_text: float = 0.0
    score_final: float = 0.0

    class Config:
        extra = "allow"


class SearchResponse(BaseModel):
    ok: bool
    count: int
    items: List[PartnerHit]
    debug: dict[str, Any] | None = None


class IndexRequest(BaseModel):
    chunks: list[Any] = []


class BulkIndexRequest(BaseModel):
    cidade_id: str | None = None
    categoria: str | None = None
    only_missing: bool = True
    limit: int = 500


class PauseRequest(BaseModel):
    motivo: str | None = None


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/ready")
def ready():
    return build_readiness_payload()


@app.get("/rag/search", response_model=SearchResponse, response_model_exclude_unset=True)
def search_partners(
    background_tasks: BackgroundTasks,
    q: str = "",
    cidade_id: str | None = None,
    cidade: str | None = None,
    categoria: str | None = None,
    limit: str | None = None,
    debug: str | None = None,
    db: Session = Depends(get_db),
    store: PostgresPartnerStore = Depends(get_partner_store),
    embedder: GeminiEmbedder = Depends(get_embedder),
):
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")

    if not cidade_id and cidade:
        cidade_id = resolve_city_id(db, cidade)
        if cidade_id is None:
            raise HTTPException(status_code=404, detail=f"Unknown city: {cidade}")

    want_debug = _truthy(debug)
    out = hybrid_search(
        query,
        cidade_id=cidade_id,
        categoria=categoria,
        limit=resolve_limit(limit or settings.search_default_limit),
        debug=want_debug,
        store=store,
        embedder=embedder,
    )
    if isinstance(out, dict):
        items, meta = out["items"], out["meta"]
    else:
        items, meta = out, None

    background_tasks.add_task(
        record_partner_query,
        build_partner_query_payload(query, cidade_id, categoria, items, meta),
    )
    response = {"ok": True, "count": len(items), "items": items}
    if want_debug:
        response["debug"] = meta
    return response


@app.post("/rag/index/{partner_id}", dependencies=[Depends(require_admin_key)])
def index_partner(
    partner_id: str,
    req: IndexRequest,
    db: Session = Depends(get_db),
    embedder: GeminiEmbedder = Depends(get_embedder),
):
    try:
        data = index_partner_text(db, partner_id, req.chunks, embedder=embedder)
    except PartnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (ValueError, EmbeddingUnavailableError, EmbeddingError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"ok": True, "data": data}


@app.post("/rag/index-all", dependencies=[Depends(require_admin_key)])
def index_all_partners(
    req: BulkIndexRequest,
    db: Session = Depends(get_db),
    embedder: GeminiEmbedder = Depends(get_embedder),
):
    try:
        summary = bulk_index_partners(
            db,
            cidade_id=req.cidade_id,
            categoria=req.categoria,
            only_missing=req.only_missing,
            limit=req.limit,
            embedder=embedder,
        )
    except Exception as exc:
        logger.exception("index_all.error")
        raise HTTPException(status_code=500, detail=str(exc) or "index-all failed")
    return {"ok": True, **summary}


@app.post("/rag/partners/{partner_id}/pause", dependencies=[Depends(require_admin_key)])
def pause_partner(partner_id: str, req: PauseRequest, db: Session = Depends(get_db)):
    try:
        return pause_partner_index(db, partner_id, motivo=req.motivo)
    except PartnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.post("/rag/partners/{partner_id}/reactivate", dependencies=[Depends(require_admin_key)])
def reactivate_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    embedder: GeminiEmbedder = Depends(get_embedder),
):
    try:
        return reactivate_partner_index(db, partner_id, embedder=embedder)
    except PartnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (ValueError, EmbeddingUnavailableError, EmbeddingError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.delete("/rag/partners/{partner_id}", dependencies=[Depends(require_admin_key)])
def forget_partner(partner_id: str, db: Session = Depends(get_db)):
    try:
        return forget_partner_forever(db, partner_id)
    except PartnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
