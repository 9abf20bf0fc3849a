from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Iterator, Protocol

from sqlalchemy import func, or_, text as sa_text
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings
from .models import Cidade, Parceiro
from .taxonomy import category_variants, normalize_text

settings = get_settings()

_ID_KEYS = ("id", "parceiro_id", "partner_id")
_CORE_KEYS = {
    "id",
    "parceiro_id",
    "partner_id",
    "nome",
    "name",
    "categoria",
    "category",
    "descricao",
    "cidade_id",
    "cidade",
    "similarity",
    "score",
    "text_score",
}
_PARTNER_COLUMNS = """
            p.id,
            p.nome,
            p.categoria,
            p.descricao,
            p.cidade_id,
            p.tipo,
            p.endereco,
            p.contato,
            p.faixa_preco,
            p.beneficio_bepit
"""


@dataclass(frozen=True)
class PartnerFilters:
    cidade_id: str | None = None
    categoria: str | None = None

    def without_category(self) -> "PartnerFilters":
        return replace(self, categoria=None)

    def without_city(self) -> "PartnerFilters":
        return replace(self, cidade_id=None)

    def as_dict(self) -> dict[str, str | None]:
        return {"cidade_id": self.cidade_id, "categoria": self.categoria}


@dataclass
class PartnerCandidate:
    id: Any
    nome: str = ""
    categoria: str | None = None
    descricao: str | None = None
    cidade_id: Any = None
    score_vector: float = 0.0
    score_text: float = 0.0
    score_final: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "nome": self.nome,
                "categoria": self.categoria,
                "descricao": self.descricao,
                "cidade_id": self.cidade_id,
                "score_vector": self.score_vector,
                "score_text": self.score_text,
                "score_final": self.score_final,
            }
        )
        return payload


def _as_score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    return None


def candidate_from_row(
    row: dict[str, Any],
    lane: str,
    default_text_score: float = 0.0,
) -> PartnerCandidate:
    """
    Normalize a store row into a PartnerCandidate.

    Stored functions and fallbacks disagree on field names (similarity vs score,
    text_score vs score, id vs parceiro_id); this is the only place that knows.
    """
    raw_id = next((row.get(key) for key in _ID_KEYS if row.get(key) is not None), None)
    score_vector = 0.0
    score_text = 0.0
    if lane == "vector":
        score_vector = _as_score(row.get("similarity"))
        if score_vector is None:
            score_vector = _as_score(row.get("score")) or 0.0
    else:
        score_text = _as_score(row.get("text_score"))
        if score_text is None:
            score_text = _as_score(row.get("score"))
        if score_text is None:
            score_text = default_text_score

    return PartnerCandidate(
        id=raw_id,
        nome=row.get("nome") or row.get("name") or "",
        categoria=row.get("categoria") or row.get("category"),
        descricao=row.get("descricao"),
        cidade_id=row.get("cidade_id") or row.get("cidade"),
        score_vector=score_vector,
        score_text=score_text,
        extra={key: value for key, value in row.items() if key not in _CORE_KEYS},
    )


def _vector_literal(embedding: list[float]) -> str:
    return "[" + ",".join(f"{v:.6f}" for v in embedding) + "]"


def _like_pattern(term: str | None) -> str:
    cleaned = (term or "").strip()
    if not cleaned:
        return "%"
    escaped = cleaned.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _build_filters(filters: PartnerFilters, loose_category: bool = False) -> tuple[str, dict[str, Any]]:
    clauses = ["p.ativo", "NOT coalesce(p.bloqueado, false)"]
    params: dict[str, Any] = {}

    if filters.cidade_id:
        clauses.append("p.cidade_id = :cidade_id")
        params["cidade_id"] = filters.cidade_id
    variants = category_variants(filters.categoria)
    if variants:
        column = "lower(unaccent(coalesce(p.categoria, '')))"
        keys = []
        for idx, variant in enumerate(variants):
            key = f"categoria_{idx}"
            keys.append(key)
            params[key] = f"%{variant}%" if loose_category else variant
        if loose_category:
            clauses.append("(" + " OR ".join(f"{column} LIKE :{key}" for key in keys) + ")")
        else:
            clauses.append(f"{column} IN (" + ", ".join(f":{key}" for key in keys) + ")")

    return " AND ".join(clauses), params


def vector_search(
    db: Session,
    query_embedding: list[float],
    filters: PartnerFilters,
    limit: int = 30,
) -> list[dict[str, Any]]:
    filter_sql, params = _build_filters(filters)
    params["query_embedding"] = _vector_literal(query_embedding)
    params["limit"] = limit

    sql = sa_text(
        f"""
        SELECT
            {_PARTNER_COLUMNS},
            (1 - (p.embedding_768 <=> CAST(:query_embedding AS vector))) AS similarity
        FROM parceiros p
        WHERE p.embedding_768 IS NOT NULL
          AND {filter_sql}
        ORDER BY p.embedding_768 <=> CAST(:query_embedding AS vector)
        LIMIT :limit
        """
    )
    rows = db.execute(sql, params).mappings().all()
    return [dict(row) for row in rows]


def text_search(
    db: Session,
    query_text: str,
    filters: PartnerFilters,
    limit: int = 30,
) -> list[dict[str, Any]]:
    filter_sql, params = _build_filters(filters)
    params["pattern"] = _like_pattern(normalize_text(query_text))
    params["term"] = normalize_text(query_text)
    params["limit"] = limit

    sql = sa_text(
        f"""
        SELECT
            {_PARTNER_COLUMNS},
            GREATEST(
                similarity(lower(unaccent(p.nome)), :term),
                similarity(lower(unaccent(coalesce(p.descricao, ''))), :term)
            ) AS text_score
        FROM parceiros p
        WHERE (
            lower(unaccent(p.nome)) LIKE :pattern
            OR lower(unaccent(coalesce(p.descricao, ''))) LIKE :pattern
        )
          AND {filter_sql}
        ORDER BY text_score DESC, p.nome ASC
        LIMIT :limit
        """
    )
    rows = db.execute(sql, params).mappings().all()
    return [dict(row) for row in rows]


def legacy_keyword_search(
    db: Session,
    filters: PartnerFilters,
    query_text: str,
    limit: int = 30,
) -> list[dict[str, Any]]:
    """Token-OR keyword match with a loose category filter. Rows carry no score."""
    filter_sql, params = _build_filters(filters, loose_category=True)
    tokens = [token for token in normalize_text(query_text).split() if len(token) >= 3]
    if not tokens:
        return []

    haystack = (
        "lower(unaccent(p.nome || ' ' || coalesce(p.descricao, '') || ' ' || coalesce(p.categoria, '')))"
    )
    token_clauses = []
    for idx, token in enumerate(tokens[:8]):
        key = f"tok_{idx}"
        token_clauses.append(f"{haystack} LIKE :{key}")
        params[key] = _like_pattern(token)
    params["limit"] = limit

    sql = sa_text(
        f"""
        SELECT
            {_PARTNER_COLUMNS}
        FROM parceiros p
        WHERE ({" OR ".join(token_clauses)})
          AND {filter_sql}
        ORDER BY p.nome ASC
        LIMIT :limit
        """
    )
    rows = db.execute(sql, params).mappings().all()
    return [dict(row) for row in rows]


def table_substring_scan(
    db: Session,
    query_text: str,
    filters: PartnerFilters,
    limit: int = 30,
    score: float | None = None,
) -> list[dict[str, Any]]:
    fixed_score = settings.table_fallback_score if score is None else score
    pattern = _like_pattern(query_text)

    query = (
        db.query(Parceiro)
        .filter(Parceiro.ativo.is_(True))
        .filter(or_(Parceiro.bloqueado.is_(None), Parceiro.bloqueado.is_(False)))
        .filter(
            or_(
                Parceiro.nome.ilike(pattern, escape="\\"),
                Parceiro.descricao.ilike(pattern, escape="\\"),
            )
        )
    )
    variants = category_variants(filters.categoria)
    if variants:
        query = query.filter(
            func.lower(func.unaccent(func.coalesce(Parceiro.categoria, ""))).in_(variants)
        )
    if filters.cidade_id:
        query = query.filter(Parceiro.cidade_id == filters.cidade_id)

    rows = []
    for partner in query.order_by(Parceiro.nome.asc()).limit(limit).all():
        rows.append(
            {
                "id": partner.id,
                "nome": partner.nome,
                "categoria": partner.categoria,
                "descricao": partner.descricao,
                "cidade_id": partner.cidade_id,
                "tipo": partner.tipo,
                "endereco": partner.endereco,
                "contato": partner.contato,
                "faixa_preco": partner.faixa_preco,
                "beneficio_bepit": partner.beneficio_bepit,
                "text_score": fixed_score,
            }
        )
    return rows


def resolve_city_id(db: Session, value: str | None) -> str | None:
    target = normalize_text(value)
    if not target:
        return None
    for cidade in db.query(Cidade).all():
        if normalize_text(cidade.nome) == target or normalize_text(cidade.slug) == target:
            return cidade.id
    return None


class PartnerStore(Protocol):
    def vector_search(self, embedding: list[float], filters: PartnerFilters, count: int) -> list[dict[str, Any]]: ...

    def text_search(self, term: str, filters: PartnerFilters, count: int) -> list[dict[str, Any]]: ...

    def legacy_keyword_search(self, filters: PartnerFilters, term: str, count: int) -> list[dict[str, Any]]: ...

    def table_substring_scan(self, term: str, filters: PartnerFilters, count: int) -> list[dict[str, Any]]: ...


class PostgresPartnerStore:
    """
    PartnerStore over the parceiros table. Each call owns its session so lanes
    can run in threads.

    On Postgres every session gets a transaction-local statement_timeout, so a
    lane the search gave up on still frees its worker thread.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        statement_timeout_ms: int | None = None,
    ) -> None:
        if session_factory is None:
            from .db import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory
        if statement_timeout_ms is None:
            statement_timeout_ms = int(settings.search_stage_timeout_seconds * 1000)
        self.statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self.session_factory() as db:
            if self.statement_timeout_ms > 0 and db.get_bind().dialect.name == "postgresql":
                db.execute(
                    sa_text("SELECT set_config('statement_timeout', :value, true)"),
                    {"value": f"{self.statement_timeout_ms}ms"},
                )
            yield db

    def vector_search(self, embedding: list[float], filters: PartnerFilters, count: int) -> list[dict[str, Any]]:
        with self._session() as db:
            return vector_search(db, embedding, filters, limit=count)

    def text_search(self, term: str, filters: PartnerFilters, count: int) -> list[dict[str, Any]]:
        with self._session() as db:
            return text_search(db, term, filters, limit=count)

    def legacy_keyword_search(self, filters: PartnerFilters, term: str, count: int) -> list[dict[str, Any]]:
        with self._session() as db:
            return legacy_keyword_search(db, filters, term, limit=count)

    def table_substring_scan(self, term: str, filters: PartnerFilters, count: int) -> list[dict[str, Any]]:
        with self._session() as db:
            return table_substring_scan(db, term, filters, limit=count)
