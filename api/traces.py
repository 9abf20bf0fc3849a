from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import text as sa_text

from .config import get_settings
from .db import SessionLocal

settings = get_settings()
logger = logging.getLogger("bepit.traces")

PARTNER_QUERY_EVENT = "partner_query"


def _dump(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def build_partner_query_payload(
    q: str,
    cidade_id: str | None,
    categoria: str | None,
    items: list[dict[str, Any]],
    meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "q": q,
        "cidade_id": cidade_id,
        "categoria": categoria,
        "total": len(items),
        "ids": [item.get("id") for item in items],
    }
    if meta:
        payload["stage"] = meta.get("stage")
        payload["signals"] = meta.get("signals")
    return payload


def record_partner_query(payload: dict[str, Any]) -> bool:
    if not settings.trace_enabled:
        return False

    db = SessionLocal()
    try:
        db.execute(
            sa_text(
                """
                INSERT INTO eventos_analytics (tipo_evento, payload)
                VALUES (:tipo_evento, CAST(:payload AS json))
                """
            ),
            {"tipo_evento": PARTNER_QUERY_EVENT, "payload": _dump(payload)},
        )
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("trace.error event=%s", PARTNER_QUERY_EVENT)
        return False
    finally:
        db.close()
