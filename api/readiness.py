from __future__ import annotations

import logging
from typing import Any

from .db import ping_database
from .embeddings import GeminiEmbedder

logger = logging.getLogger("bepit.readiness")


def build_readiness_payload() -> dict[str, Any]:
    embeddings_ready = GeminiEmbedder().available

    database_ok = False
    try:
        database_ok = ping_database()
    except Exception as exc:
        logger.warning("ready.database_error error=%s", exc)

    if not database_ok:
        return {
            "ready": False,
            "status": "degraded",
            "reason": "database_unavailable",
            "database": False,
            "embeddings": embeddings_ready,
        }
    if not embeddings_ready:
        return {
            "ready": True,
            "status": "lexical_only",
            "reason": "embeddings_not_configured",
            "database": True,
            "embeddings": False,
        }
    return {
        "ready": True,
        "status": "ready",
        "reason": None,
        "database": True,
        "embeddings": True,
    }
