"""
Embed partners into parceiros.embedding_768.

Usage:
    python scripts/bulk_index.py [--all] [--limit 500] [--cidade-id ID] [--categoria pizzaria]

By default only partners without an embedding are processed.
"""

import argparse
import json
import logging

try:
    from . import _path  # type: ignore  # ensures project root is on sys.path
except ImportError:
    import _path  # type: ignore  # noqa: F401

from api.db import SessionLocal
from api.indexing import bulk_index_partners


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--all", action="store_true", help="re-embed partners that already have a vector")
    parser.add_argument("--limit", type=int, default=500)
    parser.add_argument("--cidade-id", default=None)
    parser.add_argument("--categoria", default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    db = SessionLocal()
    try:
        summary = bulk_index_partners(
            db,
            cidade_id=args.cidade_id,
            categoria=args.categoria,
            only_missing=not args.all,
            limit=args.limit,
        )
    finally:
        db.close()

    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if summary["fail"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
