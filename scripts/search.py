"""
Run a partner search from the command line.

Usage:
    python scripts/search.py "pizza em cabo frio" [--cidade-id ID] [--categoria pizzaria] [--limit 10] [--debug]
"""

import argparse
import json
import logging

try:
    from . import _path  # type: ignore  # ensures project root is on sys.path
except ImportError:
    import _path  # type: ignore  # noqa: F401

from api.hybrid_search import hybrid_search


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("query")
    parser.add_argument("--cidade-id", default=None)
    parser.add_argument("--categoria", default=None)
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    out = hybrid_search(
        args.query,
        cidade_id=args.cidade_id,
        categoria=args.categoria,
        limit=args.limit,
        debug=args.debug,
    )
    print(json.dumps(out, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
