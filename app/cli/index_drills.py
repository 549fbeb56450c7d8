# =============================================
# File: app/cli/index_drills.py
# Purpose: CLI entrypoint to (re)index the drill catalog into Chroma.
# Usage:
#   python -m app.cli.index_drills --drills app/data/drills.json --collection drills_idx --clear
# =============================================
from __future__ import annotations
import argparse
import sys

from dotenv import load_dotenv

from app.services.catalog import DEFAULT_DRILLS_PATH, DrillCatalog
from app.services.indexer import DEFAULT_BATCH_SIZE, refresh_drills
from app.services.retrieval import CHROMA_PATH, COLLECTION_NAME, DrillIndex
from app.utils.logging import configure_logging


def main(argv=None):
    ap = argparse.ArgumentParser(description="Index the drill catalog into Chroma.")
    ap.add_argument("--drills", default=DEFAULT_DRILLS_PATH, help="Drill catalog JSON file")
    ap.add_argument("--collection", default=COLLECTION_NAME, help=f"Chroma collection name (default: {COLLECTION_NAME})")
    ap.add_argument("--persist", default=CHROMA_PATH, help=f"Chroma persist dir (default: {CHROMA_PATH})")
    ap.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Drills per upsert batch")
    ap.add_argument("--clear", action="store_true", help="Drop collection before re-adding all drills")
    args = ap.parse_args(argv)

    load_dotenv()
    configure_logging()

    catalog = DrillCatalog(path=args.drills)
    index = DrillIndex(persist_dir=args.persist, collection_name=args.collection)
    indexed, failed = refresh_drills(catalog, index, batch_size=args.batch_size, clear=args.clear)

    if indexed == 0 and failed == 0:
        print("[WARN] No drills found. Check --drills path.", file=sys.stderr)
        sys.exit(1)

    print(f"[OK] Indexed {indexed} drills into '{args.collection}' ({failed} failed batches). Persist: {args.persist}")
    if failed:
        sys.exit(2)

if __name__ == "__main__":
    main()
