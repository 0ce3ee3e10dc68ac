"""Import plant catalog entries from a JSON file.

Usage:
  python scripts/import_plants.py --file plants.json

Notes:
  - The file holds either an array of entries or {"plants": [...]}.
  - Entries go through the same routine as the admin batch import: each one is
    upserted on its own, so a bad entry is reported and skipped.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from flowerpots.admin.plants import import_plants
from flowerpots.config import Config
from flowerpots.db import connect, init_db


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", default="plants.json", help="Path to a JSON file of plant entries")
    parser.add_argument("--show-errors", type=int, default=20, help="How many item errors to print")
    args = parser.parse_args()

    cfg = Config()  # reads env
    init_db(cfg.DB_DSN)

    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    items = data.get("plants") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise SystemExit("Expected an array of plant entries (or {\"plants\": [...]})")

    with connect(cfg.DB_DSN) as conn:
        report = import_plants(conn, items)

    print(f"Imported: {report['success']} ok, {report['failed']} failed (of {len(items)})")
    for err in report["errors"][: max(0, args.show_errors)]:
        print(f"  - {err}")


if __name__ == "__main__":
    main()
