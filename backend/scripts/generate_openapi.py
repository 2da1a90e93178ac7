#!/usr/bin/env python3
"""
Snapshot the LocalLore HTTP contract.

Writes the OpenAPI document to contracts/openapi.json, or with --check compares
the live app against the committed snapshot and lists the operations that were
added or removed. Exit status 1 means the snapshot is stale.

Usage:
    python backend/scripts/generate_openapi.py
    python backend/scripts/generate_openapi.py --check
    python backend/scripts/generate_openapi.py --out /tmp/openapi.json
"""

import argparse
import json
import os
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_OUT = BACKEND_ROOT.parent / "contracts" / "openapi.json"
HTTP_METHODS = {"get", "post", "put", "patch", "delete"}


def build_schema() -> dict:
    if str(BACKEND_ROOT) not in sys.path:
        sys.path.insert(0, str(BACKEND_ROOT))
    # Building the schema never touches the database.
    os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
    os.environ.setdefault("SECRET_KEY", "contract-secret")

    from locallore.api import app  # noqa: PLC0415

    return app.openapi()


def render(schema: dict) -> str:
    return json.dumps(schema, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def operations(schema: dict) -> set[str]:
    """Flatten the paths object into "METHOD /path" strings."""
    ops = set()
    for path, item in schema.get("paths", {}).items():
        for method in item:
            if method in HTTP_METHODS:
                ops.add(f"{method.upper()} {path}")
    return ops


def check(schema: dict, snapshot: Path) -> int:
    if not snapshot.exists():
        print(f"No snapshot at {snapshot}; run without --check to create it")
        return 1
    committed = json.loads(snapshot.read_text(encoding="utf-8"))
    if render(committed) == render(schema):
        print(f"{snapshot} is up to date ({len(operations(schema))} operations)")
        return 0

    added = sorted(operations(schema) - operations(committed))
    removed = sorted(operations(committed) - operations(schema))
    print(f"{snapshot} is stale")
    for op in added:
        print(f"  + {op}")
    for op in removed:
        print(f"  - {op}")
    if not added and not removed:
        print("  (request or response models changed)")
    return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Write or verify the OpenAPI contract snapshot.")
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT, help="snapshot location")
    parser.add_argument("--check", action="store_true", help="fail if the snapshot differs from the app")
    args = parser.parse_args(argv)

    schema = build_schema()
    if args.check:
        return check(schema, args.out)

    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(render(schema), encoding="utf-8")
    print(f"Wrote {args.out} ({len(operations(schema))} operations)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
