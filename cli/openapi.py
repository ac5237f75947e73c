"""
CLI wrapper: Write the OpenAPI document.

Usage:
    fieldops-openapi [output_path]

Defaults to docs/openapi.json. No database connection is opened.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

DEFAULT_OUTPUT = Path("docs") / "openapi.json"


def main() -> None:
    # Settings require a URL at import; nothing connects to it
    os.environ.setdefault("DATABASE_URL_APP", "postgresql://localhost/fieldops")

    from fieldops.main import create_app

    output = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_OUTPUT
    schema = create_app().openapi()

    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(schema, f, indent=2)
        f.write("\n")

    print(f"[OK] OpenAPI schema written: {output}")
    print(f"   Title: {schema['info']['title']}")
    print(f"   Endpoints: {len(schema['paths'])} paths")
