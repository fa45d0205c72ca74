"""Write the ledger API's OpenAPI document to disk.

Usage: ``python scripts/generate_openapi.py [destination]`` (defaults to
``docs/openapi.json``).
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from baryabazaar.main import create_application

DEFAULT_DESTINATION = ROOT / "docs" / "openapi.json"


def export_schema(destination: Path = DEFAULT_DESTINATION) -> Path:
    document = create_application().openapi()
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(document, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return destination


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    written = export_schema(Path(args[0]) if args else DEFAULT_DESTINATION)
    print(f"Wrote {len(json.loads(written.read_text(encoding='utf-8'))['paths'])} ledger API paths to {written}")


if __name__ == "__main__":
    main()
