from __future__ import annotations

import argparse
import json
from pathlib import Path

from video_digest.main import create_app


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Write the Video Digest OpenAPI schema.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("openapi") / "openapi.json",
        help="Destination file (default: openapi/openapi.json).",
    )
    return parser.parse_args()


def write_schema(schema_path: Path) -> Path:
    schema_path.parent.mkdir(parents=True, exist_ok=True)
    schema = create_app().openapi()
    schema_path.write_text(json.dumps(schema, indent=2, ensure_ascii=False), encoding="utf-8")
    return schema_path


def main() -> None:
    schema_path = write_schema(_parse_args().output)
    print(f"Wrote OpenAPI schema to {schema_path}")


if __name__ == "__main__":
    main()
