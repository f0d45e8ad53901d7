from __future__ import annotations

import argparse

import uvicorn


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve the Video Digest extraction API.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to listen on (default: 3000).",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change.",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    uvicorn.run(
        "video_digest.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
