#!/usr/bin/env python3
"""
SecretBoard -- share a secret anonymously.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 0.0.0.0 --reload

Environment variables (or .env):
  SECRET_KEY      Required unless DEBUG=true. At least 32 characters.
  AUTH_MODE       legacy | local | oauth (default: local)
  DATABASE_URL    SQLAlchemy URL (default: SQLite beside the auth package)
  GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET
  FACEBOOK_CLIENT_ID / FACEBOOK_CLIENT_SECRET
  PUBLIC_BASE_URL Base for OAuth callbacks (default: http://localhost:3000)
"""

import argparse

import uvicorn


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secretboard",
        description="Run the SecretBoard web server.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on (default: 3000)")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    print(f"  Server starting on http://{args.host}:{args.port}")
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
