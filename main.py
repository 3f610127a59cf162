#!/usr/bin/env python3
"""
StoreRater -- store listings and ratings with role-based access.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py init-db

Environment variables (see core/config.py for the full list):
  SECRET_KEY      Token signing key, 32+ characters. Required unless DEBUG=true.
  DATABASE_URL    SQLAlchemy URL. Defaults to a SQLite file under db/.
  ADMIN_PASSWORD  Enables the bootstrap admin login (ADMIN_EMAIL, default admin@abc.com).
"""

import argparse

from core.config import get_settings
from db.schema import create_db_engine, init_schema


def _init_db() -> None:
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    try:
        init_schema(engine)
    finally:
        engine.dispose()
    print(f"  Schema ready at {settings.database_url}")


def _serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    uvicorn.run("asgi:app", host=host, port=port, reload=reload)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="storerater",
        description="Store rating platform API server and admin utilities.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  DEBUG=true ADMIN_PASSWORD='Admin@123' python main.py serve --reload
  DATABASE_URL=sqlite:////var/lib/storerater.db python main.py serve --host 0.0.0.0
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")

    subparsers.add_parser("init-db", help="Create any missing tables and exit")

    args = parser.parse_args()

    if args.command == "serve":
        _serve(args.host, args.port, args.reload)
    elif args.command == "init-db":
        _init_db()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
