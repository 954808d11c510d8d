"""
CLI: Construflow -> warehouse (truncate-then-insert).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer/Cloud Scheduler).
  - La corrida completa sin comentarios tarda minutos; con comentarios puede
    tardar mucho mas, por eso --comments-only existe como job separado.

Variables de entorno requeridas:
  - CONSTRUFLOW_USERNAME, CONSTRUFLOW_PASSWORD (GraphQL)
  - CONSTRUFLOW_API_KEY, CONSTRUFLOW_API_SECRET (REST)
  - DATABASE_URL (postgresql://... o postgres://...)

Ejecucion:
  python scripts/construflow_sync.py
  python scripts/construflow_sync.py --sync-comments
  python scripts/construflow_sync.py --comments-only
  python scripts/construflow_sync.py --check-connection
  python scripts/construflow_sync.py --schema-only
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Permite ejecutar este script desde el checkout sin instalar el paquete.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# El .env se carga antes de importar la configuracion global
load_dotenv(_REPO_ROOT / ".env", override=False)

from loguru import logger

from construflow_sync.application.use_cases.construflow_sync_use_cases import (
    build_sync_use_cases,
    sync_construflow,
)
from construflow_sync.core.config import settings
from construflow_sync.core.logging_config import configure_logging


def _read_schema_sql() -> str:
    sql_path = _REPO_ROOT / "construflow_sync" / "infrastructure" / "warehouse" / "schema.sql"
    return sql_path.read_text(encoding="utf-8")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sincroniza Construflow con el warehouse.")
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Solo imprime el DDL del warehouse (no ejecuta sync).",
    )
    parser.add_argument(
        "--sync-comments",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fuerza u omite la fase de comentarios. Por defecto usa SYNC_COMMENTS.",
    )
    parser.add_argument(
        "--comments-only",
        action="store_true",
        help="Solo sincroniza comentarios + historial de las issues activas.",
    )
    parser.add_argument(
        "--check-connection",
        action="store_true",
        help="Prueba login GraphQL y la primera pagina REST, sin tocar el warehouse.",
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    if args.check_connection:
        use_cases = build_sync_use_cases(settings)
        try:
            result = await use_cases.check_connection()
        finally:
            await use_cases.aclose()
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return 0 if result["success"] else 1

    if args.comments_only:
        use_cases = build_sync_use_cases(settings)
        try:
            result = await use_cases.run_comments_only()
        finally:
            await use_cases.aclose()
    else:
        result = await sync_construflow({"sync_comments": args.sync_comments})

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0 if result["success"] else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.schema_only:
        print(_read_schema_sql())
        return 0

    configure_logging(settings)
    logger.info("Iniciando Construflow -> warehouse sync...")
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
