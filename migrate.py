#!/usr/bin/env python3
"""
Gestión de migraciones de StockBill con Alembic.

Uso:
  python migrate.py create "mensaje"   # Autogenerar migración desde los modelos
  python migrate.py upgrade [rev]      # Aplicar migraciones (por defecto head)
  python migrate.py downgrade [rev]    # Revertir (por defecto -1)
  python migrate.py history            # Ver historial
  python migrate.py current            # Ver revisión actual
"""
import argparse
import logging
from pathlib import Path

from alembic.config import Config
from alembic import command

from stockbill.core.config import settings

logger = logging.getLogger("stockbill.migrate")

ROOT_DIR = Path(__file__).parent


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migraciones de base de datos de StockBill")
    subparsers = parser.add_subparsers(dest="action", required=True)

    create = subparsers.add_parser("create", help="Autogenerar una nueva migración")
    create.add_argument("message")

    upgrade = subparsers.add_parser("upgrade", help="Aplicar migraciones pendientes")
    upgrade.add_argument("revision", nargs="?", default="head")

    downgrade = subparsers.add_parser("downgrade", help="Revertir migraciones")
    downgrade.add_argument("revision", nargs="?", default="-1")

    subparsers.add_parser("history", help="Mostrar historial de migraciones")
    subparsers.add_parser("current", help="Mostrar la revisión actual")
    return parser


def main(argv=None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    args = build_parser().parse_args(argv)
    alembic_cfg = get_alembic_config()

    if args.action == "create":
        command.revision(alembic_cfg, autogenerate=True, message=args.message)
        logger.info(f"Migration created: {args.message}")
    elif args.action == "upgrade":
        command.upgrade(alembic_cfg, args.revision)
        logger.info(f"Database upgraded to {args.revision}")
    elif args.action == "downgrade":
        command.downgrade(alembic_cfg, args.revision)
        logger.info(f"Database downgraded to {args.revision}")
    elif args.action == "history":
        command.history(alembic_cfg)
    elif args.action == "current":
        command.current(alembic_cfg)


if __name__ == "__main__":
    main()
