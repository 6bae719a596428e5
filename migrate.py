#!/usr/bin/env python3
"""
Migraciones de Taller360 con Alembic.

La URL de conexión se toma de app.core.config (POSTGRES_* o DATABASE_URL).

    python migrate.py upgrade [--sql]
    python migrate.py downgrade [revision]
    python migrate.py create "mensaje"
    python migrate.py current | history | stamp
"""
import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config

from app.core.config import settings

ROOT_DIR = Path(__file__).parent


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def upgrade(args):
    """Aplicar migraciones pendientes; con --sql solo imprime el DDL."""
    command.upgrade(get_alembic_config(), args.revision, sql=args.sql)
    if not args.sql:
        print(f"Base de datos actualizada a {args.revision}")


def downgrade(args):
    command.downgrade(get_alembic_config(), args.revision)
    print(f"Rollback ejecutado hasta {args.revision}")


def create(args):
    command.revision(get_alembic_config(), autogenerate=True, message=args.message)
    print(f"Migración creada: {args.message}")


def stamp(args):
    """Marcar una base existente (creada con create_all) sin ejecutar migraciones."""
    command.stamp(get_alembic_config(), "head")
    print("Base de datos marcada en head")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migraciones de base de datos de Taller360")
    sub = parser.add_subparsers(dest="action", required=True)

    p = sub.add_parser("upgrade", help="Ejecutar migraciones")
    p.add_argument("revision", nargs="?", default="head")
    p.add_argument("--sql", action="store_true", help="Generar SQL sin ejecutarlo")
    p.set_defaults(func=upgrade)

    p = sub.add_parser("downgrade", help="Revertir migraciones")
    p.add_argument("revision", nargs="?", default="-1")
    p.set_defaults(func=downgrade)

    p = sub.add_parser("create", help="Crear migración autogenerada")
    p.add_argument("message")
    p.set_defaults(func=create)

    sub.add_parser("stamp", help="Marcar como head").set_defaults(func=stamp)
    sub.add_parser("current", help="Ver revisión actual").set_defaults(
        func=lambda args: command.current(get_alembic_config())
    )
    sub.add_parser("history", help="Ver historial").set_defaults(
        func=lambda args: command.history(get_alembic_config())
    )
    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    args.func(args)
