"""Versioned schema migrations, tracked in PRAGMA user_version."""

import logging
from typing import Callable, List, NamedTuple

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

from common.config import Settings, get_settings
from common.db import Base
from common.security import hash_password
from services.aih import models

logger = logging.getLogger(__name__)

DEFAULT_GLOSA_TYPES = [
    "Material não autorizado",
    "Quantidade excedente",
    "Procedimento não autorizado",
    "Falta de documentação",
    "Divergência de valores",
]

DEFAULT_ADMIN_USER = "admin"


class Migration(NamedTuple):
    version: int
    description: str
    apply: Callable[[Connection, Settings], None]


def _column_names(conn: Connection, table: str) -> set:
    return {column["name"] for column in inspect(conn).get_columns(table)}


def _add_column_if_missing(conn: Connection, table: str, column: str, ddl: str) -> None:
    if column in _column_names(conn, table):
        return
    conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
    logger.info(f"Added column {table}.{column}")


def create_base_schema(conn: Connection, settings: Settings) -> None:
    # create_all skips tables that already exist
    Base.metadata.create_all(conn)


def add_user_registration_number(conn: Connection, settings: Settings) -> None:
    _add_column_if_missing(conn, models.User.__tablename__, "matricula", "TEXT")


def add_movement_notes(conn: Connection, settings: Settings) -> None:
    _add_column_if_missing(conn, models.Movement.__tablename__, "observacoes", "TEXT")


def seed_glosa_types(conn: Connection, settings: Settings) -> None:
    existing = set(conn.execute(text("SELECT descricao FROM tipos_glosa")).scalars())
    missing = [descricao for descricao in DEFAULT_GLOSA_TYPES if descricao not in existing]
    if missing:
        conn.execute(
            text("INSERT INTO tipos_glosa (descricao) VALUES (:descricao)"),
            [{"descricao": descricao} for descricao in missing],
        )
        logger.info(f"Seeded {len(missing)} glosa types")


def seed_default_admin(conn: Connection, settings: Settings) -> None:
    admin = conn.execute(
        text("SELECT id FROM administradores WHERE usuario = :usuario"), {"usuario": DEFAULT_ADMIN_USER}
    ).first()
    if admin is not None:
        return
    conn.execute(
        text("INSERT INTO administradores (usuario, senha_hash) VALUES (:usuario, :senha_hash)"),
        {"usuario": DEFAULT_ADMIN_USER, "senha_hash": hash_password(settings.admin_default_password)},
    )
    logger.info("Default administrator created")


def create_used_grants_table(conn: Connection, settings: Settings) -> None:
    Base.metadata.create_all(conn, tables=[models.UsedReauthGrant.__table__])


def create_query_indexes(conn: Connection, settings: Settings) -> None:
    # Tables that predate the models only got their columns, not the indexes
    for table in Base.metadata.sorted_tables:
        for index in table.indexes:
            index.create(conn, checkfirst=True)


MIGRATIONS: List[Migration] = [
    Migration(1, "base schema", create_base_schema),
    Migration(2, "usuarios.matricula", add_user_registration_number),
    Migration(3, "movimentacoes.observacoes", add_movement_notes),
    Migration(4, "default glosa types", seed_glosa_types),
    Migration(5, "default administrator", seed_default_admin),
    Migration(6, "query indexes", create_query_indexes),
    Migration(7, "single-use password confirmations", create_used_grants_table),
]


def current_version(conn: Connection) -> int:
    return conn.exec_driver_sql("PRAGMA user_version").scalar() or 0


def apply_migrations(engine: Engine, settings: Settings = None) -> int:
    """
    Bring the schema up to the latest version.

    Pending migrations run in order inside one write transaction, so a
    failure leaves the database at its previous version. Returns the
    resulting version.
    """
    settings = settings or get_settings()

    with engine.connect() as conn:
        conn.exec_driver_sql("BEGIN IMMEDIATE")
        version = current_version(conn)

        for migration in MIGRATIONS:
            if migration.version <= version:
                continue
            logger.info(f"Applying migration {migration.version}: {migration.description}")
            migration.apply(conn, settings)
            conn.exec_driver_sql(f"PRAGMA user_version = {int(migration.version)}")
            version = migration.version

        conn.commit()

    logger.info(f"Database schema at version {version}")
    return version
