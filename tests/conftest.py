"""Shared pytest fixtures and configuration."""

import os

# Cheap hashing and a fixed secret; must be set before the app modules load settings
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from faker import Faker

from common.db import Database, get_db
from common.enums import UserKind
from common.migrations import apply_migrations
from common.security import create_access_token, create_reauth_token, hash_password
from main import app

fake = Faker()

USER_PASSWORD = "auditor123"


@pytest.fixture(scope="function")
def db(tmp_path):
    """Create a migrated file-backed test database."""
    database = Database(str(tmp_path / "aih.db"), pool_size=4)
    apply_migrations(database.engine)
    try:
        yield database
    finally:
        database.close_all()


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database dependency override."""
    app.state.db = db
    app.dependency_overrides[get_db] = lambda: db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def _insert_user(db: Database, nome: str, matricula: str, senha: str) -> int:
    with db.engine.begin() as conn:
        result = conn.execute(
            text("INSERT INTO usuarios (nome, matricula, senha_hash) VALUES (:nome, :matricula, :senha_hash)"),
            {"nome": nome, "matricula": matricula, "senha_hash": hash_password(senha)},
        )
        return result.lastrowid


@pytest.fixture
def user(db):
    """An auditor account with a known password."""
    nome = fake.unique.user_name()
    user_id = _insert_user(db, nome, fake.unique.numerify(text="######"), USER_PASSWORD)
    return {"id": user_id, "nome": nome, "senha": USER_PASSWORD}


@pytest.fixture
def other_user(db):
    nome = fake.unique.user_name()
    user_id = _insert_user(db, nome, fake.unique.numerify(text="######"), USER_PASSWORD)
    return {"id": user_id, "nome": nome, "senha": USER_PASSWORD}


@pytest.fixture
def admin(db):
    """The administrator seeded by the migrations."""
    with db.engine.connect() as conn:
        admin_id = conn.execute(text("SELECT id FROM administradores WHERE usuario = 'admin'")).scalar()
    return {"id": admin_id, "usuario": "admin", "senha": "admin"}


@pytest.fixture
def auth_headers(user):
    token = create_access_token(user["id"], user["nome"], UserKind.USER)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin):
    token = create_access_token(admin["id"], admin["usuario"], UserKind.ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reauth_headers(user, auth_headers):
    """Session token plus a fresh password confirmation grant."""
    return {**auth_headers, "X-Reauth-Token": create_reauth_token(user["id"])}


@pytest.fixture
def sample_aih_data():
    """Generate sample AIH registration data."""
    return {
        "numero_aih": fake.unique.numerify(text="#############"),
        "valor_inicial": float(fake.pydecimal(left_digits=4, right_digits=2, positive=True, min_value=100)),
        "competencia": "07/2025",
        "atendimentos": [fake.numerify(text="AT-#####"), fake.numerify(text="AT-#####")],
    }


@pytest.fixture
def entry_movement():
    """Valid entry movement payload."""
    return {
        "tipo": "entrada_sus",
        "status_aih": 3,
        "valor_conta": None,
        "competencia": "07/2025",
        "prof_medicina": fake.name(),
        "prof_enfermagem": fake.name(),
        "prof_fisioterapia": None,
        "prof_bucomaxilo": None,
        "observacoes": None,
    }


@pytest.fixture
def exit_movement(entry_movement):
    data = entry_movement.copy()
    data["tipo"] = "saida_hospital"
    data["status_aih"] = 2
    return data
