"""
Configuration partagée pour tous les tests.

- client : override de la dépendance get_db (MagicMock) pour éviter toute connexion à PostgreSQL
- session_factory / db_session : base SQLite temporaire pour les tests des services
  qui dépendent du comportement réel de la base (UPDATE conditionnels, contrainte d'unicité)
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from unittest.mock import MagicMock

import lecturetrack.models  # noqa: F401
from lecturetrack.database import Base, get_db
from lecturetrack.main import app

from helpers import LECTURER_ID, STUDENT_ID


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def lecturer_headers():
    return {"X-User-Id": str(LECTURER_ID), "X-User-Role": "lecturer", "X-User-Name": "Dr. Martin"}


@pytest.fixture
def student_headers():
    return {"X-User-Id": str(STUDENT_ID), "X-User-Role": "student", "X-User-Name": "Alice"}


@pytest.fixture
def admin_headers():
    return {"X-User-Id": str(uuid.uuid4()), "X-User-Role": "admin"}


@pytest.fixture
def session_factory(tmp_path):
    """Fabrique de sessions sur un fichier SQLite partagé entre threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'lecturetrack.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()
