from __future__ import annotations

import os
import sys
from pathlib import Path

# La raíz del repo en sys.path para importar los módulos planos
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

# Antes de importar db: base en memoria compartida
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

import models
from db import Base, SessionLocal, engine, get_db
from factories import reset_sequences


@pytest.fixture(autouse=True)
def _fresh_sequences():
    # Cada test arranca con la base vacía: los valores únicos también
    reset_sequences()
    yield
    reset_sequences()


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    models.ensure_person_types(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(db):
    from api import app as fastapi_app

    def _override():
        yield db

    fastapi_app.dependency_overrides[get_db] = _override
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
def http(app):
    return TestClient(app)
