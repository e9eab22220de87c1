"""Fixtures compartidas: BD SQLite en memoria, fábricas de datos y cliente HTTP."""

import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from models import User, Axis, Metric, PriorityCycle, AxisWeight
from schemas import DailySubmission, MetricInput
from auth import hash_password, create_access_token
from gamification import seed_items
from achievements import seed_achievements
from combat import seed_bosses, seed_campaign

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)

TODAY = date(2026, 10, 18)


# ── Base de datos ───────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """Catálogos del juego: objetos, logros, jefe y campaña"""
    seed_items(db)
    seed_achievements(db)
    seed_bosses(db)
    seed_campaign(db)
    return db


# ── Fábricas ────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db):
    """
    Uso:
        user = make_user(name="Ana", hardcore_mode_active=True)
    """
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "email": f"player{_counter}@example.com",
            "password_hash": PASSWORD_HASH,
            "name": f"Player {_counter}",
            "timezone": "Europe/Madrid",
            "xp": 0,
            "level": 1,
            "gold": 0,
            "hardcore_mode_active": False,
        }
        defaults.update(overrides)
        user = User(**defaults)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _factory


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def make_axis(db):
    def _factory(name="Salud", active=True):
        axis = Axis(name=name, active=active)
        db.add(axis)
        db.commit()
        db.refresh(axis)
        return axis

    return _factory


@pytest.fixture
def make_metric(db):
    def _factory(axis, name="Entrenar", max_points=10, input_type="boolean", rpg_attribute=None, active=True):
        metric = Metric(
            axis_id=axis.id,
            name=name,
            max_points=max_points,
            input_type=input_type,
            rpg_attribute=rpg_attribute,
            active=active,
        )
        db.add(metric)
        db.commit()
        db.refresh(metric)
        return metric

    return _factory


@pytest.fixture
def make_cycle(db):
    """make_cycle(start, end, {axis: 60, other_axis: 40})"""
    def _factory(start, end, weights, name="Ciclo"):
        cycle = PriorityCycle(name=name, start_date=start, end_date=end)
        db.add(cycle)
        db.flush()
        for axis, pct in weights.items():
            db.add(AxisWeight(cycle_id=cycle.id, axis_id=axis.id, weight_percentage=pct))
        db.commit()
        db.refresh(cycle)
        return cycle

    return _factory


@pytest.fixture
def catalog(make_axis, make_metric):
    """
    Dos ejes al 50% (sin ciclo):
      Salud → "Entrenar" (boolean, 10 pts, strength)
      Mente → "Leer" (scale_0_5, 20 pts, intellect)
    """
    health = make_axis("Salud")
    mind = make_axis("Mente")
    workout = make_metric(health, "Entrenar", 10, "boolean", "strength")
    reading = make_metric(mind, "Leer", 20, "scale_0_5", "intellect")
    return {"health": health, "mind": mind, "workout": workout, "reading": reading}


def submission(day, *entries):
    """submission(TODAY, {"metric_id": 1, "completed": True}, ...)"""
    return DailySubmission(date=day, entries=[MetricInput(**e) for e in entries])


def perfect_submission(catalog, day):
    return submission(
        day,
        {"metric_id": catalog["workout"].id, "completed": True},
        {"metric_id": catalog["reading"].id, "score_value": 5},
    )


def days_before(day, n):
    return day - timedelta(days=n)


# ── API ─────────────────────────────────────────────────────────────────

@pytest.fixture
def client(session_factory):
    from main import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}

    return _headers
