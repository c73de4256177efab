"""
Shared pytest fixtures for the HSE KPI Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - periods_2025: the 12 monthly periods of 2025
    - safety_section / safety_kpi: the "Safety" section and its KPI 1.1
"""

import pytest

from hse_kpi import create_app
from hse_kpi.models import db as _db
from hse_kpi.services import catalog_service
from hse_kpi.services.cell_ops import cell_tracker


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cell_tracker.clear()
        yield
        cell_tracker.clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def periods_2025():
    """Seed and return the 2025 monthly periods, January first."""
    catalog_service.seed_monthly_periods(2025)
    _db.session.commit()
    return catalog_service.list_periods(year=2025)


@pytest.fixture()
def safety_section():
    section = catalog_service.create_section({"code": "SAFE", "name": "Safety", "order_idx": 1})
    _db.session.commit()
    return section


@pytest.fixture()
def safety_kpi(safety_section):
    kpi = catalog_service.create_kpi({
        "section_id": safety_section.id,
        "code": "1.1",
        "name": "Toolbox talks conducted",
        "owner_user_id": "hse-supervisor",
        "target_formula": "4 / month",
        "unit": "Talks",
    })
    _db.session.commit()
    return kpi
