"""
Shared pytest fixtures for the Construction Budget Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - work: Pre-created Work entity
    - fake_generator: CategoryGenerator stub installed on the app
"""

import pytest

from app import create_app
from app.ai.budget_generator import CategoryGenerator, parse_generated_categories
from app.models import db as _db
from app.models.work import Work


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def work():
    """A persisted Work with the default STAGES method."""
    w = Work(name="Casa Silva", client="Silva", progress_method="STAGES")
    _db.session.add(w)
    _db.session.commit()
    return w


class FakeGenerator(CategoryGenerator):
    """Returns a fixed model answer; records the prompts it was given."""

    ANSWER = """```json
    [
      {"name": "1. Preliminary services", "categoryTotal": 999999, "progress": 80,
       "items": [{"description": "Site clearing", "unit": "m²", "quantity": 100, "unitPrice": 2}]},
      {"name": "2. Foundation",
       "items": [{"description": "Concrete", "unit": "m³", "quantity": 10, "unitPrice": 500},
                 {"description": "Rebar", "unit": "kg", "quantity": 200, "unitPrice": 5}]}
    ]
    ```"""

    def __init__(self):
        self.calls = []

    def generate_categories(self, project_name, scope_text):
        self.calls.append((project_name, scope_text))
        return parse_generated_categories(self.ANSWER)


@pytest.fixture()
def fake_generator(app):
    original = app.extensions["budget_generator"]
    gen = FakeGenerator()
    app.extensions["budget_generator"] = gen
    yield gen
    app.extensions["budget_generator"] = original
