"""Test configuration and fixtures for the catalog admin application."""

from typing import Callable, Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient
from sqlalchemy.pool import StaticPool

from catalog_admin import create_app
from catalog_admin.extensions import db
from catalog_admin.models import Category
from catalog_admin.schemas.categories import CategoryCreate, CategoryNode
from catalog_admin.services.categories import CategoryHierarchyEngine, get_category_engine


@pytest.fixture
def app() -> Generator[Flask, None, None]:
    """Create and configure a test Flask application."""
    # Use in-memory SQLite for each test
    test_config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'poolclass': StaticPool,
            'pool_pre_ping': True,
            'connect_args': {'check_same_thread': False}
        },
        'SECRET_KEY': 'test-secret-key',
        'RATELIMIT_ENABLED': False,  # Disable rate limiting for tests
        'CACHE_TYPE': 'SimpleCache',
        'CATEGORY_TREE_CACHE_SECONDS': 300,
        'CATEGORY_LOCK_KEY': 4242,
        'LOG_LEVEL': 'INFO',
    }

    # Create app with test config
    app = create_app(test_config)

    with app.app_context():
        # Create all tables
        db.create_all()
        yield app

        # Cleanup
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def runner(app: Flask):
    """Create a test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(autouse=True)
def db_session(app: Flask):
    """Create a clean database session for each test."""
    with app.app_context():
        yield db.session


@pytest.fixture
def engine(app: Flask) -> CategoryHierarchyEngine:
    """Hierarchy engine bound to the test database session."""
    return get_category_engine()


@pytest.fixture
def make_category(engine: CategoryHierarchyEngine) -> Callable[..., CategoryNode]:
    """Factory creating categories through the engine."""
    def _make(name: str, parent: CategoryNode | None = None, **fields) -> CategoryNode:
        return engine.create(
            CategoryCreate(name=name, parent_id=parent.id if parent else None, **fields)
        )

    return _make


@pytest.fixture
def chain(make_category):
    """Root A with child B and grandchild C (slugs a, b, c)."""
    a = make_category('A')
    b = make_category('B', parent=a)
    c = make_category('C', parent=b)
    return a, b, c


@pytest.fixture
def force_parent(app: Flask) -> Callable[[str, str | None], None]:
    """Write parent_id straight to the table, bypassing every engine check."""
    def _force(category_id: str, parent_id: str | None) -> None:
        db.session.execute(
            db.update(Category).where(Category.id == category_id).values(parent_id=parent_id)
        )
        db.session.commit()

    return _force
