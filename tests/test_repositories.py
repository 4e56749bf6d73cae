"""Tests for the SQLAlchemy category store."""

import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from catalog_admin.errors import CircularReference, DuplicateSlug, NotFound
from catalog_admin.extensions import db
from catalog_admin.models import Category, generate_hex_id
from catalog_admin.repositories.category import SqlAlchemyCategoryStore
from catalog_admin.schemas.categories import CategoryCreate, CategoryNode
from catalog_admin.services.categories import CategoryHierarchyEngine


def new_node(name: str, slug: str, parent_id: str | None = None, **fields) -> CategoryNode:
    return CategoryNode(id=generate_hex_id(), name=name, slug=slug, parent_id=parent_id, **fields)


@pytest.fixture
def store(app) -> SqlAlchemyCategoryStore:
    return SqlAlchemyCategoryStore(db.session, lock_key=4242)


class TestCategoryStore:
    """Test cases for CategoryStore operations."""

    def test_insert_and_get(self, app, store):
        """Test inserting a node and reading it back by id and slug."""
        with app.app_context():
            with store.transaction():
                stored = store.insert(new_node('Audio', 'audio', description='Speakers'))
            assert stored.created_at is not None

            by_id = store.get_by_id(stored.id)
            assert by_id.name == 'Audio'
            assert by_id.description == 'Speakers'
            assert store.get_by_slug('audio').id == stored.id

    def test_get_missing(self, app, store):
        """Test lookups for unknown keys."""
        with app.app_context():
            assert store.get_by_id('nope') is None
            assert store.get_by_slug('nope') is None

    def test_list_all_ordering_and_filter(self, app, store):
        """Test list ordering and the active-only filter."""
        with app.app_context():
            with store.transaction():
                store.insert(new_node('Zed', 'zed', sort_order=0))
                store.insert(new_node('Bee', 'bee', sort_order=1))
                store.insert(new_node('Ant', 'ant', sort_order=1, is_active=False))
            assert [n.slug for n in store.list_all()] == ['zed', 'ant', 'bee']
            assert [n.slug for n in store.list_all(active_only=True)] == ['zed', 'bee']

    def test_update_fields(self, app, store):
        """Test partial field updates."""
        with app.app_context():
            with store.transaction():
                node = store.insert(new_node('Audio', 'audio'))
            with store.transaction():
                updated = store.update(node.id, {'name': 'Sound', 'sort_order': 3})
            assert updated.name == 'Sound'
            assert updated.slug == 'audio'
            assert updated.sort_order == 3

    def test_update_rejects_unknown_fields(self, app, store):
        """Test only writable columns can be updated."""
        with app.app_context():
            with store.transaction():
                node = store.insert(new_node('Audio', 'audio'))
            with pytest.raises(ValueError):
                with store.transaction():
                    store.update(node.id, {'id': 'other'})

    def test_update_and_delete_missing(self, app, store):
        """Test writes against unknown ids."""
        with app.app_context():
            with pytest.raises(NotFound):
                store.update('nope', {'name': 'x'})
            with pytest.raises(NotFound):
                store.delete('nope')

    def test_counts(self, app, store):
        """Test child and linked-product counts."""
        with app.app_context():
            with store.transaction():
                parent = store.insert(new_node('Parent', 'parent'))
                store.insert(new_node('One', 'one', parent_id=parent.id))
                store.insert(new_node('Two', 'two', parent_id=parent.id))
                store.link_item(parent.id, 'sku-9')
            assert store.count_children(parent.id) == 2
            assert store.count_associated_items(parent.id) == 1
            assert store.count_children('nope') == 0

    def test_delete(self, app, store):
        """Test removing a row."""
        with app.app_context():
            with store.transaction():
                node = store.insert(new_node('Temp', 'temp'))
            with store.transaction():
                store.delete(node.id)
            assert store.get_by_id(node.id) is None

    def test_unique_index_violation_becomes_duplicate_slug(self, app, store):
        """Test a slug race caught by the database maps to DuplicateSlug."""
        with app.app_context():
            with store.transaction():
                store.insert(new_node('Audio', 'audio'))
            with pytest.raises(DuplicateSlug):
                with store.transaction():
                    store.insert(new_node('Audio 2', 'audio'))
            assert len(store.list_all()) == 1

    def test_transaction_rolls_back_on_error(self, app, store):
        """Test nothing is committed when the block raises."""
        with app.app_context():
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.insert(new_node('Gone', 'gone'))
                    raise RuntimeError('boom')
            assert store.get_by_slug('gone') is None

    def test_advisory_lock_only_on_postgres(self, app):
        """Test the structural lock is requested on PostgreSQL only."""
        with app.app_context():
            session = MagicMock()
            session.get_bind.return_value.dialect.name = 'postgresql'
            pg_store = SqlAlchemyCategoryStore(session, lock_key=7)
            with pg_store.transaction():
                pass
            statement, params = session.execute.call_args.args
            assert 'pg_advisory_xact_lock' in str(statement)
            assert params == {'key': 7}
            session.commit.assert_called_once()

            session = MagicMock()
            session.get_bind.return_value.dialect.name = 'mysql'
            with SqlAlchemyCategoryStore(session, lock_key=7).transaction():
                pass
            session.execute.assert_not_called()

    def test_sqlite_takes_write_lock_up_front(self, app):
        """Test SQLite transactions open with BEGIN IMMEDIATE unless one is already open."""
        with app.app_context():
            session = MagicMock()
            session.get_bind.return_value.dialect.name = 'sqlite'
            session.connection.return_value.connection.dbapi_connection.in_transaction = False
            with SqlAlchemyCategoryStore(session).transaction():
                pass
            (statement,) = session.execute.call_args.args
            assert str(statement) == 'BEGIN IMMEDIATE'

            session = MagicMock()
            session.get_bind.return_value.dialect.name = 'sqlite'
            session.connection.return_value.connection.dbapi_connection.in_transaction = True
            with SqlAlchemyCategoryStore(session).transaction():
                pass
            session.execute.assert_not_called()

    def test_no_lock_without_key(self, app):
        """Test a store without a lock key never locks."""
        with app.app_context():
            session = MagicMock()
            session.get_bind.return_value.dialect.name = 'postgresql'
            with SqlAlchemyCategoryStore(session).transaction():
                pass
            session.execute.assert_not_called()

    def test_link_and_unlink(self, app, store):
        """Test maintaining product links."""
        with app.app_context():
            with store.transaction():
                node = store.insert(new_node('Audio', 'audio'))
                link = store.link_item(node.id, 'sku-1', is_primary=True)
            assert link.is_primary is True
            with store.transaction():
                assert store.unlink_item(node.id, 'sku-1') is True
                assert store.unlink_item(node.id, 'sku-1') is False
            assert store.count_associated_items(node.id) == 0

    def test_nodes_carry_child_and_product_counts(self, app, store):
        """Test derived counts on single reads and on the full listing."""
        with app.app_context():
            with store.transaction():
                root = store.insert(new_node('Audio', 'audio'))
                store.insert(new_node('Speakers', 'speakers', parent_id=root.id))
                store.insert(new_node('Headphones', 'headphones', parent_id=root.id, is_active=False))
                store.link_item(root.id, 'sku-1')
            assert (root.child_count, root.product_count) == (0, 0)

            fetched = store.get_by_id(root.id)
            assert (fetched.child_count, fetched.product_count) == (2, 1)
            assert store.get_by_slug('audio').child_count == 2

            counts = {n.slug: (n.child_count, n.product_count) for n in store.list_all(active_only=True)}
            assert counts == {'audio': (2, 1), 'speakers': (0, 0)}


class TestConcurrentWriters:
    """Two connections racing on a file-backed SQLite database."""

    @pytest.fixture
    def sessions(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'categories.db'}", connect_args={'timeout': 0.2})
        db.metadata.create_all(engine)
        first, second = Session(engine), Session(engine)
        yield first, second
        first.close()
        second.close()
        engine.dispose()

    def test_moves_cannot_interleave_into_a_cycle(self, app, sessions):
        """Test a move validated by one writer blocks a conflicting move until it commits."""
        first, second = sessions
        first_engine = CategoryHierarchyEngine(SqlAlchemyCategoryStore(first))
        second_engine = CategoryHierarchyEngine(SqlAlchemyCategoryStore(second))
        a = first_engine.create(CategoryCreate(name='A'))
        c = first_engine.create(CategoryCreate(name='C'))

        write = first_engine.store.update
        attempts = []

        def update_after_rival_move(category_id, fields):
            # The rival passes its own checks only if it can read before this write lands
            with pytest.raises(OperationalError):
                second_engine.move(c.id, a.id)
            attempts.append(category_id)
            return write(category_id, fields)

        first_engine.store.update = update_after_rival_move
        first_engine.move(a.id, c.id)
        assert attempts == [a.id]

        with pytest.raises(CircularReference):
            second_engine.move(c.id, a.id)

        assert second_engine.get(a.id).parent_id == c.id
        assert second_engine.get(c.id).parent_id is None
