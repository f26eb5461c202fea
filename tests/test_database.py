import threading
import time
from unittest.mock import MagicMock

import mongomock
import pytest
from bson.objectid import ObjectId
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from qahub.database import MongoStore, driver_errors, to_object_id
from qahub.errors import DatabaseConnectionError, QAHubError, ValidationError


class TestEnsureConnected:
    def test_returns_same_database_on_every_call(self, store):
        first = store.ensure_connected()
        assert store.ensure_connected() is first
        assert first.name == 'qahub_test'

    def test_concurrent_first_use_builds_one_client(self):
        client = mongomock.MongoClient()
        factory_calls = []

        def factory():
            factory_calls.append(1)
            time.sleep(0.05)
            return client

        store = MongoStore(factory, 'qahub_test')
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(store.ensure_connected())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(factory_calls) == 1
        assert len(results) == 8
        assert all(db is results[0] for db in results)

    def test_unreachable_server_raises_connection_error(self):
        client = MagicMock()
        client.admin.command.side_effect = ServerSelectionTimeoutError('No servers found')
        store = MongoStore(lambda: client, 'qahub_test')

        with pytest.raises(DatabaseConnectionError):
            store.ensure_connected()
        client.close.assert_called_once()

    def test_rejected_credentials_raise_connection_error(self):
        client = MagicMock()
        client.admin.command.side_effect = OperationFailure('Authentication failed.', code=18)
        store = MongoStore(lambda: client, 'qahub_test')

        with pytest.raises(DatabaseConnectionError):
            store.ensure_connected()

    def test_failed_connect_is_retried_on_next_call(self):
        client = mongomock.MongoClient()
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise ServerSelectionTimeoutError('No servers found')
            return client

        store = MongoStore(factory, 'qahub_test')
        with pytest.raises(DatabaseConnectionError):
            store.ensure_connected()
        assert store.ensure_connected().name == 'qahub_test'

    def test_index_failure_closes_the_new_client(self):
        client = MagicMock()
        client['qahub_test'].users.create_index.side_effect = OperationFailure('E11000 duplicate key', code=11000)
        store = MongoStore(lambda: client, 'qahub_test')

        with pytest.raises(OperationFailure):
            store.ensure_connected()

        client.close.assert_called_once()
        with pytest.raises(QAHubError):
            with driver_errors():
                store.ensure_connected()


class TestTransaction:
    def test_yields_no_session_when_transactions_are_off(self, store):
        with store.transaction() as session:
            assert session is None


class TestToObjectId:
    def test_accepts_string_and_object_id(self):
        oid = ObjectId()
        assert to_object_id(oid) is oid
        assert to_object_id(str(oid)) == oid

    def test_invalid_id_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            to_object_id('not-an-id', 'question_id')
        assert 'question_id' in exc_info.value.errors


class TestTransactionEnabled:
    def test_yields_session_inside_a_transaction(self):
        client = MagicMock()
        store = MongoStore(lambda: client, 'qahub_test', use_transactions=True)

        with store.transaction() as session:
            assert session is client.start_session.return_value.__enter__.return_value

        session.start_transaction.assert_called_once()


class TestDriverErrors:
    def test_lost_connection_becomes_database_connection_error(self):
        with pytest.raises(DatabaseConnectionError):
            with driver_errors():
                raise ServerSelectionTimeoutError('No servers found')

    def test_other_driver_failures_become_qahub_errors(self):
        with pytest.raises(QAHubError) as exc_info:
            with driver_errors():
                raise OperationFailure('not authorized on qahub', code=13)
        assert isinstance(exc_info.value.__cause__, OperationFailure)

    def test_works_as_a_decorator(self):
        @driver_errors()
        def lookup():
            raise ServerSelectionTimeoutError('No servers found')

        for _ in range(2):
            with pytest.raises(DatabaseConnectionError):
                lookup()


@pytest.fixture
def server_gone(store, monkeypatch):
    """Connect first, then make every collection call fail as if the server dropped."""
    store.ensure_connected()

    def unreachable(*args, **kwargs):
        raise ServerSelectionTimeoutError('No servers found')

    for name in ('find', 'find_one', 'find_one_and_update', 'count_documents', 'aggregate',
                 'insert_one', 'delete_many', 'delete_one'):
        monkeypatch.setattr(mongomock.Collection, name, unreachable)


@pytest.mark.parametrize('operation', [
    lambda users, saved, contributions: users.get_user_by_id('ext_alice'),
    lambda users, saved, contributions: users.get_all_users(),
    lambda users, saved, contributions: users.update_user('ext_alice', {'bio': 'hi'}),
    lambda users, saved, contributions: users.delete_user('ext_alice'),
    lambda users, saved, contributions: saved.toggle_save_question(ObjectId(), ObjectId()),
    lambda users, saved, contributions: saved.get_saved_questions('ext_alice'),
    lambda users, saved, contributions: contributions.get_user_info('ext_alice'),
    lambda users, saved, contributions: contributions.get_user_questions(ObjectId()),
    lambda users, saved, contributions: contributions.get_user_answers(ObjectId()),
])
def test_server_lost_after_connect_raises_database_connection_error(server_gone, users, saved, contributions,
                                                                     operation):
    with pytest.raises(DatabaseConnectionError):
        operation(users, saved, contributions)
