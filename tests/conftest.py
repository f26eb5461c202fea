"""Test configuration and fixtures."""

import mongomock
import pytest
from bson.objectid import ObjectId

from qahub.app import create_app
from qahub.config import TestingConfig
from qahub.content import AnswerRepository, CommentRepository, QuestionRepository, TagRepository
from qahub.contributions import UserContributions
from qahub.database import MongoStore
from qahub.saved import SavedQuestions
from qahub.users import UserRepository

# mongomock stands in for the server, each test gets a fresh in-memory database


@pytest.fixture
def store():
    client = mongomock.MongoClient()
    store = MongoStore(lambda: client, 'qahub_test')
    yield store
    store.close()


@pytest.fixture
def db(store):
    return store.ensure_connected()


@pytest.fixture
def questions(store):
    return QuestionRepository(store, TagRepository(store))


@pytest.fixture
def answers(store):
    return AnswerRepository(store)


@pytest.fixture
def users(store, questions, answers):
    return UserRepository(store, questions, answers, CommentRepository(store))


@pytest.fixture
def saved(store, questions):
    return SavedQuestions(store, questions)


@pytest.fixture
def contributions(store):
    return UserContributions(store)


@pytest.fixture
def make_user(users):
    def _make_user(username, **fields):
        data = {
            'external_id': f"ext_{username}",
            'name': username.title(),
            'username': username,
            'email': f"{username}@gmail.com",
            'picture': f"https://img.qahub.dev/{username}.png",
        }
        data.update(fields)
        return users.create_user(data)
    return _make_user


@pytest.fixture
def make_question(questions):
    def _make_question(author_id, title='How do I read a file line by line?', tags=('python',), content=None):
        content = content or f"{title} I have tried a few approaches and none of them work."
        return questions.create_question(title, content, list(tags), author_id)
    return _make_question


@pytest.fixture
def set_upvotes(db):
    """Give a question or answer n distinct upvoters."""
    def _set_upvotes(collection, doc_id, n):
        db[collection].update_one({'_id': doc_id}, {'$set': {'upvotes': [ObjectId() for _ in range(n)]}})
    return _set_upvotes


@pytest.fixture
def app(store):
    return create_app(TestingConfig, store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def identity_headers():
    def _headers(external_id):
        return {TestingConfig.IDENTITY_HEADER: external_id}
    return _headers
