import logging
import threading
from contextlib import contextmanager

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import ASCENDING, MongoClient, errors
from pymongo.errors import ConfigurationError, ConnectionFailure, OperationFailure

from .errors import DatabaseConnectionError, DuplicateKeyError, QAHubError, ValidationError

logger = logging.getLogger(__name__)

AUTHENTICATION_FAILED = 18


@contextmanager
def driver_errors():
    """Translate driver exceptions raised inside the block into the app's errors.

    Also usable as a decorator, which is how repository operations wrap their
    driver calls.
    """
    try:
        yield
    except errors.DuplicateKeyError as e:
        raise DuplicateKeyError((e.details or {}).get('keyValue')) from e
    except ConnectionFailure as e:
        raise DatabaseConnectionError(str(e)) from e
    except errors.PyMongoError as e:
        raise QAHubError(f"Database operation failed: {e}") from e


def to_object_id(value, field='id'):
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError({field: [f"'{value}' is not a valid id."]})


class MongoStore:
    """Lazily connected handle to the application database.

    Repositories receive the store and call ensure_connected() before every
    operation. The first call builds the client, checks the server answers and
    creates the unique indexes; concurrent first calls build one client only.
    """

    def __init__(self, client_factory, db_name, use_transactions=False):
        self._client_factory = client_factory
        self._db_name = db_name
        self.use_transactions = use_transactions
        self._client = None
        self._db = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config, client_factory=None, db_name=None):
        if client_factory is None:
            def client_factory():
                return MongoClient(config['MONGO_URI'], serverSelectionTimeoutMS=config['MONGO_SERVER_SELECTION_TIMEOUT_MS'])
        return cls(client_factory, db_name or config['MONGO_DBNAME'], use_transactions=config['MONGO_USE_TRANSACTIONS'])

    @property
    def db_name(self):
        return self._db_name

    @property
    def client(self):
        self.ensure_connected()
        return self._client

    def ensure_connected(self):
        if self._db is not None:
            return self._db
        with self._lock:
            if self._db is None:
                self._db = self._connect()
        return self._db

    def _connect(self):
        client = None
        try:
            client = self._client_factory()
            client.admin.command('ping')
        except OperationFailure as e:
            if client is not None:
                client.close()
            if e.code != AUTHENTICATION_FAILED:
                raise
            logger.error(f"MongoDB rejected the configured credentials: {e}")
            raise DatabaseConnectionError(f"Authentication failed for database '{self._db_name}'") from e
        except (ConnectionFailure, ConfigurationError) as e:
            if client is not None:
                client.close()
            logger.error(f"Could not connect to MongoDB: {e}")
            raise DatabaseConnectionError(f"Database '{self._db_name}' is unreachable") from e
        db = client[self._db_name]
        try:
            self._ensure_indexes(db)
        except errors.PyMongoError as e:
            client.close()
            logger.error(f"Could not create indexes on '{self._db_name}': {e}")
            raise
        self._client = client
        logger.info(f"Connected to MongoDB database '{self._db_name}'")
        return db

    def _ensure_indexes(self, db):
        for field in ('external_id', 'username', 'email'):
            db.users.create_index([(field, ASCENDING)], unique=True, name=f"unique_{field}")
        db.tags.create_index([('name', ASCENDING)], unique=True, name='unique_tag_name')
        db.questions.create_index([('author_id', ASCENDING)], name='question_author')
        db.answers.create_index([('author_id', ASCENDING)], name='answer_author')

    @contextmanager
    def transaction(self):
        """Yield a session bound to a transaction, or None when transactions are off."""
        if not self.use_transactions:
            yield None
            return
        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def close(self):
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client, self._db = None, None
