import logging
import re
from datetime import datetime, timezone

from pymongo import ReturnDocument

from .database import driver_errors
from .errors import DuplicateKeyError, NotFoundError, ValidationError, log_errors
from .forms import EditProfileForm, UserForm, validate_fields
from .pagination import has_more, skip_amount
from .signals import COLLECTION_PATH, invalidate_path, profile_path

logger = logging.getLogger(__name__)

UNIQUE_USER_FIELDS = ('external_id', 'username', 'email')
SEARCH_FIELDS = ('name', 'username', 'email', 'bio')
USER_SORTS = {
    'new_users': [('joined_at', -1)],
    'old_users': [('joined_at', 1)],
    'top_contributors': [('reputation', -1)],
}


def search_regex(search_query):
    """Case-insensitive pattern matching the query as literal text."""
    return re.compile(re.escape(search_query), re.IGNORECASE)


class UserRepository:
    """Users keyed by the identity provider's id (external_id)."""

    def __init__(self, store, questions, answers, comments):
        self.store = store
        self.questions = questions
        self.answers = answers
        self.comments = comments

    @log_errors
    @driver_errors()
    def get_user_by_id(self, external_id):
        db = self.store.ensure_connected()
        return db.users.find_one({'external_id': external_id})

    @log_errors
    @driver_errors()
    def create_user(self, user_data):
        try:
            fields = validate_fields(UserForm, user_data)
        except ValidationError as e:
            for field, messages in e.errors.items():
                logger.error(f"Validation error for {field}: {'; '.join(messages)}")
            raise
        db = self.store.ensure_connected()
        user_doc = {**fields, 'reputation': 0, 'saved': [], 'joined_at': datetime.now(timezone.utc)}
        logger.info(f"Attempting to create user {fields['username']} ({fields['external_id']})")
        try:
            with driver_errors():
                user_id = db.users.insert_one(user_doc).inserted_id
        except DuplicateKeyError as e:
            if not e.key_value:
                e.key_value = self._conflicting_fields(db, fields)
            logger.error(f"Duplicate key error: {e.key_value}")
            raise
        logger.info(f"User created successfully: {user_id}")
        return user_id

    def _conflicting_fields(self, db, fields):
        return {name: fields[name] for name in UNIQUE_USER_FIELDS
                if db.users.count_documents({name: fields[name]})}

    @log_errors
    @driver_errors()
    def update_user(self, external_id, update_data, path=None):
        """Apply a profile edit; returns the updated user, or None when nobody matches."""
        fields = validate_fields(EditProfileForm, update_data, partial=True)
        db = self.store.ensure_connected()
        if fields:
            user = db.users.find_one_and_update(
                {'external_id': external_id}, {'$set': fields}, return_document=ReturnDocument.AFTER,
            )
        else:
            user = db.users.find_one({'external_id': external_id})
        invalidate_path(self, path)
        return user

    @log_errors
    @driver_errors()
    def delete_user(self, external_id):
        db = self.store.ensure_connected()
        user = db.users.find_one({'external_id': external_id}, {'_id': 1})
        if not user:
            raise NotFoundError('User', external_id)
        user_id = user['_id']
        # Without a transaction the user goes last, so a partial failure can be retried.
        with self.store.transaction() as session:
            questions_deleted = self.questions.delete_by_author(user_id, session=session)
            answers_deleted = self.answers.delete_by_author(user_id, session=session)
            comments_deleted = self.comments.delete_by_author(user_id, session=session)
            db.users.delete_one({'_id': user_id}, session=session)
        logger.info(f"Deleted user {user_id} with {questions_deleted} questions, {answers_deleted} answers "
                    f"and {comments_deleted} comments")
        # The profile is gone and saved collections may list the deleted questions.
        invalidate_path(self, profile_path(external_id))
        invalidate_path(self, COLLECTION_PATH)
        return user_id

    @log_errors
    @driver_errors()
    def get_all_users(self, search_query=None, filter=None, page=1, page_size=10):
        skip = skip_amount(page, page_size)
        db = self.store.ensure_connected()
        query = {}
        if search_query:
            regex = search_regex(search_query)
            query['$or'] = [{field: {'$regex': regex}} for field in SEARCH_FIELDS]
        cursor = db.users.find(query)
        sort = USER_SORTS.get(filter)
        if sort:
            cursor = cursor.sort(sort)
        users = list(cursor.skip(skip).limit(page_size))
        total_users = db.users.count_documents(query)
        return {'users': users, 'has_more': has_more(total_users, page, page_size)}
