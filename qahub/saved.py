import logging

from pymongo import ReturnDocument

from .content import expand_authors, expand_tags
from .database import driver_errors, to_object_id
from .errors import NotFoundError, QAHubError, log_errors
from .pagination import skip_amount
from .signals import invalidate_path
from .users import search_regex

logger = logging.getLogger(__name__)

SAVED_SORTS = {
    'most_recent': {'created_at': -1},
    'oldest': {'created_at': 1},
    'most_voted': {'upvote_count': -1},
    'most_viewed': {'views': -1},
    'most_answered': {'answer_count': -1},
}
COUNTED_FIELDS = {
    'upvote_count': {'$size': '$upvotes'},
    'answer_count': {'$size': '$answers'},
}
MAX_TOGGLE_ATTEMPTS = 5


class SavedQuestions:
    """A user's saved set of questions (the collection page)."""

    def __init__(self, store, questions):
        self.store = store
        self.questions = questions

    @log_errors
    @driver_errors()
    def toggle_save_question(self, user_id, question_id, path=None):
        """Remove the question from the user's saved set if present, add it otherwise.

        Each branch is a conditional atomic update, so a concurrent toggle makes
        the other branch's condition fail and the loop picks the flipped state.
        """
        user_id = to_object_id(user_id, 'user_id')
        question_id = to_object_id(question_id, 'question_id')
        db = self.store.ensure_connected()
        for _ in range(MAX_TOGGLE_ATTEMPTS):
            user = db.users.find_one_and_update(
                {'_id': user_id, 'saved': question_id}, {'$pull': {'saved': question_id}},
                return_document=ReturnDocument.AFTER,
            )
            if user:
                logger.info(f"User {user_id} unsaved question {question_id}")
                break
            if not db.users.count_documents({'_id': user_id}):
                raise NotFoundError('User', user_id)
            if not self.questions.exists(question_id):
                raise NotFoundError('Question', question_id)
            user = db.users.find_one_and_update(
                {'_id': user_id, 'saved': {'$ne': question_id}}, {'$addToSet': {'saved': question_id}},
                return_document=ReturnDocument.AFTER,
            )
            if user:
                logger.info(f"User {user_id} saved question {question_id}")
                break
        else:
            raise QAHubError(f"Saved questions of user {user_id} kept changing during toggle")
        invalidate_path(self, path)
        return user

    @log_errors
    @driver_errors()
    def get_saved_questions(self, external_id, search_query=None, filter=None, page=1, page_size=10):
        skip = skip_amount(page, page_size)
        db = self.store.ensure_connected()
        user = db.users.find_one({'external_id': external_id}, {'saved': 1})
        if not user:
            raise NotFoundError('User', external_id)

        match = {'_id': {'$in': user.get('saved', [])}}
        if search_query:
            match['title'] = {'$regex': search_regex(search_query)}
        pipeline = [{'$match': match}]
        # No recognised filter: questions come back in collection order, not the order they were saved.
        sort = SAVED_SORTS.get(filter)
        if sort:
            counted = {field: COUNTED_FIELDS[field] for field in sort if field in COUNTED_FIELDS}
            if counted:
                pipeline.append({'$addFields': counted})
            pipeline.append({'$sort': sort})
        # One extra row tells whether another page exists.
        pipeline += [{'$skip': skip}, {'$limit': page_size + 1}]

        questions = list(db.questions.aggregate(pipeline))
        more = len(questions) > page_size
        saved_questions = questions[:page_size]
        for question in saved_questions:
            for field in COUNTED_FIELDS:
                question.pop(field, None)
        expand_authors(db, saved_questions)
        expand_tags(db, saved_questions)
        return {'saved_questions': saved_questions, 'has_more': more}
