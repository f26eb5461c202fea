import logging

from .badges import assign_badges
from .config import BADGE_CRITERIA
from .content import expand_authors, expand_questions, expand_tags
from .database import driver_errors, to_object_id
from .errors import NotFoundError, log_errors
from .pagination import has_more, skip_amount

logger = logging.getLogger(__name__)

UPVOTE_COUNT = {'$size': '$upvotes'}


def _sum_for_author(collection, author_id, value):
    """Sum an expression over every document the author wrote; 0 when there are none."""
    pipeline = [
        {'$match': {'author_id': author_id}},
        {'$project': {'_id': 0, 'value': value}},
        {'$group': {'_id': None, 'total': {'$sum': '$value'}}},
    ]
    result = next(iter(collection.aggregate(pipeline)), None)
    return result['total'] if result else 0


class UserContributions:
    """Per-user totals, badge tally and the question/answer lists on a profile."""

    def __init__(self, store, badge_criteria=None):
        self.store = store
        self.badge_criteria = badge_criteria or BADGE_CRITERIA

    @log_errors
    @driver_errors()
    def get_user_info(self, external_id):
        db = self.store.ensure_connected()
        user = db.users.find_one({'external_id': external_id})
        if not user:
            raise NotFoundError('User', external_id)
        user_id = user['_id']

        total_questions = db.questions.count_documents({'author_id': user_id})
        total_answers = db.answers.count_documents({'author_id': user_id})
        question_upvotes = _sum_for_author(db.questions, user_id, UPVOTE_COUNT)
        answer_upvotes = _sum_for_author(db.answers, user_id, UPVOTE_COUNT)
        total_views = _sum_for_author(db.questions, user_id, '$views')

        criteria = [
            {'type': 'QUESTION_COUNT', 'count': total_questions},
            {'type': 'ANSWER_COUNT', 'count': total_answers},
            {'type': 'QUESTION_UPVOTES', 'count': question_upvotes},
            {'type': 'ANSWER_UPVOTES', 'count': answer_upvotes},
            {'type': 'TOTAL_VIEWS', 'count': total_views},
        ]
        badge_counts = assign_badges(criteria, self.badge_criteria)

        return {
            'user': user,
            'total_questions': total_questions,
            'total_answers': total_answers,
            'question_upvotes': question_upvotes,
            'answer_upvotes': answer_upvotes,
            'total_views': total_views,
            'badge_counts': badge_counts,
            'reputation': user.get('reputation', 0),
        }

    @log_errors
    @driver_errors()
    def get_user_questions(self, user_id, page=1, page_size=10):
        skip = skip_amount(page, page_size)
        user_id = to_object_id(user_id, 'user_id')
        db = self.store.ensure_connected()
        total_questions = db.questions.count_documents({'author_id': user_id})
        questions = list(db.questions.aggregate([
            {'$match': {'author_id': user_id}},
            {'$addFields': {'upvote_count': UPVOTE_COUNT}},
            {'$sort': {'created_at': -1, 'views': -1, 'upvote_count': -1}},
            {'$skip': skip},
            {'$limit': page_size},
        ]))
        for question in questions:
            question.pop('upvote_count', None)
        expand_tags(db, questions)
        expand_authors(db, questions)
        return {
            'total_questions': total_questions,
            'questions': questions,
            'has_more': has_more(total_questions, page, page_size),
        }

    @log_errors
    @driver_errors()
    def get_user_answers(self, user_id, page=1, page_size=10):
        skip = skip_amount(page, page_size)
        user_id = to_object_id(user_id, 'user_id')
        db = self.store.ensure_connected()
        total_answers = db.answers.count_documents({'author_id': user_id})
        answers = list(db.answers.aggregate([
            {'$match': {'author_id': user_id}},
            {'$addFields': {'upvote_count': UPVOTE_COUNT}},
            {'$sort': {'upvote_count': -1}},
            {'$skip': skip},
            {'$limit': page_size},
        ]))
        for answer in answers:
            answer.pop('upvote_count', None)
        expand_questions(db, answers)
        expand_authors(db, answers)
        return {
            'total_answers': total_answers,
            'answers': answers,
            'has_more': has_more(total_answers, page, page_size),
        }
