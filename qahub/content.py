"""Question, answer, tag and comment collections.

These back the user-facing operations: cascade deletes, joins into listings
and the seeding of content by the ask/answer flows.
"""
import logging
from datetime import datetime, timezone

from pymongo import ReturnDocument

from .database import driver_errors, to_object_id
from .errors import NotFoundError
from .forms import AnswerForm, QuestionForm, validate_fields

logger = logging.getLogger(__name__)

AUTHOR_FIELDS = {'name': 1, 'external_id': 1, 'picture': 1}
TAG_FIELDS = {'name': 1}
QUESTION_SUMMARY_FIELDS = {'title': 1}


def expand_authors(db, docs):
    author_ids = list({doc['author_id'] for doc in docs if doc.get('author_id')})
    authors = {u['_id']: u for u in db.users.find({'_id': {'$in': author_ids}}, AUTHOR_FIELDS)} if author_ids else {}
    for doc in docs:
        doc['author'] = authors.get(doc.get('author_id'))
    return docs


def expand_tags(db, docs):
    tag_ids = list({tag_id for doc in docs for tag_id in doc.get('tags', [])})
    tags = {t['_id']: t for t in db.tags.find({'_id': {'$in': tag_ids}}, TAG_FIELDS)} if tag_ids else {}
    for doc in docs:
        doc['tags'] = [tags[tag_id] for tag_id in doc.get('tags', []) if tag_id in tags]
    return docs


def expand_questions(db, answers):
    question_ids = list({a['question_id'] for a in answers if a.get('question_id')})
    questions = {q['_id']: q for q in db.questions.find({'_id': {'$in': question_ids}}, QUESTION_SUMMARY_FIELDS)} if question_ids else {}
    for answer in answers:
        answer['question'] = questions.get(answer.get('question_id'))
    return answers


class TagRepository:
    def __init__(self, store):
        self.store = store

    @driver_errors()
    def get_or_create(self, names):
        db = self.store.ensure_connected()
        unique_names = list(dict.fromkeys([name.strip().lower() for name in names if name and name.strip()]))
        tag_ids = []
        for name in unique_names:
            tag = db.tags.find_one_and_update(
                {'name': name},
                {'$setOnInsert': {'questions': [], 'created_at': datetime.now(timezone.utc)}},
                upsert=True, return_document=ReturnDocument.AFTER,
            )
            tag_ids.append(tag['_id'])
        return tag_ids


class QuestionRepository:
    def __init__(self, store, tags):
        self.store = store
        self.tags = tags

    @driver_errors()
    def create_question(self, title, content, tags, author_id):
        fields = validate_fields(QuestionForm, {'title': title, 'content': content})
        author_id = to_object_id(author_id, 'author_id')
        db = self.store.ensure_connected()
        tag_ids = self.tags.get_or_create(tags)
        question_id = db.questions.insert_one({
            'title': fields['title'], 'content': fields['content'], 'tags': tag_ids, 'author_id': author_id,
            'created_at': datetime.now(timezone.utc), 'views': 0, 'upvotes': [], 'downvotes': [], 'answers': [],
        }).inserted_id
        if tag_ids:
            db.tags.update_many({'_id': {'$in': tag_ids}}, {'$addToSet': {'questions': question_id}})
        logger.info(f"Question {question_id} created by {author_id}")
        return question_id

    @driver_errors()
    def get_question(self, question_id):
        db = self.store.ensure_connected()
        return db.questions.find_one({'_id': to_object_id(question_id, 'question_id')})

    @driver_errors()
    def exists(self, question_id):
        db = self.store.ensure_connected()
        return db.questions.count_documents({'_id': to_object_id(question_id, 'question_id')}) > 0

    @driver_errors()
    def delete_by_author(self, author_id, session=None):
        db = self.store.ensure_connected()
        question_ids = [q['_id'] for q in db.questions.find({'author_id': author_id}, {'_id': 1}, session=session)]
        if not question_ids:
            return 0
        result = db.questions.delete_many({'_id': {'$in': question_ids}}, session=session)
        db.tags.update_many({'questions': {'$in': question_ids}}, {'$pull': {'questions': {'$in': question_ids}}}, session=session)
        return result.deleted_count


class AnswerRepository:
    def __init__(self, store):
        self.store = store

    @driver_errors()
    def create_answer(self, content, author_id, question_id):
        fields = validate_fields(AnswerForm, {'content': content})
        author_id = to_object_id(author_id, 'author_id')
        question_id = to_object_id(question_id, 'question_id')
        db = self.store.ensure_connected()
        if not db.questions.count_documents({'_id': question_id}):
            raise NotFoundError('Question', question_id)
        answer_id = db.answers.insert_one({
            'content': fields['content'], 'author_id': author_id, 'question_id': question_id,
            'created_at': datetime.now(timezone.utc), 'upvotes': [], 'downvotes': [],
        }).inserted_id
        db.questions.update_one({'_id': question_id}, {'$push': {'answers': answer_id}})
        return answer_id

    @driver_errors()
    def delete_by_author(self, author_id, session=None):
        db = self.store.ensure_connected()
        answer_ids = [a['_id'] for a in db.answers.find({'author_id': author_id}, {'_id': 1}, session=session)]
        if not answer_ids:
            return 0
        result = db.answers.delete_many({'_id': {'$in': answer_ids}}, session=session)
        db.questions.update_many({'answers': {'$in': answer_ids}}, {'$pull': {'answers': {'$in': answer_ids}}}, session=session)
        return result.deleted_count


class CommentRepository:
    def __init__(self, store):
        self.store = store

    @driver_errors()
    def delete_by_author(self, author_id, session=None):
        db = self.store.ensure_connected()
        return db.comments.delete_many({'author_id': author_id}, session=session).deleted_count
