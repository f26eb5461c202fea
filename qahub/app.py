from functools import wraps

from bson.objectid import ObjectId
from flask import Blueprint, Flask, current_app, jsonify, redirect, request
from flask.json.provider import DefaultJSONProvider
from flask_login import LoginManager, UserMixin, current_user, login_required
from flask_pymongo import PyMongo

from .cache import RenderCache
from .config import Config
from .content import AnswerRepository, CommentRepository, QuestionRepository, TagRepository
from .contributions import UserContributions
from .database import MongoStore
from .errors import DatabaseConnectionError, DuplicateKeyError, NotFoundError, QAHubError, ValidationError
from .saved import SavedQuestions
from .signals import COLLECTION_PATH, profile_path
from .users import UserRepository

mongo = PyMongo()
login_manager = LoginManager()
bp = Blueprint('qahub', __name__)

# Query args a cached view may read; anything else shares the cached render.
CACHE_VARIANT_ARGS = ('q', 'filter', 'page', 'page_size')


class MongoJSONProvider(DefaultJSONProvider):
    @staticmethod
    def default(o):
        if isinstance(o, ObjectId):
            return str(o)
        return DefaultJSONProvider.default(o)


class Services:
    def __init__(self, store, config):
        self.store = store
        self.tags = TagRepository(store)
        self.questions = QuestionRepository(store, self.tags)
        self.answers = AnswerRepository(store)
        self.comments = CommentRepository(store)
        self.users = UserRepository(store, self.questions, self.answers, self.comments)
        self.saved = SavedQuestions(store, self.questions)
        self.contributions = UserContributions(store, config['BADGE_CRITERIA'])
        self.render_cache = RenderCache(ttl=config['RENDER_CACHE_TTL'],
                                        max_entries=config['RENDER_CACHE_MAX_ENTRIES']).connect()


def services():
    return current_app.extensions['qahub']


# --- Identity ---
class Identity(UserMixin):
    """Signed-in user as asserted by the identity provider; id is the external id."""

    def __init__(self, external_id):
        self.id = external_id


@login_manager.request_loader
def load_identity(req):
    external_id = req.headers.get(current_app.config['IDENTITY_HEADER'], '').strip()
    return Identity(external_id) if external_id else None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'status': 'error', 'message': 'You must be signed in.'}), 401


def current_mongo_user():
    user = services().users.get_user_by_id(current_user.id)
    if not user:
        raise NotFoundError('User', current_user.id)
    return user


def cached_render(view):
    """Serve a JSON view from the render cache until its path is invalidated."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        cache = services().render_cache
        identity = current_user.get_id() if current_user.is_authenticated else ''
        args = '&'.join(f"{name}={request.args[name]}" for name in CACHE_VARIANT_ARGS if name in request.args)
        variant = f"{identity}?{args}"
        body = cache.get(request.path, variant)
        if body is None:
            body = view(*args, **kwargs)
            cache.set(request.path, variant, body)
        return jsonify(body)
    return wrapper


def page_args():
    page = request.args.get('page', 1, type=int)
    page_size = request.args.get('page_size', current_app.config['DEFAULT_PAGE_SIZE'], type=int)
    return page, page_size


# --- Routes ---
@bp.route('/ask-question')
def ask_question():
    if not current_user.is_authenticated:
        return redirect(current_app.config['SIGN_IN_URL'])
    mongo_user = services().users.get_user_by_id(current_user.id)
    if not mongo_user:
        return '', 204
    return jsonify({'mongo_user_id': mongo_user['_id']})


@bp.route('/community')
def community():
    page, page_size = page_args()
    result = services().users.get_all_users(search_query=request.args.get('q', '').strip() or None,
                                            filter=request.args.get('filter'), page=page, page_size=page_size)
    return jsonify(result)


@bp.route('/profile/<external_id>')
@cached_render
def profile(external_id):
    return services().contributions.get_user_info(external_id)


@bp.route('/users/<ObjectId:user_id>/questions')
def user_questions(user_id):
    page, page_size = page_args()
    return jsonify(services().contributions.get_user_questions(user_id, page=page, page_size=page_size))


@bp.route('/users/<ObjectId:user_id>/answers')
def user_answers(user_id):
    page, page_size = page_args()
    return jsonify(services().contributions.get_user_answers(user_id, page=page, page_size=page_size))


@bp.route('/collection')
@login_required
@cached_render
def collection():
    page, page_size = page_args()
    return services().saved.get_saved_questions(current_user.id, search_query=request.args.get('q', '').strip() or None,
                                                filter=request.args.get('filter'), page=page, page_size=page_size)


@bp.route('/api/questions/<ObjectId:question_id>/save', methods=['POST'])
@login_required
def toggle_save_question(question_id):
    data = request.get_json(silent=True) or {}
    user = current_mongo_user()
    updated = services().saved.toggle_save_question(user['_id'], question_id, path=data.get('path', COLLECTION_PATH))
    return jsonify({'status': 'success', 'saved': question_id in updated.get('saved', [])})


@bp.route('/profile/edit', methods=['PATCH'])
@login_required
def edit_profile():
    data = request.get_json(silent=True) or {}
    path = data.pop('path', profile_path(current_user.id))
    user = services().users.update_user(current_user.id, data, path=path)
    if not user:
        raise NotFoundError('User', current_user.id)
    return jsonify({'status': 'success', 'user': user})


@bp.route('/api/webhooks/identity', methods=['POST'])
def identity_webhook():
    """User lifecycle events from the identity provider; signature checks happen upstream."""
    event = request.get_json(silent=True) or {}
    event_type, data = event.get('type'), event.get('data') or {}
    external_id = data.get('id')
    if not external_id:
        return jsonify({'status': 'error', 'message': 'Event has no user id.'}), 400
    profile_fields = {key: data[key] for key in ('name', 'username', 'email', 'picture') if data.get(key) is not None}
    users = services().users
    if event_type == 'user.created':
        user_id = users.create_user({'external_id': external_id, **profile_fields})
        return jsonify({'status': 'success', 'user_id': user_id}), 201
    if event_type == 'user.updated':
        users.update_user(external_id, profile_fields, path=profile_path(external_id))
        return jsonify({'status': 'success'})
    if event_type == 'user.deleted':
        deleted_id = users.delete_user(external_id)
        return jsonify({'status': 'success', 'user_id': deleted_id})
    return jsonify({'status': 'error', 'message': f"Unsupported event type '{event_type}'."}), 400


# --- Error Handlers ---
@bp.app_errorhandler(NotFoundError)
def not_found(e):
    return jsonify({'status': 'error', 'message': str(e)}), 404


@bp.app_errorhandler(ValidationError)
def invalid_input(e):
    return jsonify({'status': 'error', 'message': str(e), 'errors': e.errors}), 400


@bp.app_errorhandler(DuplicateKeyError)
def duplicate_key(e):
    return jsonify({'status': 'error', 'message': str(e), 'fields': sorted(e.key_value)}), 409


@bp.app_errorhandler(DatabaseConnectionError)
def database_unavailable(e):
    current_app.logger.error(f"Database unavailable: {e}")
    return jsonify({'status': 'error', 'message': 'Service temporarily unavailable.'}), 503


@bp.app_errorhandler(QAHubError)
def internal_error(e):
    current_app.logger.error(f"Server Error: {e}", exc_info=True)
    return jsonify({'status': 'error', 'message': 'Internal server error.'}), 500


def create_app(config_class=Config, store=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    mongo.init_app(app, serverSelectionTimeoutMS=app.config['MONGO_SERVER_SELECTION_TIMEOUT_MS'])
    # After init_app, which installs Flask-PyMongo's own JSON provider.
    app.json = MongoJSONProvider(app)
    login_manager.init_app(app)
    if store is None:
        client, db = mongo.cx, mongo.db
        store = MongoStore.from_config(app.config, client_factory=lambda: client,
                                       db_name=db.name if db is not None else None)
    app.extensions['qahub'] = Services(store, app.config)
    app.register_blueprint(bp)
    return app


