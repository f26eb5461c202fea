import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


# Thresholds per criterion type; a criterion unlocks a tier when its count reaches the value.
BADGE_CRITERIA = {
    'QUESTION_COUNT': {'BRONZE': 10, 'SILVER': 50, 'GOLD': 100},
    'ANSWER_COUNT': {'BRONZE': 10, 'SILVER': 50, 'GOLD': 100},
    'QUESTION_UPVOTES': {'BRONZE': 10, 'SILVER': 50, 'GOLD': 100},
    'ANSWER_UPVOTES': {'BRONZE': 10, 'SILVER': 50, 'GOLD': 100},
    'TOTAL_VIEWS': {'BRONZE': 1000, 'SILVER': 10000, 'GOLD': 100000},
}


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess-this-super-secret-key'
    MONGO_URI = os.environ.get('MONGO_URI') or os.environ.get('MONGODB_URI') or 'mongodb://localhost:27017/qahub'
    # Used when MONGO_URI names no database
    MONGO_DBNAME = os.environ.get('MONGO_DBNAME', 'qahub')
    # Transactions need a replica set; standalone servers must leave this off.
    MONGO_USE_TRANSACTIONS = _env_flag('MONGO_USE_TRANSACTIONS')
    MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.environ.get('MONGO_SERVER_SELECTION_TIMEOUT_MS', 5000))

    DEFAULT_PAGE_SIZE = int(os.environ.get('DEFAULT_PAGE_SIZE', 10))

    # Header the identity provider's proxy uses to forward the signed-in user's id
    IDENTITY_HEADER = os.environ.get('IDENTITY_HEADER', 'X-Identity-Id')
    SIGN_IN_URL = os.environ.get('SIGN_IN_URL', '/sign-in')

    # Cached JSON renders of profile and collection pages
    RENDER_CACHE_TTL = int(os.environ.get('RENDER_CACHE_TTL', 60))
    RENDER_CACHE_MAX_ENTRIES = int(os.environ.get('RENDER_CACHE_MAX_ENTRIES', 1024))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    BADGE_CRITERIA = BADGE_CRITERIA


class TestingConfig(Config):
    TESTING = True
    MONGO_URI = 'mongodb://localhost:27017/qahub_test'
    MONGO_DBNAME = 'qahub_test'
    MONGO_USE_TRANSACTIONS = False
