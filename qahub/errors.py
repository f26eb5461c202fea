"""Errors raised by the data-access layer.

Route handlers translate these into responses; repositories only log and re-raise.
"""
import functools
import logging


class QAHubError(Exception):
    pass


class NotFoundError(QAHubError):
    def __init__(self, entity, key):
        self.entity, self.key = entity, key
        super().__init__(f"{entity} not found: {key}")


class ValidationError(QAHubError):
    def __init__(self, errors):
        # field name -> list of messages
        self.errors = errors
        fields = ', '.join(sorted(errors)) or 'input'
        super().__init__(f"Invalid {fields}")


class DuplicateKeyError(QAHubError):
    def __init__(self, key_value=None):
        self.key_value = key_value or {}
        fields = ', '.join(sorted(self.key_value)) or 'unique field'
        super().__init__(f"Duplicate value for {fields}")


class DatabaseConnectionError(QAHubError):
    pass


def log_errors(func):
    """Log any exception escaping a data-access operation, then re-raise it unchanged."""
    logger = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__qualname__} failed: {e!r}")
            raise
    return wrapper
