"""Route decorators for error handling and authentication.

This module provides reusable decorators to reduce boilerplate in route handlers.
"""
import functools
import logging
from typing import Callable

from flask import request
from pymongo.errors import PyMongoError

from chat_server.exception.ChatError import ChatError
from chat_server.exception.UnauthorizedError import UnauthorizedError
from chat_server.security.authentication import AuthSecurity, get_auth_payload
from chat_server.utils.helpers import respond_error

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Decorator to resolve messaging failures into structured responses.

    Catches:
    - UnauthorizedError -> 401 (kind=unauthenticated)
    - ChatError subclasses -> their own status and kind
    - PyMongoError -> 500 (kind=internal)
    - Other exceptions -> 500 (kind=internal)

    Usage:
        @chat_bp.route('/example')
        @handle_errors
        def example_route():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning("Unauthorized: %s", e)
            return respond_error(str(e), status=401, kind=UnauthorizedError.kind)
        except ChatError as e:
            if e.status >= 500:
                logger.error("%s failed: %s", func.__name__, e.message)
            else:
                logger.info("%s rejected (%s): %s", func.__name__, e.kind, e.message)
            return respond_error(e.message, status=e.status, kind=e.kind)
        except PyMongoError:
            logger.exception("Storage error in %s", func.__name__)
            return respond_error('Storage error', status=500, kind='internal')
        except Exception:
            logger.exception("Unexpected error in %s", func.__name__)
            return respond_error('Server error', status=500, kind='internal')
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Decorator to require authentication and inject the acting user id.

    The decorated function receives `actor_id` as a keyword argument.

    Usage:
        @chat_bp.route('/protected')
        @handle_errors
        @require_auth
        def protected_route(actor_id):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        kwargs['actor_id'] = AuthSecurity.user_id_from_payload(payload)
        return func(*args, **kwargs)
    return wrapper


def optional_auth(func: Callable) -> Callable:
    """Like ``require_auth`` but injects ``actor_id=None`` when no token is sent.

    A token that is present but invalid is still rejected.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if request.headers.get('Authorization'):
            payload = get_auth_payload(request)
            kwargs['actor_id'] = AuthSecurity.user_id_from_payload(payload)
        else:
            kwargs['actor_id'] = None
        return func(*args, **kwargs)
    return wrapper
