"""Security utilities for QuoteLedger"""
import logging
from datetime import datetime, timedelta
from functools import wraps

import bleach
from flask import request, g, jsonify
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from flask_jwt_extended.exceptions import NoAuthorizationError, InvalidHeaderError
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

logger = logging.getLogger(__name__)


def sanitize_string(text):
    if not text:
        return text
    if not isinstance(text, str):
        text = str(text)
    return bleach.clean(text, tags=[], strip=True).strip()


# Rate limiting (simple in-memory implementation)
_rate_limit_store = {}


def rate_limit(max_requests: int = 100, window_seconds: int = 60):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            client_ip = request.headers.get('X-Forwarded-For', request.remote_addr)
            key = f"{client_ip}:{f.__name__}"
            now = datetime.utcnow()

            if key not in _rate_limit_store or now > _rate_limit_store[key]['reset']:
                _rate_limit_store[key] = {'count': 0, 'reset': now + timedelta(seconds=window_seconds)}

            _rate_limit_store[key]['count'] += 1

            if _rate_limit_store[key]['count'] > max_requests:
                return jsonify({'success': False, 'error': 'Rate limit exceeded', 'code': 'rate_limited'}), 429

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _auth_error(message):
    return jsonify({'success': False, 'error': message, 'code': 'unauthorized'}), 401


# JWT authentication decorator
def jwt_required_with_user():
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                verify_jwt_in_request()
                user_id = get_jwt_identity()
            except NoAuthorizationError:
                return _auth_error('Authorization header missing')
            except InvalidHeaderError as e:
                return _auth_error(f'Invalid authorization header: {str(e)}')
            except ExpiredSignatureError:
                return _auth_error('Token has expired')
            except InvalidTokenError as e:
                return _auth_error(f'Invalid token: {str(e)}')

            from app.models import User
            user = User.query.filter_by(id=int(user_id), is_active=True).first()

            if not user:
                return _auth_error('User not found or inactive')

            g.current_user = user
            return f(*args, **kwargs)
        return decorated_function
    return decorator
