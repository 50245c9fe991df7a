"""
auth.py
Password hashing, JWT issuance/verification and the role checks used by
every blueprint.
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import bcrypt
from flask import current_app, g, request
from jose import jwt, JWTError, ExpiredSignatureError
from werkzeug.security import check_password_hash

import db
from errors import Unauthorized, Forbidden

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = 'auth-token'
JWT_ALGORITHM = 'HS256'
BCRYPT_ROUNDS = 12

# action -> roles allowed to perform it
PERMISSIONS = {
    'view': ('admin', 'editor', 'viewer'),
    'edit': ('admin', 'editor'),
    'delete': ('admin',),
    'settings': ('admin',),
}


def has_permission(role, action):
    return role in PERMISSIONS.get(action, ())


def _to_bcrypt_secret(password):
    # bcrypt only uses the first 72 bytes
    pw = password.encode('utf-8')
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password):
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_to_bcrypt_secret(password), salt).decode('utf-8')


def verify_password(password, password_hash):
    if not password or not password_hash:
        return False
    if password_hash.startswith(('pbkdf2:', 'scrypt:')):
        # accounts created before the move to bcrypt
        return check_password_hash(password_hash, password)
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode('utf-8'))
    except ValueError:
        logger.warning('Unrecognized password hash format')
        return False


def _jwt_secret():
    secret = current_app.config.get('JWT_SECRET')
    if not secret:
        raise RuntimeError('JWT_SECRET is not set. This is required for local JWT-based auth.')
    return secret


def issue_jwt(user):
    """Sign a token for a profile row (needs id, email, role)"""
    hours = current_app.config.get('JWT_EXPIRES_HOURS', 12)
    now = datetime.now(timezone.utc)
    claims = {
        'sub': str(user['id']),
        'email': user['email'],
        'role': user.get('role'),
        'iat': now,
        'exp': now + timedelta(hours=hours),
    }
    return jwt.encode(claims, _jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_jwt(token):
    """Return the token claims, or None when the token is invalid or expired"""
    if not token:
        return None
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        return None
    except JWTError:
        return None
    except RuntimeError as e:
        logger.error('Cannot verify token: %s', e)
        return None


def get_jwt_from_request(req=None):
    """Read the JWT from the auth cookie first, then from a Bearer header"""
    req = req or request
    payload = verify_jwt(req.cookies.get(AUTH_COOKIE_NAME))
    if payload:
        return payload
    header = req.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return verify_jwt(header[7:])
    return None


def set_auth_cookie(response, token):
    hours = current_app.config.get('JWT_EXPIRES_HOURS', 12)
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        httponly=True,
        secure=current_app.config.get('COOKIE_SECURE', False),
        samesite='Lax',
        max_age=hours * 60 * 60,
        path='/',
    )
    return response


def clear_auth_cookie(response):
    response.set_cookie(AUTH_COOKIE_NAME, '', httponly=True, max_age=0, path='/')
    return response


def load_current_user():
    """Resolve the request's JWT to an active profile, or raise Unauthorized"""
    if 'current_user' in g:
        return g.current_user

    payload = get_jwt_from_request()
    if not payload:
        raise Unauthorized()

    profile = db.fetch_one(
        'SELECT id, email, full_name, role, is_active, created_at FROM profiles WHERE id = :id',
        {'id': payload.get('sub')},
    )
    if not profile or not profile['is_active']:
        raise Unauthorized()

    g.jwt_payload = payload
    g.current_user = profile
    return profile


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        load_current_user()
        return f(*args, **kwargs)
    return decorated_function


def permission_required(action, message=None):
    """Require an authenticated user whose role grants `action`"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = load_current_user()
            if not has_permission(user['role'], action):
                raise Forbidden(message or f'Forbidden - {action} permission required')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = permission_required('settings', 'Forbidden - admin access required')
