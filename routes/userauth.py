import re
import uuid

from flask import Blueprint, request, jsonify, current_app, make_response

import audit
import db
from auth import (
    issue_jwt, verify_password, hash_password, get_jwt_from_request,
    set_auth_cookie, clear_auth_cookie,
)
from config import is_configured
from models import ROLES

userauth_bp = Blueprint('userauth', __name__, url_prefix='/api/auth')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def user_payload(profile):
    """Profile row -> the user object the clients expect"""
    full_name = profile.get('full_name') or profile['email'].split('@')[0]
    parts = full_name.split(' ')
    return {
        'id': profile['id'],
        'email': profile['email'],
        'firstName': parts[0] or '',
        'lastName': ' '.join(parts[1:]),
        'role': profile['role'],
        'createdAt': profile.get('created_at'),
    }


def _find_profile_by_email(email):
    return db.fetch_one(
        'SELECT * FROM profiles WHERE lower(email) = :email',
        {'email': email.strip().lower()},
    )


@userauth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400

    try:
        profile = _find_profile_by_email(email)

        error = None
        if not profile or not verify_password(password, profile.get('password_hash')):
            error = 'Invalid credentials'
        elif not profile['is_active']:
            error = 'User is inactive'

        if error:
            audit.log_action('LOGIN_FAILED', 'auth', f'Autentificare eșuată: {email}',
                             user_id=profile['id'] if profile else None,
                             metadata={'email': email, 'reason': error}, is_error=True)
            return jsonify({'error': error}), 401

        db.execute(
            'UPDATE profiles SET last_login = :now, login_count = login_count + 1 WHERE id = :id',
            {'now': db.now_iso(), 'id': profile['id']},
        )
        token = issue_jwt(profile)

        audit.log_action('LOGIN_SUCCESS', 'auth', f"Autentificare reușită: {profile['email']}",
                         user_id=profile['id'], entity_type='user', entity_id=profile['id'])

        response = make_response(jsonify({'user': user_payload(profile), 'token': token}))
        return set_auth_cookie(response, token)
    except Exception as e:
        current_app.logger.exception('Login error')
        return jsonify({'error': 'Internal server error'}), 500


@userauth_bp.route('/logout', methods=['POST'])
def logout():
    payload = get_jwt_from_request()
    if payload:
        audit.log_action('LOGOUT', 'auth', f"Deconectare: {payload.get('email')}", user_id=payload.get('sub'))
    response = make_response(jsonify({'success': True}))
    return clear_auth_cookie(response)


@userauth_bp.route('/me', methods=['GET'])
def me():
    if not is_configured(current_app.config):
        return jsonify({'user': None})

    try:
        payload = get_jwt_from_request()
        if not payload:
            return jsonify({'user': None})

        profile = db.fetch_one(
            'SELECT id, email, full_name, role, is_active, created_at FROM profiles WHERE id = :id',
            {'id': payload.get('sub')},
        )
        if not profile or not profile['is_active']:
            return jsonify({'user': None})
        return jsonify({'user': user_payload(profile)})
    except Exception as e:
        current_app.logger.exception('Auth me error')
        return jsonify({'user': None})


@userauth_bp.route('/register', methods=['POST'])
def register():
    """
    The first account becomes admin without authentication.
    Once any profile exists only an admin may register new users.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    role = data.get('role') or 'viewer'

    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400
    if not EMAIL_RE.match(email):
        return jsonify({'error': 'Invalid email format'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters'}), 400
    if role not in ROLES:
        return jsonify({'error': 'Invalid role'}), 400

    try:
        has_users = db.fetch_scalar('SELECT COUNT(*) FROM profiles', default=0) > 0
        if has_users:
            payload = get_jwt_from_request()
            if not payload:
                return jsonify({'error': 'Unauthorized'}), 401
            caller = db.fetch_one('SELECT role, is_active FROM profiles WHERE id = :id',
                                  {'id': payload.get('sub')})
            if not caller or not caller['is_active'] or caller['role'] != 'admin':
                return jsonify({'error': 'Forbidden - admin required'}), 403

        if _find_profile_by_email(email):
            return jsonify({'error': 'A user with this email already exists'}), 409

        profile = {
            'id': str(uuid.uuid4()),
            'email': email,
            'full_name': (data.get('full_name') or '').strip() or email.split('@')[0],
            'role': role if has_users else 'admin',
            'created_at': db.now_iso(),
        }
        db.execute(
            """
            INSERT INTO profiles (id, email, full_name, role, password_hash, is_active, login_count, created_at)
            VALUES (:id, :email, :full_name, :role, :password_hash, :is_active, 0, :created_at)
            """,
            dict(profile, password_hash=hash_password(password), is_active=True),
        )

        audit.log_action('CREATE_USER', 'auth', f"Cont înregistrat: {email} ({profile['role']})",
                         user_id=profile['id'] if not has_users else None,
                         entity_type='user', entity_id=profile['id'])

        response = make_response(jsonify({'user': user_payload(profile)}), 201)
        if not has_users:
            set_auth_cookie(response, issue_jwt(profile))
        return response
    except Exception as e:
        current_app.logger.exception('Register error')
        return jsonify({'error': 'Registration failed'}), 500
