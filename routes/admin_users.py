import re
import uuid

from flask import Blueprint, request, jsonify, current_app, g

import audit
import db
from auth import admin_required, hash_password
from models import ROLES

admin_users_bp = Blueprint('admin_users', __name__, url_prefix='/api/admin/users')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

PROFILE_COLUMNS = 'id, email, full_name, role, is_active, last_login, login_count, created_at'


def row_to_user(row):
    return {
        'id': row['id'],
        'email': row['email'],
        'full_name': row.get('full_name'),
        'role': row['role'],
        'is_active': bool(row.get('is_active')),
        'last_login': row.get('last_login'),
        'login_count': row.get('login_count') or 0,
        'created_at': row.get('created_at'),
    }


def get_profile(user_id):
    return db.fetch_one(f'SELECT {PROFILE_COLUMNS} FROM profiles WHERE id = :id', {'id': user_id})


@admin_users_bp.route('', methods=['GET'])
@admin_required
def list_users():
    try:
        rows = db.fetch_all(f'SELECT {PROFILE_COLUMNS} FROM profiles ORDER BY created_at DESC')
        return jsonify({'users': [row_to_user(r) for r in rows]})
    except Exception as e:
        current_app.logger.exception('Error fetching profiles')
        return jsonify({'error': 'Failed to fetch users'}), 500


@admin_users_bp.route('', methods=['POST'])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    role = data.get('role')

    if not email or not password or not role:
        return jsonify({'error': 'Missing required fields: email, password, role'}), 400
    if role not in ROLES:
        return jsonify({'error': 'Invalid role. Must be admin, editor, or viewer'}), 400
    if not EMAIL_RE.match(email):
        return jsonify({'error': 'Invalid email format'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters'}), 400

    try:
        exists = db.fetch_scalar('SELECT COUNT(*) FROM profiles WHERE lower(email) = :email',
                                 {'email': email}, default=0)
        if exists:
            return jsonify({'error': 'A user with this email already exists'}), 409

        user_id = str(uuid.uuid4())
        db.execute(
            """
            INSERT INTO profiles (id, email, full_name, role, password_hash, is_active, login_count, created_at)
            VALUES (:id, :email, :full_name, :role, :password_hash, :is_active, 0, :now)
            """,
            {
                'id': user_id,
                'email': email,
                'full_name': (data.get('full_name') or '').strip() or email.split('@')[0],
                'role': role,
                'password_hash': hash_password(password),
                'is_active': True,
                'now': db.now_iso(),
            },
        )

        audit.log_action('CREATE_USER', 'settings', f'Utilizator creat: {email} ({role})',
                         entity_type='user', entity_id=user_id, metadata={'email': email, 'role': role})
        return jsonify({'user': row_to_user(get_profile(user_id))}), 201
    except Exception as e:
        current_app.logger.exception('Error creating user')
        return jsonify({'error': 'Internal server error'}), 500


@admin_users_bp.route('/<user_id>', methods=['PATCH'])
@admin_required
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    role = data.get('role')
    is_active = data.get('is_active')

    if role is None and is_active is None:
        return jsonify({'error': 'No fields to update. Provide role or is_active'}), 400
    if role is not None and role not in ROLES:
        return jsonify({'error': 'Invalid role. Must be admin, editor, or viewer'}), 400
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({'error': 'Invalid is_active. Must be a boolean'}), 400

    if user_id == g.current_user['id']:
        if role is not None and role != 'admin':
            return jsonify({'error': 'Cannot demote yourself from admin role'}), 400
        if is_active is False:
            return jsonify({'error': 'Cannot deactivate your own account'}), 400

    try:
        changes = {}
        if role is not None:
            changes['role'] = role
        if is_active is not None:
            changes['is_active'] = is_active
        clause, params = db.build_set_clause(changes, ('role', 'is_active'))
        params['id'] = user_id
        count = db.execute(f'UPDATE profiles SET {clause} WHERE id = :id', params)
        if count == 0:
            return jsonify({'error': 'User not found'}), 404

        updated = get_profile(user_id)
        audit.log_action('UPDATE_USER', 'settings', f"Utilizator actualizat: {updated['email']}",
                         entity_type='user', entity_id=user_id, metadata=changes)
        return jsonify({'user': row_to_user(updated)})
    except Exception as e:
        current_app.logger.exception('Error updating user %s', user_id)
        return jsonify({'error': 'Internal server error'}), 500


@admin_users_bp.route('/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    """Soft delete: the profile stays, login is refused from now on"""
    if user_id == g.current_user['id']:
        return jsonify({'error': 'Cannot delete your own account'}), 400

    try:
        count = db.execute('UPDATE profiles SET is_active = :active WHERE id = :id',
                           {'active': False, 'id': user_id})
        if count == 0:
            return jsonify({'error': 'User not found'}), 404

        audit.log_action('DEACTIVATE_USER', 'settings', f'Utilizator dezactivat: {user_id}',
                         entity_type='user', entity_id=user_id)
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting user %s', user_id)
        return jsonify({'error': 'Failed to delete user'}), 500
