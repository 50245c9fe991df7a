import re
import uuid

from flask import Blueprint, request, jsonify, current_app

import audit
import db
from auth import hash_password
from config import is_configured

setup_bp = Blueprint('setup', __name__, url_prefix='/api')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def count_usable_admins():
    return db.fetch_scalar(
        """
        SELECT COUNT(*) FROM profiles
        WHERE role = 'admin' AND password_hash IS NOT NULL AND is_active = :active
        """,
        {'active': True},
        default=0,
    )


@setup_bp.route('/setup', methods=['GET'])
def setup_status():
    try:
        return jsonify({'setupRequired': count_usable_admins() == 0})
    except Exception as e:
        current_app.logger.exception('Setup status error')
        return jsonify({'error': 'Could not check setup status', 'setupRequired': True}), 500


@setup_bp.route('/setup', methods=['POST'])
def run_setup():
    """Create the first admin. Refused once an admin with a password exists."""
    try:
        if count_usable_admins() > 0:
            return jsonify({'error': 'Setup already completed. Use the login page.'}), 409

        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip()
        password = data.get('password') or ''

        if not email or not password:
            return jsonify({'error': 'Email and password are required'}), 400
        if not EMAIL_RE.match(email):
            return jsonify({'error': 'Invalid email format'}), 400
        if len(password) < 8:
            return jsonify({'error': 'Password must be at least 8 characters'}), 400

        existing = db.fetch_one('SELECT id FROM profiles WHERE lower(email) = lower(:email)', {'email': email})
        if existing:
            return jsonify({'error': 'A user with this email already exists'}), 409

        user_id = str(uuid.uuid4())
        db.execute(
            """
            INSERT INTO profiles (id, email, full_name, role, password_hash, is_active, login_count, created_at)
            VALUES (:id, :email, :full_name, 'admin', :password_hash, :is_active, 0, :now)
            """,
            {
                'id': user_id,
                'email': email,
                'full_name': email.split('@')[0],
                'password_hash': hash_password(password),
                'is_active': True,
                'now': db.now_iso(),
            },
        )
        audit.log_action('CREATE_USER', 'system', f'Cont administrator inițial creat: {email}',
                         user_id=user_id, entity_type='user', entity_id=user_id)
        return jsonify({'success': True, 'message': 'Admin account created. You can now log in.'}), 201
    except Exception as e:
        current_app.logger.exception('Setup error')
        return jsonify({'error': 'Setup failed'}), 500


def _database_message(error):
    msg = str(error)
    if 'ECONNREFUSED' in msg or 'Connection refused' in msg:
        return 'PostgreSQL nu rulează sau portul este incorect.'
    if 'timeout' in msg.lower():
        return 'Timeout la conectare.'
    return msg[:80]


@setup_bp.route('/health', methods=['GET'])
def health():
    services = []

    has_config = is_configured(current_app.config)
    services.append({
        'id': 'config',
        'name': 'Configurare aplicație',
        'ok': has_config,
        'message': 'LOCAL_DB_URL și JWT_SECRET sunt setate' if has_config
        else 'Lipsesc LOCAL_DB_URL sau JWT_SECRET. Reporniți aplicația.',
    })

    if not has_config:
        db_ok, db_message = False, 'Nu se poate verifica fără configurare.'
    else:
        try:
            db.ping()
            db_ok, db_message = True, 'Conectat.'
        except Exception as e:
            current_app.logger.warning('Health check: database unreachable: %s', e)
            db_ok, db_message = False, _database_message(e)
    services.append({
        'id': 'database',
        'name': 'Bază de date (PostgreSQL)',
        'ok': db_ok,
        'message': db_message,
    })

    services.append({'id': 'api', 'name': 'Server API', 'ok': True, 'message': 'Funcțional.'})

    return jsonify({'services': services})
