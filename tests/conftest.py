import os
import uuid

import pytest

# must be in place before the app module builds its default instance
os.environ['JWT_SECRET'] = 'test-secret'
os.environ['LOCAL_DB_URL'] = ''
os.environ['LOG_LEVEL'] = 'WARNING'

import auth
import db
from app import create_app


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setattr(auth, 'BCRYPT_ROUNDS', 4)
    app = create_app({
        'TESTING': True,
        'LOCAL_DB_URL': f"sqlite:///{tmp_path / 'test.db'}",
        'JWT_SECRET': 'test-secret',
    })
    yield app
    db.dispose_engine()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(app, email, role, password='parola123', is_active=True, full_name=None):
    user = {
        'id': str(uuid.uuid4()),
        'email': email,
        'full_name': full_name or email.split('@')[0],
        'role': role,
    }
    with app.app_context():
        db.execute(
            """
            INSERT INTO profiles (id, email, full_name, role, password_hash, is_active, login_count, created_at)
            VALUES (:id, :email, :full_name, :role, :password_hash, :is_active, 0, :now)
            """,
            dict(user, password_hash=auth.hash_password(password), is_active=is_active, now=db.now_iso()),
        )
    return user


def headers_for(app, user):
    with app.app_context():
        token = auth.issue_jwt(user)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin(app):
    return make_user(app, 'admin@example.ro', 'admin', full_name='Ana Admin')


@pytest.fixture
def editor(app):
    return make_user(app, 'editor@example.ro', 'editor')


@pytest.fixture
def viewer(app):
    return make_user(app, 'viewer@example.ro', 'viewer')


@pytest.fixture
def admin_headers(app, admin):
    return headers_for(app, admin)


@pytest.fixture
def editor_headers(app, editor):
    return headers_for(app, editor)


@pytest.fixture
def viewer_headers(app, viewer):
    return headers_for(app, viewer)


@pytest.fixture
def create_member(client, editor_headers):
    def _create(first_name, last_name, **fields):
        payload = dict(fields, firstName=first_name, lastName=last_name)
        response = client.post('/api/members', json=payload, headers=editor_headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()
    return _create


@pytest.fixture
def activity_type(app):
    with app.app_context():
        db.execute(
            "INSERT INTO activity_types (name, category, is_active) VALUES ('Sport', 'Fizic', :active)",
            {'active': True},
        )
        return db.fetch_one("SELECT * FROM activity_types WHERE name = 'Sport'")
