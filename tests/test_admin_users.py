def test_list_users(client, admin, editor, admin_headers):
    users = client.get('/api/admin/users', headers=admin_headers).get_json()['users']
    assert {u['email'] for u in users} == {'admin@example.ro', 'editor@example.ro'}
    assert 'password_hash' not in users[0]


def test_non_admins_are_forbidden(client, editor_headers):
    response = client.get('/api/admin/users', headers=editor_headers)
    assert response.status_code == 403
    assert response.get_json() == {'error': 'Forbidden - admin access required'}


def test_create_user(client, admin_headers):
    response = client.post('/api/admin/users', headers=admin_headers,
                           json={'email': 'Nou@Example.ro', 'password': 'parola', 'role': 'viewer'})
    assert response.status_code == 201
    user = response.get_json()['user']
    assert user['email'] == 'nou@example.ro'
    assert user['full_name'] == 'nou'
    assert user['is_active'] is True

    login = client.post('/api/auth/login', json={'email': 'nou@example.ro', 'password': 'parola'})
    assert login.status_code == 200


def test_create_user_validation(client, admin, admin_headers):
    cases = [
        ({'email': 'x@y.ro', 'password': 'parola'}, 400),
        ({'email': 'x@y.ro', 'password': 'parola', 'role': 'root'}, 400),
        ({'email': 'x', 'password': 'parola', 'role': 'viewer'}, 400),
        ({'email': 'x@y.ro', 'password': 'scurt', 'role': 'viewer'}, 400),
        ({'email': 'ADMIN@example.ro', 'password': 'parola', 'role': 'viewer'}, 409),
    ]
    for payload, status in cases:
        assert client.post('/api/admin/users', headers=admin_headers, json=payload).status_code == status


def test_update_user(client, editor, admin_headers):
    response = client.patch(f"/api/admin/users/{editor['id']}", headers=admin_headers,
                            json={'role': 'viewer', 'is_active': False})
    assert response.status_code == 200
    user = response.get_json()['user']
    assert user['role'] == 'viewer'
    assert user['is_active'] is False


def test_update_user_validation(client, admin_headers):
    assert client.patch('/api/admin/users/x', headers=admin_headers, json={}).status_code == 400
    assert client.patch('/api/admin/users/x', headers=admin_headers, json={'is_active': 'nu'}).status_code == 400
    assert client.patch('/api/admin/users/x', headers=admin_headers, json={'role': 'viewer'}).status_code == 404


def test_admin_cannot_demote_or_deactivate_themselves(client, admin, admin_headers):
    url = f"/api/admin/users/{admin['id']}"
    response = client.patch(url, headers=admin_headers, json={'role': 'editor'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Cannot demote yourself from admin role'

    response = client.patch(url, headers=admin_headers, json={'is_active': False})
    assert response.status_code == 400

    response = client.delete(url, headers=admin_headers)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Cannot delete your own account'


def test_delete_is_a_soft_delete(client, editor, editor_headers, admin_headers):
    assert client.delete(f"/api/admin/users/{editor['id']}", headers=admin_headers).get_json() == {'success': True}

    users = client.get('/api/admin/users', headers=admin_headers).get_json()['users']
    assert next(u for u in users if u['id'] == editor['id'])['is_active'] is False
    assert client.get('/api/members', headers=editor_headers).status_code == 401
    assert client.delete('/api/admin/users/missing', headers=admin_headers).status_code == 404
