"""
api_client.py
HTTP client for the /api endpoints plus cached per-resource repositories.

    client = ApiClient('http://localhost:5555')
    client.login('admin@example.ro', 'secret')
    members = MembersRepository(client)
    members.items            # fetched on first access
    members.create({...})    # mutates, then re-fetches
"""

import logging

import requests

from errors import ApiError, ValidationError, Unauthorized, Forbidden, NotFound, Conflict

logger = logging.getLogger(__name__)

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
}


def error_from_response(response):
    try:
        message = (response.json() or {}).get('error')
    except ValueError:
        message = None
    message = message or f'HTTP {response.status_code}'

    error_class = ERRORS_BY_STATUS.get(response.status_code)
    if error_class is None:
        return ApiError(message, response.status_code)
    return error_class(message)


class ApiClient:
    def __init__(self, base_url='', session=None, timeout=30):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token = None

    def _headers(self):
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def request(self, method, path, json=None, params=None):
        url = f'{self.base_url}{path}'
        response = self.session.request(
            method, url, json=json, params=params, headers=self._headers(), timeout=self.timeout,
        )
        if response.status_code >= 400:
            error = error_from_response(response)
            logger.warning('%s %s failed with %s: %s', method, path, response.status_code, error.message)
            raise error
        return response

    def get(self, path, params=None):
        return self.request('GET', path, params=params).json()

    def post(self, path, json=None, params=None):
        return self.request('POST', path, json=json, params=params).json()

    def patch(self, path, json=None):
        return self.request('PATCH', path, json=json).json()

    def put(self, path, json=None):
        return self.request('PUT', path, json=json).json()

    def delete(self, path, params=None):
        return self.request('DELETE', path, params=params).json()

    def login(self, email, password):
        data = self.post('/api/auth/login', {'email': email, 'password': password})
        self.token = data['token']
        return data['user']

    def logout(self):
        try:
            self.post('/api/auth/logout')
        finally:
            self.token = None

    def me(self):
        return self.get('/api/auth/me').get('user')


class Repository:
    """In-memory copy of one resource list, reloaded after each mutation"""

    path = None

    def __init__(self, client):
        self.client = client
        self._items = None

    @property
    def items(self):
        if self._items is None:
            self._items = self.client.get(self.path)
        return self._items

    def invalidate(self):
        self._items = None

    def refresh(self):
        self.invalidate()
        return self.items

    def _mutated(self, result):
        self.refresh()
        return result

    def get(self, item_id):
        for item in self.items:
            if str(item.get('id')) == str(item_id):
                return item
        return None

    def create(self, data):
        return self._mutated(self.client.post(self.path, data))

    def update(self, item_id, changes):
        return self._mutated(self.client.patch(f'{self.path}/{item_id}', changes))

    def delete(self, item_id):
        return self._mutated(self.client.delete(f'{self.path}/{item_id}'))


class MembersRepository(Repository):
    path = '/api/members'

    def search(self, query):
        return self.client.get(f'{self.path}/search', {'q': query}).get('memberIds') or []

    def import_members(self, members):
        return self._mutated(self.client.post(f'{self.path}/import', {'members': members}))


class PaymentsRepository(Repository):
    path = '/api/payments'

    def for_member(self, member_id):
        return [p for p in self.items if p.get('memberId') == member_id]

    def import_csv(self, text):
        return self._mutated(self.client.post(f'{self.path}/import', {'text': text}))


class ActivitiesRepository(Repository):
    path = '/api/activities'

    def archive(self, activity_id):
        return self._mutated(self.client.post(f'{self.path}/{activity_id}/archive'))

    def reactivate(self, activity_id):
        return self._mutated(self.client.post(f'{self.path}/{activity_id}/reactivate'))

    def participants(self, activity_id):
        return self.client.get(f'{self.path}/{activity_id}/participants')

    def add_participants(self, activity_id, member_ids, status='attended'):
        payload = {'memberIds': list(member_ids), 'status': status}
        return self._mutated(self.client.post(f'{self.path}/{activity_id}/participants', payload))

    def remove_participant(self, activity_id, member_id):
        return self._mutated(
            self.client.delete(f'{self.path}/{activity_id}/participants', {'memberId': member_id})
        )


class GroupsRepository(Repository):
    path = '/api/whatsapp-groups'

    def memberships(self):
        return self.client.get('/api/member-groups')

    def add_member(self, group_id, member_id):
        return self._mutated(self.client.post('/api/member-groups', {'memberId': member_id, 'groupId': group_id}))

    def remove_member(self, group_id, member_id):
        return self._mutated(
            self.client.delete('/api/member-groups', {'memberId': member_id, 'groupId': group_id})
        )
