import io
import json

from csv_utils import parse_csv_text
import routes.value_lists
from models import DEFAULT_PROFILES
from routes.um_units import format_um_code


def test_format_um_code():
    assert format_um_code('0754') == 'UM 0754'
    assert format_um_code('um0754') == 'UM 0754'
    assert format_um_code('  UM   01  02 ') == 'UM 01 02'
    assert format_um_code('UM') == ''
    assert format_um_code(None) == ''


def test_um_units_crud(client, admin_headers, viewer_headers):
    response = client.post('/api/um-units', headers=admin_headers, json={'code': 'um 0754', 'name': 'Garnizoana'})
    assert response.status_code == 201
    unit = response.get_json()
    assert unit['code'] == 'UM 0754'
    assert isinstance(unit['id'], str)

    assert client.post('/api/um-units', headers=admin_headers, json={'code': ' '}).status_code == 400
    assert client.post('/api/um-units', headers=viewer_headers, json={'code': '1'}).status_code == 403

    url = f"/api/um-units/{unit['id']}"
    assert client.patch(url, headers=admin_headers, json={'is_active': False}).get_json()['is_active'] is False
    assert client.get('/api/um-units', headers=viewer_headers).get_json() == []
    assert len(client.get('/api/um-units?all=1', headers=viewer_headers).get_json()) == 1
    assert client.patch(url, headers=admin_headers, json={}).status_code == 400

    assert client.delete(url, headers=admin_headers).status_code == 200
    assert client.delete(url, headers=admin_headers).status_code == 404


def test_activity_types_crud(client, admin_headers, editor_headers):
    response = client.post('/api/activity-types', headers=admin_headers, json={'name': 'Sport', 'category': 'Fizic'})
    assert response.status_code == 201
    type_id = response.get_json()['id']

    assert client.post('/api/activity-types', headers=editor_headers, json={'name': 'X'}).status_code == 403
    assert client.post('/api/activity-types', headers=admin_headers, json={}).status_code == 400

    updated = client.patch(f'/api/activity-types/{type_id}', headers=admin_headers, json={'is_active': False})
    assert updated.get_json()['is_active'] is False
    assert client.get('/api/activity-types?active=1', headers=editor_headers).get_json() == []

    assert client.delete(f'/api/activity-types/{type_id}', headers=admin_headers).status_code == 200
    assert client.get('/api/activity-types', headers=editor_headers).get_json() == []


def test_activity_types_import_merge_and_replace(client, admin_headers):
    for name in ('Sport', 'Teatru'):
        client.post('/api/activity-types', headers=admin_headers, json={'name': name})

    csv_text = 'name,category,isActive\nsport,Fizic,Da\nCor,Cultural,Nu\n'
    result = client.post('/api/activity-types/import', headers=admin_headers, json={'text': csv_text}).get_json()
    assert (result['added'], result['updated'], result['deleted']) == (1, 1, 0)

    names = {t['name']: t for t in client.get('/api/activity-types', headers=admin_headers).get_json()}
    assert set(names) == {'sport', 'Teatru', 'Cor'}
    assert names['Cor']['is_active'] is False

    json_text = json.dumps([{'name': 'Cor', 'isActive': True}])
    result = client.post('/api/activity-types/import', headers=admin_headers,
                         json={'text': json_text, 'format': 'json', 'mode': 'replace'}).get_json()
    assert (result['added'], result['updated'], result['deleted']) == (0, 1, 2)
    remaining = client.get('/api/activity-types', headers=admin_headers).get_json()
    assert [(t['id'], t['name']) for t in remaining] == [(names['Cor']['id'], 'Cor')]


def test_activity_types_import_upload_and_bad_mode(client, admin_headers):
    data = {'file': (io.BytesIO(b'[{"name": "Sport"}]'), 'tipuri.json')}
    result = client.post('/api/activity-types/import', headers=admin_headers, data=data,
                         content_type='multipart/form-data').get_json()
    assert result['added'] == 1

    response = client.post('/api/activity-types/import?mode=wipe', headers=admin_headers,
                           json={'text': 'name\nX\n'})
    assert response.status_code == 400


def test_activity_types_export(client, admin_headers):
    client.post('/api/activity-types', headers=admin_headers, json={'name': 'Sport'})

    rows = parse_csv_text(client.get('/api/activity-types/export', headers=admin_headers).get_data(as_text=True))
    assert rows[1][1:] == ['Sport', '', 'Da']

    response = client.get('/api/activity-types/export?format=json', headers=admin_headers)
    assert response.mimetype == 'application/json'
    assert json.loads(response.get_data(as_text=True))[0]['isActive'] is True


def test_value_lists(client, admin_headers, viewer_headers):
    ranks = client.get('/api/value-lists/ranks', headers=viewer_headers).get_json()
    assert ranks['values'][0] == 'General'
    assert client.get('/api/value-lists/colors', headers=viewer_headers).status_code == 404

    response = client.put('/api/value-lists/profiles', headers=admin_headers,
                          json={'values': ['Medical', ' Juridic ', '', 'Medical']})
    assert response.get_json() == {'name': 'profiles', 'values': ['Medical', 'Juridic']}
    assert client.get('/api/value-lists/profiles', headers=viewer_headers).get_json()['values'] == [
        'Medical', 'Juridic',
    ]

    assert client.put('/api/value-lists/profiles', headers=viewer_headers, json={'values': []}).status_code == 403
    assert client.put('/api/value-lists/profiles', headers=admin_headers, json={'values': 'x'}).status_code == 400


def test_value_list_is_kept_when_the_replacement_fails(client, admin_headers, viewer_headers, monkeypatch):
    # a NULL value violates the column constraint halfway through the replace
    monkeypatch.setattr(routes.value_lists, 'value_rows',
                        lambda name, values: [{'name': name, 'value': None, 'position': 0}])
    response = client.put('/api/value-lists/profiles', headers=admin_headers, json={'values': ['Nou']})
    assert response.status_code == 500

    values = client.get('/api/value-lists/profiles', headers=viewer_headers).get_json()['values']
    assert values == list(DEFAULT_PROFILES)


def test_value_list_can_be_emptied(client, admin_headers, viewer_headers):
    response = client.put('/api/value-lists/ranks', headers=admin_headers, json={'values': ['', '  ']})
    assert response.get_json() == {'name': 'ranks', 'values': []}
    assert client.get('/api/value-lists/ranks', headers=viewer_headers).get_json()['values'] == []
