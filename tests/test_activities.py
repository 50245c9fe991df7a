import db
from csv_utils import BOM, parse_csv_text


def _create_activity(client, headers, type_id, **fields):
    response = client.post('/api/activities', headers=headers, json=dict(fields, type_id=type_id))
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _count(client, headers, activity_id):
    return client.get(f'/api/activities/{activity_id}', headers=headers).get_json()['participants_count']


def test_create_activity(client, activity_type, editor, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'], title='Cros',
                                date_from='2025-03-01T00:00:00Z')
    assert activity['id'] == 'ACT-0001'
    assert activity['date_from'] == '2025-03-01'
    assert activity['status'] == 'active'
    assert activity['created_by'] == editor['id']
    assert activity['participants_count'] == 0

    second = _create_activity(client, editor_headers, activity_type['id'])
    assert second['id'] == 'ACT-0002'


def test_create_activity_rejects_unknown_type(client, editor_headers):
    response = client.post('/api/activities', headers=editor_headers, json={'type_id': 99})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Tip de activitate inexistent'


def test_archive_and_reactivate(client, activity_type, editor, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    url = f"/api/activities/{activity['id']}"

    archived = client.post(f'{url}/archive', headers=editor_headers).get_json()
    assert archived['status'] == 'archived'
    assert archived['archived_by'] == editor['id']
    assert archived['archived_at']

    listed = client.get('/api/activities?status=archived', headers=editor_headers).get_json()
    assert [a['id'] for a in listed] == [activity['id']]

    reactivated = client.post(f'{url}/reactivate', headers=editor_headers).get_json()
    assert reactivated['status'] == 'active'
    assert reactivated['archived_at'] is None
    assert client.post('/api/activities/ACT-9999/archive', headers=editor_headers).status_code == 404


def test_participants_and_denormalized_count(client, activity_type, create_member, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    ion = create_member('Ion', 'Popescu')
    ana = create_member('Ana', 'Albu')
    url = f"/api/activities/{activity['id']}/participants"

    assert client.post(url, headers=editor_headers, json={'memberIds': [ion['id'], ana['id']]}).status_code == 200
    # adding someone twice is a no-op
    client.post(url, headers=editor_headers, json={'memberIds': [ion['id']], 'status': 'organizer'})
    assert _count(client, editor_headers, activity['id']) == 2

    participants = client.get(url, headers=editor_headers).get_json()
    assert [p['member_name'] for p in participants] == ['Albu Ana', 'Popescu Ion']
    assert {p['status'] for p in participants} == {'attended'}

    response = client.patch(url, headers=editor_headers, json={'memberId': ion['id'], 'status': 'organizer'})
    assert response.status_code == 200
    assert client.patch(url, headers=editor_headers, json={'memberId': 'x', 'status': 'invited'}).status_code == 404
    assert client.patch(url, headers=editor_headers, json={'memberId': ion['id'], 'status': 'boss'}).status_code == 400

    assert client.delete(f"{url}?memberId={ana['id']}", headers=editor_headers).status_code == 200
    assert client.delete(f"{url}?memberId={ana['id']}", headers=editor_headers).status_code == 404
    assert _count(client, editor_headers, activity['id']) == 1

    flat = client.get('/api/activities/participants', headers=editor_headers).get_json()
    assert flat == [{'activity_id': activity['id'], 'member_id': ion['id'], 'status': 'organizer',
                     'note': None, 'created_at': flat[0]['created_at']}]


def test_add_participants_validation(client, activity_type, create_member, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    url = f"/api/activities/{activity['id']}/participants"

    assert client.post(url, headers=editor_headers, json={}).get_json() == {'error': 'memberIds array required'}
    assert client.post(url, headers=editor_headers, json={'memberIds': ['nope']}).status_code == 400
    assert client.post('/api/activities/ACT-9999/participants', headers=editor_headers,
                       json={'memberIds': ['x']}).status_code == 404


def test_deleting_a_member_removes_their_participation(app, client, activity_type, create_member,
                                                         editor_headers, admin_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    ion = create_member('Ion', 'Popescu')
    client.post(f"/api/activities/{activity['id']}/participants", headers=editor_headers,
                json={'memberIds': [ion['id']]})
    client.delete(f"/api/members/{ion['id']}", headers=admin_headers)

    with app.app_context():
        rows = db.fetch_all('SELECT * FROM activity_participants')
    assert rows == []


def test_participant_import_preview_and_commit(client, activity_type, create_member, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    ion = create_member('Ion', 'Popescu')
    ana = create_member('Ana', 'Albu')
    create_member('Vasile', 'Georgescu')
    url = f"/api/activities/{activity['id']}/participants"
    client.post(url, headers=editor_headers, json={'memberIds': [ana['id']]})

    text = 'cod_membru,nume,rol\n00001,,Organizator\n,Albu Ana,\n,Necunoscut,\n,Georgescu,Invitat\n'

    preview = client.post(f'{url}/import/preview', headers=editor_headers, json={'text': text}).get_json()
    assert preview['counts'] == {'valid': 2, 'duplicates': 1, 'missing': 1}
    assert _count(client, editor_headers, activity['id']) == 1

    result = client.post(f'{url}/import', headers=editor_headers, json={'text': text}).get_json()
    assert result['imported'] == 2
    assert _count(client, editor_headers, activity['id']) == 3

    statuses = {p['member_id']: p['status'] for p in client.get(url, headers=editor_headers).get_json()}
    assert statuses[ion['id']] == 'organizer'
    assert list(statuses.values()).count('invited') == 1

    again = client.post(f'{url}/import', headers=editor_headers, json={'text': text}).get_json()
    assert again['counts'] == {'valid': 0, 'duplicates': 3, 'missing': 1}


def test_participant_import_rejects_unreadable_files(client, activity_type, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    response = client.post(f"/api/activities/{activity['id']}/participants/import",
                           headers=editor_headers, json={'text': 'rol\nx\n'})
    assert response.status_code == 400


def test_participant_template_and_export(client, activity_type, create_member, editor_headers):
    template = client.get('/api/activities/participants/template', headers=editor_headers).get_data(as_text=True)
    assert template.startswith(BOM + 'cod_membru,nume,rol,observatii')

    activity = _create_activity(client, editor_headers, activity_type['id'], title='Ceremonie',
                                date_from='2025-05-09')
    ion = create_member('Ion', 'Popescu', rank='Maior', unit='UM 01')
    client.post(f"/api/activities/{activity['id']}/participants", headers=editor_headers,
                json={'memberIds': [ion['id']], 'status': 'organizer'})

    response = client.get(f"/api/activities/{activity['id']}/participants/export", headers=editor_headers)
    rows = parse_csv_text(response.get_data(as_text=True))
    assert rows[1][:9] == ['ACT-0001', 'Ceremonie', '09.05.2025', '00001', 'Popescu', 'Ion', 'Maior', 'UM 01',
                           'Organizator']


def test_activity_csv_import(client, activity_type, editor_headers):
    text = 'type,title,date,location\nSport,Cros,01.03.2025,Parc\nDans,X,01.03.2025,\nsport,Maraton,2025-04-01,\n'
    result = client.post('/api/activities/import', headers=editor_headers, json={'text': text}).get_json()

    assert result['imported'] == 2
    assert result['ids'] == ['ACT-0001', 'ACT-0002']
    assert result['errors'] == [{'row': 3, 'field': 'type', 'message': 'Tipul "Dans" nu a fost găsit în dicționar'}]

    activities = client.get('/api/activities', headers=editor_headers).get_json()
    assert [a['title'] for a in activities] == ['Maraton', 'Cros']

    response = client.post('/api/activities/import', headers=editor_headers, json={'text': 'title\nx\n'})
    assert response.status_code == 400


def test_activity_export(client, activity_type, create_member, editor_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'], title='Cros', date_from='2025-03-01')
    ion = create_member('Ion', 'Popescu')
    client.post(f"/api/activities/{activity['id']}/participants", headers=editor_headers,
                json={'memberIds': [ion['id']]})

    rows = parse_csv_text(client.get('/api/activities/export', headers=editor_headers).get_data(as_text=True))
    assert rows[1] == ['ACT-0001', 'Sport', 'Cros', '01.03.2025', '', '1']

    rows = parse_csv_text(client.get('/api/activities/export?withParticipants=1',
                                     headers=editor_headers).get_data(as_text=True))
    assert rows[1][5:] == [ion['id'], 'Popescu Ion', 'attended']


def test_delete_activity_requires_admin(client, activity_type, editor_headers, admin_headers):
    activity = _create_activity(client, editor_headers, activity_type['id'])
    url = f"/api/activities/{activity['id']}"
    assert client.delete(url, headers=editor_headers).status_code == 403
    assert client.delete(url, headers=admin_headers).status_code == 200
    assert client.get(url, headers=admin_headers).status_code == 404
