import json

import pytest

from activity_import import (
    parse_strict_date, parse_activities_csv, parse_activity_types_csv, parse_activity_types_json,
    plan_activity_type_import, ImportFormatError, ACTIVITY_TEMPLATE, ACTIVITY_TYPES_TEMPLATE,
)

TYPES = [{'id': 1, 'name': 'Sport'}, {'id': 2, 'name': 'Teatru'}]


def test_parse_strict_date_formats():
    assert parse_strict_date('15.01.2025') == '2025-01-15'
    assert parse_strict_date('5.1.2025') == '2025-01-05'
    assert parse_strict_date('2025-01-15') == '2025-01-15'


def test_parse_strict_date_rejects_impossible_dates():
    assert parse_strict_date('31.02.2025') is None
    assert parse_strict_date('2025-13-01') is None
    assert parse_strict_date('15/01/2025') is None
    assert parse_strict_date('') is None


def test_parse_activities_csv_template():
    rows, errors = parse_activities_csv(ACTIVITY_TEMPLATE, TYPES)
    assert errors == []
    assert rows == [
        {'row': 2, 'type_id': 1, 'title': 'Fotbal în parc', 'date_from': '2025-01-15', 'location': 'Parcul Central'},
        {'row': 3, 'type_id': 2, 'title': 'Hamlet', 'date_from': '2025-02-20', 'location': 'Teatrul Național'},
    ]


def test_parse_activities_csv_romanian_headers_and_case_insensitive_type():
    rows, errors = parse_activities_csv('tip,titlu,data\nsport,Cros,1.3.2025\n', TYPES)
    assert errors == []
    assert rows[0]['type_id'] == 1
    assert rows[0]['location'] is None


def test_parse_activities_csv_collects_row_errors():
    text = (
        'type,title,date\n'
        ',Fără tip,01.01.2025\n'
        'Dans,Necunoscut,01.01.2025\n'
        'Sport,Fără dată,\n'
        'Sport,Dată greșită,32.01.2025\n'
        'Sport,Bun,02.01.2025\n'
    )
    rows, errors = parse_activities_csv(text, TYPES)

    assert [r['row'] for r in rows] == [6]
    assert [(e.row, e.field) for e in errors] == [(2, 'type'), (3, 'type'), (4, 'date'), (5, 'date')]
    assert errors[0].message == 'Tipul activității este obligatoriu'
    assert errors[1].message == 'Tipul "Dans" nu a fost găsit în dicționar'
    assert errors[2].message == 'Data este obligatorie'
    assert 'DD.MM.YYYY' in errors[3].message


@pytest.mark.parametrize('text, message', [
    ('type,title,date\n', 'Fișierul este gol sau nu conține date'),
    ('title,date\nx,01.01.2025\n', "Lipsește coloana obligatorie 'type' sau 'tip'"),
    ('type,title\nSport,x\n', "Lipsește coloana obligatorie 'date' sau 'data'"),
])
def test_parse_activities_csv_unreadable_files(text, message):
    with pytest.raises(ImportFormatError, match=message):
        parse_activities_csv(text, TYPES)


def test_parse_activity_types_csv_template():
    types, errors = parse_activity_types_csv(ACTIVITY_TYPES_TEMPLATE)
    assert errors == []
    assert types == [
        {'id': 'type-1', 'name': 'Sport', 'category': 'Fizic', 'is_active': True},
        {'id': 'type-2', 'name': 'Teatru', 'category': 'Cultural', 'is_active': True},
    ]


def test_parse_activity_types_csv_inactive_and_missing_name():
    types, errors = parse_activity_types_csv('name,isActive\nSport,Nu\n,Da\n')
    assert types == [{'id': None, 'name': 'Sport', 'category': None, 'is_active': False}]
    assert errors[0].row == 3


def test_parse_activity_types_json_wrapped_list():
    text = json.dumps({'activityTypes': [{'id': 4, 'name': 'Cerc', 'isActive': False}, {'name': ''}]})
    types, errors = parse_activity_types_json(text)
    assert types == [{'id': '4', 'name': 'Cerc', 'category': None, 'is_active': False}]
    assert errors[0].row == 2


def test_parse_activity_types_json_rejects_bad_documents():
    with pytest.raises(ImportFormatError):
        parse_activity_types_json('{not json')
    with pytest.raises(ImportFormatError):
        parse_activity_types_json('{"foo": 1}')


EXISTING = [
    {'id': 1, 'name': 'Sport'},
    {'id': 2, 'name': 'Teatru'},
    {'id': 3, 'name': 'Excursie'},
]


def test_plan_merge_matches_by_id_then_name():
    incoming = [
        {'id': '2', 'name': 'Teatru clasic', 'category': None, 'is_active': True},
        {'id': None, 'name': '  SPORT ', 'category': 'Fizic', 'is_active': True},
        {'id': None, 'name': 'Cor', 'category': None, 'is_active': True},
    ]
    plan = plan_activity_type_import(EXISTING, incoming, 'merge')

    assert [type_id for type_id, _fields in plan['update']] == [2, 1]
    assert plan['add'] == [{'name': 'Cor', 'category': None, 'is_active': True}]
    assert plan['delete'] == []


def test_plan_replace_deletes_unmatched_types():
    incoming = [{'id': None, 'name': 'Sport', 'category': None, 'is_active': True}]
    plan = plan_activity_type_import(EXISTING, incoming, 'replace')
    assert [type_id for type_id, _fields in plan['update']] == [1]
    assert plan['delete'] == [2, 3]


def test_plan_rejects_unknown_mode():
    with pytest.raises(ImportFormatError):
        plan_activity_type_import(EXISTING, [], 'overwrite')
