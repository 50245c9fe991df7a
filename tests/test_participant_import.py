import pytest

from participant_import import (
    parse_participant_csv, locate_columns, match_member_by_name, classify_rows,
    build_participant_import, participant_template, ParticipantImportError,
)

MEMBERS = [
    {'id': 'm1', 'member_code': '01001', 'first_name': 'Ion', 'last_name': 'Popescu'},
    {'id': 'm2', 'member_code': '01002', 'first_name': 'Maria', 'last_name': 'Ionescu'},
    {'id': 'm3', 'member_code': '01003', 'first_name': 'Vasile', 'last_name': 'Georgescu'},
    {'id': 'm4', 'member_code': '01004', 'first_name': 'Ștefan', 'last_name': 'Țăranu'},
]


def test_locate_columns_does_not_reuse_member_code_column_for_name():
    columns = locate_columns(['cod_membru', 'nume', 'rol', 'observatii'])
    assert columns == {'member_code': 0, 'member_id': -1, 'member_name': 1, 'role': 2, 'notes': 3}


def test_locate_columns_handles_diacritics_and_english_headers():
    columns = locate_columns(['Member_ID', 'Name', 'Role', 'Observații'])
    assert columns['member_id'] == 0
    assert columns['member_name'] == 1
    assert columns['role'] == 2
    assert columns['notes'] == 3


def test_parse_participant_csv_semicolon_and_row_numbers():
    rows = parse_participant_csv('\ufeffcod_membru;nume\n01001;Popescu Ion\n\n;Ionescu\n')
    assert [r.row_number for r in rows] == [2, 3]
    assert rows[0].member_code == '01001'
    assert rows[1].member_name == 'Ionescu'


def test_parse_participant_csv_quoted_cells():
    rows = parse_participant_csv('nume,observatii\n"Popescu, Ion","a ""b"""\n')
    assert rows[0].member_name == 'Popescu, Ion'
    assert rows[0].notes == 'a "b"'


def test_parse_participant_csv_empty_file():
    with pytest.raises(ParticipantImportError, match='Fișier gol'):
        parse_participant_csv('  \n\n')


def test_parse_participant_csv_requires_an_identifying_column():
    with pytest.raises(ParticipantImportError, match='member_code'):
        parse_participant_csv('rol,observatii\nParticipant,x\n')


def test_match_member_by_name_both_orders_and_diacritics():
    assert match_member_by_name('Popescu Ion', MEMBERS)['id'] == 'm1'
    assert match_member_by_name('ion popescu', MEMBERS)['id'] == 'm1'
    assert match_member_by_name('Stefan Taranu', MEMBERS)['id'] == 'm4'
    assert match_member_by_name('Georgescu', MEMBERS)['id'] == 'm3'


def test_match_member_by_name_containment_in_either_direction():
    assert match_member_by_name('Col. Popescu Ion (rez.)', MEMBERS)['id'] == 'm1'


def test_match_member_by_name_never_matches_blank():
    assert match_member_by_name('', MEMBERS) is None
    assert match_member_by_name('   ', MEMBERS) is None
    assert match_member_by_name('Nimeni', MEMBERS) is None


def test_match_member_by_name_skips_nameless_members():
    members = [{'id': 'x', 'first_name': '', 'last_name': ''}] + MEMBERS
    assert match_member_by_name('Ionescu', members)['id'] == 'm2'


def test_match_member_by_name_first_match_wins():
    members = [
        {'id': 'a', 'first_name': 'Ion', 'last_name': 'Pop'},
        {'id': 'b', 'first_name': 'Ioana', 'last_name': 'Pop'},
    ]
    assert match_member_by_name('Pop', members)['id'] == 'a'


def test_resolution_prefers_id_then_code_then_name():
    rows = parse_participant_csv(
        'member_id,member_code,nume\n'
        'm2,01001,Popescu Ion\n'
        ',01001,Ionescu Maria\n'
        ',,Ionescu Maria\n'
    )
    result = classify_rows(rows, MEMBERS, set())
    assert [r.matched_member_id for r in result.valid] == ['m2', 'm1']
    assert [r.row_number for r in result.duplicates] == [4]


def test_classify_rows_partitions_every_row_exactly_once():
    text = (
        'cod_membru,nume,rol\n'
        '01001,,Organizator\n'
        '01002,,\n'
        ',Necunoscut Ion,\n'
        '01003,,Invitat\n'
        ',Popescu Ion,\n'
    )
    result = build_participant_import(text, MEMBERS, {'m2'})

    assert [r.row_number for r in result.valid] == [2, 5]
    assert [r.row_number for r in result.duplicates] == [3, 6]
    assert [r.row_number for r in result.missing] == [4]
    assert result.member_ids == ['m1', 'm3']
    assert len(result.valid) + len(result.duplicates) + len(result.missing) == 5


def test_role_maps_to_participant_status():
    result = build_participant_import('cod_membru,rol\n01001,Organizator\n01002,invitat\n01003,\n', MEMBERS, set())
    assert [r.status for r in result.valid] == ['organizer', 'invited', 'attended']


def test_to_dict_reports_counts():
    result = build_participant_import('cod_membru\n01001\n99999\n', MEMBERS, set())
    data = result.to_dict()
    assert data['counts'] == {'valid': 1, 'duplicates': 0, 'missing': 1}
    assert data['valid'][0]['matched_member_id'] == 'm1'
    assert data['missing'][0]['matched_member_id'] is None


def test_template_parses_against_its_own_members():
    result = build_participant_import(participant_template(), MEMBERS, set())
    assert result.member_ids == ['m1', 'm2', 'm3']


def test_quoted_code_after_semicolon_and_space_matches_by_code():
    namesakes = [
        {'id': 'm1', 'member_code': '01001', 'first_name': 'Ion', 'last_name': 'Popescu'},
        {'id': 'm2', 'member_code': '01002', 'first_name': 'Ion', 'last_name': 'Popescu'},
    ]
    result = build_participant_import('nume; cod_membru\nPopescu Ion; "01002"\n', namesakes, set())
    assert result.valid[0].member_code == '01002'
    assert result.member_ids == ['m2']


def test_quoted_cells_with_leading_spaces():
    result = build_participant_import('cod_membru; rol\n "01002"; Organizator\n', MEMBERS, set())
    assert result.to_dict()['counts'] == {'valid': 1, 'duplicates': 0, 'missing': 0}
    assert result.valid[0].status == 'organizer'
