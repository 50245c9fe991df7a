from group_import import parse_group_members_csv, GROUP_TEMPLATE

MEMBERS = [
    {'id': 'uuid-1', 'member_code': '01001'},
    {'id': 'uuid-2', 'member_code': '01002'},
]


def test_template_resolves_by_code():
    member_ids, errors = parse_group_members_csv(GROUP_TEMPLATE, MEMBERS)
    assert member_ids == ['uuid-1']
    assert errors == []


def test_ids_and_codes_without_header():
    member_ids, errors = parse_group_members_csv('uuid-2\n01001\nuuid-2\n', MEMBERS)
    assert member_ids == ['uuid-2', 'uuid-1']
    assert errors == []


def test_errors_use_file_line_numbers():
    text = 'member_id,member_code\n,\nuuid-9,\n01002,\n'
    member_ids, errors = parse_group_members_csv(text, MEMBERS)
    assert member_ids == ['uuid-2']
    assert errors == ['Rând 2: Lipsește member_id', 'Rând 3: Membru uuid-9 nu există']


def test_empty_input():
    assert parse_group_members_csv('', MEMBERS) == ([], [])
