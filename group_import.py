"""
group_import.py
Reads a WhatsApp-group roster: one member per line, identified in the first
column by member id or member code.
"""

from csv_utils import non_blank_lines, detect_delimiter, parse_rows, cell

GROUP_TEMPLATE = 'member_id,member_code,name\n,01001,Popescu Ion\n'


def parse_group_members_csv(text, members):
    """Return (member_ids, errors); errors are "Rând N: ..." strings, N being the file line"""
    lines = non_blank_lines(text)
    if not lines:
        return [], []

    start = 1 if 'member' in lines[0].lower() else 0
    rows = parse_rows(lines, detect_delimiter(lines[0]))

    by_id = {str(m['id']): m for m in members}
    by_code = {}
    for m in members:
        if m.get('member_code'):
            by_code.setdefault(m['member_code'], m)

    member_ids, errors = [], []
    for idx in range(start, len(rows)):
        line_number = idx + 1
        # first non-empty of member_id / member_code
        ref = cell(rows[idx], 0) or cell(rows[idx], 1)
        if not ref:
            errors.append(f'Rând {line_number}: Lipsește member_id')
            continue

        member = by_id.get(ref) or by_code.get(ref)
        if member is None:
            errors.append(f'Rând {line_number}: Membru {ref} nu există')
            continue

        if str(member['id']) not in member_ids:
            member_ids.append(str(member['id']))

    return member_ids, errors
