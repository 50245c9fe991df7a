"""
participant_import.py
Reads a participant list (CSV or pasted text) for one activity, resolves every
row to a member and sorts rows into valid / duplicate / missing.

Resolution order for a row: member_id (exact), member_code (exact), then the
name. A name matches a member when, after lowercasing and stripping
diacritics, it contains or is contained in "last first" or "first last".
The first member (in the order given) that matches wins.
"""

from dataclasses import dataclass, field, asdict

from csv_utils import (
    non_blank_lines, detect_delimiter, parse_rows, clean_header, normalize_text, cell,
)

# column -> header fragments, checked in this order; a column claimed by an
# earlier entry is never reused ("cod_membru" also contains "membru")
HEADER_SYNONYMS = (
    ('member_code', ('member_code', 'cod_membru', 'cod membru')),
    ('member_id', ('member_id',)),
    ('member_name', ('nume', 'name', 'membru')),
    ('role', ('role', 'rol')),
    ('notes', ('note', 'observatii')),
)

ROLE_TO_STATUS = {
    'organizator': 'organizer',
    'organizer': 'organizer',
    'invitat': 'invited',
    'invited': 'invited',
    'participant': 'attended',
    'attended': 'attended',
}


class ParticipantImportError(ValueError):
    pass


@dataclass
class ParsedRow:
    row_number: int
    member_code: str = ''
    member_id: str = ''
    member_name: str = ''
    role: str = ''
    notes: str = ''
    matched_member_id: str = None

    @property
    def status(self):
        return ROLE_TO_STATUS.get(normalize_text(self.role), 'attended')

    def to_dict(self):
        data = asdict(self)
        data['status'] = self.status
        return data


@dataclass
class ParticipantImportResult:
    valid: list = field(default_factory=list)
    duplicates: list = field(default_factory=list)
    missing: list = field(default_factory=list)

    @property
    def member_ids(self):
        return [r.matched_member_id for r in self.valid if r.matched_member_id]

    def to_dict(self):
        return {
            'valid': [r.to_dict() for r in self.valid],
            'duplicates': [r.to_dict() for r in self.duplicates],
            'missing': [r.to_dict() for r in self.missing],
            'counts': {
                'valid': len(self.valid),
                'duplicates': len(self.duplicates),
                'missing': len(self.missing),
            },
        }


def locate_columns(header_cells):
    """Map semantic columns to their index in the header (-1 when absent)"""
    headers = [normalize_text(clean_header(h)) for h in header_cells]
    taken = set()
    columns = {}
    for name, needles in HEADER_SYNONYMS:
        columns[name] = -1
        for idx, header in enumerate(headers):
            if idx in taken:
                continue
            if any(needle in header for needle in needles):
                columns[name] = idx
                taken.add(idx)
                break
    return columns


def parse_participant_csv(text):
    lines = non_blank_lines(text)
    if not lines:
        raise ParticipantImportError('Fișier gol')

    delimiter = detect_delimiter(lines[0])
    rows = parse_rows(lines, delimiter)
    columns = locate_columns(rows[0])

    if columns['member_code'] == -1 and columns['member_id'] == -1 and columns['member_name'] == -1:
        raise ParticipantImportError("CSV-ul trebuie să conțină coloana 'member_code', 'member_id' sau 'nume'")

    parsed = []
    for idx, row in enumerate(rows[1:]):
        parsed.append(ParsedRow(
            row_number=idx + 2,
            member_code=cell(row, columns['member_code']),
            member_id=cell(row, columns['member_id']),
            member_name=cell(row, columns['member_name']),
            role=cell(row, columns['role']),
            notes=cell(row, columns['notes']),
        ))
    return parsed


def match_member_by_name(name, members):
    search = normalize_text(name)
    if not search:
        return None
    for member in members:
        first = member.get('first_name') or ''
        last = member.get('last_name') or ''
        full_name = normalize_text(f'{last} {first}')
        reverse_name = normalize_text(f'{first} {last}')
        if not full_name:
            continue
        if (search in full_name or search in reverse_name
                or full_name in search or reverse_name in search):
            return member
    return None


def find_member(row, members):
    member = None
    if row.member_id:
        member = next((m for m in members if str(m['id']) == row.member_id), None)
    if member is None and row.member_code:
        member = next((m for m in members if m.get('member_code') == row.member_code), None)
    if member is None and row.member_name:
        member = match_member_by_name(row.member_name, members)
    return member


def classify_rows(rows, members, current_member_ids):
    """Every row lands in exactly one bucket; rows repeating a member already seen are duplicates"""
    result = ParticipantImportResult()
    seen = set(current_member_ids)

    for row in rows:
        member = find_member(row, members)
        if member is None:
            result.missing.append(row)
            continue

        row.matched_member_id = str(member['id'])
        if row.matched_member_id in seen:
            result.duplicates.append(row)
        else:
            seen.add(row.matched_member_id)
            result.valid.append(row)

    return result


def build_participant_import(text, members, current_member_ids):
    return classify_rows(parse_participant_csv(text), members, current_member_ids)


def participant_template():
    return '\r\n'.join([
        'cod_membru,nume,rol,observatii',
        '01001,Popescu Ion,Participant,',
        '01002,Ionescu Maria,Organizator,Responsabil logistică',
        ',Georgescu Vasile,Participant,Poate fi identificat doar după nume',
    ])
