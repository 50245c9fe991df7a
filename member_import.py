"""
member_import.py
Member roster CSV import (Romanian column headers) and field validation
shared with the member routes.
"""

import re
from datetime import datetime

from csv_utils import RowError, non_blank_lines, parse_rows, normalize_text, cell
from models import MEMBER_STATUSES, WITHDRAWAL_REASONS, PROVENANCE_OPTIONS

# header -> members column
FIELD_MAPPING = {
    'ID Membru': 'member_code',
    'Nume': 'last_name',
    'Prenume': 'first_name',
    'Data Nașterii': 'date_of_birth',
    'CNP': 'cnp',
    'Grad': 'rank',
    'UM': 'unit',
    'Profil Principal': 'main_profile',
    'Status': 'status',
    'An Înscriere': 'branch_enrollment_year',
    'An Pensionare': 'retirement_year',
    'Proveniență': 'provenance',
    'Telefon': 'phone',
    'Email': 'email',
    'Adresă': 'address',
}

REQUIRED_HEADERS = ('Nume', 'Prenume', 'Grad', 'UM', 'Profil Principal')

REQUIRED_FIELDS = (
    ('last_name', 'Nume lipsă'),
    ('first_name', 'Prenume lipsă'),
    ('rank', 'Grad lipsă'),
    ('unit', 'UM lipsă'),
    ('main_profile', 'Profil Principal lipsă'),
)

YEAR_FIELDS = ('branch_enrollment_year', 'retirement_year')

DATE_FORMATS = ('%d.%m.%Y', '%d/%m/%Y', '%d-%m-%Y', '%Y-%m-%d', '%m/%d/%Y')

_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_PHONE = re.compile(r'^[\d\s\-\+\(\)]+$')

_HEADER_LOOKUP = {normalize_text(h): h for h in FIELD_MAPPING}

MEMBER_TEMPLATE = (
    'ID Membru,Nume,Prenume,Data Nașterii,CNP,Grad,UM,Profil Principal,Status,'
    'An Înscriere,An Pensionare,Proveniență,Telefon,Email,Adresă\n'
    ',Popescu,Ion,15.03.1960,,Colonel,UM 0754,Comandă,Activ,2015,2012,Prin pensionare,'
    '0722 123 456,ion.popescu@example.ro,"Str. Exemplu 1, Timișoara"'
)


def parse_flexible_date(value):
    """Return an ISO date string, or None when no known format fits"""
    value = (value or '').strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_year(value):
    try:
        year = int(str(value).strip())
    except ValueError:
        return None
    return year if 1900 <= year <= 2100 else None


def validate_member_data(member):
    """Format checks on an already-mapped member dict; returns a list of messages"""
    errors = []
    if member.get('email') and not _EMAIL.match(str(member['email'])):
        errors.append('Format email invalid')
    if member.get('phone') and not _PHONE.match(str(member['phone'])):
        errors.append('Format telefon invalid')
    if member.get('cnp') and len(str(member['cnp'])) != 13:
        errors.append('CNP trebuie să aibă 13 caractere')
    if member.get('withdrawal_reason') and member['withdrawal_reason'] not in WITHDRAWAL_REASONS:
        errors.append(f"Motiv retragere invalid: {member['withdrawal_reason']}")
    if member.get('provenance') and member['provenance'] not in PROVENANCE_OPTIONS:
        errors.append(f"Proveniență invalidă: {member['provenance']}")
    return errors


def _map_row(headers, row):
    member, errors = {}, []

    for idx, header in enumerate(headers):
        column = FIELD_MAPPING.get(header)
        value = cell(row, idx)
        if not column or not value:
            continue

        if column == 'date_of_birth':
            parsed = parse_flexible_date(value)
            if parsed is None:
                errors.append(f'Data nașterii invalidă: {value}')
            else:
                member[column] = parsed
        elif column in YEAR_FIELDS:
            year = parse_year(value)
            if year is None:
                errors.append(f'An invalid pentru {header}: {value}')
            else:
                member[column] = year
        elif column == 'status':
            status = next((s for s in MEMBER_STATUSES if s.lower() == value.lower()), None)
            if status is None:
                errors.append(f'Status invalid: {value}')
            else:
                member[column] = status
        else:
            member[column] = value

    for column, message in REQUIRED_FIELDS:
        if not member.get(column):
            errors.append(message)

    errors.extend(validate_member_data(member))
    member.setdefault('status', 'Activ')
    return member, errors


def parse_members_csv(text):
    """
    Parse a roster CSV into member dicts (members table columns).

    Returns (members, errors). A missing required header yields a single
    row-0 error and no members; otherwise each bad row yields one RowError
    whose message lists every problem found in it.
    """
    lines = non_blank_lines(text)
    if len(lines) < 2:
        return [], [RowError(0, 'Fișierul este gol sau nu conține date')]

    rows = parse_rows(lines)
    headers = [_HEADER_LOOKUP.get(normalize_text(h.strip('"')), h) for h in rows[0]]

    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    if missing:
        return [], [RowError(0, f'Câmpuri obligatorii lipsă: {", ".join(missing)}')]

    members, errors = [], []
    for idx, row in enumerate(rows[1:]):
        member, row_errors = _map_row(headers, row)
        if row_errors:
            errors.append(RowError(idx + 2, '; '.join(row_errors)))
        else:
            members.append(member)
    return members, errors
