"""
exports.py
CSV/JSON renderings of members, payments, activities, participants, group
rosters and the activity-type dictionary. CSV output is UTF-8 with a BOM so
spreadsheet programs open diacritics correctly.
"""

import json
from datetime import date, datetime

from flask import Response

from codes import display_member_code, extract_member_code_number
from csv_utils import to_csv
from models import DEFAULT_RANKS

# key, label, members column, sensitive
MEMBER_EXPORT_FIELDS = (
    ('memberCode', 'ID Membru', 'member_code', False),
    ('lastName', 'Nume', 'last_name', False),
    ('firstName', 'Prenume', 'first_name', False),
    ('age', 'Vârstă', None, False),
    ('dateOfBirth', 'Data Nașterii', 'date_of_birth', True),
    ('cnp', 'CNP', 'cnp', True),
    ('rank', 'Grad', 'rank', False),
    ('unit', 'UM', 'unit', False),
    ('mainProfile', 'Profil Principal', 'main_profile', False),
    ('status', 'Status', 'status', False),
    ('branchEnrollmentYear', 'An Înscriere', 'branch_enrollment_year', False),
    ('retirementYear', 'An Pensionare', 'retirement_year', False),
    ('provenance', 'Proveniență', 'provenance', False),
    ('phone', 'Telefon', 'phone', True),
    ('email', 'Email', 'email', True),
    ('address', 'Adresă', 'address', True),
)

DEFAULT_MEMBER_FIELDS = (
    'memberCode', 'lastName', 'firstName', 'rank', 'unit', 'mainProfile', 'status',
)

MEMBER_SORTS = ('name', 'memberCode', 'enrollmentYear', 'rank')

PARTICIPANT_ROLE_LABELS = {
    'attended': 'Participant',
    'organizer': 'Organizator',
}


def _to_date(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            return None


def format_date(value):
    """Any date-ish value -> dd.MM.yyyy ('' when absent)"""
    d = _to_date(value)
    return d.strftime('%d.%m.%Y') if d else ''


def calculate_age(date_of_birth, today=None):
    born = _to_date(date_of_birth)
    if born is None:
        return None
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def _rank_position(rank):
    try:
        return DEFAULT_RANKS.index(rank)
    except ValueError:
        return len(DEFAULT_RANKS)


def sort_members(members, sort_by='name'):
    if sort_by == 'memberCode':
        return sorted(members, key=lambda m: extract_member_code_number(m.get('member_code')) or 0)
    if sort_by == 'enrollmentYear':
        return sorted(members, key=lambda m: m.get('branch_enrollment_year') or 0, reverse=True)
    if sort_by == 'rank':
        return sorted(members, key=lambda m: (_rank_position(m.get('rank')),
                                              (m.get('last_name') or '').lower()))
    return sorted(members, key=lambda m: f"{m.get('last_name') or ''} {m.get('first_name') or ''}".lower())


def select_member_fields(requested=None, include_sensitive=False):
    """Export field definitions, in table order, filtered by request and permission"""
    keys = set(requested or DEFAULT_MEMBER_FIELDS)
    return [f for f in MEMBER_EXPORT_FIELDS
            if f[0] in keys and (include_sensitive or not f[3])]


def export_members_csv(members, fields=None, sort_by='name', include_sensitive=False, today=None):
    selected = select_member_fields(fields, include_sensitive)
    rows = []
    for m in sort_members(members, sort_by):
        row = []
        for key, _label, column, _sensitive in selected:
            if key == 'age':
                row.append(calculate_age(m.get('date_of_birth'), today))
            elif key == 'memberCode':
                row.append(display_member_code(m.get('member_code')))
            elif key == 'dateOfBirth':
                row.append(format_date(m.get('date_of_birth')))
            else:
                row.append(m.get(column))
        rows.append(row)
    return to_csv([f[1] for f in selected], rows)


def export_payments_csv(payments):
    """`payments` rows joined with member_code / last_name / first_name"""
    headers = ['Cod Plată', 'ID Membru', 'Nume', 'Prenume', 'Data', 'An', 'Sumă', 'Metodă',
               'Status', 'Tip', 'An Cotizație', 'Chitanță', 'Observații']
    rows = [[
        p.get('payment_code'),
        display_member_code(p.get('member_code')),
        p.get('last_name'),
        p.get('first_name'),
        format_date(p.get('date')),
        p.get('year'),
        p.get('amount'),
        p.get('method'),
        p.get('status'),
        p.get('payment_type'),
        p.get('contribution_year'),
        p.get('receipt_number'),
        p.get('observations'),
    ] for p in payments]
    return to_csv(headers, rows)


def export_participants_csv(activity, participants):
    headers = ['activity_code', 'activity_title', 'activity_date', 'member_code', 'last_name',
               'first_name', 'rank', 'um', 'role', 'added_at']
    rows = [[
        activity['id'],
        activity.get('title') or '',
        format_date(activity.get('date_from')),
        display_member_code(p.get('member_code')),
        p.get('last_name'),
        p.get('first_name'),
        p.get('rank'),
        p.get('unit'),
        PARTICIPANT_ROLE_LABELS.get(p.get('status'), 'Invitat'),
        format_date(p.get('created_at')),
    ] for p in participants]
    return to_csv(headers, rows, quote_all=True)


def export_activities_csv(activities, type_names):
    headers = ['code', 'type', 'title', 'date', 'location', 'participantsCount']
    rows = [[
        a['id'],
        type_names.get(a.get('type_id'), ''),
        a.get('title') or '',
        format_date(a.get('date_from')),
        a.get('location') or '',
        a.get('participants_count') or 0,
    ] for a in activities]
    return to_csv(headers, rows)


def export_activities_with_participants_csv(activities, type_names, participants_by_activity):
    """One row per participant; activities without participants still get one row"""
    headers = ['activityCode', 'activityType', 'activityTitle', 'activityDate', 'activityLocation',
               'memberId', 'memberName', 'participantStatus']
    rows = []
    for a in activities:
        base = [
            a['id'],
            type_names.get(a.get('type_id'), ''),
            a.get('title') or '',
            format_date(a.get('date_from')),
            a.get('location') or '',
        ]
        participants = participants_by_activity.get(a['id']) or []
        if not participants:
            rows.append(base + ['', '', ''])
        for p in participants:
            name = f"{p.get('last_name') or ''} {p.get('first_name') or ''}".strip()
            rows.append(base + [p['member_id'], name, p.get('status')])
    return to_csv(headers, rows)


def export_group_members_csv(rows):
    headers = ['member_id', 'member_code', 'name', 'rank', 'unit', 'status', 'joined_at']
    data = [[
        r['member_id'],
        display_member_code(r.get('member_code')),
        f"{r.get('last_name') or ''} {r.get('first_name') or ''}".strip(),
        r.get('rank') or '',
        r.get('unit') or '',
        r.get('status') or '',
        format_date(r.get('joined_at')),
    ] for r in rows]
    return to_csv(headers, data, quote_all=True)


def export_activity_types_csv(types):
    rows = [[t['id'], t['name'], t.get('category') or '', 'Da' if t.get('is_active') else 'Nu']
            for t in types]
    return to_csv(['id', 'name', 'category', 'isActive'], rows)


def export_activity_types_json(types):
    return json.dumps([{
        'id': t['id'],
        'name': t['name'],
        'category': t.get('category'),
        'isActive': bool(t.get('is_active')),
        'createdAt': str(t['created_at']) if t.get('created_at') else None,
        'updatedAt': str(t['updated_at']) if t.get('updated_at') else None,
    } for t in types], ensure_ascii=False, indent=2)


def file_response(content, filename, mimetype='text/csv'):
    """Wrap rendered export text as a download"""
    return Response(
        content.encode('utf-8'),
        mimetype=f'{mimetype}; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


def dated_filename(prefix, extension='csv'):
    return f'{prefix}_{date.today().isoformat()}.{extension}'
