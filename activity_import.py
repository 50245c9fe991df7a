"""
activity_import.py
CSV import of activities, and CSV/JSON import of the activity-type dictionary.
"""

import json
import re
from datetime import date

from csv_utils import (
    RowError, non_blank_lines, parse_rows, clean_header, find_column, cell, collapse_spaces,
)

_DOTTED_DATE = re.compile(r'^(\d{1,2})\.(\d{1,2})\.(\d{4})$')
_ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')

TRUTHY = ('da', 'true', '1', 'yes')

ACTIVITY_TEMPLATE = (
    'type,title,date,location\n'
    'Sport,Fotbal în parc,15.01.2025,Parcul Central\n'
    'Teatru,Hamlet,20.02.2025,Teatrul Național'
)

ACTIVITY_TYPES_TEMPLATE = (
    'id,name,category,isActive\n'
    'type-1,Sport,Fizic,Da\n'
    'type-2,Teatru,Cultural,Da'
)


class ImportFormatError(ValueError):
    """The file cannot be read at all (missing columns, bad JSON)"""


def parse_strict_date(value):
    """DD.MM.YYYY, D.M.YYYY or YYYY-MM-DD -> ISO date string; None when not a real date"""
    value = (value or '').strip()
    match = _DOTTED_DATE.match(value)
    if match:
        day, month, year = (int(g) for g in match.groups())
    else:
        match = _ISO_DATE.match(value)
        if not match:
            return None
        year, month, day = (int(g) for g in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


# Activities

def parse_activities_csv(text, activity_types):
    """
    Validate every row of an activity CSV.

    `activity_types` is the type dictionary (rows with id and name).
    Returns (rows, errors): rows ready to insert, each carrying its row number,
    and one RowError per rejected row.
    """
    lines = non_blank_lines(text)
    if len(lines) < 2:
        raise ImportFormatError('Fișierul este gol sau nu conține date')

    rows = parse_rows(lines)
    headers = [clean_header(h) for h in rows[0]]

    type_idx = find_column(headers, 'type', 'tip', exact=True)
    title_idx = find_column(headers, 'title', 'titlu', exact=True)
    date_idx = find_column(headers, 'date', 'data', 'dată', exact=True)
    location_idx = find_column(headers, 'location', 'locatie', 'locație', exact=True)

    if type_idx == -1:
        raise ImportFormatError("Lipsește coloana obligatorie 'type' sau 'tip'")
    if date_idx == -1:
        raise ImportFormatError("Lipsește coloana obligatorie 'date' sau 'data'")

    types_by_name = {}
    for t in activity_types:
        types_by_name.setdefault((t['name'] or '').strip().lower(), t)

    valid, errors = [], []
    for idx, row in enumerate(rows[1:]):
        row_number = idx + 2
        type_name = cell(row, type_idx)
        raw_date = cell(row, date_idx)

        if not type_name:
            errors.append(RowError(row_number, 'Tipul activității este obligatoriu', 'type'))
            continue
        activity_type = types_by_name.get(type_name.lower())
        if activity_type is None:
            errors.append(RowError(row_number, f'Tipul "{type_name}" nu a fost găsit în dicționar', 'type'))
            continue

        if not raw_date:
            errors.append(RowError(row_number, 'Data este obligatorie', 'date'))
            continue
        parsed_date = parse_strict_date(raw_date)
        if parsed_date is None:
            errors.append(RowError(
                row_number, f'Data "{raw_date}" nu este validă. Folosiți formatul DD.MM.YYYY', 'date'))
            continue

        valid.append({
            'row': row_number,
            'type_id': activity_type['id'],
            'title': cell(row, title_idx) or None,
            'date_from': parsed_date,
            'location': cell(row, location_idx) or None,
        })

    return valid, errors


# Activity types

def _is_truthy(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def parse_activity_types_csv(text):
    lines = non_blank_lines(text)
    if len(lines) < 2:
        raise ImportFormatError('Fișierul este gol sau nu conține date')

    rows = parse_rows(lines)
    headers = [clean_header(h) for h in rows[0]]

    name_idx = find_column(headers, 'name', 'nume', 'denumire', exact=True)
    id_idx = find_column(headers, 'id', exact=True)
    category_idx = find_column(headers, 'category', 'categorie', exact=True)
    active_idx = find_column(headers, 'isactive', 'activ', 'is_active', exact=True)

    if name_idx == -1:
        raise ImportFormatError("Lipsește coloana obligatorie 'name' sau 'nume'")

    types, errors = [], []
    for idx, row in enumerate(rows[1:]):
        name = cell(row, name_idx)
        if not name:
            errors.append(RowError(idx + 2, 'Denumirea este obligatorie', 'name'))
            continue
        types.append({
            'id': cell(row, id_idx) or None,
            'name': name,
            'category': cell(row, category_idx) or None,
            'is_active': _is_truthy(cell(row, active_idx)) if active_idx != -1 else True,
        })
    return types, errors


def parse_activity_types_json(text):
    try:
        data = json.loads(text)
    except ValueError:
        raise ImportFormatError('Fișier JSON invalid')

    if isinstance(data, dict):
        data = data.get('activityTypes') or data.get('types')
    if not isinstance(data, list):
        raise ImportFormatError('Fișierul JSON trebuie să conțină o listă de tipuri')

    types, errors = [], []
    for idx, item in enumerate(data):
        name = str(item.get('name') or '').strip() if isinstance(item, dict) else ''
        if not name:
            errors.append(RowError(idx + 1, 'Denumirea este obligatorie', 'name'))
            continue
        active = item.get('isActive', item.get('is_active', True))
        types.append({
            'id': str(item['id']) if item.get('id') is not None else None,
            'name': name,
            'category': item.get('category') or None,
            'is_active': _is_truthy(active),
        })
    return types, errors


def plan_activity_type_import(existing, incoming, mode='merge'):
    """
    Work out which types to add, update or delete.

    merge: an incoming type updates the existing one with the same id, else the
    one with the same normalized name, else it is added.
    replace: as merge, and existing types no incoming row matched are deleted.
    """
    if mode not in ('merge', 'replace'):
        raise ImportFormatError(f'Mod de import necunoscut: {mode}')

    by_id = {str(t['id']): t for t in existing}
    by_name = {}
    for t in existing:
        by_name.setdefault(collapse_spaces(t['name']), t)

    to_add, to_update, matched = [], [], set()
    for item in incoming:
        target = by_id.get(item['id']) if item.get('id') else None
        if target is None:
            target = by_name.get(collapse_spaces(item['name']))

        fields = {k: item[k] for k in ('name', 'category', 'is_active')}
        if target is None:
            to_add.append(fields)
        elif str(target['id']) not in matched:
            matched.add(str(target['id']))
            to_update.append((target['id'], fields))

    to_delete = []
    if mode == 'replace':
        to_delete = [t['id'] for t in existing if str(t['id']) not in matched]

    return {'add': to_add, 'update': to_update, 'delete': to_delete}
