import uuid

from flask import Blueprint, request, jsonify, current_app, g

import audit
import db
from auth import permission_required, has_permission
from codes import next_member_code, next_member_codes, display_member_code, member_code_matches_search
from csv_utils import decode_upload
from exports import export_members_csv, file_response, dated_filename, MEMBER_SORTS
from member_import import parse_members_csv, validate_member_data, MEMBER_TEMPLATE

# Create Blueprint
members_bp = Blueprint('members', __name__, url_prefix='/api/members')

# JSON key -> members column
MEMBER_FIELDS = (
    ('memberCode', 'member_code'),
    ('status', 'status'),
    ('rank', 'rank'),
    ('firstName', 'first_name'),
    ('lastName', 'last_name'),
    ('dateOfBirth', 'date_of_birth'),
    ('cnp', 'cnp'),
    ('birthplace', 'birthplace'),
    ('unit', 'unit'),
    ('mainProfile', 'main_profile'),
    ('retirementYear', 'retirement_year'),
    ('retirementDecisionNumber', 'retirement_decision_number'),
    ('retirementFileNumber', 'retirement_file_number'),
    ('branchEnrollmentYear', 'branch_enrollment_year'),
    ('branchWithdrawalYear', 'branch_withdrawal_year'),
    ('branchWithdrawalReason', 'branch_withdrawal_reason'),
    ('withdrawalReason', 'withdrawal_reason'),
    ('withdrawalYear', 'withdrawal_year'),
    ('provenance', 'provenance'),
    ('address', 'address'),
    ('phone', 'phone'),
    ('email', 'email'),
    ('organizationInvolvement', 'organization_involvement'),
    ('magazineContributions', 'magazine_contributions'),
    ('branchNeeds', 'branch_needs'),
    ('foundationNeeds', 'foundation_needs'),
    ('otherNeeds', 'other_needs'),
    ('carMemberStatus', 'car_member_status'),
    ('foundationMemberStatus', 'foundation_member_status'),
    ('foundationRole', 'foundation_role'),
    ('hasCurrentWorkplace', 'has_current_workplace'),
    ('currentWorkplace', 'current_workplace'),
    ('otherObservations', 'other_observations'),
)

MEMBER_COLUMNS = tuple(column for _key, column in MEMBER_FIELDS)
# the code is assigned on create and never changed through PATCH
UPDATABLE_COLUMNS = tuple(c for c in MEMBER_COLUMNS if c != 'member_code')

_NULLABLE_WHEN_EMPTY = ('date_of_birth', 'retirement_year', 'branch_enrollment_year',
                        'branch_withdrawal_year', 'withdrawal_year')


def row_to_member(row, group_ids=None):
    member = {'id': row['id']}
    for key, column in MEMBER_FIELDS:
        value = row.get(column)
        if column in _NULLABLE_WHEN_EMPTY:
            member[key] = value if value != '' else None
        else:
            member[key] = value if value is not None else ''
    member['status'] = row.get('status') or 'Activ'
    member['dateOfBirth'] = str(row['date_of_birth']) if row.get('date_of_birth') else ''
    member['whatsappGroupIds'] = group_ids or []
    member['createdAt'] = row.get('created_at')
    member['updatedAt'] = row.get('updated_at')
    return member


def member_to_db_row(data):
    """camelCase payload -> members columns; keys absent from the payload are left out"""
    row = {}
    for key, column in MEMBER_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if column in _NULLABLE_WHEN_EMPTY and value in ('', None):
            value = None
        row[column] = value
    return row


def _group_ids_by_member():
    grouped = {}
    for r in db.fetch_all('SELECT member_id, group_id FROM whatsapp_group_members ORDER BY joined_at'):
        grouped.setdefault(r['member_id'], []).append(r['group_id'])
    return grouped


def list_member_rows():
    return db.fetch_all('SELECT * FROM members ORDER BY last_name ASC, first_name ASC')


def get_member_row(member_id):
    return db.fetch_one('SELECT * FROM members WHERE id = :id', {'id': member_id})


def _insert_member(row):
    params = {c: row.get(c) for c in MEMBER_COLUMNS}
    params['id'] = row.get('id') or str(uuid.uuid4())
    params['status'] = params['status'] or 'Activ'
    params['first_name'] = params['first_name'] or ''
    params['last_name'] = params['last_name'] or ''
    params['created_at'] = params['updated_at'] = db.now_iso()
    columns = ('id',) + MEMBER_COLUMNS + ('created_at', 'updated_at')
    db.execute(
        f"INSERT INTO members ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})",
        params,
    )
    return params['id']


# Routes
@members_bp.route('', methods=['GET'])
@permission_required('view')
def list_members():
    try:
        groups = _group_ids_by_member()
        return jsonify([row_to_member(r, groups.get(r['id'])) for r in list_member_rows()])
    except Exception as e:
        current_app.logger.exception('Error listing members')
        return jsonify({'error': str(e)}), 500


@members_bp.route('/<member_id>', methods=['GET'])
@permission_required('view')
def get_member(member_id):
    try:
        row = get_member_row(member_id)
        if not row:
            return jsonify({'error': 'Member not found'}), 404
        groups = _group_ids_by_member()
        return jsonify(row_to_member(row, groups.get(member_id)))
    except Exception as e:
        current_app.logger.exception('Error loading member %s', member_id)
        return jsonify({'error': str(e)}), 500


@members_bp.route('', methods=['POST'])
@permission_required('edit')
def create_member():
    data = request.get_json(silent=True) or {}
    row = member_to_db_row(data)

    errors = validate_member_data(row)
    if errors:
        return jsonify({'error': '; '.join(errors)}), 400

    try:
        row['member_code'] = next_member_code()
        member_id = _insert_member(row)
        created = get_member_row(member_id)

        audit.log_action(
            'CREATE_MEMBER', 'members',
            f"Membru adăugat: {created['last_name']} {created['first_name']}",
            entity_type='member', entity_id=member_id, entity_code=created['member_code'],
            metadata=row,
        )
        return jsonify(row_to_member(created)), 201
    except Exception as e:
        current_app.logger.exception('Error creating member')
        return jsonify({'error': str(e)}), 500


@members_bp.route('/<member_id>', methods=['PATCH'])
@permission_required('edit')
def update_member(member_id):
    data = request.get_json(silent=True) or {}
    row = member_to_db_row(data)

    errors = validate_member_data(row)
    if errors:
        return jsonify({'error': '; '.join(errors)}), 400

    try:
        clause, params = db.build_set_clause(row, UPDATABLE_COLUMNS)
        if clause:
            params.update({'id': member_id, 'updated_at': db.now_iso()})
            count = db.execute(f'UPDATE members SET {clause}, updated_at = :updated_at WHERE id = :id', params)
            if count == 0:
                return jsonify({'error': 'Member not found'}), 404

        updated = get_member_row(member_id)
        if not updated:
            return jsonify({'error': 'Member not found'}), 404

        if clause:
            audit.log_action(
                'UPDATE_MEMBER', 'members',
                f"Membru actualizat: {updated['last_name']} {updated['first_name']}",
                entity_type='member', entity_id=member_id, entity_code=updated['member_code'],
                metadata=params,
            )
        return jsonify(row_to_member(updated, _group_ids_by_member().get(member_id)))
    except Exception as e:
        current_app.logger.exception('Error updating member %s', member_id)
        return jsonify({'error': str(e)}), 500


@members_bp.route('/<member_id>', methods=['DELETE'])
@permission_required('delete')
def delete_member(member_id):
    try:
        existing = get_member_row(member_id)
        if not existing:
            return jsonify({'error': 'Member not found'}), 404

        db.execute('DELETE FROM members WHERE id = :id', {'id': member_id})

        audit.log_action(
            'DELETE_MEMBER', 'members',
            f"Membru șters: {existing['last_name']} {existing['first_name']}",
            entity_type='member', entity_id=member_id, entity_code=existing['member_code'],
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting member %s', member_id)
        return jsonify({'error': str(e)}), 500


@members_bp.route('/search', methods=['GET'])
@permission_required('view')
def search_members():
    query = (request.args.get('q') or '').strip()
    if not query:
        return jsonify({'memberIds': [], 'error': None})

    try:
        needle = query.lower()
        matches = []
        for r in list_member_rows():
            haystack = ' '.join(str(r.get(c) or '') for c in (
                'last_name', 'first_name', 'member_code', 'unit', 'email', 'phone', 'rank',
            )).lower()
            full_name = f"{r['last_name']} {r['first_name']}".lower()
            reverse_name = f"{r['first_name']} {r['last_name']}".lower()
            if (needle in haystack or needle in full_name or needle in reverse_name
                    or member_code_matches_search(r['member_code'], query)):
                matches.append(r['id'])
        return jsonify({'memberIds': matches, 'error': None})
    except Exception as e:
        current_app.logger.exception('Error searching members')
        return jsonify({'memberIds': None, 'error': str(e)}), 500


def _rows_from_import_request():
    """(rows, errors) from either a CSV upload or a JSON {members: [...]} body"""
    upload = request.files.get('file')
    if upload is not None:
        members, errors = parse_members_csv(decode_upload(upload.read()))
        return members, [e.to_dict() for e in errors]

    data = request.get_json(silent=True) or {}
    members = data.get('members')
    if not isinstance(members, list):
        return None, []
    return [member_to_db_row(m) for m in members if isinstance(m, dict)], []


@members_bp.route('/import', methods=['POST'])
@permission_required('edit')
def import_members():
    rows, errors = _rows_from_import_request()
    if not rows:
        if errors:
            return jsonify({'error': 'Nu există membri valizi de importat', 'errors': errors}), 400
        return jsonify({'error': 'No members provided'}), 400

    try:
        supplied = [display_member_code(r['member_code']) for r in rows if r.get('member_code')]
        existing_codes = {display_member_code(r['member_code'])
                          for r in db.fetch_all('SELECT member_code FROM members')}
        duplicates = sorted({c for c in supplied if c in existing_codes or supplied.count(c) > 1})
        if duplicates:
            return jsonify({'error': f'Coduri membre duplicate detectate: {", ".join(duplicates)}'}), 400

        generated = iter(next_member_codes(sum(1 for r in rows if not r.get('member_code')), supplied))
        for row in rows:
            if row.get('member_code'):
                row['member_code'] = display_member_code(row['member_code'])
            else:
                row['member_code'] = next(generated)

        for row in rows:
            _insert_member(row)

        audit.log_action(
            'IMPORT_COMPLETED', 'members', f'Import membri: {len(rows)} înregistrări',
            entity_type='member', metadata={'imported': len(rows), 'errors': len(errors)},
        )
        return jsonify({'success': True, 'imported': len(rows), 'errors': errors})
    except Exception as e:
        current_app.logger.exception('Error importing members')
        audit.log_action('IMPORT_FAILED', 'members', f'Import membri eșuat: {e}', is_error=True)
        return jsonify({'error': str(e)}), 500


@members_bp.route('/import/template', methods=['GET'])
@permission_required('view')
def member_import_template():
    return file_response(MEMBER_TEMPLATE, 'template_import_membri.csv')


@members_bp.route('/export', methods=['GET'])
@permission_required('view')
def export_members():
    fields = [f for f in (request.args.get('fields') or '').split(',') if f] or None
    sort_by = request.args.get('sort', 'name')
    if sort_by not in MEMBER_SORTS:
        return jsonify({'error': f'Sortare necunoscută: {sort_by}'}), 400
    status = request.args.get('status')

    try:
        rows = list_member_rows()
        if status:
            rows = [r for r in rows if r['status'] == status]

        include_sensitive = has_permission(g.current_user['role'], 'settings')
        content = export_members_csv(rows, fields, sort_by, include_sensitive)

        audit.log_action(
            'EXPORT_COMPLETED', 'members', f'Export membri: {len(rows)} înregistrări',
            metadata={'fields': fields, 'sort': sort_by, 'sensitive': include_sensitive},
        )
        return file_response(content, dated_filename('membri'))
    except Exception as e:
        current_app.logger.exception('Error exporting members')
        return jsonify({'error': str(e)}), 500
