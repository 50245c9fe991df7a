import re

from flask import Blueprint, request, jsonify, current_app

import audit
import db
from auth import permission_required

um_units_bp = Blueprint('um_units', __name__, url_prefix='/api/um-units')


def format_um_code(raw):
    """'um 0754', 'UM0754', ' 0754 ' -> 'UM 0754'; '' when nothing is left"""
    code = re.sub(r'^UM\s*', '', (raw or '').strip(), flags=re.IGNORECASE)
    code = re.sub(r'\s+', ' ', code).strip()
    return f'UM {code}' if code else ''


def row_to_unit(row):
    return {
        'id': str(row['id']),
        'code': row['code'],
        'name': row.get('name'),
        'is_active': bool(row.get('is_active')),
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
    }


@um_units_bp.route('', methods=['GET'])
@permission_required('view')
def list_units():
    try:
        if request.args.get('all') in ('1', 'true'):
            rows = db.fetch_all('SELECT * FROM um_units ORDER BY code ASC')
        else:
            rows = db.fetch_all('SELECT * FROM um_units WHERE is_active = :active ORDER BY code ASC',
                                {'active': True})
        return jsonify([row_to_unit(r) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing UM units')
        return jsonify({'error': str(e)}), 500


@um_units_bp.route('', methods=['POST'])
@permission_required('settings')
def create_unit():
    data = request.get_json(silent=True) or {}
    code = format_um_code(data.get('code'))
    if not code:
        return jsonify({'error': 'code required'}), 400

    try:
        now = db.now_iso()
        db.execute(
            'INSERT INTO um_units (code, name, is_active, created_at, updated_at) '
            'VALUES (:code, :name, :active, :now, :now)',
            {'code': code, 'name': data.get('name') or None, 'active': True, 'now': now},
        )
        created = db.fetch_one('SELECT * FROM um_units WHERE code = :code ORDER BY id DESC LIMIT 1', {'code': code})

        audit.log_action('UPDATE_VALUE_LIST', 'settings', f'Unitate adăugată: {code}',
                         entity_type='um_unit', entity_id=created['id'], entity_code=code)
        return jsonify(row_to_unit(created)), 201
    except Exception as e:
        current_app.logger.exception('Error creating UM unit')
        return jsonify({'error': str(e)}), 500


@um_units_bp.route('/<int:unit_id>', methods=['PATCH'])
@permission_required('settings')
def update_unit(unit_id):
    data = request.get_json(silent=True) or {}
    changes = {k: data[k] for k in ('code', 'name', 'is_active') if k in data}
    if 'code' in changes:
        changes['code'] = format_um_code(changes['code'])
        if not changes['code']:
            return jsonify({'error': 'code required'}), 400
    if 'is_active' in changes:
        changes['is_active'] = bool(changes['is_active'])
    if not changes:
        return jsonify({'error': 'No fields to update'}), 400

    try:
        clause, params = db.build_set_clause(changes, ('code', 'name', 'is_active'))
        params.update({'id': unit_id, 'updated_at': db.now_iso()})
        count = db.execute(f'UPDATE um_units SET {clause}, updated_at = :updated_at WHERE id = :id', params)
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        updated = db.fetch_one('SELECT * FROM um_units WHERE id = :id', {'id': unit_id})
        audit.log_action('UPDATE_VALUE_LIST', 'settings', f"Unitate actualizată: {updated['code']}",
                         entity_type='um_unit', entity_id=unit_id, entity_code=updated['code'], metadata=changes)
        return jsonify(row_to_unit(updated))
    except Exception as e:
        current_app.logger.exception('Error updating UM unit %s', unit_id)
        return jsonify({'error': str(e)}), 500


@um_units_bp.route('/<int:unit_id>', methods=['DELETE'])
@permission_required('settings')
def delete_unit(unit_id):
    try:
        count = db.execute('DELETE FROM um_units WHERE id = :id', {'id': unit_id})
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action('UPDATE_VALUE_LIST', 'settings', f'Unitate ștearsă: {unit_id}',
                         entity_type='um_unit', entity_id=unit_id)
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting UM unit %s', unit_id)
        return jsonify({'error': str(e)}), 500
