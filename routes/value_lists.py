from flask import Blueprint, request, jsonify, current_app

import audit
import db
from auth import permission_required
from models import VALUE_LISTS

value_lists_bp = Blueprint('value_lists', __name__, url_prefix='/api/value-lists')


def get_values(list_name):
    rows = db.fetch_all(
        'SELECT value FROM value_lists WHERE list_name = :name ORDER BY position, value',
        {'name': list_name},
    )
    return [r['value'] for r in rows]


def value_rows(list_name, values):
    return [{'name': list_name, 'value': v, 'position': i} for i, v in enumerate(values)]


@value_lists_bp.route('/<list_name>', methods=['GET'])
@permission_required('view')
def read_value_list(list_name):
    if list_name not in VALUE_LISTS:
        return jsonify({'error': 'Unknown list'}), 404
    try:
        return jsonify({'name': list_name, 'values': get_values(list_name)})
    except Exception as e:
        current_app.logger.exception('Error reading value list %s', list_name)
        return jsonify({'error': str(e)}), 500


@value_lists_bp.route('/<list_name>', methods=['PUT'])
@permission_required('settings')
def replace_value_list(list_name):
    if list_name not in VALUE_LISTS:
        return jsonify({'error': 'Unknown list'}), 404

    data = request.get_json(silent=True) or {}
    values = data.get('values')
    if not isinstance(values, list):
        return jsonify({'error': 'values array required'}), 400

    # order kept, blanks and repeats dropped
    cleaned = []
    for value in values:
        value = str(value or '').strip()
        if value and value not in cleaned:
            cleaned.append(value)

    try:
        before = get_values(list_name)
        db.execute_all([
            ('DELETE FROM value_lists WHERE list_name = :name', {'name': list_name}),
            ('INSERT INTO value_lists (list_name, value, position) VALUES (:name, :value, :position)',
             value_rows(list_name, cleaned)),
        ])

        added = [v for v in cleaned if v not in before]
        removed = [v for v in before if v not in cleaned]
        audit.log_action(
            'UPDATE_VALUE_LIST', 'settings',
            f'Listă actualizată: {list_name} ({len(added)} adăugate, {len(removed)} eliminate)',
            entity_type='value_list', entity_code=list_name,
            metadata={'added': added, 'removed': removed},
        )
        return jsonify({'name': list_name, 'values': cleaned})
    except Exception as e:
        current_app.logger.exception('Error updating value list %s', list_name)
        return jsonify({'error': str(e)}), 500
