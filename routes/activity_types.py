from flask import Blueprint, request, jsonify, current_app

import audit
import db
from activity_import import (
    parse_activity_types_csv, parse_activity_types_json, plan_activity_type_import,
    ImportFormatError, ACTIVITY_TYPES_TEMPLATE,
)
from auth import permission_required
from csv_utils import decode_upload
from exports import export_activity_types_csv, export_activity_types_json, file_response, dated_filename

activity_types_bp = Blueprint('activity_types', __name__, url_prefix='/api/activity-types')


def row_to_activity_type(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'category': row.get('category'),
        'is_active': bool(row.get('is_active')),
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
    }


def _list_rows(active_only=False):
    if active_only:
        return db.fetch_all('SELECT * FROM activity_types WHERE is_active = :active ORDER BY name',
                            {'active': True})
    return db.fetch_all('SELECT * FROM activity_types ORDER BY name')


def _insert_type(name, category, is_active):
    now = db.now_iso()
    db.execute(
        """
        INSERT INTO activity_types (name, category, is_active, created_at, updated_at)
        VALUES (:name, :category, :is_active, :now, :now)
        """,
        {'name': name, 'category': category, 'is_active': bool(is_active), 'now': now},
    )
    return db.fetch_one('SELECT * FROM activity_types WHERE name = :name ORDER BY id DESC LIMIT 1',
                        {'name': name})


@activity_types_bp.route('', methods=['GET'])
@permission_required('view')
def list_activity_types():
    try:
        active_only = request.args.get('active') in ('1', 'true')
        return jsonify([row_to_activity_type(r) for r in _list_rows(active_only)])
    except Exception as e:
        current_app.logger.exception('Error listing activity types')
        return jsonify({'error': str(e)}), 500


@activity_types_bp.route('', methods=['POST'])
@permission_required('settings')
def create_activity_type():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name required'}), 400

    try:
        created = _insert_type(name, data.get('category') or None, data.get('is_active', True))
        audit.log_action(
            'UPDATE_VALUE_LIST', 'settings', f'Tip de activitate adăugat: {name}',
            entity_type='activity_type', entity_id=created['id'],
        )
        return jsonify(row_to_activity_type(created)), 201
    except Exception as e:
        current_app.logger.exception('Error creating activity type')
        return jsonify({'error': str(e)}), 500


@activity_types_bp.route('/<int:type_id>', methods=['PATCH'])
@permission_required('settings')
def update_activity_type(type_id):
    data = request.get_json(silent=True) or {}
    changes = {k: data[k] for k in ('name', 'category', 'is_active') if k in data}
    if 'is_active' in changes:
        changes['is_active'] = bool(changes['is_active'])
    if 'name' in changes and not (changes['name'] or '').strip():
        return jsonify({'error': 'name required'}), 400
    if not changes:
        return jsonify({'error': 'No fields to update'}), 400

    try:
        clause, params = db.build_set_clause(changes, ('name', 'category', 'is_active'))
        params.update({'id': type_id, 'updated_at': db.now_iso()})
        count = db.execute(f'UPDATE activity_types SET {clause}, updated_at = :updated_at WHERE id = :id', params)
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'UPDATE_VALUE_LIST', 'settings', f'Tip de activitate actualizat: {type_id}',
            entity_type='activity_type', entity_id=type_id, metadata=changes,
        )
        return jsonify(row_to_activity_type(db.fetch_one('SELECT * FROM activity_types WHERE id = :id',
                                                         {'id': type_id})))
    except Exception as e:
        current_app.logger.exception('Error updating activity type %s', type_id)
        return jsonify({'error': str(e)}), 500


@activity_types_bp.route('/<int:type_id>', methods=['DELETE'])
@permission_required('settings')
def delete_activity_type(type_id):
    try:
        count = db.execute('DELETE FROM activity_types WHERE id = :id', {'id': type_id})
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'UPDATE_VALUE_LIST', 'settings', f'Tip de activitate șters: {type_id}',
            entity_type='activity_type', entity_id=type_id,
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting activity type %s', type_id)
        return jsonify({'error': str(e)}), 500


@activity_types_bp.route('/import', methods=['POST'])
@permission_required('settings')
def import_activity_types():
    """CSV or JSON upload; ?mode=merge (default) or ?mode=replace"""
    mode = request.args.get('mode') or request.form.get('mode') or 'merge'
    upload = request.files.get('file')

    try:
        if upload is not None:
            text = decode_upload(upload.read())
            is_json = (upload.filename or '').lower().endswith('.json') or text.lstrip().startswith(('[', '{'))
        else:
            data = request.get_json(silent=True) or {}
            text = data.get('text') or ''
            is_json = data.get('format') == 'json'
            mode = data.get('mode') or mode

        incoming, errors = parse_activity_types_json(text) if is_json else parse_activity_types_csv(text)
        plan = plan_activity_type_import(_list_rows(), incoming, mode)
    except ImportFormatError as e:
        return jsonify({'error': str(e)}), 400

    try:
        for fields in plan['add']:
            _insert_type(fields['name'], fields['category'], fields['is_active'])
        for type_id, fields in plan['update']:
            params = dict(fields, id=type_id, updated_at=db.now_iso())
            db.execute(
                """
                UPDATE activity_types
                SET name = :name, category = :category, is_active = :is_active, updated_at = :updated_at
                WHERE id = :id
                """,
                params,
            )
        for type_id in plan['delete']:
            db.execute('DELETE FROM activity_types WHERE id = :id', {'id': type_id})

        counts = {'added': len(plan['add']), 'updated': len(plan['update']), 'deleted': len(plan['delete'])}
        audit.log_action(
            'IMPORT_COMPLETED', 'settings',
            f"Import tipuri activități ({mode}): {counts['added']} adăugate, {counts['updated']} actualizate, "
            f"{counts['deleted']} șterse",
            entity_type='activity_type', metadata=counts,
        )
        return jsonify({'success': True, 'mode': mode, **counts, 'errors': [err.to_dict() for err in errors]})
    except Exception as e:
        current_app.logger.exception('Error importing activity types')
        return jsonify({'error': str(e)}), 500


@activity_types_bp.route('/import/template', methods=['GET'])
@permission_required('view')
def activity_types_template():
    return file_response(ACTIVITY_TYPES_TEMPLATE, 'template_tipuri_activitati.csv')


@activity_types_bp.route('/export', methods=['GET'])
@permission_required('view')
def export_activity_types():
    fmt = request.args.get('format', 'csv')
    try:
        rows = _list_rows()
        if fmt == 'json':
            return file_response(export_activity_types_json(rows), dated_filename('tipuri_activitati', 'json'),
                                 mimetype='application/json')
        return file_response(export_activity_types_csv(rows), dated_filename('tipuri_activitati'))
    except Exception as e:
        current_app.logger.exception('Error exporting activity types')
        return jsonify({'error': str(e)}), 500
