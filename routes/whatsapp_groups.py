import json
import time

from flask import Blueprint, request, jsonify, current_app, g

import audit
import db
from auth import permission_required
from csv_utils import decode_upload
from exports import export_group_members_csv, file_response, dated_filename
from group_import import parse_group_members_csv, GROUP_TEMPLATE
from models import GROUP_STATUSES

whatsapp_groups_bp = Blueprint('whatsapp_groups', __name__, url_prefix='/api/whatsapp-groups')
member_groups_bp = Blueprint('member_groups', __name__, url_prefix='/api/member-groups')


def row_to_group(row, member_count=None):
    return {
        'id': row['id'],
        'name': row['name'],
        'description': row.get('description'),
        'status': row.get('status') or 'Active',
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
        'member_count': (row.get('member_count') or 0) if member_count is None else member_count,
    }


def row_to_membership(row):
    return {
        'member_id': row['member_id'],
        'group_id': row['group_id'],
        'joined_at': row.get('joined_at'),
        'added_by': row.get('added_by'),
        'notes': row.get('notes'),
    }


def _new_group_id():
    millis = int(time.time() * 1000)
    while db.fetch_scalar('SELECT COUNT(*) FROM whatsapp_groups WHERE id = :id',
                          {'id': f'wag-{millis}'}, default=0):
        millis += 1
    return f'wag-{millis}'


def get_group_row(group_id):
    return db.fetch_one('SELECT * FROM whatsapp_groups WHERE id = :id', {'id': group_id})


def refresh_member_count(group_id):
    db.execute(
        """
        UPDATE whatsapp_groups
        SET member_count = (SELECT COUNT(*) FROM whatsapp_group_members WHERE group_id = :id),
            updated_at = :now
        WHERE id = :id
        """,
        {'id': group_id, 'now': db.now_iso()},
    )


def add_memberships(group_id, member_ids, notes=None):
    db.executemany(
        """
        INSERT INTO whatsapp_group_members (member_id, group_id, joined_at, added_by, notes)
        VALUES (:member_id, :group_id, :joined_at, :added_by, :notes)
        ON CONFLICT (member_id, group_id) DO NOTHING
        """,
        [{'member_id': m, 'group_id': group_id, 'joined_at': db.now_iso(),
          'added_by': g.current_user['id'], 'notes': notes} for m in member_ids],
    )


# WhatsApp groups
@whatsapp_groups_bp.route('', methods=['GET'])
@permission_required('view')
def list_groups():
    try:
        rows = db.fetch_all('SELECT * FROM whatsapp_groups ORDER BY name ASC')
        counts = {r['group_id']: r['c'] for r in db.fetch_all(
            'SELECT group_id, COUNT(*) AS c FROM whatsapp_group_members GROUP BY group_id')}
        return jsonify([row_to_group(r, counts.get(r['id'], 0)) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing WhatsApp groups')
        return jsonify({'error': str(e)}), 500


@whatsapp_groups_bp.route('', methods=['POST'])
@permission_required('edit')
def create_group():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name required'}), 400
    status = data.get('status') or 'Active'
    if status not in GROUP_STATUSES:
        return jsonify({'error': f'Invalid status: {status}'}), 400

    try:
        group_id = _new_group_id()
        now = db.now_iso()
        db.execute(
            """
            INSERT INTO whatsapp_groups (id, name, description, status, member_count, created_at, updated_at)
            VALUES (:id, :name, :description, :status, 0, :now, :now)
            """,
            {'id': group_id, 'name': name, 'description': data.get('description') or None,
             'status': status, 'now': now},
        )
        audit.log_action('UPDATE_VALUE_LIST', 'settings', f'Grup WhatsApp creat: {name}',
                         entity_type='whatsapp_group', entity_id=group_id)
        return jsonify(row_to_group(get_group_row(group_id))), 201
    except Exception as e:
        current_app.logger.exception('Error creating WhatsApp group')
        return jsonify({'error': str(e)}), 500


@whatsapp_groups_bp.route('/<group_id>', methods=['PATCH'])
@permission_required('edit')
def update_group(group_id):
    data = request.get_json(silent=True) or {}
    changes = {k: data[k] for k in ('name', 'description', 'status') if k in data}
    if not changes:
        return jsonify({'error': 'Not found or no change'}), 404
    if 'status' in changes and changes['status'] not in GROUP_STATUSES:
        return jsonify({'error': f"Invalid status: {changes['status']}"}), 400

    try:
        clause, params = db.build_set_clause(changes, ('name', 'description', 'status'))
        params.update({'id': group_id, 'updated_at': db.now_iso()})
        count = db.execute(f'UPDATE whatsapp_groups SET {clause}, updated_at = :updated_at WHERE id = :id', params)
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action('UPDATE_VALUE_LIST', 'settings', f'Grup WhatsApp actualizat: {group_id}',
                         entity_type='whatsapp_group', entity_id=group_id, metadata=changes)
        return jsonify(row_to_group(get_group_row(group_id)))
    except Exception as e:
        current_app.logger.exception('Error updating WhatsApp group %s', group_id)
        return jsonify({'error': str(e)}), 500


@whatsapp_groups_bp.route('/<group_id>', methods=['DELETE'])
@permission_required('delete')
def delete_group(group_id):
    try:
        count = db.execute('DELETE FROM whatsapp_groups WHERE id = :id', {'id': group_id})
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action('UPDATE_VALUE_LIST', 'settings', f'Grup WhatsApp șters: {group_id}',
                         entity_type='whatsapp_group', entity_id=group_id)
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting WhatsApp group %s', group_id)
        return jsonify({'error': str(e)}), 500


@whatsapp_groups_bp.route('/<group_id>/import', methods=['POST'])
@permission_required('edit')
def import_group_members(group_id):
    """Roster CSV for one group; ?mode=replace empties the group first"""
    upload = request.files.get('file')
    if upload is not None:
        text = decode_upload(upload.read())
        mode = request.args.get('mode') or request.form.get('mode') or 'append'
    else:
        data = request.get_json(silent=True) or {}
        text = data.get('text') or ''
        mode = data.get('mode') or request.args.get('mode') or 'append'

    try:
        if not get_group_row(group_id):
            return jsonify({'error': 'Not found'}), 404

        members = db.fetch_all('SELECT id, member_code FROM members')
        member_ids, errors = parse_group_members_csv(text, members)

        if mode == 'replace':
            db.execute('DELETE FROM whatsapp_group_members WHERE group_id = :id', {'id': group_id})
        add_memberships(group_id, member_ids)
        refresh_member_count(group_id)

        audit.log_action(
            'IMPORT_COMPLETED', 'settings', f'Import grup {group_id}: {len(member_ids)} membri',
            entity_type='whatsapp_group', entity_id=group_id,
            metadata={'imported': len(member_ids), 'errors': len(errors), 'mode': mode},
        )
        return jsonify({'success': True, 'imported': len(member_ids), 'errors': errors})
    except Exception as e:
        current_app.logger.exception('Error importing members into group %s', group_id)
        return jsonify({'error': str(e)}), 500


@whatsapp_groups_bp.route('/import/template', methods=['GET'])
@permission_required('view')
def group_import_template():
    return file_response(GROUP_TEMPLATE, 'template_grup.csv')


@whatsapp_groups_bp.route('/<group_id>/export', methods=['GET'])
@permission_required('view')
def export_group_members(group_id):
    try:
        group = get_group_row(group_id)
        if not group:
            return jsonify({'error': 'Not found'}), 404
        rows = db.fetch_all(
            """
            SELECT wgm.member_id, wgm.joined_at, m.member_code, m.last_name, m.first_name,
                   m.rank, m.unit, m.status
            FROM whatsapp_group_members wgm
            JOIN members m ON m.id = wgm.member_id
            WHERE wgm.group_id = :id
            ORDER BY m.last_name, m.first_name
            """,
            {'id': group_id},
        )
        audit.log_action('EXPORT_COMPLETED', 'settings', f"Export grup {group['name']}: {len(rows)} membri",
                         entity_type='whatsapp_group', entity_id=group_id)
        return file_response(export_group_members_csv(rows), dated_filename(f'grup_{group_id}'))
    except Exception as e:
        current_app.logger.exception('Error exporting group %s', group_id)
        return jsonify({'error': str(e)}), 500


# Member <-> group links
@member_groups_bp.route('', methods=['GET'])
@permission_required('view')
def list_memberships():
    try:
        rows = db.fetch_all('SELECT member_id, group_id, joined_at, added_by, notes FROM whatsapp_group_members')
        return jsonify([row_to_membership(r) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing group memberships')
        return jsonify({'error': str(e)}), 500


@member_groups_bp.route('', methods=['POST'])
@permission_required('edit')
def add_membership():
    """
    Three shapes:
    - {memberId, groupId, notes}: one member into one group
    - {memberIds, bulkGroupId, mode}: many members into one group (mode append|replace)
    - {memberId, groupIds}: one member into many groups
    """
    data = request.get_json(silent=True) or {}
    member_id = data.get('memberId')
    group_id = data.get('groupId')
    member_ids = data.get('memberIds')
    group_ids = data.get('groupIds')
    bulk_group_id = data.get('bulkGroupId')

    try:
        if member_id and group_id:
            add_memberships(group_id, [member_id], data.get('notes'))
            refresh_member_count(group_id)
            touched = [group_id]
        elif isinstance(member_ids, list) and bulk_group_id:
            if data.get('mode') == 'replace':
                db.execute('DELETE FROM whatsapp_group_members WHERE group_id = :id', {'id': bulk_group_id})
            add_memberships(bulk_group_id, member_ids)
            refresh_member_count(bulk_group_id)
            touched = [bulk_group_id]
        elif isinstance(group_ids, list) and member_id:
            for gid in group_ids:
                add_memberships(gid, [member_id])
                refresh_member_count(gid)
            touched = group_ids
        else:
            return jsonify({'error': 'Bad request'}), 400

        audit.log_action('UPDATE_MEMBER', 'members', f"Apartenență la grupuri actualizată ({', '.join(touched)})",
                         entity_type='member_group', entity_id=member_id, metadata={'groups': touched})
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error adding group membership')
        return jsonify({'error': str(e)}), 500


@member_groups_bp.route('', methods=['DELETE'])
@permission_required('edit')
def remove_membership():
    member_id = request.args.get('memberId')
    group_id = request.args.get('groupId')
    bulk_group_id = request.args.get('bulkGroupId')
    bulk_member_ids = request.args.get('bulkMemberIds')

    try:
        if member_id and group_id:
            db.execute('DELETE FROM whatsapp_group_members WHERE member_id = :member_id AND group_id = :group_id',
                       {'member_id': member_id, 'group_id': group_id})
            refresh_member_count(group_id)
            touched = group_id
        elif bulk_group_id and bulk_member_ids:
            try:
                ids = json.loads(bulk_member_ids)
            except ValueError:
                return jsonify({'error': 'bulkMemberIds must be a JSON list'}), 400
            if not isinstance(ids, list):
                return jsonify({'error': 'bulkMemberIds must be a JSON list'}), 400
            db.executemany(
                'DELETE FROM whatsapp_group_members WHERE member_id = :member_id AND group_id = :group_id',
                [{'member_id': m, 'group_id': bulk_group_id} for m in ids],
            )
            refresh_member_count(bulk_group_id)
            touched = bulk_group_id
        else:
            return jsonify({'error': 'Bad request'}), 400

        audit.log_action('UPDATE_MEMBER', 'members', f'Membri eliminați din grupul {touched}',
                         entity_type='member_group', entity_id=member_id, metadata={'group': touched})
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error removing group membership')
        return jsonify({'error': str(e)}), 500
