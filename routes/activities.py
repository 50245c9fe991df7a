from flask import Blueprint, request, jsonify, current_app, g

import audit
import db
from activity_import import parse_activities_csv, ImportFormatError, ACTIVITY_TEMPLATE
from auth import permission_required
from codes import next_activity_id
from csv_utils import decode_upload, BOM
from exports import (
    export_activities_csv, export_activities_with_participants_csv, export_participants_csv,
    file_response, dated_filename,
)
from models import PARTICIPANT_STATUSES, ACTIVITY_STATUSES
from participant_import import build_participant_import, participant_template, ParticipantImportError
from routes.members import list_member_rows

activities_bp = Blueprint('activities', __name__, url_prefix='/api/activities')

ACTIVITY_COLUMNS = ('type_id', 'title', 'date_from', 'date_to', 'location', 'notes', 'status')


def row_to_activity(row):
    return {
        'id': row['id'],
        'type_id': row.get('type_id'),
        'title': row.get('title'),
        'date_from': str(row['date_from']) if row.get('date_from') else None,
        'date_to': str(row['date_to']) if row.get('date_to') else None,
        'location': row.get('location'),
        'notes': row.get('notes'),
        'status': row.get('status') or 'active',
        'archived_at': row.get('archived_at'),
        'archived_by': row.get('archived_by'),
        'created_by': row.get('created_by'),
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
        'participants_count': row.get('participants_count') or 0,
    }


def row_to_participant(row):
    return {
        'activity_id': row['activity_id'],
        'member_id': row['member_id'],
        'status': row['status'],
        'note': row.get('note'),
        'created_at': row.get('created_at'),
    }


def _clean_activity_payload(data):
    """Normalize the writable fields present in `data`; returns (row, error)"""
    row = {}
    for column in ACTIVITY_COLUMNS:
        if column not in data:
            continue
        value = data[column]
        if column == 'type_id':
            if value in (None, ''):
                value = None
            else:
                try:
                    value = int(str(value))
                except ValueError:
                    return None, 'type_id must be a number'
        elif column in ('date_from', 'date_to'):
            value = str(value)[:10] if value not in (None, '') else None
        elif column == 'status' and value not in ACTIVITY_STATUSES:
            return None, f'Invalid status: {value}'
        row[column] = value

    if row.get('type_id') is not None:
        exists = db.fetch_scalar('SELECT COUNT(*) FROM activity_types WHERE id = :id',
                                 {'id': row['type_id']}, default=0)
        if not exists:
            return None, 'Tip de activitate inexistent'
    return row, None


def get_activity_row(activity_id):
    return db.fetch_one('SELECT * FROM activities WHERE id = :id', {'id': activity_id})


def refresh_participants_count(activity_id):
    db.execute(
        """
        UPDATE activities
        SET participants_count = (SELECT COUNT(*) FROM activity_participants WHERE activity_id = :id),
            updated_at = :now
        WHERE id = :id
        """,
        {'id': activity_id, 'now': db.now_iso()},
    )


def add_participants(activity_id, entries):
    """
    Insert (member_id, status, note) entries, skipping members already on the
    activity, then refresh the denormalized count.
    """
    db.executemany(
        """
        INSERT INTO activity_participants (activity_id, member_id, status, note, created_at)
        VALUES (:activity_id, :member_id, :status, :note, :created_at)
        ON CONFLICT (activity_id, member_id) DO NOTHING
        """,
        [{'activity_id': activity_id, 'member_id': member_id, 'status': status,
          'note': note, 'created_at': db.now_iso()} for member_id, status, note in entries],
    )
    refresh_participants_count(activity_id)


def _participant_ids(activity_id):
    rows = db.fetch_all('SELECT member_id FROM activity_participants WHERE activity_id = :id',
                        {'id': activity_id})
    return {r['member_id'] for r in rows}


def _participant_rows_with_members(activity_id):
    return db.fetch_all(
        """
        SELECT ap.activity_id, ap.member_id, ap.status, ap.note, ap.created_at,
               m.member_code, m.last_name, m.first_name, m.rank, m.unit
        FROM activity_participants ap
        JOIN members m ON m.id = ap.member_id
        WHERE ap.activity_id = :id
        ORDER BY m.last_name, m.first_name
        """,
        {'id': activity_id},
    )


def _type_names():
    return {t['id']: t['name'] for t in db.fetch_all('SELECT id, name FROM activity_types')}


def _import_text():
    upload = request.files.get('file')
    if upload is not None:
        return decode_upload(upload.read())
    data = request.get_json(silent=True) or {}
    return data.get('text') or data.get('csv') or ''


# Activities
@activities_bp.route('', methods=['GET'])
@permission_required('view')
def list_activities():
    try:
        status = request.args.get('status')
        if status:
            rows = db.fetch_all('SELECT * FROM activities WHERE status = :status ORDER BY date_from DESC',
                                {'status': status})
        else:
            rows = db.fetch_all('SELECT * FROM activities ORDER BY date_from DESC')
        return jsonify([row_to_activity(r) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing activities')
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>', methods=['GET'])
@permission_required('view')
def get_activity(activity_id):
    try:
        row = get_activity_row(activity_id)
        if not row:
            return jsonify({'error': 'Not found'}), 404
        activity = row_to_activity(row)
        activity['participants'] = [row_to_participant(p) for p in _participant_rows_with_members(activity_id)]
        return jsonify(activity)
    except Exception as e:
        current_app.logger.exception('Error loading activity %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('', methods=['POST'])
@permission_required('edit')
def create_activity():
    data = request.get_json(silent=True) or {}
    row, error = _clean_activity_payload(data)
    if error:
        return jsonify({'error': error}), 400

    try:
        activity_id = next_activity_id()
        now = db.now_iso()
        db.execute(
            """
            INSERT INTO activities (id, type_id, title, date_from, date_to, location, notes, status,
                                    created_by, participants_count, created_at, updated_at)
            VALUES (:id, :type_id, :title, :date_from, :date_to, :location, :notes, 'active',
                    :created_by, 0, :now, :now)
            """,
            {
                'id': activity_id,
                'type_id': row.get('type_id'),
                'title': row.get('title'),
                'date_from': row.get('date_from'),
                'date_to': row.get('date_to'),
                'location': row.get('location'),
                'notes': row.get('notes'),
                'created_by': g.current_user['id'],
                'now': now,
            },
        )
        created = get_activity_row(activity_id)

        audit.log_action(
            'CREATE_ACTIVITY', 'activities', f"Activitate creată: {created.get('title') or activity_id}",
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
        )
        return jsonify(row_to_activity(created)), 201
    except Exception as e:
        current_app.logger.exception('Error creating activity')
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>', methods=['PATCH'])
@permission_required('edit')
def update_activity(activity_id):
    data = request.get_json(silent=True) or {}
    row, error = _clean_activity_payload(data)
    if error:
        return jsonify({'error': error}), 400

    try:
        clause, params = db.build_set_clause(row, ACTIVITY_COLUMNS)
        if clause:
            params.update({'id': activity_id, 'updated_at': db.now_iso()})
            count = db.execute(f'UPDATE activities SET {clause}, updated_at = :updated_at WHERE id = :id',
                               params)
            if count == 0:
                return jsonify({'error': 'Not found'}), 404

        updated = get_activity_row(activity_id)
        if not updated:
            return jsonify({'error': 'Not found'}), 404

        if clause:
            audit.log_action(
                'UPDATE_ACTIVITY', 'activities', f"Activitate actualizată: {updated.get('title') or activity_id}",
                entity_type='activity', entity_id=activity_id, entity_code=activity_id, metadata=row,
            )
        return jsonify(row_to_activity(updated))
    except Exception as e:
        current_app.logger.exception('Error updating activity %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>', methods=['DELETE'])
@permission_required('delete')
def delete_activity(activity_id):
    try:
        count = db.execute('DELETE FROM activities WHERE id = :id', {'id': activity_id})
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'DELETE_ACTIVITY', 'activities', f'Activitate ștearsă: {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting activity %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/archive', methods=['POST'])
@permission_required('edit')
def archive_activity(activity_id):
    try:
        now = db.now_iso()
        count = db.execute(
            """
            UPDATE activities
            SET status = 'archived', archived_at = :now, archived_by = :user_id, updated_at = :now
            WHERE id = :id
            """,
            {'id': activity_id, 'now': now, 'user_id': g.current_user['id']},
        )
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'ARCHIVE_ACTIVITY', 'activities', f'Activitate arhivată: {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
        )
        return jsonify(row_to_activity(get_activity_row(activity_id)))
    except Exception as e:
        current_app.logger.exception('Error archiving activity %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/reactivate', methods=['POST'])
@permission_required('edit')
def reactivate_activity(activity_id):
    try:
        count = db.execute(
            """
            UPDATE activities
            SET status = 'active', archived_at = NULL, archived_by = NULL, updated_at = :now
            WHERE id = :id
            """,
            {'id': activity_id, 'now': db.now_iso()},
        )
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'REACTIVATE_ACTIVITY', 'activities', f'Activitate reactivată: {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
        )
        return jsonify(row_to_activity(get_activity_row(activity_id)))
    except Exception as e:
        current_app.logger.exception('Error reactivating activity %s', activity_id)
        return jsonify({'error': str(e)}), 500


# Participants
@activities_bp.route('/participants', methods=['GET'])
@permission_required('view')
def list_all_participants():
    try:
        rows = db.fetch_all('SELECT activity_id, member_id, status, note, created_at FROM activity_participants')
        return jsonify([row_to_participant(r) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing participants')
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/participants', methods=['GET'])
@permission_required('view')
def list_participants(activity_id):
    try:
        rows = _participant_rows_with_members(activity_id)
        participants = []
        for r in rows:
            p = row_to_participant(r)
            p['member_code'] = r['member_code']
            p['member_name'] = f"{r['last_name']} {r['first_name']}".strip()
            participants.append(p)
        return jsonify(participants)
    except Exception as e:
        current_app.logger.exception('Error listing participants of %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/participants', methods=['POST'])
@permission_required('edit')
def add_activity_participants(activity_id):
    data = request.get_json(silent=True) or {}
    member_ids = data.get('memberIds')
    if not isinstance(member_ids, list) or not member_ids:
        return jsonify({'error': 'memberIds array required'}), 400
    status = data.get('status') or 'attended'
    if status not in PARTICIPANT_STATUSES:
        return jsonify({'error': f'Invalid status: {status}'}), 400

    try:
        if not get_activity_row(activity_id):
            return jsonify({'error': 'Not found'}), 404

        known = {r['id'] for r in db.fetch_all('SELECT id FROM members')}
        unknown = [m for m in member_ids if m not in known]
        if unknown:
            return jsonify({'error': f"Membri inexistenți: {', '.join(map(str, unknown))}"}), 400

        add_participants(activity_id, [(m, status, data.get('note')) for m in member_ids])

        audit.log_action(
            'ADD_PARTICIPANTS', 'activities', f'{len(member_ids)} participanți adăugați la {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
            metadata={'memberIds': member_ids},
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error adding participants to %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/participants', methods=['PATCH'])
@permission_required('edit')
def update_activity_participant(activity_id):
    data = request.get_json(silent=True) or {}
    member_id = data.get('memberId')
    if not member_id:
        return jsonify({'error': 'memberId required'}), 400
    if 'status' in data and data['status'] not in PARTICIPANT_STATUSES:
        return jsonify({'error': f"Invalid status: {data['status']}"}), 400

    changes = {k: data[k] for k in ('status', 'note') if k in data}
    if not changes:
        return jsonify({'success': True})

    try:
        clause, params = db.build_set_clause(changes, ('status', 'note'))
        params.update({'activity_id': activity_id, 'member_id': member_id})
        count = db.execute(
            f'UPDATE activity_participants SET {clause} WHERE activity_id = :activity_id AND member_id = :member_id',
            params,
        )
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'UPDATE_ACTIVITY', 'activities', f'Participant actualizat la {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
            metadata={'memberId': member_id, **changes},
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error updating participant of %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/participants', methods=['DELETE'])
@permission_required('edit')
def remove_activity_participant(activity_id):
    member_id = request.args.get('memberId')
    if not member_id:
        return jsonify({'error': 'memberId required'}), 400

    try:
        count = db.execute(
            'DELETE FROM activity_participants WHERE activity_id = :activity_id AND member_id = :member_id',
            {'activity_id': activity_id, 'member_id': member_id},
        )
        if count == 0:
            return jsonify({'error': 'Not found'}), 404
        refresh_participants_count(activity_id)

        audit.log_action(
            'REMOVE_PARTICIPANTS', 'activities', f'Participant eliminat de la {activity_id}',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
            metadata={'memberId': member_id},
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error removing participant of %s', activity_id)
        return jsonify({'error': str(e)}), 500


def _classify_upload(activity_id):
    return build_participant_import(_import_text(), list_member_rows(), _participant_ids(activity_id))


@activities_bp.route('/<activity_id>/participants/import/preview', methods=['POST'])
@permission_required('edit')
def preview_participant_import(activity_id):
    try:
        if not get_activity_row(activity_id):
            return jsonify({'error': 'Not found'}), 404
        return jsonify(_classify_upload(activity_id).to_dict())
    except ParticipantImportError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.exception('Error previewing participant import for %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/<activity_id>/participants/import', methods=['POST'])
@permission_required('edit')
def import_participants(activity_id):
    """Only rows classified valid are inserted; duplicates and missing rows are reported back"""
    try:
        if not get_activity_row(activity_id):
            return jsonify({'error': 'Not found'}), 404

        result = _classify_upload(activity_id)
        if result.valid:
            add_participants(activity_id, [(r.matched_member_id, r.status, r.notes or None)
                                           for r in result.valid])

        summary = result.to_dict()
        summary['imported'] = len(result.valid)
        audit.log_action(
            'IMPORT_COMPLETED', 'activities',
            f'Import participanți {activity_id}: {len(result.valid)} adăugați, '
            f'{len(result.duplicates)} duplicați, {len(result.missing)} negăsiți',
            entity_type='activity', entity_id=activity_id, entity_code=activity_id,
            metadata=summary['counts'],
        )
        return jsonify(summary)
    except ParticipantImportError as e:
        audit.log_action('IMPORT_FAILED', 'activities', f'Import participanți {activity_id} eșuat: {e}',
                         entity_type='activity', entity_id=activity_id, is_error=True)
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.exception('Error importing participants for %s', activity_id)
        return jsonify({'error': str(e)}), 500


@activities_bp.route('/participants/template', methods=['GET'])
@permission_required('view')
def participant_import_template():
    return file_response(BOM + participant_template(), 'template_participanti.csv')


@activities_bp.route('/<activity_id>/participants/export', methods=['GET'])
@permission_required('view')
def export_activity_participants(activity_id):
    try:
        activity = get_activity_row(activity_id)
        if not activity:
            return jsonify({'error': 'Not found'}), 404
        rows = _participant_rows_with_members(activity_id)
        audit.log_action('EXPORT_COMPLETED', 'activities', f'Export participanți {activity_id}: {len(rows)}',
                         entity_type='activity', entity_id=activity_id, entity_code=activity_id)
        return file_response(export_participants_csv(activity, rows), f'participanti_{activity_id}.csv')
    except Exception as e:
        current_app.logger.exception('Error exporting participants of %s', activity_id)
        return jsonify({'error': str(e)}), 500


# Activity CSV import / export
@activities_bp.route('/import', methods=['POST'])
@permission_required('edit')
def import_activities():
    """Rows are inserted one by one; an invalid row never blocks the valid ones"""
    try:
        types = db.fetch_all('SELECT id, name FROM activity_types')
        rows, errors = parse_activities_csv(_import_text(), types)
    except ImportFormatError as e:
        return jsonify({'error': str(e)}), 400

    imported = []
    try:
        for row in rows:
            activity_id = next_activity_id()
            now = db.now_iso()
            db.execute(
                """
                INSERT INTO activities (id, type_id, title, date_from, location, status, created_by,
                                        participants_count, created_at, updated_at)
                VALUES (:id, :type_id, :title, :date_from, :location, 'active', :created_by, 0, :now, :now)
                """,
                {'id': activity_id, 'type_id': row['type_id'], 'title': row['title'],
                 'date_from': row['date_from'], 'location': row['location'],
                 'created_by': g.current_user['id'], 'now': now},
            )
            imported.append(activity_id)
    except Exception as e:
        current_app.logger.exception('Error importing activities')
        audit.log_action('IMPORT_FAILED', 'activities', f'Import activități întrerupt: {e}',
                         metadata={'imported': len(imported)}, is_error=True)
        return jsonify({'error': str(e), 'imported': len(imported),
                        'errors': [err.to_dict() for err in errors]}), 500

    audit.log_action(
        'IMPORT_COMPLETED', 'activities', f'Import activități: {len(imported)} create, {len(errors)} respinse',
        metadata={'imported': len(imported), 'errors': len(errors)},
    )
    return jsonify({'success': True, 'imported': len(imported), 'ids': imported,
                    'errors': [err.to_dict() for err in errors]})


@activities_bp.route('/import/template', methods=['GET'])
@permission_required('view')
def activity_import_template():
    return file_response(ACTIVITY_TEMPLATE, 'template_activitati.csv')


@activities_bp.route('/export', methods=['GET'])
@permission_required('view')
def export_activities():
    with_participants = request.args.get('withParticipants') in ('1', 'true')
    status = request.args.get('status')

    try:
        if status:
            activities = db.fetch_all('SELECT * FROM activities WHERE status = :status ORDER BY date_from DESC',
                                      {'status': status})
        else:
            activities = db.fetch_all('SELECT * FROM activities ORDER BY date_from DESC')
        type_names = _type_names()

        if with_participants:
            by_activity = {}
            for p in db.fetch_all(
                """
                SELECT ap.activity_id, ap.member_id, ap.status, m.last_name, m.first_name
                FROM activity_participants ap
                JOIN members m ON m.id = ap.member_id
                ORDER BY m.last_name, m.first_name
                """
            ):
                by_activity.setdefault(p['activity_id'], []).append(p)
            content = export_activities_with_participants_csv(activities, type_names, by_activity)
            filename = dated_filename('activitati_participanti')
        else:
            content = export_activities_csv(activities, type_names)
            filename = dated_filename('activitati')

        audit.log_action('EXPORT_COMPLETED', 'activities', f'Export activități: {len(activities)}',
                         metadata={'withParticipants': with_participants})
        return file_response(content, filename)
    except Exception as e:
        current_app.logger.exception('Error exporting activities')
        return jsonify({'error': str(e)}), 500
