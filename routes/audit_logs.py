from flask import Blueprint, request, jsonify, current_app

import audit
from auth import admin_required, login_required

audit_logs_bp = Blueprint('audit_logs', __name__, url_prefix='/api/audit-logs')


@audit_logs_bp.route('', methods=['GET'])
@admin_required
def list_audit_logs():
    try:
        limit = int(request.args.get('limit', 100))
    except ValueError:
        return jsonify({'error': 'limit must be a number'}), 400
    limit = max(1, min(limit, 1000))

    try:
        return jsonify(audit.get_logs(limit))
    except Exception as e:
        current_app.logger.exception('Error fetching audit logs')
        return jsonify({'error': str(e)}), 500


@audit_logs_bp.route('', methods=['POST'])
@login_required
def create_audit_log():
    """Events reported by clients (page views, exports, runtime errors)"""
    data = request.get_json(silent=True) or {}
    action_type = data.get('actionType')
    module = data.get('module')
    summary = (data.get('summary') or '').strip()

    if action_type not in audit.ACTION_TYPES:
        return jsonify({'error': 'Invalid actionType'}), 400
    if module not in audit.MODULES:
        return jsonify({'error': 'Invalid module'}), 400
    if not summary:
        return jsonify({'error': 'summary required'}), 400

    metadata = data.get('metadata')
    if metadata is not None and not isinstance(metadata, dict):
        return jsonify({'error': 'metadata must be an object'}), 400

    log_id = audit.log_action(
        action_type, module, summary,
        entity_type=data.get('entityType'),
        entity_id=data.get('entityId'),
        entity_code=data.get('entityCode'),
        metadata=metadata,
        is_error=bool(data.get('isError')),
    )
    if log_id is None:
        return jsonify({'error': 'Failed to write audit log'}), 500
    return jsonify({'success': True, 'id': log_id}), 201
