"""
audit.py
Append-only audit trail. Writing an entry is best-effort: a failure is
logged and never reaches the request that triggered it.
"""

import json
import logging
import uuid

from flask import g, has_request_context, request

import db

logger = logging.getLogger(__name__)

ACTION_TYPES = (
    'LOGIN_SUCCESS', 'LOGIN_FAILED', 'LOGOUT',
    'CREATE_MEMBER', 'UPDATE_MEMBER', 'DELETE_MEMBER',
    'CREATE_PAYMENT', 'UPDATE_PAYMENT', 'DELETE_PAYMENT',
    'CREATE_ACTIVITY', 'UPDATE_ACTIVITY', 'DELETE_ACTIVITY',
    'ARCHIVE_ACTIVITY', 'REACTIVATE_ACTIVITY',
    'ADD_PARTICIPANTS', 'REMOVE_PARTICIPANTS',
    'UPDATE_VALUE_LIST',
    'CREATE_USER', 'UPDATE_USER', 'DEACTIVATE_USER',
    'IMPORT_STARTED', 'IMPORT_COMPLETED', 'IMPORT_FAILED',
    'EXPORT_STARTED', 'EXPORT_COMPLETED', 'EXPORT_FAILED',
    'FILTER_APPLIED', 'FILTER_RESET', 'SEARCH_EXECUTED',
    'PAGE_VIEW', 'RUNTIME_ERROR', 'API_ERROR',
)

MODULES = ('members', 'payments', 'activities', 'settings', 'auth', 'system')


def mask_sensitive_data(data):
    """Return a copy with CNP, phone and email reduced to non-identifying fragments"""
    if not isinstance(data, dict):
        return data

    masked = dict(data)

    if masked.get('cnp') and isinstance(masked['cnp'], str):
        masked['cnp'] = '***' + masked['cnp'][-3:]

    if masked.get('phone') and isinstance(masked['phone'], str):
        masked['phone'] = '***' + masked['phone'][-3:]

    if masked.get('email') and isinstance(masked['email'], str):
        parts = masked['email'].split('@')
        domain = parts[1] if len(parts) > 1 and parts[1] else '***'
        masked['email'] = '***@' + domain

    return masked


def _request_info():
    if not has_request_context():
        return None, None
    return request.remote_addr, request.headers.get('User-Agent')


def log_action(action_type, module, summary, user_id=None, entity_type=None,
               entity_id=None, entity_code=None, metadata=None, is_error=False):
    """Write one audit row. Returns the new id, or None when the write failed."""
    try:
        if user_id is None and has_request_context() and 'current_user' in g:
            user_id = g.current_user['id']

        ip, user_agent = _request_info()
        safe_metadata = mask_sensitive_data(metadata) if metadata else None
        log_id = str(uuid.uuid4())

        db.execute(
            """
            INSERT INTO audit_logs (id, user_id, action_type, module, summary, entity_type,
                                    entity_id, entity_code, metadata, is_error, ip, user_agent, created_at)
            VALUES (:id, :user_id, :action_type, :module, :summary, :entity_type,
                    :entity_id, :entity_code, :metadata, :is_error, :ip, :user_agent, :created_at)
            """,
            {
                'id': log_id,
                'user_id': user_id,
                'action_type': action_type,
                'module': module,
                'summary': summary,
                'entity_type': entity_type,
                'entity_id': str(entity_id) if entity_id is not None else None,
                'entity_code': entity_code,
                'metadata': json.dumps(safe_metadata, default=str) if safe_metadata else None,
                'is_error': bool(is_error),
                'ip': ip,
                'user_agent': user_agent,
                'created_at': db.now_iso(),
            },
        )
        return log_id
    except Exception as e:
        logger.warning('Failed to write audit log (%s): %s', action_type, e)
        return None


def row_to_audit_log(row):
    meta = row.get('metadata')
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except ValueError:
            meta = None
    return {
        'id': row['id'],
        'timestamp': row['created_at'],
        'actorUserId': row['user_id'],
        'actionType': row['action_type'],
        'module': row['module'],
        'summary': row['summary'],
        'entityType': row.get('entity_type'),
        'entityId': row.get('entity_id'),
        'entityCode': row.get('entity_code'),
        'metadata': meta,
        'ip': row.get('ip'),
        'userAgent': row.get('user_agent'),
        'isError': bool(row.get('is_error')),
    }


def get_logs(limit=100):
    rows = db.fetch_all(
        'SELECT * FROM audit_logs ORDER BY created_at DESC LIMIT :limit',
        {'limit': int(limit)},
    )
    return [row_to_audit_log(r) for r in rows]
