from datetime import date
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, current_app

import audit
import db
from auth import permission_required
from codes import next_payment_code
from csv_utils import decode_upload, BOM
from exports import export_payments_csv, file_response, dated_filename
from models import PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES
from payment_import import parse_payments_csv, PaymentImportError, PAYMENT_TEMPLATE

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')

# JSON key -> payments column
PAYMENT_FIELDS = (
    ('memberId', 'member_id'),
    ('date', 'date'),
    ('year', 'year'),
    ('amount', 'amount'),
    ('method', 'method'),
    ('status', 'status'),
    ('paymentType', 'payment_type'),
    ('contributionYear', 'contribution_year'),
    ('observations', 'observations'),
    ('source', 'source'),
    ('receiptNumber', 'receipt_number'),
    ('legacyPaymentId', 'legacy_payment_id'),
)

PAYMENT_COLUMNS = tuple(column for _key, column in PAYMENT_FIELDS)


def row_to_payment(row):
    """Payments are addressed by their code; the numeric row id stays internal"""
    return {
        'id': row['payment_code'],
        'memberId': row['member_id'],
        'date': str(row['date']) if row.get('date') else None,
        'year': row.get('year'),
        'amount': float(row['amount']) if row.get('amount') is not None else 0.0,
        'method': row.get('method'),
        'status': row.get('status'),
        'paymentType': row.get('payment_type'),
        'contributionYear': row.get('contribution_year'),
        'observations': row.get('observations'),
        'source': row.get('source'),
        'receiptNumber': row.get('receipt_number'),
        'legacyPaymentId': row.get('legacy_payment_id'),
    }


def payment_to_db_row(data):
    return {column: data[key] for key, column in PAYMENT_FIELDS if key in data}


def _parse_amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _validate(row, creating):
    if creating:
        for column, label in (('member_id', 'memberId'), ('date', 'date'), ('amount', 'amount')):
            if row.get(column) in (None, ''):
                return f'{label} is required'
    if 'amount' in row:
        amount = _parse_amount(row['amount'])
        if amount is None or amount < 0:
            return 'amount must be a non-negative number'
        row['amount'] = str(amount)
    if row.get('date'):
        try:
            date.fromisoformat(str(row['date'])[:10])
        except ValueError:
            return f"Invalid date: {row['date']}"
    if row.get('status') and row['status'] not in PAYMENT_STATUSES:
        return f"Invalid status: {row['status']}"
    if row.get('method') and row['method'] not in PAYMENT_METHODS:
        return f"Invalid method: {row['method']}"
    if row.get('payment_type') and row['payment_type'] not in PAYMENT_TYPES:
        return f"Invalid paymentType: {row['payment_type']}"
    return None


def get_payment_row(payment_code):
    return db.fetch_one('SELECT * FROM payments WHERE payment_code = :code', {'code': payment_code})


@payments_bp.route('', methods=['GET'])
@permission_required('view')
def list_payments():
    try:
        filters, params = [], {}
        if request.args.get('memberId'):
            filters.append('member_id = :member_id')
            params['member_id'] = request.args['memberId']
        if request.args.get('year'):
            filters.append('year = :year')
            params['year'] = request.args.get('year', type=int)
        where = f"WHERE {' AND '.join(filters)}" if filters else ''
        rows = db.fetch_all(f'SELECT * FROM payments {where} ORDER BY date DESC, id DESC', params)
        return jsonify([row_to_payment(r) for r in rows])
    except Exception as e:
        current_app.logger.exception('Error listing payments')
        return jsonify({'error': str(e)}), 500


@payments_bp.route('/<payment_code>', methods=['GET'])
@permission_required('view')
def get_payment(payment_code):
    try:
        row = get_payment_row(payment_code)
        if not row:
            return jsonify({'error': 'Not found'}), 404
        return jsonify(row_to_payment(row))
    except Exception as e:
        current_app.logger.exception('Error loading payment %s', payment_code)
        return jsonify({'error': str(e)}), 500


@payments_bp.route('', methods=['POST'])
@permission_required('edit')
def create_payment():
    data = request.get_json(silent=True) or {}
    row = payment_to_db_row(data)

    error = _validate(row, creating=True)
    if error:
        return jsonify({'error': error}), 400

    try:
        member = db.fetch_one('SELECT id, member_code, last_name, first_name FROM members WHERE id = :id',
                              {'id': row['member_id']})
        if not member:
            return jsonify({'error': 'Member not found'}), 404

        params = {c: row.get(c) for c in PAYMENT_COLUMNS}
        params['status'] = params['status'] or 'Plătită'
        if params['year'] in (None, ''):
            params['year'] = int(str(params['date'])[:4])
        params['payment_code'] = next_payment_code()
        params['created_at'] = params['updated_at'] = db.now_iso()

        columns = ('payment_code',) + PAYMENT_COLUMNS + ('created_at', 'updated_at')
        db.execute(
            f"INSERT INTO payments ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})",
            params,
        )
        created = get_payment_row(params['payment_code'])

        audit.log_action(
            'CREATE_PAYMENT', 'payments',
            f"Plată {created['payment_code']} înregistrată pentru {member['last_name']} {member['first_name']}",
            entity_type='payment', entity_id=created['payment_code'], entity_code=member['member_code'],
            metadata={'amount': params['amount'], 'paymentType': params['payment_type'],
                      'contributionYear': params['contribution_year']},
        )
        return jsonify(row_to_payment(created)), 201
    except Exception as e:
        current_app.logger.exception('Error creating payment')
        return jsonify({'error': str(e)}), 500


@payments_bp.route('/<payment_code>', methods=['PATCH'])
@permission_required('edit')
def update_payment(payment_code):
    data = request.get_json(silent=True) or {}
    row = payment_to_db_row(data)

    error = _validate(row, creating=False)
    if error:
        return jsonify({'error': error}), 400

    try:
        clause, params = db.build_set_clause(row, PAYMENT_COLUMNS)
        if not clause:
            return jsonify({'error': 'Not found or no change'}), 404

        params.update({'code': payment_code, 'updated_at': db.now_iso()})
        count = db.execute(
            f'UPDATE payments SET {clause}, updated_at = :updated_at WHERE payment_code = :code', params)
        if count == 0:
            return jsonify({'error': 'Not found or no change'}), 404

        updated = get_payment_row(payment_code)
        audit.log_action(
            'UPDATE_PAYMENT', 'payments', f'Plată {payment_code} actualizată',
            entity_type='payment', entity_id=payment_code, metadata=row,
        )
        return jsonify(row_to_payment(updated))
    except Exception as e:
        current_app.logger.exception('Error updating payment %s', payment_code)
        return jsonify({'error': str(e)}), 500


@payments_bp.route('/<payment_code>', methods=['DELETE'])
@permission_required('delete')
def delete_payment(payment_code):
    try:
        count = db.execute('DELETE FROM payments WHERE payment_code = :code', {'code': payment_code})
        if count == 0:
            return jsonify({'error': 'Not found'}), 404

        audit.log_action(
            'DELETE_PAYMENT', 'payments', f'Plată {payment_code} ștearsă',
            entity_type='payment', entity_id=payment_code,
        )
        return jsonify({'success': True})
    except Exception as e:
        current_app.logger.exception('Error deleting payment %s', payment_code)
        return jsonify({'error': str(e)}), 500


@payments_bp.route('/export', methods=['GET'])
@permission_required('view')
def export_payments():
    try:
        rows = db.fetch_all(
            """
            SELECT p.*, m.member_code, m.last_name, m.first_name
            FROM payments p
            JOIN members m ON m.id = p.member_id
            ORDER BY p.date DESC, p.id DESC
            """
        )
        audit.log_action('EXPORT_COMPLETED', 'payments', f'Export plăți: {len(rows)} înregistrări')
        return file_response(export_payments_csv(rows), dated_filename('plati'))
    except Exception as e:
        current_app.logger.exception('Error exporting payments')
        return jsonify({'error': str(e)}), 500


# Payment CSV import
def _import_text():
    upload = request.files.get('file')
    if upload is not None:
        return decode_upload(upload.read())
    data = request.get_json(silent=True) or {}
    return data.get('text') or data.get('csv') or ''


def _parse_import():
    members = db.fetch_all('SELECT id, member_code FROM members')
    existing = [(r['member_id'], r['date'], r['amount'])
                for r in db.fetch_all('SELECT member_id, date, amount FROM payments')]
    return parse_payments_csv(_import_text(), members, existing)


@payments_bp.route('/import/preview', methods=['POST'])
@permission_required('edit')
def preview_payment_import():
    try:
        rows = _parse_import()
    except PaymentImportError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        current_app.logger.exception('Error reading payment import')
        return jsonify({'error': str(e)}), 500

    return jsonify({
        'rows': [r.to_dict() for r in rows],
        'valid': sum(1 for r in rows if r.valid),
        'invalid': sum(1 for r in rows if not r.valid),
    })


@payments_bp.route('/import', methods=['POST'])
@permission_required('edit')
def import_payments():
    """Only rows without errors are stored; each gets its own payment code"""
    try:
        rows = _parse_import()
    except PaymentImportError as e:
        return jsonify({'error': str(e)}), 400

    errors = [{'row': r.row_number, 'message': '; '.join(r.errors)} for r in rows if not r.valid]
    warnings = [{'row': r.row_number, 'message': '; '.join(r.warnings)} for r in rows if r.warnings]

    imported = []
    try:
        columns = ('payment_code',) + PAYMENT_COLUMNS + ('created_at', 'updated_at')
        insert = f"INSERT INTO payments ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})"
        for row in rows:
            if not row.valid:
                continue
            params = {c: None for c in PAYMENT_COLUMNS}
            params.update(row.to_payment())
            params['payment_code'] = next_payment_code()
            params['created_at'] = params['updated_at'] = db.now_iso()
            db.execute(insert, params)
            imported.append(params['payment_code'])
    except Exception as e:
        current_app.logger.exception('Error importing payments')
        audit.log_action('IMPORT_FAILED', 'payments', f'Import plăți întrerupt: {e}',
                         metadata={'imported': len(imported)}, is_error=True)
        return jsonify({'error': str(e), 'imported': len(imported), 'errors': errors}), 500

    audit.log_action(
        'IMPORT_COMPLETED', 'payments', f'Import plăți: {len(imported)} create, {len(errors)} respinse',
        metadata={'imported': len(imported), 'errors': len(errors), 'codes': imported},
    )
    return jsonify({'success': True, 'imported': len(imported), 'ids': imported,
                    'errors': errors, 'warnings': warnings})


@payments_bp.route('/import/template', methods=['GET'])
@permission_required('view')
def payment_import_template():
    return file_response(BOM + PAYMENT_TEMPLATE, 'template_import_plati.csv')
