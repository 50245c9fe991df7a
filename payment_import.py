"""
payment_import.py
Payment CSV import: one payment per row, member identified by member code.

Every row is checked on its own. A row with problems is reported with all of
its messages and never blocks the valid rows.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from codes import extract_member_code_number
from csv_utils import non_blank_lines, detect_delimiter, parse_rows, clean_header, cell
from models import PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES

REQUIRED_COLUMNS = ('member_code', 'data_plata', 'suma_ron', 'metoda_plata', 'tip_plata', 'status')
OPTIONAL_COLUMNS = ('an_cotizatie', 'observatii', 'detalii_chitanta')

PAYMENT_TEMPLATE = '\r\n'.join([
    ';'.join(REQUIRED_COLUMNS + OPTIONAL_COLUMNS),
    '01001;15.01.2025;100;Numerar;Cotizație;Plătită;2025;Plata lunară;Nr. chitanță 123',
    '01002;16.01.2025;50;Transfer Bancar;Taxă de înscriere;Plătită;;Plată inițială;',
    '01003;20.01.2025;75,50;Card / Online;Cotizație;Plătită;2025;;',
])

_DISPLAY_DATE = re.compile(r'^(\d{1,2})\.(\d{1,2})\.(\d{4})$')

# lowercase spelling -> canonical value
METHOD_ALIASES = {
    'numerar': 'Numerar',
    'cash': 'Numerar',
    'transfer bancar': 'Transfer Bancar',
    'transfer': 'Transfer Bancar',
    'virament': 'Transfer Bancar',
    'card': 'Card / Online',
    'online': 'Card / Online',
    'card/online': 'Card / Online',
    'card / online': 'Card / Online',
}

TYPE_ALIASES = {
    'cotizație': 'Cotizație',
    'cotizatie': 'Cotizație',
    'taxă de înscriere': 'Taxă de înscriere',
    'taxa de inscriere': 'Taxă de înscriere',
    'inscriere': 'Taxă de înscriere',
    'taxă de reînscriere': 'Taxă de reînscriere',
    'taxa de reinscriere': 'Taxă de reînscriere',
    'reinscriere': 'Taxă de reînscriere',
}

STATUS_ALIASES = {
    'plătită': 'Plătită',
    'platita': 'Plătită',
    'achitată': 'Plătită',
    'achitata': 'Plătită',
    'scadentă': 'Scadentă',
    'scadenta': 'Scadentă',
    'restanță': 'Restanță',
    'restanta': 'Restanță',
}


class PaymentImportError(ValueError):
    """The file cannot be read at all (empty, missing columns)"""


@dataclass
class PaymentRow:
    row_number: int
    member_code: str
    member_id: str = None
    date: str = None
    amount: Decimal = None
    method: str = ''
    payment_type: str = ''
    status: str = ''
    contribution_year: int = None
    observations: str = None
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def valid(self):
        return not self.errors

    def to_payment(self):
        """Column values for an insert into payments"""
        return {
            'member_id': self.member_id,
            'date': self.date,
            'year': int(self.date[:4]),
            'amount': str(self.amount),
            'method': self.method,
            'payment_type': self.payment_type,
            'status': self.status,
            'contribution_year': self.contribution_year,
            'observations': self.observations,
            'source': 'import',
        }

    def to_dict(self):
        return {
            'row': self.row_number,
            'memberCode': self.member_code,
            'memberId': self.member_id,
            'date': self.date,
            'amount': float(self.amount) if self.amount is not None else None,
            'method': self.method,
            'paymentType': self.payment_type,
            'status': self.status,
            'contributionYear': self.contribution_year,
            'observations': self.observations,
            'valid': self.valid,
            'errors': self.errors,
            'warnings': self.warnings,
        }


def _normalize(value, aliases):
    return aliases.get(value.strip().lower(), value.strip())


def normalize_method(value):
    return _normalize(value, METHOD_ALIASES)


def normalize_payment_type(value):
    return _normalize(value, TYPE_ALIASES)


def normalize_status(value):
    return _normalize(value, STATUS_ALIASES)


def parse_display_date(value):
    """dd.mm.yyyy (day and month may be one digit) -> ISO date; None unless it is a real date"""
    match = _DISPLAY_DATE.match(re.sub(r'\s', '', value or ''))
    if not match:
        return None
    day, month, year = (int(g) for g in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_amount(value):
    """'75,50' and '75.50' -> Decimal('75.50'); None unless a positive number"""
    try:
        amount = Decimal((value or '').strip().replace(',', '.', 1))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _observations(notes, receipt_details):
    text = notes or ''
    if receipt_details:
        text += ('\n' if text else '') + f'Detalii chitanță: {receipt_details}'
    return text or None


def _check_choice(row, value, normalized, options, label):
    if normalized not in options:
        row.errors.append(f'{label} invalid: "{value}" (opțiuni: {", ".join(options)})')


def _validate_row(row_number, values, members_by_number, existing_payments):
    row = PaymentRow(row_number=row_number, member_code=values['member_code'])

    for column, message in (
        ('member_code', 'Cod membru lipsă'),
        ('data_plata', 'Dată plată lipsă'),
        ('suma_ron', 'Sumă lipsă'),
        ('metoda_plata', 'Metodă plată lipsă'),
        ('tip_plata', 'Tip plată lipsă'),
        ('status', 'Status lipsă'),
    ):
        if not values[column]:
            row.errors.append(message)

    if values['member_code']:
        number = extract_member_code_number(values['member_code'])
        if number is None:
            row.errors.append(f"Cod membru invalid: {values['member_code']}")
        elif number not in members_by_number:
            row.errors.append(f"Membru cu codul {values['member_code']} nu există")
        else:
            row.member_id = str(members_by_number[number]['id'])

    if values['data_plata']:
        row.date = parse_display_date(values['data_plata'])
        if row.date is None:
            row.errors.append('Dată invalidă (format așteptat: dd.mm.yyyy)')

    if values['suma_ron']:
        row.amount = parse_amount(values['suma_ron'])
        if row.amount is None:
            row.errors.append('Sumă invalidă (trebuie să fie un număr pozitiv)')

    if values['metoda_plata']:
        row.method = normalize_method(values['metoda_plata'])
        _check_choice(row, values['metoda_plata'], row.method, PAYMENT_METHODS, 'Metodă plată')
    if values['tip_plata']:
        row.payment_type = normalize_payment_type(values['tip_plata'])
        _check_choice(row, values['tip_plata'], row.payment_type, PAYMENT_TYPES, 'Tip plată')
    if values['status']:
        row.status = normalize_status(values['status'])
        _check_choice(row, values['status'], row.status, PAYMENT_STATUSES, 'Status')

    if values['an_cotizatie']:
        try:
            row.contribution_year = int(values['an_cotizatie'])
        except ValueError:
            row.contribution_year = None
        if row.contribution_year is None or not 2000 <= row.contribution_year <= 2100:
            row.contribution_year = None
            row.errors.append('An cotizație invalid')

    row.observations = _observations(values['observatii'], values['detalii_chitanta'])

    if row.member_id and row.date and row.amount is not None:
        if (row.member_id, row.date, row.amount) in existing_payments:
            row.warnings.append('Posibil duplicat (același membru, dată și sumă)')

    return row


def parse_payments_csv(text, members, existing_payments=()):
    """
    Validate a payment CSV against the member list.

    `existing_payments` holds (member_id, iso_date, amount) triples already
    stored; a row repeating one is still valid but carries a warning.
    Returns one PaymentRow per data line, in file order.
    """
    lines = non_blank_lines(text)
    if len(lines) < 2:
        raise PaymentImportError('Fișierul este gol sau nu conține date')

    rows = parse_rows(lines, detect_delimiter(lines[0]))
    headers = [clean_header(h) for h in rows[0]]
    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        raise PaymentImportError(f'Coloane lipsă: {", ".join(missing)}')

    members_by_number = {}
    for m in members:
        number = extract_member_code_number(m.get('member_code'))
        if number is not None:
            members_by_number.setdefault(number, m)

    existing = {(str(m), str(d)[:10], Decimal(str(a))) for m, d, a in existing_payments}

    parsed = []
    for idx, row in enumerate(rows[1:]):
        values = {c: cell(row, headers.index(c)) if c in headers else ''
                  for c in REQUIRED_COLUMNS + OPTIONAL_COLUMNS}
        parsed.append(_validate_row(idx + 2, values, members_by_number, existing))
    return parsed
