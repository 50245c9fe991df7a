from decimal import Decimal

import pytest

from payment_import import (
    parse_payments_csv, parse_display_date, parse_amount, normalize_method, normalize_payment_type,
    normalize_status, PaymentImportError, PAYMENT_TEMPLATE,
)

MEMBERS = [
    {'id': 'm1', 'member_code': '01001'},
    {'id': 'm2', 'member_code': 'MEM-1002'},
    {'id': 'm3', 'member_code': '01003'},
]

HEADER = 'member_code;data_plata;suma_ron;metoda_plata;tip_plata;status;an_cotizatie;observatii;detalii_chitanta'


def _csv(*lines):
    return '\n'.join((HEADER,) + lines)


def test_template_rows_are_all_valid():
    rows = parse_payments_csv(PAYMENT_TEMPLATE, MEMBERS)
    assert [r.valid for r in rows] == [True, True, True]
    first, second, third = rows
    assert first.row_number == 2
    assert first.to_payment() == {
        'member_id': 'm1', 'date': '2025-01-15', 'year': 2025, 'amount': '100',
        'method': 'Numerar', 'payment_type': 'Cotizație', 'status': 'Plătită',
        'contribution_year': 2025, 'observations': 'Plata lunară\nDetalii chitanță: Nr. chitanță 123',
        'source': 'import',
    }
    # legacy code MEM-1002 matches 01002
    assert second.member_id == 'm2'
    assert second.contribution_year is None
    assert third.amount == Decimal('75.50')
    assert third.observations is None


def test_normalizers_accept_common_spellings():
    assert normalize_method('CASH') == 'Numerar'
    assert normalize_method(' virament ') == 'Transfer Bancar'
    assert normalize_method('card/online') == 'Card / Online'
    assert normalize_method('Cec') == 'Cec'
    assert normalize_payment_type('taxa de inscriere') == 'Taxă de înscriere'
    assert normalize_payment_type('Reinscriere') == 'Taxă de reînscriere'
    assert normalize_status('achitata') == 'Plătită'
    assert normalize_status('RESTANTA') == 'Restanță'


def test_parse_display_date():
    assert parse_display_date('5.1.2025') == '2025-01-05'
    assert parse_display_date('29.02.2024') == '2024-02-29'
    assert parse_display_date('29.02.2025') is None
    assert parse_display_date('2025-01-15') is None
    assert parse_display_date('') is None


def test_parse_amount():
    assert parse_amount('75,50') == Decimal('75.50')
    assert parse_amount(' 10 ') == Decimal('10')
    assert parse_amount('0') is None
    assert parse_amount('-5') is None
    assert parse_amount('zece') is None
    assert parse_amount('NaN') is None


def test_row_errors_are_collected_per_row():
    rows = parse_payments_csv(_csv(
        '01001;15.01.2025;100;Numerar;Cotizație;Plătită;;;',
        'abc;31.02.2025;0;Cec;Donație;Anulată;1999;;',
        '09999;;;;;;;;',
    ), MEMBERS)

    assert rows[0].valid
    assert rows[1].errors == [
        'Cod membru invalid: abc',
        'Dată invalidă (format așteptat: dd.mm.yyyy)',
        'Sumă invalidă (trebuie să fie un număr pozitiv)',
        'Metodă plată invalid: "Cec" (opțiuni: Numerar, Card / Online, Transfer Bancar)',
        'Tip plată invalid: "Donație" (opțiuni: Taxă de înscriere, Cotizație, Taxă de reînscriere)',
        'Status invalid: "Anulată" (opțiuni: Plătită, Scadentă, Restanță)',
        'An cotizație invalid',
    ]
    assert rows[2].errors == [
        'Dată plată lipsă', 'Sumă lipsă', 'Metodă plată lipsă', 'Tip plată lipsă', 'Status lipsă',
        'Membru cu codul 09999 nu există',
    ]
    assert rows[2].to_dict()['valid'] is False


def test_repeated_payment_is_flagged_but_still_valid():
    existing = [('m1', '2025-01-15', 100.0)]
    rows = parse_payments_csv(_csv(
        '01001;15.01.2025;100,00;numerar;cotizatie;platita;;;',
        '01001;16.01.2025;100;numerar;cotizatie;platita;;;',
    ), MEMBERS, existing)
    assert rows[0].valid
    assert rows[0].warnings == ['Posibil duplicat (același membru, dată și sumă)']
    assert rows[1].warnings == []


def test_comma_delimited_file_with_bom_and_upper_case_headers():
    text = '\ufeffMEMBER_CODE,Data_Plata,SUMA_RON,Metoda_Plata,Tip_Plata,Status\n1003,1.2.2025,20,Card,Cotizatie,Platita\n'
    rows = parse_payments_csv(text, MEMBERS)
    assert rows[0].valid
    assert rows[0].member_id == 'm3'
    assert rows[0].method == 'Card / Online'


@pytest.mark.parametrize('text, message', [
    ('', 'Fișierul este gol sau nu conține date'),
    (HEADER, 'Fișierul este gol sau nu conține date'),
    ('member_code;suma_ron\n01001;5', 'Coloane lipsă: data_plata, metoda_plata, tip_plata, status'),
])
def test_unreadable_files(text, message):
    with pytest.raises(PaymentImportError) as exc:
        parse_payments_csv(text, MEMBERS)
    assert str(exc.value) == message
