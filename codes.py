"""
codes.py
Human-readable identifiers: member codes (01046), payment codes (P-000123)
and activity ids (ACT-0007).

Codes are assigned by reading the current maximum and incrementing it.
Two requests creating records at the same moment can be handed the same
code; the unique constraints on the columns reject the second insert.
"""

import re

import db

_LEGACY_MEMBER_CODE = re.compile(r'^(?:MEM-|M-|M\s?)(\d+)$', re.IGNORECASE)
_FIVE_DIGIT_CODE = re.compile(r'^(\d{5})$')
_PLAIN_CODE = re.compile(r'^(\d{1,5})$')
_PAYMENT_CODE = re.compile(r'^P-?(\d+)$', re.IGNORECASE)
_ACTIVITY_ID = re.compile(r'^ACT-(\d+)$')


def extract_member_code_number(member_code):
    """MEM-1004, M 1004, 01004 and 1004 all map to 1004"""
    if not member_code:
        return None
    member_code = member_code.strip()
    for pattern in (_LEGACY_MEMBER_CODE, _FIVE_DIGIT_CODE, _PLAIN_CODE):
        match = pattern.match(member_code)
        if match:
            return int(match.group(1))
    return None


def format_member_code(num):
    if num is None:
        return ''
    return f'{num:05d}'


def display_member_code(member_code):
    num = extract_member_code_number(member_code)
    if num is None:
        return member_code or ''
    return format_member_code(num)


def member_code_matches_search(member_code, query):
    if not member_code or not query:
        return False
    normalized_query = re.sub(r'^(mem-|m-|m\s)', '', query.lower(), flags=re.IGNORECASE)
    return normalized_query in display_member_code(member_code).lower()


def _max_member_code_number():
    rows = db.fetch_all('SELECT member_code FROM members')
    numbers = [extract_member_code_number(r['member_code']) for r in rows]
    return max([n for n in numbers if n is not None], default=0)


def next_member_code():
    return format_member_code(_max_member_code_number() + 1)


def next_member_codes(count, taken=()):
    """`count` fresh codes, all above the stored codes and any codes in `taken`"""
    numbers = [extract_member_code_number(c) for c in taken]
    start = max([_max_member_code_number()] + [n for n in numbers if n is not None]) + 1
    return [format_member_code(n) for n in range(start, start + count)]


def extract_payment_code_number(payment_code):
    if not payment_code:
        return None
    match = _PAYMENT_CODE.match(payment_code.strip())
    return int(match.group(1)) if match else None


def format_payment_code(num):
    return f'P-{num:06d}'


def next_payment_code():
    rows = db.fetch_all('SELECT payment_code FROM payments')
    numbers = [extract_payment_code_number(r['payment_code']) for r in rows]
    return format_payment_code(max([n for n in numbers if n is not None], default=0) + 1)


def next_activity_id():
    rows = db.fetch_all("SELECT id FROM activities WHERE id LIKE 'ACT-%'")
    numbers = [_ACTIVITY_ID.match(r['id'] or '') for r in rows]
    max_num = max([int(m.group(1)) for m in numbers if m], default=0)
    return f'ACT-{max_num + 1:04d}'
