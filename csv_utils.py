"""
csv_utils.py
Shared helpers for the CSV importers and exporters.
"""

import csv
import io
import re
import unicodedata
from dataclasses import dataclass, asdict

BOM = '\ufeff'

_WRAPPED_IN_QUOTES = re.compile(r'^"(.*)"$', re.DOTALL)


@dataclass
class RowError:
    row: int
    message: str
    field: str = None

    def to_dict(self):
        data = asdict(self)
        if data['field'] is None:
            data.pop('field')
        return data


def decode_upload(raw):
    """Uploaded bytes -> text. Spreadsheet exports come as UTF-8 (with or without BOM) or cp1250."""
    if isinstance(raw, str):
        return raw
    for encoding in ('utf-8-sig', 'cp1250'):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode('latin-1')


def strip_bom(text):
    return text[1:] if text.startswith(BOM) else text


def non_blank_lines(text):
    return [line for line in strip_bom(text or '').splitlines() if line.strip()]


def detect_delimiter(header_line):
    return ';' if ';' in header_line else ','


def parse_rows(lines, delimiter=','):
    """Parse pre-split lines; quoted cells are unwrapped and every cell is trimmed"""
    reader = csv.reader(lines, delimiter=delimiter, skipinitialspace=True)
    return [[cell.strip() for cell in row] for row in reader]


def parse_csv_text(text, delimiter=','):
    return parse_rows(non_blank_lines(text), delimiter)


def clean_header(cell):
    return cell.strip().strip('"').strip().lower()


def find_column(headers, *needles, exact=False):
    """Index of the first header equal to (exact) or containing one of `needles`, else -1"""
    for idx, header in enumerate(headers):
        for needle in needles:
            if (header == needle) if exact else (needle in header):
                return idx
    return -1


def cell(row, idx):
    if idx < 0 or idx >= len(row):
        return ''
    value = row[idx].strip()
    # quotes left around a cell the reader did not treat as quoted
    match = _WRAPPED_IN_QUOTES.match(value)
    return match.group(1).strip() if match else value


def normalize_text(text):
    """Lowercase, strip diacritics, trim"""
    decomposed = unicodedata.normalize('NFD', (text or '').lower())
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def collapse_spaces(text):
    return ' '.join((text or '').split()).lower()


def to_csv(headers, rows, bom=True, quote_all=False, line_terminator='\r\n'):
    """Render rows as CSV text; a BOM keeps Excel reading the file as UTF-8"""
    output = io.StringIO()
    writer = csv.writer(
        output,
        quoting=csv.QUOTE_ALL if quote_all else csv.QUOTE_MINIMAL,
        lineterminator=line_terminator,
    )
    writer.writerow(headers)
    for row in rows:
        writer.writerow(['' if v is None else v for v in row])
    content = output.getvalue()
    return (BOM + content) if bom else content
