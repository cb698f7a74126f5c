"""
Pattern-based field extractors for cheque text.

Every extractor is a pure function ``(text, lines) -> Found | NotFound``.
Extractors first locate a label (English or Malay) and only then search a
short window after it, so that look-alike numbers elsewhere on the cheque
(MICR digits, account numbers, printed serials) are never picked up.
"""
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation

from data_models import CANONICAL_DATE_FORMAT, Found, NotFound
from processing.micr_decoder import decode_micr, locate_micr_line

logger = logging.getLogger(__name__)

PAYEE_ANCHORS = (r'PAY', r'BAYAR')
PAYER_ANCHORS = (r'SIGNATURE', r'TANDATANGAN')
DATE_ANCHORS = (r'DATE', r'TARIKH')
AMOUNT_ANCHORS = (r'RM', r'MYR')
AMOUNT_WORDS_ANCHORS = (r'RINGGIT\s+MALAYSIA', r'MALAYSIA\s*/')
AMOUNT_WORDS_TERMINATORS = (r'ONLY', r'SAHAJA')
CENTER_CODE_ANCHORS = (r'BRANCH', r'CAWANGAN', r'KOD', r'CODE')

DATE_WINDOW_LINES = 2
AMOUNT_WINDOW_LINES = 1
AMOUNT_WORDS_WINDOW_LINES = 2
CENTER_CODE_WINDOW_LINES = 1

MIN_PAYER_LENGTH = 3
# Largest value the cheques.amount column (Numeric(14, 2)) holds
MAX_AMOUNT = Decimal('999999999999.99')
REPAIRED_DATE_CONFIDENCE = 75.0
UNREPAIRED_DATE_CONFIDENCE = 40.0

# OCR commonly reads a leading 0 as one of these
MONTH_LEADING_CONFUSABLES = ('8', '6', '9')

NUMBER_WORDS = {
    # English
    'ZERO', 'ONE', 'TWO', 'THREE', 'FOUR', 'FIVE', 'SIX', 'SEVEN', 'EIGHT', 'NINE',
    'TEN', 'ELEVEN', 'TWELVE', 'THIRTEEN', 'FOURTEEN', 'FIFTEEN', 'SIXTEEN',
    'SEVENTEEN', 'EIGHTEEN', 'NINETEEN', 'TWENTY', 'THIRTY', 'FORTY', 'FIFTY',
    'SIXTY', 'SEVENTY', 'EIGHTY', 'NINETY', 'HUNDRED', 'THOUSAND', 'MILLION',
    # Malay
    'SATU', 'DUA', 'TIGA', 'EMPAT', 'LIMA', 'ENAM', 'TUJUH', 'LAPAN', 'SEMBILAN',
    'SEPULUH', 'SEBELAS', 'BELAS', 'PULUH', 'SERATUS', 'RATUS', 'SERIBU', 'RIBU',
    'JUTA', 'SEJUTA',
}

PAYEE_SUFFIX_RE = re.compile(r'\s*\b(?:OR\s+BEARER|ATAU\s+PEMBAWA|OR\s+ORDER|ATAU\s+PERINTAH)\b.*$', re.IGNORECASE)
CENTER_CODE_RE = re.compile(r'(?<!\d)(\d{2}-\d{5})(?!\d)')
AMOUNT_DIGITS_RE = re.compile(r'\d+(?:\.\d+)?')


def _anchor_regex(anchors):
    # Letter-bounded rather than \b so that "RM1,250.00" still anchors on RM
    return re.compile(r'(?<![A-Za-z])(?:' + '|'.join(anchors) + r')(?![A-Za-z])', re.IGNORECASE)


_PAYEE_RE = _anchor_regex(PAYEE_ANCHORS)
_PAYER_RE = _anchor_regex(PAYER_ANCHORS)
_DATE_RE = _anchor_regex(DATE_ANCHORS)
_AMOUNT_RE = _anchor_regex(AMOUNT_ANCHORS)
_AMOUNT_WORDS_RE = _anchor_regex(AMOUNT_WORDS_ANCHORS)
_CENTER_CODE_ANCHOR_RE = _anchor_regex(CENTER_CODE_ANCHORS)


def find_anchor(lines, anchor_re, last=False):
    """Returns (line_index, end_offset) of the first line carrying the anchor."""
    for index, line in enumerate(lines):
        matches = list(anchor_re.finditer(line))
        if matches:
            match = matches[-1] if last else matches[0]
            return index, match.end()
    return None, None


def anchor_segments(lines, index, offset, extra_lines):
    """Remainder of the anchor line, then up to ``extra_lines`` following lines."""
    return [lines[index][offset:]] + list(lines[index + 1:index + 1 + extra_lines])


def anchor_window(lines, index, offset, extra_lines):
    return '\n'.join(anchor_segments(lines, index, offset, extra_lines))


def first_match(segments, patterns):
    """
    Ordered fallback chain. Segments are tried nearest first and, within a
    segment, patterns in priority order; the first hit is final.
    """
    for segment in segments:
        for name, pattern in patterns:
            match = pattern.search(segment)
            if match:
                return name, match
    return None, None


def _strip_label_punctuation(value):
    return re.sub(r'^[\s:/.\-]+|[\s:/.\-]+$', '', value)


# --- Payee ---

def extract_payee_name(text, lines):
    index, offset = find_anchor(lines, _PAYEE_RE, last=True)
    if index is None:
        return NotFound(reason="Could not parse payee name: no 'PAY'/'BAYAR' label found.")

    candidate = _strip_label_punctuation(lines[index][offset:])
    if not candidate:
        following = [line.strip() for line in lines[index + 1:] if line.strip()]
        candidate = following[0] if following else ''
    candidate = PAYEE_SUFFIX_RE.sub('', candidate)
    candidate = re.sub(r'\s+', ' ', candidate).strip()

    if not candidate:
        return NotFound(reason="Could not parse payee name: nothing follows the 'PAY'/'BAYAR' label.")
    if sum(1 for c in candidate if c.isalpha()) < 2:
        return NotFound(reason=f"Payee name '{candidate}' found after 'PAY' label is not a name.")
    return Found(value=candidate)


# --- Payer (signer) ---

def extract_payer_name(text, lines):
    """
    Signer names are not labelled, so use the line printed just above the
    signature label instead.
    """
    index, _ = find_anchor(lines, _PAYER_RE)
    if index is None:
        return NotFound(reason="Could not parse payer name: no 'SIGNATURE'/'TANDATANGAN' line found.")

    previous = [line for line in lines[:index] if line.strip()]
    if not previous:
        return NotFound(reason="Could not parse payer name: no line above the signature line.")

    candidate = re.sub(r'[^A-Za-z\s]', '', previous[-1])
    candidate = re.sub(r'\s+', ' ', candidate).strip()
    if len(candidate) < MIN_PAYER_LENGTH:
        return NotFound(
            reason=f"Could not parse payer name: candidate '{candidate}' above the signature line is too short."
        )
    return Found(value=candidate)


# --- Amount in figures ---

_AMOUNT_PATTERNS = (
    ('with cents', re.compile(r'[\w,]+\.\w{2}(?!\w)')),
    ('whole', re.compile(r'[\w,]+')),
)


def parse_amount(raw):
    """Parses a figure string to a positive Decimal, or returns None."""
    cleaned = raw.strip('*#=-').replace(',', '')
    # Plain digits only, so exponent forms and NaN never parse
    if not AMOUNT_DIGITS_RE.fullmatch(cleaned):
        return None
    try:
        value = Decimal(cleaned).quantize(Decimal('0.01'))
    except InvalidOperation:
        return None
    if value <= 0 or value > MAX_AMOUNT:
        return None
    return value


def extract_amount(text, lines):
    index, offset = find_anchor(lines, _AMOUNT_RE)
    if index is None:
        return NotFound(reason="Could not parse amount in figures: no 'RM' label found.")

    segments = anchor_segments(lines, index, offset, AMOUNT_WINDOW_LINES)
    _, match = first_match(segments, _AMOUNT_PATTERNS)
    if match is None:
        return NotFound(reason="Could not parse amount in figures: no figure after the 'RM' label.")

    raw = match.group(0)
    value = parse_amount(raw)
    if value is None:
        return NotFound(reason=f"Amount in figures '{raw}' found after 'RM' is not a valid positive number.")
    return Found(value=value)


# --- Amount in words ---

def extract_amount_in_words(text, lines):
    index, offset = find_anchor(lines, _AMOUNT_WORDS_RE, last=True)
    if index is None:
        return NotFound(reason="Could not parse amount in words: no 'RINGGIT MALAYSIA' label found.")

    window = anchor_window(lines, index, offset, AMOUNT_WORDS_WINDOW_LINES).lstrip(' \t:/.')
    terminator = '|'.join(AMOUNT_WORDS_TERMINATORS)
    match = re.search(r'^\s*([A-Z\s\-]+?)\s*\b(?:' + terminator + r')\b', window, re.IGNORECASE)
    if not match:
        return NotFound(reason="Could not parse amount in words: no text ending in 'ONLY'/'SAHAJA' after the label.")

    words = re.sub(r'\s+', ' ', match.group(1).replace('-', ' ')).strip().upper()
    if not any(word in NUMBER_WORDS for word in words.split()):
        return NotFound(reason=f"Amount in words '{words}' contains no number words.")
    return Found(value=words)


# --- Cheque date ---

_DATE_PATTERNS = (
    ('delimited', re.compile(r'(?<!\d)(\d{1,2})\s*[/.\-]\s*(\d{1,2})\s*[/.\-]\s*(\d{4}|\d{2})(?!\d)')),
    ('grouped', re.compile(r'(?<!\d)(\d{2})[ \t]+(\d{2})[ \t]+(\d{4}|\d{2})(?!\d)')),
    ('ddmmyyyy', re.compile(r'(?<!\d)(\d{2})(\d{2})(\d{4})(?!\d)')),
    ('ddmmyy', re.compile(r'(?<!\d)(\d{2})(\d{2})(\d{2})(?!\d)')),
    ('spaced ddmmyyyy', re.compile(r'(?<!\d)(\d[ \t]+\d)[ \t]+(\d[ \t]+\d)[ \t]+(\d[ \t]+\d[ \t]+\d[ \t]+\d)(?![ \t]*\d)')),
    ('spaced ddmmyy', re.compile(r'(?<!\d)(\d[ \t]+\d)[ \t]+(\d[ \t]+\d)[ \t]+(\d[ \t]+\d)(?![ \t]*\d)')),
)


def match_date(segments):
    """Returns (day, month, year, raw) tokens of the first chain match, or None."""
    name, match = first_match(segments, _DATE_PATTERNS)
    if match is None:
        return None
    day, month, year = (re.sub(r'\s', '', group) for group in match.groups())
    logger.debug("Date matched by %s pattern: %r", name, match.group(0))
    return day, month, year, match.group(0)


def repair_month(month):
    """Reinterprets an OCR-garbled two-digit month, or returns None."""
    if len(month) == 2 and month[0] in MONTH_LEADING_CONFUSABLES and month[1] != '0':
        return month[1]
    return None


def _build_date(day, month, year):
    if len(year) == 2:
        year = '20' + year
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def extract_cheque_date(text, lines):
    index, offset = find_anchor(lines, _DATE_RE)
    if index is None:
        return NotFound(reason="Could not parse cheque date: no 'DATE'/'TARIKH' label found.")

    matched = match_date(anchor_segments(lines, index, offset, DATE_WINDOW_LINES))
    if matched is None:
        return NotFound(reason="Could not parse cheque date: no date pattern after the 'DATE'/'TARIKH' label.")

    day, month, year, raw = matched
    if not 1 <= int(month) <= 12:
        repaired = repair_month(month)
        if repaired is None:
            full_year = year if len(year) == 4 else '20' + year
            return Found(
                value=f"{day.zfill(2)}-{month}-{full_year}",
                confidence=UNREPAIRED_DATE_CONFIDENCE,
                rationale=f"Month '{month}' in '{raw.strip()}' is out of range and could not be repaired.",
            )
        parsed = _build_date(day, repaired, year)
        if parsed is None:
            return NotFound(reason=f"Cheque date '{raw.strip()}' is not a valid calendar date.")
        return Found(
            value=parsed.strftime(CANONICAL_DATE_FORMAT),
            confidence=REPAIRED_DATE_CONFIDENCE,
            rationale=f"Month '{month}' read as '{repaired.zfill(2)}'.",
        )

    parsed = _build_date(day, month, year)
    if parsed is None:
        return NotFound(reason=f"Cheque date '{raw.strip()}' is not a valid calendar date.")
    return Found(value=parsed.strftime(CANONICAL_DATE_FORMAT))


# --- Bank / branch code center ---

def extract_bank_branch_code_center(text, lines):
    index, offset = find_anchor(lines, _CENTER_CODE_ANCHOR_RE)
    if index is not None:
        match = CENTER_CODE_RE.search(anchor_window(lines, index, offset, CENTER_CODE_WINDOW_LINES))
        if match:
            return Found(value=match.group(1))

    # The code is also printed inside the MICR band
    _, micr_line = locate_micr_line(lines)
    if micr_line is not None:
        match = CENTER_CODE_RE.search(micr_line)
        if match:
            return Found(value=match.group(1))
    return NotFound(
        reason="Could not parse bank branch code center: no NN-NNNNN code near a branch label or on the MICR line."
    )


# Registry in record order. Extractors share no state and may run in any order.
PRIMARY_EXTRACTORS = {
    'payee_name': extract_payee_name,
    'payer_name': extract_payer_name,
    'amount': extract_amount,
    'amount_in_words': extract_amount_in_words,
    'cheque_date': extract_cheque_date,
    'bank_branch_code_center': extract_bank_branch_code_center,
    'micr': decode_micr,
}

FIELD_LABELS = {
    'payee_name': 'Payee name',
    'payer_name': 'Payer name',
    'amount': 'Amount in figures',
    'amount_in_words': 'Amount in words',
    'cheque_date': 'Cheque date',
    'bank_branch_code_center': 'Bank branch code center',
    'micr': 'MICR line',
}
