"""
MICR line location and decomposition.

The MICR band is recognised as ordinary text, so its special glyphs arrive
either as the Unicode E-13B symbols or as whatever punctuation the OCR engine
substituted for them. Fields are assigned by token length rather than by
position, which tolerates fragments that OCR noise has reordered.
"""
import logging
import re

from data_models import UNKNOWN, Found, MicrBlock, NotFound

logger = logging.getLogger(__name__)

MICR_GLYPHS = "⑆⑇⑈⑉"
MIN_MICR_DIGITS = 15
MIN_MICR_DIGITS_WITH_GLYPHS = 12
PARTIAL_MICR_CONFIDENCE = 60.0

UNPARSABLE_REASON = "MICR line unparsable."

_SEPARATOR_CLASS = r'\s' + MICR_GLYPHS + r':;|"\'<>='
_NOISE_RE = re.compile(r'[^0-9' + _SEPARATOR_CLASS + r']')
_SPLIT_RE = re.compile(r'[' + _SEPARATOR_CLASS + r']+')


def _digit_count(line):
    return sum(1 for c in line if c.isdigit())


def _glyph_count(line):
    return sum(1 for c in line if c in MICR_GLYPHS)


def locate_micr_line(lines):
    """Returns (index, line) of the most MICR-like line, or (None, None)."""
    best = None
    for index, line in enumerate(lines):
        digits = _digit_count(line)
        glyphs = _glyph_count(line)
        threshold = MIN_MICR_DIGITS_WITH_GLYPHS if glyphs else MIN_MICR_DIGITS
        if digits < threshold:
            continue
        score = (digits, glyphs)
        if best is None or score > best[0]:
            best = (score, index, line)
    if best is None:
        return None, None
    return best[1], best[2]


def split_micr_fragments(line):
    """Strips noise, splits on separators, and drops single-character fragments."""
    cleaned = _NOISE_RE.sub('', line)
    return [fragment for fragment in _SPLIT_RE.split(cleaned) if len(fragment) > 1]


def assign_micr_fields(fragments):
    """Maps fragments to MICR roles by length. Unassigned roles stay None."""
    remaining = list(enumerate(fragments))
    roles = {'cheque_no': None, 'bank_branch': None, 'payer_account_no': None, 'tran_code': None}

    def take(predicate, reverse=False):
        candidates = reversed(remaining) if reverse else remaining
        for item in list(candidates):
            if predicate(item[1]):
                remaining.remove(item)
                return item[1]
        return None

    # Trailing two-digit token first, so it cannot be mistaken for anything else
    roles['tran_code'] = take(lambda f: len(f) == 2, reverse=True)

    accounts = [item for item in remaining if len(item[1]) >= 8]
    if accounts:
        longest = max(accounts, key=lambda item: len(item[1]))
        remaining.remove(longest)
        roles['payer_account_no'] = longest[1]

    if any(len(f) == 6 for _, f in remaining):
        roles['cheque_no'] = take(lambda f: len(f) == 6)
        roles['bank_branch'] = take(lambda f: len(f) == 7)
    else:
        roles['cheque_no'] = take(lambda f: len(f) == 7)
        roles['bank_branch'] = take(lambda f: len(f) == 7)
    return roles


def decode_micr(text, lines):
    """Extraction strategy for the whole MICR block."""
    index, line = locate_micr_line(lines)
    if line is None:
        return NotFound(reason=(
            f"MICR line unparsable: no line with at least {MIN_MICR_DIGITS} digits "
            f"({MIN_MICR_DIGITS_WITH_GLYPHS} when MICR symbols are present)."
        ))

    fragments = split_micr_fragments(line)
    if len(fragments) < 4:
        logger.debug("MICR candidate on line %s gave fragments %s", index, fragments)
        return NotFound(reason=UNPARSABLE_REASON)

    roles = assign_micr_fields(fragments)
    bank_branch = roles['bank_branch']
    block = MicrBlock(
        raw=line.strip(),
        cheque_no=roles['cheque_no'] or UNKNOWN,
        bank_code=bank_branch[:4] if bank_branch else UNKNOWN,
        branch_code=bank_branch[4:] if bank_branch else UNKNOWN,
        payer_account_no=roles['payer_account_no'] or UNKNOWN,
        tran_code=roles['tran_code'] or UNKNOWN,
    )

    missing = [name for name, value in roles.items() if value is None]
    if len(missing) == len(roles):
        return NotFound(reason=UNPARSABLE_REASON)
    if missing:
        return Found(
            value=block,
            confidence=PARTIAL_MICR_CONFIDENCE,
            rationale="MICR fragments not assigned: " + ", ".join(missing),
        )
    return Found(value=block)
