"""
Reconciliation of the pattern-based pass with the model-based pass.

The pattern-based result is authoritative whenever it found something. The
model only fills gaps, except for fields listed in ``prefer_secondary``
(fields too unstructured to anchor reliably, the signer's name by default).
"""
import logging
import math
import re
from datetime import datetime

from data_models import CANONICAL_DATE_FORMAT, Found, MicrBlock, NotFound
from processing.field_extractors import CENTER_CODE_RE, parse_amount

logger = logging.getLogger(__name__)

DEFAULT_PREFER_SECONDARY = frozenset({'payer_name'})

# Values a model uses to say "not determined"
SENTINEL_VALUES = {'', 'unknown', 'n/a', 'na', 'null', 'none', 'not found', 'not_found', '-'}

MICR_SUBFIELDS = ('raw', 'cheque_no', 'bank_code', 'branch_code', 'payer_account_no', 'tran_code')

DATE_FORMATS = (
    '%d-%m-%Y',  # 15-06-2024
    '%d/%m/%Y',  # 15/06/2024
    '%d.%m.%Y',  # 15.06.2024
    '%Y-%m-%d',  # 2024-06-15
    '%d/%m/%y',  # 15/06/24
    '%d-%m-%y',  # 15-06-24
    '%d %b %Y',  # 15 Jun 2024
    '%d %B %Y',  # 15 June 2024
    '%d%m%Y',  # 15062024
    '%d%m%y',  # 150624
)


def is_sentinel(value):
    if value is None:
        return True
    return str(value).strip().lower() in SENTINEL_VALUES


def normalize_confidence(score):
    """Clamps a model score to the 0-100 scale the prompt asks for; NaN counts as missing."""
    if score is None:
        return None
    try:
        score = float(score)
    except (TypeError, ValueError):
        return None
    if math.isnan(score):
        return None
    return max(0.0, min(100.0, score))


def coerce_date(value):
    cleaned = re.sub(r'[^0-9A-Za-z\s/.\-]', '', value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).strftime(CANONICAL_DATE_FORMAT)
        except ValueError:
            continue
    return None


def coerce_amount(value):
    # Currency labels and grouping dropped; a sign is kept so negatives fail
    cleaned = re.sub(r'[^\d.\-]', '', value)
    if cleaned.startswith('-'):
        return None
    return parse_amount(cleaned)


def _secondary_found(value, field):
    return Found(
        value=value,
        confidence=normalize_confidence(field.confidence_score),
        rationale=field.rationale,
        source='secondary',
    )


def secondary_outcome(field_name, candidate):
    """Coerces the model's value for one field into an outcome."""
    if field_name == 'micr':
        return _secondary_micr(candidate)

    field = candidate.get(field_name) if candidate is not None else None
    if field is None or is_sentinel(field.extracted_value):
        return NotFound(reason=f"Model returned no value for {field_name}.")

    value = field.extracted_value.strip()
    if field_name == 'amount':
        amount = coerce_amount(value)
        if amount is None:
            return NotFound(reason=f"Model amount '{value}' is not a non-zero number.")
        return _secondary_found(amount, field)
    if field_name == 'cheque_date':
        parsed = coerce_date(value)
        if parsed is None:
            return NotFound(reason=f"Model date '{value}' is not a calendar date.")
        return _secondary_found(parsed, field)
    if field_name == 'bank_branch_code_center':
        match = CENTER_CODE_RE.search(value)
        if match is None:
            return NotFound(reason=f"Model bank branch code center '{value}' is not in NN-NNNNN form.")
        return _secondary_found(match.group(1), field)
    return _secondary_found(re.sub(r'\s+', ' ', value), field)


def _secondary_micr(candidate):
    if candidate is None:
        return NotFound(reason="Model returned no value for micr.")
    raw = candidate.get('micr_raw')
    if raw is None or is_sentinel(raw.extracted_value):
        return NotFound(reason="Model returned no MICR line.")

    parts = {}
    for name in MICR_SUBFIELDS:
        field = candidate.get('micr_' + name)
        if field is not None and not is_sentinel(field.extracted_value):
            parts[name] = field.extracted_value.strip()
    return _secondary_found(MicrBlock(**parts), raw)


def merge_field(field_name, primary, secondary, prefer_secondary=DEFAULT_PREFER_SECONDARY):
    if field_name in prefer_secondary:
        if isinstance(secondary, Found):
            return secondary
        return primary
    if isinstance(primary, Found):
        return primary
    if isinstance(secondary, Found):
        logger.info("Filled %s from the model pass", field_name)
        return secondary
    return primary


def merge_outcomes(primary_outcomes, candidate, prefer_secondary=DEFAULT_PREFER_SECONDARY):
    """
    Merges per field. ``candidate`` is None when the model pass was skipped or
    failed, in which case the primary outcomes come back unchanged.
    """
    if candidate is None:
        return dict(primary_outcomes)
    return {
        name: merge_field(name, outcome, secondary_outcome(name, candidate), prefer_secondary)
        for name, outcome in primary_outcomes.items()
    }
