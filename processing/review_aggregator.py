import logging
from typing import List, NamedTuple

from data_models import NotFound
from processing.field_extractors import FIELD_LABELS
from processing.merge_policy import is_sentinel, normalize_confidence

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 90.0
DEFAULT_MANDATORY_FIELDS = ('payee_name', 'payer_name', 'amount', 'amount_in_words', 'cheque_date', 'micr')

SOURCE_NAMES = {'primary': 'pattern', 'secondary': 'model'}

# Labels for the field names the model may return
SECONDARY_FIELD_LABELS = dict(FIELD_LABELS)
SECONDARY_FIELD_LABELS.update({
    'micr_raw': FIELD_LABELS['micr'],
    'micr_cheque_no': 'MICR cheque number',
    'micr_bank_code': 'MICR bank code',
    'micr_branch_code': 'MICR branch code',
    'micr_payer_account_no': 'MICR payer account number',
    'micr_tran_code': 'MICR transaction code',
})


class ReviewNotes:
    """Insertion-ordered set of review messages."""

    def __init__(self, notes=()):
        self._notes = {}
        for note in notes:
            self.add(note)

    def add(self, note):
        self._notes.setdefault(note, None)

    def __iter__(self):
        return iter(self._notes)

    def __len__(self):
        return len(self._notes)

    def __contains__(self, note):
        return note in self._notes

    def to_list(self):
        return list(self._notes)


class ReviewStatus(NamedTuple):
    needs_review: bool
    notes: List[str]


def low_confidence_note(label, confidence, source, rationale=None):
    note = f"{label} has low confidence ({confidence:.0f}) from the {SOURCE_NAMES[source]} pass"
    if rationale:
        note += f": {rationale}"
    return note


def aggregate_review(outcomes, candidate=None, secondary_error=None,
                     mandatory_fields=DEFAULT_MANDATORY_FIELDS,
                     threshold=DEFAULT_CONFIDENCE_THRESHOLD):
    """
    Decides whether a merged record needs human review.

    Runs once, after merging. A record needs review when a mandatory field
    has no value, when any contributing value carries a confidence below the
    threshold, or when the model pass was attempted and failed. Each
    triggering condition contributes one note; identical notes collapse.
    """
    notes = ReviewNotes()

    for name, outcome in outcomes.items():
        label = FIELD_LABELS.get(name, name)
        if isinstance(outcome, NotFound):
            if name in mandatory_fields:
                notes.add(outcome.reason)
        elif outcome.confidence is not None and outcome.confidence < threshold:
            notes.add(low_confidence_note(label, outcome.confidence, outcome.source, outcome.rationale))

    if candidate is not None:
        for field in candidate.fields:
            label = SECONDARY_FIELD_LABELS.get(field.field_name)
            confidence = normalize_confidence(field.confidence_score)
            if label is None or confidence is None or is_sentinel(field.extracted_value):
                continue
            if confidence < threshold:
                notes.add(low_confidence_note(label, confidence, 'secondary', field.rationale))

    if secondary_error is not None:
        notes.add(f"Secondary extraction failed: {secondary_error}")

    needs_review = len(notes) > 0
    if needs_review:
        logger.info("Record flagged for review (%d notes)", len(notes))
    return ReviewStatus(needs_review=needs_review, notes=notes.to_list())
