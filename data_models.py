from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

UNKNOWN = "unknown"
CANONICAL_DATE_FORMAT = "%d-%m-%Y"


class Found(BaseModel):
    kind: Literal["found"] = "found"
    value: Any
    confidence: Optional[float] = Field(default=None, ge=0, le=100)
    rationale: Optional[str] = None
    source: Literal["primary", "secondary"] = "primary"


class NotFound(BaseModel):
    kind: Literal["not_found"] = "not_found"
    reason: str


ExtractionOutcome = Union[Found, NotFound]


class MicrBlock(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    raw: str = UNKNOWN
    cheque_no: str = UNKNOWN
    bank_code: str = UNKNOWN
    branch_code: str = UNKNOWN
    payer_account_no: str = UNKNOWN
    tran_code: str = UNKNOWN


class ChequeExtraction(BaseModel):
    """The finished record handed back to the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payee_name: str = UNKNOWN
    payer_name: str = UNKNOWN
    amount: Decimal = Decimal("0")
    amount_in_words: str = UNKNOWN
    cheque_date: str = UNKNOWN
    bank_branch_code_center: str = UNKNOWN
    micr: MicrBlock = Field(default_factory=MicrBlock)
    raw_text: str
    needs_review: bool = False
    review_notes: List[str] = Field(default_factory=list)

    @field_validator('review_notes')
    @classmethod
    def dedupe_notes(cls, notes):
        # Ordered set: first occurrence wins
        return list(dict.fromkeys(notes))

    @field_serializer('amount')
    def serialize_amount(self, amount):
        return float(amount)


# Model response contract. Mirrors the field list used in the extraction prompt.
class ExtractedField(BaseModel):
    field_name: str = Field(...)
    extracted_value: Optional[str] = None
    confidence_score: Optional[float] = None
    rationale: Optional[str] = None


class SecondaryCandidate(BaseModel):
    fields: List[ExtractedField] = Field(default_factory=list)

    def get(self, field_name):
        for field in self.fields:
            if field.field_name == field_name:
                return field
        return None


class ChequeReviewUpdate(BaseModel):
    """Body of a human review edit. Only the keys sent are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    payee_name: Optional[str] = None
    payer_name: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    amount_in_words: Optional[str] = None
    cheque_date: Optional[str] = None
    bank_branch_code_center: Optional[str] = None
    micr: Optional[MicrBlock] = None

    @field_validator('cheque_date')
    @classmethod
    def check_cheque_date(cls, value):
        if value is None or value == UNKNOWN:
            return value
        # strptime raises ValueError, reported as a validation error
        datetime.strptime(value, CANONICAL_DATE_FORMAT)
        return value
