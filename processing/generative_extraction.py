"""
Model-based extraction pass (Gemini).

The model is asked for the same fields the pattern extractors produce, in
the ``{"fields": [...]}`` shape of ``SecondaryCandidate``. Whatever comes back
is parsed defensively; anything unusable raises ``SecondarySourceError``,
which the pipeline treats as a review condition rather than a crash.
"""
import json
import logging
import re
from typing import NamedTuple, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types.generation_types import BlockedPromptException, StopCandidateException
from pydantic import ValidationError

from data_models import SecondaryCandidate
from processing.errors import SecondarySourceError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'gemini-2.5-flash'

FIELD_INSTRUCTIONS = {
    'payee_name': "name written after 'PAY' / 'BAYAR', without 'OR BEARER' / 'ATAU PEMBAWA'",
    'payer_name': "account holder or company name printed above the signature line",
    'amount': "amount in figures after 'RM', digits with a decimal point only (e.g. 1250.00)",
    'amount_in_words': "amount in words after 'RINGGIT MALAYSIA', without 'ONLY' / 'SAHAJA', uppercase",
    'cheque_date': "cheque date in DD-MM-YYYY format",
    'bank_branch_code_center': "clearing code in NN-NNNNN format",
    'micr_raw': "the full MICR line along the bottom edge, as printed",
    'micr_cheque_no': "cheque serial number from the MICR line",
    'micr_bank_code': "4-digit bank code from the MICR line",
    'micr_branch_code': "3-digit branch code from the MICR line",
    'micr_payer_account_no': "payer account number from the MICR line",
    'micr_tran_code': "2-digit transaction code at the end of the MICR line",
}


class PromptContext(NamedTuple):
    text: str
    image_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None


def build_prompt(text):
    field_lines = "\n".join(f"- {name}: {description}" for name, description in FIELD_INSTRUCTIONS.items())
    return (
        "You are reading a Malaysian bank cheque. Extract the following fields:\n"
        f"{field_lines}\n"
        "If a value for a field cannot be determined, return null for its 'extracted_value'. "
        "Give each field a 'confidence_score' between 0 and 100 and a short 'rationale' when the score is below 90. "
        "Return the result as a JSON object containing a single key 'fields', which is a list of objects. "
        "Each object in the list must have keys: 'field_name', 'extracted_value', 'confidence_score' and 'rationale'.\n\n"
        "Recognized text of the cheque:\n"
        f"{text}"
    )


def parse_model_json(response_text):
    """Loads the JSON object from a model response, tolerating surrounding prose or fences."""
    try:
        return json.loads(response_text)
    except json.JSONDecodeError as e:
        match = re.search(r'\{.*\}', response_text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                pass
        raise SecondarySourceError(f"Failed to parse JSON from model response: {response_text[:200]!r}") from e


def coerce_candidate(raw):
    """
    Brings a loosely shaped model response into ``SecondaryCandidate``.
    Accepts the requested ``{"fields": [...]}`` list as well as a flat
    ``{"payee_name": ...}`` mapping.
    """
    if not isinstance(raw, dict):
        raise SecondarySourceError(f"Model response is not a JSON object: {type(raw).__name__}")

    if 'fields' not in raw:
        fields = []
        for name, value in raw.items():
            if isinstance(value, dict):
                fields.append({
                    'field_name': name,
                    'extracted_value': value.get('extracted_value', value.get('value')),
                    'confidence_score': value.get('confidence_score', value.get('confidence')),
                    'rationale': value.get('rationale', value.get('reason')),
                })
            else:
                fields.append({'field_name': name, 'extracted_value': value})
        raw = {'fields': fields}

    if not isinstance(raw['fields'], list):
        raise SecondarySourceError("Model response 'fields' is not a list")

    # Ensure all required keys and types for validation
    for field in raw['fields']:
        if not isinstance(field, dict):
            continue
        if field.get('extracted_value') is not None:
            field['extracted_value'] = str(field['extracted_value'])
        try:
            field['confidence_score'] = float(field['confidence_score'])
        except (KeyError, TypeError, ValueError):
            field['confidence_score'] = None
    raw['fields'] = [field for field in raw['fields'] if isinstance(field, dict) and field.get('field_name')]
    if not any(str(field['field_name']) in FIELD_INSTRUCTIONS for field in raw['fields']):
        raise SecondarySourceError("Model response contains none of the requested fields")

    try:
        return SecondaryCandidate.model_validate(raw)
    except ValidationError as e:
        raise SecondarySourceError(f"Model response failed validation: {e.errors()}") from e


class GeminiExtraction:
    """GenerativeExtraction backed by the Google Generative AI SDK."""

    def __init__(self, api_key, model_name=DEFAULT_MODEL, timeout=60, use_image=False):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)
        self.model_name = model_name
        self.timeout = timeout
        self.use_image = use_image

    def infer(self, context):
        contents = [build_prompt(context.text)]
        if self.use_image and context.image_bytes:
            contents.append({"mime_type": context.mime_type or 'image/jpeg', "data": context.image_bytes})

        try:
            response = self.model.generate_content(
                contents,
                generation_config={"response_mime_type": "application/json"},
                request_options={"timeout": self.timeout},
            )
            response_text = response.text
        except google_exceptions.GoogleAPIError as e:
            raise SecondarySourceError(f"{self.model_name} request failed: {e}") from e
        except (BlockedPromptException, StopCandidateException) as e:
            raise SecondarySourceError(f"{self.model_name} returned no usable candidate: {e}") from e
        except ValueError as e:
            # response.text raises when the response carries no text part
            raise SecondarySourceError(f"{self.model_name} response has no text: {e}") from e

        logger.debug("Raw %s response: %s", self.model_name, response_text)
        return coerce_candidate(parse_model_json(response_text))
