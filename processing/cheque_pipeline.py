"""
Cheque extraction pipeline.

normalize -> primary extractors -> model pass (once) -> merge -> review.
Only a recognition failure is fatal; every other problem ends up as a
sentinel value plus a review note on the returned record.
"""
import logging
import mimetypes
import os
from concurrent.futures import ThreadPoolExecutor

from data_models import UNKNOWN, ChequeExtraction, Found, MicrBlock
from processing.errors import SecondarySourceError, TextRecognitionError
from processing.field_extractors import PRIMARY_EXTRACTORS
from processing.generative_extraction import GeminiExtraction, PromptContext
from processing.merge_policy import DEFAULT_PREFER_SECONDARY, merge_outcomes
from processing.review_aggregator import (DEFAULT_CONFIDENCE_THRESHOLD, DEFAULT_MANDATORY_FIELDS,
                                          aggregate_review)
from processing.text_normalizer import TextNormalizer
from processing.text_recognition import (TesseractTextRecognition, VisionTextRecognition,
                                         convert_file_to_image_bytes)

logger = logging.getLogger(__name__)


def run_primary_extractors(text, extractors=PRIMARY_EXTRACTORS, max_workers=0):
    """Runs every extractor over the same normalized text; returns outcomes keyed by field."""
    lines = text.split('\n')
    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {name: executor.submit(extractor, text, lines) for name, extractor in extractors.items()}
            return {name: future.result() for name, future in futures.items()}
    return {name: extractor(text, lines) for name, extractor in extractors.items()}


def build_record(outcomes, raw_text, review):
    values = {name: outcome.value for name, outcome in outcomes.items() if isinstance(outcome, Found)}
    return ChequeExtraction(
        payee_name=values.get('payee_name', UNKNOWN),
        payer_name=values.get('payer_name', UNKNOWN),
        amount=values.get('amount', 0),
        amount_in_words=values.get('amount_in_words', UNKNOWN),
        cheque_date=values.get('cheque_date', UNKNOWN),
        bank_branch_code_center=values.get('bank_branch_code_center', UNKNOWN),
        micr=values.get('micr', MicrBlock()),
        raw_text=raw_text,
        needs_review=review.needs_review,
        review_notes=review.notes,
    )


def read_image_reference(image, mime_type=None):
    """Accepts a file path or raw bytes; returns (bytes, mime type)."""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image), mime_type or 'image/jpeg'
    path = os.fspath(image)
    with open(path, 'rb') as image_file:
        data = image_file.read()
    return data, mime_type or mimetypes.guess_type(path)[0] or 'image/jpeg'


class ChequePipeline:
    """
    Turns a cheque image into a ``ChequeExtraction``.

    ``text_recognition`` must provide ``extract(image_bytes) -> str`` and
    ``generative_extraction`` (optional) ``infer(PromptContext) ->
    SecondaryCandidate``. Instances hold configuration only, so one pipeline
    can serve concurrent requests.
    """

    def __init__(self, text_recognition, generative_extraction=None, normalizer=None,
                 extractors=PRIMARY_EXTRACTORS,
                 mandatory_fields=DEFAULT_MANDATORY_FIELDS,
                 prefer_secondary=DEFAULT_PREFER_SECONDARY,
                 confidence_threshold=DEFAULT_CONFIDENCE_THRESHOLD,
                 max_workers=0):
        self.text_recognition = text_recognition
        self.generative_extraction = generative_extraction
        self.normalizer = normalizer or TextNormalizer()
        self.extractors = extractors
        self.mandatory_fields = tuple(mandatory_fields)
        self.prefer_secondary = frozenset(prefer_secondary)
        self.confidence_threshold = confidence_threshold
        self.max_workers = max_workers

    def extract_cheque(self, image, mime_type=None):
        image_bytes, mime_type = read_image_reference(image, mime_type)
        image_bytes, mime_type = convert_file_to_image_bytes(image_bytes, mime_type)

        raw_text = self.text_recognition.extract(image_bytes)
        if not raw_text or not raw_text.strip():
            raise TextRecognitionError("Could not extract any text from the image.")
        text = self.normalizer(raw_text)
        logger.debug("Normalized OCR text:\n%s", text)

        primary = run_primary_extractors(text, self.extractors, self.max_workers)

        candidate, secondary_error = None, None
        if self.generative_extraction is not None:
            try:
                candidate = self.generative_extraction.infer(PromptContext(text, image_bytes, mime_type))
            except SecondarySourceError as e:
                logger.warning("Secondary extraction failed, keeping pattern results: %s", e)
                secondary_error = str(e)

        merged = merge_outcomes(primary, candidate, self.prefer_secondary)
        review = aggregate_review(merged, candidate, secondary_error,
                                  self.mandatory_fields, self.confidence_threshold)
        return build_record(merged, text, review)


def build_text_recognition(config):
    engine = config.get('OCR_ENGINE', 'tesseract')
    if engine == 'vision':
        return VisionTextRecognition(config.get('GOOGLE_VISION_API_KEY'), timeout=config.get('OCR_TIMEOUT', 30))
    if engine == 'tesseract':
        return TesseractTextRecognition(
            timeout=config.get('OCR_TIMEOUT', 30),
            lang=config.get('TESSERACT_LANG', 'eng'),
            tesseract_cmd=config.get('TESSERACT_CMD'),
        )
    raise ValueError(f"Unsupported OCR_ENGINE: {engine}")


def build_pipeline(config):
    """Builds a pipeline from a Flask-style config mapping."""
    generative = None
    if config.get('GEMINI_API_KEY'):
        generative = GeminiExtraction(
            config['GEMINI_API_KEY'],
            model_name=config.get('GEMINI_MODEL', 'gemini-2.5-flash'),
            timeout=config.get('GEMINI_TIMEOUT', 60),
            use_image=config.get('GEMINI_USE_IMAGE', False),
        )
    else:
        logger.info("GEMINI_API_KEY not set; running pattern extraction only")

    return ChequePipeline(
        build_text_recognition(config),
        generative,
        normalizer=TextNormalizer(config.get('BOILERPLATE_PHRASES', ())),
        mandatory_fields=config.get('MANDATORY_FIELDS', DEFAULT_MANDATORY_FIELDS),
        prefer_secondary=config.get('PREFER_SECONDARY_FIELDS', DEFAULT_PREFER_SECONDARY),
        confidence_threshold=config.get('REVIEW_CONFIDENCE_THRESHOLD', DEFAULT_CONFIDENCE_THRESHOLD),
        max_workers=config.get('EXTRACTOR_WORKERS', 0),
    )
