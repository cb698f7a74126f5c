"""
Text recognition backends.

Both backends take raw image bytes and return the full recognized text.
A failure or an empty result raises ``TextRecognitionError``: without
text there is nothing to extract.
"""
import base64
import io
import logging

import fitz  # PyMuPDF
import pytesseract
import requests
from PIL import Image

from processing.errors import TextRecognitionError

logger = logging.getLogger(__name__)

VISION_URL = "https://vision.googleapis.com/v1/images:annotate"


def convert_file_to_image_bytes(file_bytes, mime_type):
    """
    Converts the first page of a PDF to a JPEG image, or passes through other image types.
    Returns the image bytes and the new mime type.
    """
    if mime_type != 'application/pdf':
        return file_bytes, mime_type
    try:
        pdf_document = fitz.open(stream=file_bytes, filetype="pdf")
        try:
            page = pdf_document.load_page(0)
            pix = page.get_pixmap(dpi=300)
            img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        finally:
            pdf_document.close()
    except (RuntimeError, ValueError) as e:
        raise TextRecognitionError(f"Failed to convert PDF to image: {e}") from e
    img_byte_arr = io.BytesIO()
    img.save(img_byte_arr, format='JPEG')
    return img_byte_arr.getvalue(), 'image/jpeg'


def _require_text(text, engine):
    if not text or not text.strip():
        raise TextRecognitionError("Could not extract any text from the image.")
    logger.debug("%s recognized %d characters", engine, len(text))
    return text


class TesseractTextRecognition:
    """Local recognition through the Tesseract binary."""

    def __init__(self, timeout=30, lang='eng+msa', tesseract_cmd=None):
        self.timeout = timeout
        self.lang = lang
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def extract(self, image_bytes):
        try:
            img = Image.open(io.BytesIO(image_bytes))
            text = pytesseract.image_to_string(img, lang=self.lang, timeout=self.timeout)
        except RuntimeError as e:
            # TesseractError and the timeout are both RuntimeErrors
            raise TextRecognitionError(f"Tesseract OCR failed: {e}") from e
        except OSError as e:
            # Unreadable image or missing tesseract binary
            raise TextRecognitionError(f"Error processing image with OCR using pytesseract: {e}") from e
        return _require_text(text, 'tesseract')


class VisionTextRecognition:
    """Google Cloud Vision DOCUMENT_TEXT_DETECTION over the REST API."""

    def __init__(self, api_key, timeout=30, session=None):
        if not api_key:
            raise ValueError("Missing GOOGLE_VISION_API_KEY for the vision OCR engine")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def extract(self, image_bytes):
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("utf-8")},
                    "features": [{"type": "DOCUMENT_TEXT_DETECTION"}],
                }
            ]
        }
        try:
            response = self.session.post(VISION_URL, params={"key": self.api_key}, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.RequestException as e:
            raise TextRecognitionError(f"Vision OCR request failed: {e}") from e
        except ValueError as e:
            raise TextRecognitionError(f"Vision OCR returned invalid JSON: {e}") from e

        annotations = result.get("responses", [{}])[0]
        if "error" in annotations:
            raise TextRecognitionError(f"Vision OCR error: {annotations['error'].get('message', 'unknown error')}")
        full_text = annotations.get("fullTextAnnotation", {}).get("text", "")
        return _require_text(full_text, 'vision')
