class ChequeExtractionError(Exception):
    """Raised when a cheque cannot be processed at all."""


class TextRecognitionError(ChequeExtractionError):
    """The recognition engine failed or returned no text."""


class SecondarySourceError(Exception):
    """The model-based pass failed. Never fatal to the pipeline."""
