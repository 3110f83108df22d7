"""Exception taxonomy for the layer that assembles a document extraction.

Core stages never raise on missing or ambiguous data; these are reserved for
failures at the PDF, OCR and normalizer boundaries.
"""


class PlanExtractionError(Exception):
    """Base class for extraction errors."""

    pass


class PdfLoadError(PlanExtractionError):
    """The PDF could not be opened or read.

    Examples: file not found, password protected, not a PDF.
    """

    pass


class OcrUnavailable(PlanExtractionError):
    """The configured OCR engine cannot run (binary missing, bad provider)."""

    pass


class NormalizerUnavailable(PlanExtractionError):
    """The remote normalizer is unconfigured or failed.

    Always converted to a local-fallback result by the caller.
    """

    pass
