"""
Error taxonomy for narration runs.

Input-validation failures raise a :class:`NarrationError` subclass that
carries its :class:`ErrorType`; the run driver records that type verbatim
in the run status.  Anything else escaping the pipeline is reported as
``CoreSystemFailure``.
"""

from enum import Enum


class ErrorType(str, Enum):
    FILE_SIZE_EXCEEDED = "FileSizeExceeded"
    FILE_NUMBER_OF_PAGES_EXCEEDED = "FileNumberOfPagesExceeded"
    INVALID_PDF_FORMAT = "InvalidPDFFormat"
    INVALID_LINK = "InvalidLink"
    SUMMARIZATION_METHOD_NOT_SUPPORTED = "SummarizationMethodNotSupported"
    CORE_SYSTEM_FAILURE = "CoreSystemFailure"


class NarrationError(Exception):
    """Base class for failures with a known :class:`ErrorType`."""

    error_type = ErrorType.CORE_SYSTEM_FAILURE

    def __init__(self, message: str = ""):
        super().__init__(message or self.error_type.value)


class FileSizeExceeded(NarrationError):
    error_type = ErrorType.FILE_SIZE_EXCEEDED


class FileNumberOfPagesExceeded(NarrationError):
    error_type = ErrorType.FILE_NUMBER_OF_PAGES_EXCEEDED


class InvalidPDFFormat(NarrationError):
    error_type = ErrorType.INVALID_PDF_FORMAT


class InvalidLink(NarrationError):
    error_type = ErrorType.INVALID_LINK


class SummarizationMethodNotSupported(NarrationError):
    error_type = ErrorType.SUMMARIZATION_METHOD_NOT_SUPPORTED


class RetriesExhaustedError(RuntimeError):
    """An external call failed on every attempt."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
