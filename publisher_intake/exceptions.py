"""Pipeline exceptions.

Disqualification is not an error and has no exception here; it is a normal
QualificationResult.
"""


class IntakeError(Exception):
    """Base class for publisher intake failures."""


class CompletionError(IntakeError):
    """Completion endpoint unreachable or returned unusable output after all retries."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ExtractionError(IntakeError):
    """Completion output could not be validated into a ParsedEmail."""


class PublisherResolutionError(IntakeError):
    """Publisher lookup or shadow creation failed; the email is aborted."""
