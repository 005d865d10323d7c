class CareFollowError(Exception):
    """Base error for all user-facing carefollow exceptions."""

    kind = "error"


class ConfigurationError(CareFollowError):
    """Raised when configuration is invalid or incomplete."""

    kind = "configuration_error"


class ProjectNotInitializedError(CareFollowError):
    """Raised when .carefollow metadata is missing."""


class ValidationError(CareFollowError):
    """Raised when request fields fail basic validation."""

    kind = "validation_error"


class GenerationError(CareFollowError):
    """Raised when the text generation service fails or returns unusable output."""

    kind = "generation_error"


class GateError(CareFollowError):
    """Base for rejections raised by the verification gate."""

    kind = "gate_error"


class NotFound(GateError):
    """Raised when no record exists for the requested id."""

    kind = "not_found"


class Expired(GateError):
    """Raised when the one-time code is past its expiry."""

    kind = "expired"


class AttemptsExceeded(GateError):
    """Raised when the attempt limit for the current code has been reached."""

    kind = "attempts_exceeded"


class InvalidCode(GateError):
    """Raised when the supplied code does not match. The attempt still counts."""

    kind = "invalid_code"


class Unauthorized(GateError):
    """Raised when an operation needs a verified record."""

    kind = "unauthorized"


class ConsentRequired(GateError):
    """Raised unless consent is given as the boolean True."""

    kind = "consent_required"


class InvalidAnswers(GateError):
    """Raised when submitted answers do not match the expected shape."""

    kind = "invalid_answers"


class PendingConsent(GateError):
    """Raised when the subject has not yet consented to disclosure."""

    kind = "pending_consent"


class Forbidden(GateError):
    """Raised when the requester does not own the case."""

    kind = "forbidden"


class DeliveryError(CareFollowError):
    """Raised when a delivery channel is misconfigured."""

    kind = "delivery_error"
