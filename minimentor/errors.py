# minimentor/errors.py


class MentorError(Exception):
    """Base class for every error raised by the mentor core."""

    error_type = "mentor_error"


class ConfigurationError(MentorError):
    """Missing or invalid configuration (e.g. no provider credentials)."""

    error_type = "configuration_error"


class ValidationError(MentorError):
    """Empty or malformed input, rejected before any provider call."""

    error_type = "validation_error"


class ProviderError(MentorError):
    """A chat, image or speech provider call failed."""

    error_type = "provider_error"

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind} provider call failed: {message}")
        self.kind = kind


class StorageCapacityError(MentorError):
    """The storage medium refused a write because it would exceed its quota."""

    error_type = "storage_capacity_error"


class DataIntegrityError(MentorError):
    """Persisted records carry duplicate or missing ids."""

    error_type = "data_integrity_error"

    def __init__(self, message: str, offending: list[int] | None = None):
        super().__init__(message)
        self.offending = offending or []
