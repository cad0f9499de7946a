"""Error taxonomy shared by services. Routes translate these to HTTP responses."""


class SecurePadError(Exception):
    """Base class for expected, user-facing failures."""


class PadNotFound(SecurePadError):
    """No pad exists for the slug."""


class FileNotFound(SecurePadError):
    """No attachment (or blob) exists for the id/key."""


class FileExpired(SecurePadError):
    """The attachment's retention window has elapsed."""


class Unauthorized(SecurePadError):
    """Credential mismatch for a private pad."""


class Conflict(SecurePadError):
    """Slug already taken."""


class ValidationFailed(SecurePadError):
    """Malformed slug, short password, oversized or wrong-type file."""


class UpstreamFailure(SecurePadError):
    """An external collaborator (blob store, notifier, summarizer) failed."""


class BlobStoreError(UpstreamFailure):
    """Blob store read/write/delete failed."""


class SummarizerError(UpstreamFailure):
    """Summarization service unavailable or returned no usable answer."""
