"""Domain errors raised across the sync cycle."""


class SyncError(Exception):
    """Base class for sync failures."""

    error_code = "SYNC_ERROR"


class ConfigError(SyncError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ValidationError(SyncError):
    """Raised when a single listing entry cannot become a record."""

    error_code = "VALIDATION_ERROR"


class PosterError(SyncError):
    """Raised when one event's poster cannot be produced."""

    error_code = "POSTER_ERROR"


class TransportError(PosterError):
    """Raised for HTTP failures: timeouts, non-2xx responses, TLS errors."""

    error_code = "TRANSPORT_ERROR"


class CompressionCeilingError(PosterError):
    """Raised when no quality step brings the image below the size ceiling."""

    error_code = "COMPRESSION_CEILING"


class ImageDecodeError(PosterError):
    """Raised when the fetched poster bytes are not a readable image."""

    error_code = "IMAGE_DECODE_ERROR"


class StoreError(SyncError):
    """Raised when a record store or object store call fails."""

    error_code = "STORE_ERROR"


class EmptyListingError(SyncError):
    """Raised when no event was admitted and empty runs are fatal."""

    error_code = "EMPTY_LISTING"
