class ShowroomError(Exception):
    """Base exception for all listing media errors."""

    error_code: str = "internal_error"

    def __init__(self, message: str, **kwargs):
        self.message = message
        self.details = kwargs
        super().__init__(message)


class DecodeError(ShowroomError):
    """Source bytes are not a decodable raster image."""

    error_code = "decode_failed"


class CanvasError(ShowroomError):
    """Rendering surface unavailable or the encoder produced no output."""

    error_code = "canvas_failed"


class UnsupportedFormatError(ShowroomError):
    """File format not recognized via magic bytes."""

    error_code = "unsupported_format"


class FileTooLargeError(ShowroomError):
    """Source file exceeds maximum allowed size."""

    error_code = "file_too_large"


class CapacityExceeded(ShowroomError):
    """More images than the listing tier allows."""

    error_code = "capacity_exceeded"


class IndexOutOfRange(ShowroomError):
    """Stale or invalid position in an asset list."""

    error_code = "index_out_of_range"


class StorageError(ShowroomError):
    """Object storage upload or removal failed."""

    error_code = "storage_failed"


class RecordStoreError(ShowroomError):
    """Asset metadata read or write failed."""

    error_code = "record_store_failed"
