import struct
from enum import Enum

from exceptions import UnsupportedFormatError


class ImageFormat(str, Enum):
    PNG = "png"
    APNG = "apng"
    JPEG = "jpeg"
    WEBP = "webp"
    GIF = "gif"
    AVIF = "avif"
    HEIC = "heic"
    TIFF = "tiff"
    BMP = "bmp"


# MIME type mapping
MIME_TYPES = {
    ImageFormat.PNG: "image/png",
    ImageFormat.APNG: "image/apng",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.GIF: "image/gif",
    ImageFormat.AVIF: "image/avif",
    ImageFormat.HEIC: "image/heic",
    ImageFormat.TIFF: "image/tiff",
    ImageFormat.BMP: "image/bmp",
}


def detect_format(data: bytes) -> ImageFormat:
    """Detect image format from magic bytes.

    Never trusts file extensions: phones happily save HEIC as photo.jpg.

    Args:
        data: Raw image bytes (at least first 16 bytes needed).

    Returns:
        ImageFormat enum value.

    Raises:
        UnsupportedFormatError: If no known raster format matches.
    """
    if len(data) < 4:
        raise UnsupportedFormatError("File too small to identify format")

    # PNG: \x89PNG\r\n\x1a\n
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        if is_apng(data):
            return ImageFormat.APNG
        return ImageFormat.PNG

    # JPEG: \xFF\xD8\xFF
    if data[:3] == b"\xff\xd8\xff":
        return ImageFormat.JPEG

    # GIF: GIF87a or GIF89a
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return ImageFormat.GIF

    # WebP: RIFF....WEBP
    if data[:4] == b"RIFF" and len(data) >= 12 and data[8:12] == b"WEBP":
        return ImageFormat.WEBP

    # BMP: BM
    if data[:2] == b"BM":
        return ImageFormat.BMP

    # TIFF: II*\x00 (little-endian) or MM\x00* (big-endian)
    if data[:4] in (b"II\x2a\x00", b"MM\x00\x2a"):
        return ImageFormat.TIFF

    # AVIF / HEIC: ISO BMFF ftyp box
    if len(data) >= 12 and data[4:8] == b"ftyp":
        return _detect_isobmff(data)

    raise UnsupportedFormatError(
        "Unrecognized file format",
        detected_bytes=data[:16].hex(),
    )


def is_apng(data: bytes) -> bool:
    """Check if PNG data carries an acTL chunk before the first IDAT."""
    if data[:8] != b"\x89PNG\r\n\x1a\n":
        return False

    offset = 8  # Skip PNG signature

    while offset + 8 <= len(data):
        # Each chunk: 4-byte length + 4-byte type + data + 4-byte CRC
        chunk_length = struct.unpack(">I", data[offset : offset + 4])[0]
        chunk_type = data[offset + 4 : offset + 8]

        if chunk_type == b"acTL":
            return True
        if chunk_type == b"IDAT":
            return False

        offset += 4 + 4 + chunk_length + 4

    return False


def _detect_isobmff(data: bytes) -> ImageFormat:
    """Detect AVIF vs HEIC from the ftyp major and compatible brands."""
    major_brand = data[8:12]

    if major_brand in (b"avif", b"avis"):
        return ImageFormat.AVIF
    if major_brand in (b"heic", b"heix", b"mif1"):
        return ImageFormat.HEIC

    box_size = struct.unpack(">I", data[:4])[0]
    box_end = min(box_size, len(data))
    offset = 16  # Skip size + ftyp + major_brand + minor_version

    while offset + 4 <= box_end:
        compat_brand = data[offset : offset + 4]
        if compat_brand in (b"avif", b"avis"):
            return ImageFormat.AVIF
        if compat_brand in (b"heic", b"heix", b"mif1"):
            return ImageFormat.HEIC
        offset += 4

    raise UnsupportedFormatError(
        "ISO BMFF file with unrecognized brand",
        major_brand=major_brand.decode("ascii", errors="replace"),
    )
