import asyncio
import io
import math
from dataclasses import dataclass

from PIL import Image, ImageOps

from config import settings
from exceptions import CanvasError, DecodeError, FileTooLargeError, UnsupportedFormatError
from schemas import ROLE_SUFFIXES, EncodedImage, EncodeRole, EncodingProfile, SourceImage
from utils.format_detect import MIME_TYPES, ImageFormat, detect_format
from utils.logging import get_logger

logger = get_logger("compression.encoder")

WEBP_CONTENT_TYPE = MIME_TYPES[ImageFormat.WEBP]


def round_half_up(value: float) -> int:
    """Pixel rounding used for every dimension the encoder computes."""
    return int(math.floor(value + 0.5))


def target_dimensions(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Scale down to max_width keeping aspect ratio. Never upscales."""
    if width > max_width:
        return max_width, max(1, round_half_up(height * max_width / width))
    return width, height


def output_filename(source_name: str, role: EncodeRole) -> str:
    """Derive the encoded file name: base name + role suffix.

    "car.front.jpg" -> "car.front.webp" / "car.front_thumb.webp".
    Names without an extension (or with an empty stem) keep the whole name.
    """
    dot = source_name.rfind(".")
    base = source_name[:dot] if dot > 0 else source_name
    return f"{base}{ROLE_SUFFIXES[role]}"


def webp_quality(quality: float) -> int:
    """Map a (0, 1] quality to Pillow's 0-100 WebP scale."""
    return min(100, max(0, round_half_up(quality * 100)))


@dataclass(frozen=True)
class EncodeAttempt:
    width: int
    height: int
    quality: float
    attempt_number: int = 1

    def next(
        self,
        quality_step: float,
        quality_floor: float,
        quality_reset: float,
        resize_factor: float,
    ) -> "EncodeAttempt":
        """Lower quality by one step; below the floor, reset quality and shrink."""
        quality = self.quality - quality_step
        width, height = self.width, self.height

        if quality < quality_floor:
            quality = quality_reset
            width = max(1, round_half_up(width * resize_factor))
            height = max(1, round_half_up(height * resize_factor))

        return EncodeAttempt(width, height, quality, self.attempt_number + 1)


class AdaptiveEncoder:
    """Resize + WebP re-encode with a best-effort byte budget.

    Pipeline:
    1. Fast path: budget set and source already within it -> source unchanged,
       provided it decodes and its container is recognised
    2. Decode off the event loop (EXIF orientation applied)
    3. Scale down to the profile's max width (never up)
    4. Encode, then step quality down / shrink until the budget fits or
       max_attempts encodes have run; the last output is accepted either way
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        quality_step: float | None = None,
        quality_floor: float | None = None,
        quality_reset: float | None = None,
        resize_factor: float | None = None,
        webp_method: int | None = None,
    ):
        self.max_attempts = settings.encode_max_attempts if max_attempts is None else max_attempts
        self.quality_step = settings.encode_quality_step if quality_step is None else quality_step
        self.quality_floor = settings.encode_quality_floor if quality_floor is None else quality_floor
        self.quality_reset = settings.encode_quality_reset if quality_reset is None else quality_reset
        self.resize_factor = settings.encode_resize_factor if resize_factor is None else resize_factor
        self.webp_method = settings.webp_method if webp_method is None else webp_method

    async def encode(self, source: SourceImage, profile: EncodingProfile) -> EncodedImage:
        """Encode one user-selected image.

        Raises:
            FileTooLargeError: Source exceeds the configured upload limit.
            DecodeError: Source is not a decodable raster image.
            CanvasError: Resize or WebP encode failed / produced no bytes.
        """
        if source.size > settings.max_file_size_bytes:
            raise FileTooLargeError(
                f"File size {source.size} bytes exceeds limit of {settings.max_file_size_mb} MB",
                filename=source.filename,
                file_size=source.size,
                limit=settings.max_file_size_bytes,
            )

        budget = profile.max_size_bytes
        if budget is not None and source.size <= budget:
            passthrough = await asyncio.to_thread(self._passthrough, source)
            if passthrough is not None:
                return passthrough

        img = await asyncio.to_thread(self._decode, source)
        width, height = target_dimensions(img.width, img.height, profile.max_width_px)
        attempt = EncodeAttempt(width, height, profile.initial_quality)

        while True:
            encoded = await asyncio.to_thread(self._render_and_encode, img, attempt)
            logger.debug(
                f"Encode attempt {attempt.attempt_number}: {len(encoded)} bytes",
                extra={"context": {
                    "filename": source.filename,
                    "width": attempt.width,
                    "height": attempt.height,
                    "quality": attempt.quality,
                    "size": len(encoded),
                }},
            )

            if budget is None or len(encoded) <= budget:
                break

            if attempt.attempt_number >= self.max_attempts:
                logger.warning(
                    f"Byte budget missed for {source.filename}, keeping best effort",
                    extra={"context": {
                        "filename": source.filename,
                        "budget": budget,
                        "size": len(encoded),
                        "attempts": attempt.attempt_number,
                    }},
                )
                break

            attempt = attempt.next(
                self.quality_step,
                self.quality_floor,
                self.quality_reset,
                self.resize_factor,
            )

        logger.info(
            f"Encoded {source.filename}: {source.size} -> {len(encoded)} bytes",
            extra={"context": {
                "filename": source.filename,
                "original_size": source.size,
                "encoded_size": len(encoded),
                "attempts": attempt.attempt_number,
            }},
        )

        return EncodedImage(
            filename=output_filename(source.filename, profile.role),
            data=encoded,
            content_type=WEBP_CONTENT_TYPE,
            width=attempt.width,
            height=attempt.height,
            quality=attempt.quality,
            attempts=attempt.attempt_number,
        )

    def _passthrough(self, source: SourceImage) -> EncodedImage | None:
        """Return the source bytes as-is (name and format preserved).

        None when the container isn't one we can label with a content type;
        the caller re-encodes those instead.
        """
        try:
            fmt = detect_format(source.data)
        except UnsupportedFormatError:
            logger.debug(
                f"No passthrough for {source.filename}: unrecognised container",
                extra={"context": {"filename": source.filename}},
            )
            return None

        # Reject truncated or corrupt files even when the header looks right
        self._open(source)

        return EncodedImage(
            filename=source.filename,
            data=source.data,
            content_type=MIME_TYPES[fmt],
            reencoded=False,
        )

    def _open(self, source: SourceImage) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(source.data))
            img.load()
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeError(
                f"Could not decode {source.filename}: {e}",
                filename=source.filename,
            ) from e
        return img

    def _decode(self, source: SourceImage) -> Image.Image:
        """Decode fully and normalise to a mode WebP can hold."""
        img = self._open(source)
        try:
            img = ImageOps.exif_transpose(img)
        except (OSError, SyntaxError, ValueError) as e:
            raise DecodeError(
                f"Could not decode {source.filename}: {e}",
                filename=source.filename,
            ) from e

        has_alpha = img.mode in ("RGBA", "LA", "PA") or (
            img.mode == "P" and "transparency" in img.info
        )
        target_mode = "RGBA" if has_alpha else "RGB"
        if img.mode != target_mode:
            img = img.convert(target_mode)

        return img

    def _render_and_encode(self, img: Image.Image, attempt: EncodeAttempt) -> bytes:
        """Draw at the attempt's size and encode to WebP."""
        size = (attempt.width, attempt.height)
        try:
            surface = img if img.size == size else img.resize(size, Image.Resampling.LANCZOS)
        except (ValueError, MemoryError) as e:
            raise CanvasError(f"Could not render {size[0]}x{size[1]} surface: {e}") from e

        output = io.BytesIO()
        try:
            surface.save(
                output,
                format="WEBP",
                quality=webp_quality(attempt.quality),
                method=self.webp_method,
            )
        except (OSError, ValueError, KeyError) as e:
            raise CanvasError(f"WebP encode failed: {e}") from e

        data = output.getvalue()
        if not data:
            raise CanvasError("WebP encode produced no output")
        return data


# Module-level singleton
adaptive_encoder = AdaptiveEncoder()


async def encode_image(source: SourceImage, profile: EncodingProfile) -> EncodedImage:
    """Encode with the shared encoder configured from settings."""
    return await adaptive_encoder.encode(source, profile)
