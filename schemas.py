from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EncodeRole(str, Enum):
    FULL = "full"
    THUMBNAIL = "thumbnail"


# Output name suffix per role; storage path derivation depends on these
ROLE_SUFFIXES = {
    EncodeRole.FULL: ".webp",
    EncodeRole.THUMBNAIL: "_thumb.webp",
}


class EncodingProfile(BaseModel):
    """Parameters for one adaptive encode."""

    max_width_px: int = Field(..., gt=0)
    initial_quality: float = Field(..., gt=0, le=1)
    max_size_bytes: Optional[int] = Field(
        default=None, gt=0,
        description="Best-effort byte budget. When absent a single pass at "
        "initial_quality is accepted unconditionally.",
    )
    role: EncodeRole = EncodeRole.FULL


class SourceImage(BaseModel):
    """A user-supplied file, as selected in the listing form."""

    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class EncodedImage(BaseModel):
    """Encoder output passed to the asset list and the upload step."""

    filename: str
    data: bytes
    content_type: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[float] = None
    attempts: int = 0
    reencoded: bool = True

    @property
    def size(self) -> int:
        return len(self.data)
