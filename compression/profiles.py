"""Named encoding profiles used by the listing forms."""

from config import settings
from schemas import EncodeRole, EncodingProfile

STANDARD = EncodingProfile(max_width_px=1280, initial_quality=0.75)

HIGH_RESOLUTION = EncodingProfile(max_width_px=1920, initial_quality=0.85)

# No budget of its own; paired with car images and reused for logos below
THUMBNAIL = EncodingProfile(
    max_width_px=500,
    initial_quality=0.85,
    role=EncodeRole.THUMBNAIL,
)

LOGO = THUMBNAIL.model_copy(
    update={"max_size_bytes": settings.logo_max_size_kb * 1024}
)

PROFILES = {
    "standard": STANDARD,
    "high-resolution": HIGH_RESOLUTION,
    "thumbnail": THUMBNAIL,
    "logo": LOGO,
}


def get_profile(name: str) -> EncodingProfile:
    """Look up a profile by name.

    Args:
        name: "standard", "high-resolution", "thumbnail" or "logo"
            (case-insensitive).

    Raises:
        ValueError: If the name is not recognized.
    """
    key = name.lower()
    if key not in PROFILES:
        raise ValueError(
            f"Invalid profile: '{name}'. Must be one of {', '.join(PROFILES)}."
        )
    return PROFILES[key]
