from dataclasses import dataclass
from enum import Enum

from compression import profiles
from compression.encoder import encode_image
from config import settings
from schemas import EncodedImage, EncodingProfile, SourceImage


class ListingKind(str, Enum):
    CAR = "car"
    SPARE_PART = "spare_part"
    DEALER_LOGO = "dealer_logo"


@dataclass(frozen=True)
class ListingTier:
    max_images: int
    profile: EncodingProfile

    async def encode(self, source: SourceImage) -> EncodedImage:
        """Encode with this tier's profile; pass as add_staged's encode_fn."""
        return await encode_image(source, self.profile)


def listing_tier(kind: ListingKind, featured: bool = False) -> ListingTier:
    """Image limits and encode profile for a listing form.

    Featured listings (and admins acting on any listing) get more images;
    featured cars are also encoded at high resolution.
    """
    if kind == ListingKind.CAR:
        if featured:
            return ListingTier(settings.car_featured_max_images, profiles.HIGH_RESOLUTION)
        return ListingTier(settings.car_max_images, profiles.STANDARD)

    if kind == ListingKind.SPARE_PART:
        max_images = settings.part_featured_max_images if featured else settings.part_max_images
        return ListingTier(max_images, profiles.STANDARD)

    return ListingTier(1, profiles.LOGO)
