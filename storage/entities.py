"""Where each listing kind keeps its images."""

from dataclasses import dataclass

from config import settings


@dataclass(frozen=True)
class EntitySpec:
    name: str
    table: str
    owner_column: str
    url_column: str
    flag_column: str
    bucket: str
    thumbnail_column: str | None = None
    # Buckets that may still hold objects from before a bucket rename
    legacy_buckets: tuple[str, ...] = ()

    @property
    def buckets(self) -> tuple[str, ...]:
        return (self.bucket,) + self.legacy_buckets

    @property
    def has_thumbnails(self) -> bool:
        return self.thumbnail_column is not None


CAR_IMAGES = EntitySpec(
    name="car",
    table="car_images",
    owner_column="car_id",
    url_column="image_url",
    thumbnail_column="thumbnail_url",
    flag_column="is_main",
    bucket=settings.car_images_bucket,
)

SPARE_PART_IMAGES = EntitySpec(
    name="spare_part",
    table="spare_part_images",
    owner_column="spare_part_id",
    url_column="url",
    flag_column="is_primary",
    bucket=settings.part_images_bucket,
    legacy_buckets=("spare-parts", "spare-parts-images"),
)
