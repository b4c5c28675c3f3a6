import secrets
import string
import time
from dataclasses import dataclass

from schemas import ROLE_SUFFIXES, EncodeRole

_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class AssetPaths:
    main: str
    thumbnail: str


def _unique_base() -> str:
    """{timestamp_ms}-{6 random base36 chars}"""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{int(time.time() * 1000)}-{suffix}"


def build_asset_paths(entity_id: str | int) -> AssetPaths:
    """Storage paths for one uploaded image and its paired thumbnail."""
    base = f"{entity_id}/{_unique_base()}"
    return AssetPaths(
        main=f"{base}{ROLE_SUFFIXES[EncodeRole.FULL]}",
        thumbnail=f"{base}{ROLE_SUFFIXES[EncodeRole.THUMBNAIL]}",
    )


def build_logo_path() -> str:
    return f"logo-{_unique_base()}{ROLE_SUFFIXES[EncodeRole.FULL]}"


def extract_storage_path(url: str | None, bucket: str) -> str | None:
    """Recover the object path from a public URL.

    ".../public/car-images/42/1700000000000-abc123.webp?width=400"
    -> "42/1700000000000-abc123.webp"
    """
    if not url:
        return None
    marker = f"/{bucket}/"
    if marker not in url:
        return None
    path = url.split(marker, 1)[1].split("?", 1)[0]
    return path or None
