import os
import tempfile
from pathlib import Path

from config import settings
from schemas import EncodedImage
from utils.logging import get_logger

logger = get_logger("assets.preview")


class PreviewHandle:
    """Locally-owned preview of a staged image.

    Backed by a temp file the form can point an <img> at. The owner must call
    release() when the asset leaves the list or the list is discarded.
    """

    def __init__(self, path: Path):
        self._path = path
        self._released = False

    @classmethod
    def create(cls, image: EncodedImage) -> "PreviewHandle":
        suffix = Path(image.filename).suffix or ".img"
        fd, name = tempfile.mkstemp(
            prefix="preview-",
            suffix=suffix,
            dir=settings.preview_dir or None,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(image.data)
        except OSError:
            Path(name).unlink(missing_ok=True)
            raise
        return cls(Path(name))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def url(self) -> str:
        return self._path.as_uri()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Free the preview file. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(
                f"Could not remove preview {self._path}: {e}",
                extra={"context": {"path": str(self._path)}},
            )

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"PreviewHandle({self._path.name}, {state})"
