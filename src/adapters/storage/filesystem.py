"""
Filesystem object storage adapter - Implements ObjectStorage protocol.

Writes document evidence under a root directory and returns a URL under
a configured public base. Suitable for development; production deployments
point the base URL at whatever serves that directory.
"""

import logging
from pathlib import Path

from src.domain.exceptions import UploadError

logger = logging.getLogger(__name__)


class FilesystemObjectStorage:
    """
    Implements ObjectStorage protocol on the local filesystem.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise UploadError(f"Refusing to write outside storage root: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.warning("Document upload failed for %s: %s", path, exc)
            raise UploadError(f"Could not store {path}") from exc

        logger.info("Stored %s (%s, %d bytes)", path, content_type, len(data))
        return f"{self.public_base_url}/{target.relative_to(self.root).as_posix()}"
