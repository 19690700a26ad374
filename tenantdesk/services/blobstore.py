# tenantdesk/services/blobstore.py
from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tenantdesk.core.config import settings
from tenantdesk.core.errors import ValidationFailure

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredBlob:
    filename: str
    original_name: str
    size: int
    url: str


def sanitize_filename(name: Optional[str]) -> str:
    base = Path(name or "file").name
    cleaned = _UNSAFE.sub("_", base).strip("._")
    return cleaned or "file"


class LocalBlobStore:
    """Files under ``root``, served by the app at ``url_prefix``."""

    def __init__(self, root: str | Path | None = None, max_bytes: int | None = None, url_prefix: str = "/uploads"):
        self.root = Path(root or settings.upload_dir)
        self.max_bytes = max_bytes if max_bytes is not None else settings.attachment_max_bytes
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, filename: Optional[str], data: bytes) -> StoredBlob:
        if len(data) > self.max_bytes:
            raise ValidationFailure(
                f"File size exceeds maximum allowed size of {self.max_bytes / (1024 * 1024):.0f} MB"
            )
        original = filename or "file"
        stored = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{sanitize_filename(original)}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / stored).write_bytes(data)
        return StoredBlob(
            filename=stored,
            original_name=original,
            size=len(data),
            url=f"{self.url_prefix}/{stored}",
        )

    def delete(self, filename: str) -> bool:
        path = self.root / sanitize_filename(filename)
        if not path.exists():
            return False
        path.unlink()
        return True
