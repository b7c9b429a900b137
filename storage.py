"""
Object storage for uploaded scans.

Files live under UPLOAD_DIR, addressed by a slash-separated object path such
as `uploads/ECR-.../uploadPhoto_photo.png`. Public URLs are
STORAGE_PUBLIC_BASE_URL + "/" + path; the app serves them from /files/<path>.
"""
from __future__ import annotations

import logging
import mimetypes
import os
from urllib.parse import quote


_log = logging.getLogger("storage")


class StorageError(Exception):
    pass


class ObjectStorage:
    def __init__(self, root_dir: str, public_base_url: str = "/files"):
        self.root_dir = os.path.abspath(root_dir or "./uploads")
        self.public_base_url = str(public_base_url or "/files").rstrip("/")

    def _resolve(self, path: str) -> str:
        clean = str(path or "").strip().lstrip("/")
        if not clean or "\\" in clean or any(part in {"", ".", ".."} for part in clean.split("/")):
            raise StorageError(f"Invalid object path: {path!r}")
        full = os.path.abspath(os.path.join(self.root_dir, *clean.split("/")))
        if not full.startswith(self.root_dir + os.sep):
            raise StorageError(f"Invalid object path: {path!r}")
        return full

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(str(path).lstrip('/'))}"

    def upload(self, path: str, data: bytes, content_type: str = "") -> str:
        full = self._resolve(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as f:
                f.write(data or b"")
        except OSError as e:
            _log.error("upload failed path=%s: %s", path, e)
            raise StorageError("Upload failed") from e
        _log.info("stored object path=%s size=%d type=%s", path, len(data or b""), content_type or "-")
        return self.public_url(path)

    def delete(self, path: str) -> None:
        full = self._resolve(path)
        try:
            os.remove(full)
        except FileNotFoundError:
            raise
        except OSError as e:
            _log.error("delete failed path=%s: %s", path, e)
            raise StorageError("Delete failed") from e

    def read(self, path: str) -> tuple[bytes, str]:
        full = self._resolve(path)
        with open(full, "rb") as f:
            data = f.read()
        content_type = mimetypes.guess_type(full)[0] or "application/octet-stream"
        return data, content_type
