"""Local file buckets for statements, syllabus templates and branding assets.

Stored layout: ``<storage dir>/<bucket>/<institution id>/<prefix>_<owner>_<timestamp>.<ext>``.
Files are addressed by ``(bucket, "<institution id>/<file name>")`` and
served through ``/files/<bucket>/<path>``.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from werkzeug.datastructures import FileStorage
from werkzeug.security import safe_join
from werkzeug.utils import secure_filename

from electivepro import config as app_config
from electivepro.utils import constants
from electivepro.utils.logging import get_logger

LOG = get_logger("storage_service")

BUCKET_STATEMENTS = "statements"
BUCKET_SYLLABI = "syllabi"
BUCKET_BRANDING = "branding"
_URL_PREFIX = "/files/"
_DOCUMENTS = frozenset({"pdf", "doc", "docx"})
ALLOWED_EXTENSIONS: Dict[str, FrozenSet[str]] = {
    BUCKET_STATEMENTS: _DOCUMENTS,
    BUCKET_SYLLABI: _DOCUMENTS,
    BUCKET_BRANDING: frozenset({"png", "jpg", "jpeg", "svg", "ico", "webp"}),
}


class StorageError(ValueError):
    """Upload rejected or path invalid."""


class StorageNotFoundError(RuntimeError):
    """File does not exist."""


@dataclass(frozen=True)
class StoredFile:
    bucket: str
    path: str

    @property
    def url(self) -> str:
        return f"{_URL_PREFIX}{self.bucket}/{self.path}"


def _bucket_root(bucket: str) -> str:
    if bucket not in ALLOWED_EXTENSIONS:
        raise StorageError("bucket_unknown")
    return os.path.join(app_config.storage_dir(), bucket)


def _extension(filename: str, bucket: str) -> str:
    cleaned = secure_filename(filename or "")
    if "." not in cleaned:
        raise StorageError("file_type_not_allowed")
    ext = cleaned.rsplit(".", 1)[1].lower()
    if ext not in ALLOWED_EXTENSIONS[bucket]:
        raise StorageError("file_type_not_allowed")
    return ext


def generated_name(prefix: str, owner: object, ext: str, *, timestamp: Optional[int] = None) -> str:
    stamp = timestamp if timestamp is not None else int(time.time() * 1000)
    return secure_filename(f"{prefix}_{owner}_{stamp}.{ext}")


def save_upload(
    bucket: str,
    upload: Optional[FileStorage],
    *,
    institution_id: int,
    prefix: str,
    owner: object,
) -> StoredFile:
    """Validate and persist an uploaded file, returning its address."""
    if upload is None or not upload.filename:
        raise StorageError("file_required")
    root = _bucket_root(bucket)
    ext = _extension(upload.filename, bucket)
    limit = app_config.max_upload_bytes()
    data = upload.stream.read(limit + 1)
    if not data:
        raise StorageError("file_empty")
    if len(data) > limit:
        raise StorageError("file_too_large")
    directory = os.path.join(root, str(int(institution_id)))
    os.makedirs(directory, exist_ok=True)
    stamp = int(time.time() * 1000)
    name = generated_name(prefix, owner, ext, timestamp=stamp)
    while os.path.exists(os.path.join(directory, name)):
        stamp += 1
        name = generated_name(prefix, owner, ext, timestamp=stamp)
    with open(os.path.join(directory, name), "wb") as fh:
        fh.write(data)
    stored = StoredFile(bucket=bucket, path=f"{int(institution_id)}/{name}")
    LOG.info("Stored upload bucket=%s path=%s bytes=%s", bucket, stored.path, len(data))
    return stored


def resolve_path(bucket: str, path: str) -> str:
    """Absolute filesystem path for a stored file (traversal-safe)."""
    root = _bucket_root(bucket)
    full = safe_join(root, path or "")
    if full is None:
        raise StorageError("path_invalid")
    if not os.path.isfile(full):
        raise StorageNotFoundError("file_not_found")
    return full


def path_institution(path: str) -> Optional[int]:
    head = (path or "").split("/", 1)[0]
    return int(head) if head.isdigit() else None


def path_owner(path: str) -> Optional[str]:
    """Owner segment of ``<prefix>_<owner>_<timestamp>.<ext>`` file names."""
    name = (path or "").rsplit("/", 1)[-1]
    parts = name.split("_")
    return parts[-2] if len(parts) >= 3 else None


def can_access(
    bucket: str,
    path: str,
    *,
    role: Optional[str],
    user_id: Optional[int],
    institution_id: Optional[int],
) -> bool:
    if bucket == BUCKET_BRANDING:
        return True
    if role == constants.ROLE_SUPER_ADMIN:
        return True
    if role is None or institution_id is None or path_institution(path) != institution_id:
        return False
    if bucket == BUCKET_SYLLABI:
        return True
    if bucket == BUCKET_STATEMENTS:
        if role in constants.REVIEWER_ROLES:
            return True
        return role == constants.ROLE_STUDENT and path_owner(path) == str(user_id)
    return False


def delete_file(bucket: str, path: str) -> bool:
    try:
        full = resolve_path(bucket, path)
    except StorageNotFoundError:
        return False
    os.remove(full)
    LOG.info("Deleted stored file bucket=%s path=%s", bucket, path)
    return True


def stored_from_url(url: Optional[str]) -> Optional[StoredFile]:
    """Parse a ``/files/<bucket>/<path>`` address; None for anything else."""
    if not url or not url.startswith(_URL_PREFIX):
        return None
    bucket, _, path = url[len(_URL_PREFIX):].partition("/")
    if bucket not in ALLOWED_EXTENSIONS or not path:
        return None
    return StoredFile(bucket=bucket, path=path)


def discard_url(url: Optional[str], *, bucket: str, institution_id: int, keep: Optional[str] = None) -> bool:
    """Delete the stored file behind ``url`` unless it is ``keep``.

    Only files in ``bucket`` belonging to ``institution_id`` are touched;
    external links and other tenants' files are left alone.
    """
    if not url or url == keep:
        return False
    stored = stored_from_url(url)
    if stored is None or stored.bucket != bucket or path_institution(stored.path) != institution_id:
        return False
    try:
        return delete_file(stored.bucket, stored.path)
    except StorageError:
        LOG.warning("Refusing to delete invalid stored path bucket=%s path=%s", stored.bucket, stored.path)
        return False


__all__ = [
    "BUCKET_STATEMENTS",
    "BUCKET_SYLLABI",
    "BUCKET_BRANDING",
    "ALLOWED_EXTENSIONS",
    "StorageError",
    "StorageNotFoundError",
    "StoredFile",
    "generated_name",
    "save_upload",
    "resolve_path",
    "path_institution",
    "path_owner",
    "can_access",
    "delete_file",
    "stored_from_url",
    "discard_url",
]
