"""Storage service — per-site file trees on local disk.

Every site owns one directory, SITES_ROOT/<owner_id>/<site_id>/. The path is
a pure function of the two ids, so it can be computed (and containment
checked) before any I/O and is never influenced by names users choose.

resolve() is the only way a user-supplied path becomes a filesystem path.
Anything that would land outside the site root raises TraversalError, which
callers see as an ordinary "File not found".

Functions here do not touch the database; byte accounting is done by
services/file_service.py.
"""

import logging
import os
import re
import shutil
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from flask import current_app

from sitehost.errors import (
    Conflict,
    NotFound,
    StorageBackendError,
    TraversalError,
    ValidationError,
    field_error,
)

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {
    ".html", ".css", ".js", ".json", ".txt", ".md", ".xml", ".csv",
}

UploadItem = namedtuple("UploadItem", ["filename", "stream", "size"])

_DRIVE_RE = re.compile(r"^[a-zA-Z]:")


@contextmanager
def _backend(action, target):
    """Translate unexpected OS errors into StorageBackendError."""
    try:
        yield
    except OSError as e:
        logger.error(f"Storage {action} failed for {target}: {e}")
        raise StorageBackendError(f"{action} {target}: {e}") from e


# ──────────────────────────────────────────────
# Roots and path resolution
# ──────────────────────────────────────────────

def sites_root():
    return Path(current_app.config["SITES_ROOT"])


def root_for(site):
    """Return the storage root of `site`, derived only from its ids."""
    return sites_root() / str(site.owner_id) / str(site.id)


def resolve(site, relative_path):
    """Map a user-supplied relative path to an absolute path inside the site root.

    Rejects NUL bytes, absolute paths (POSIX, UNC/backslash, drive letters)
    and anything that, after normalisation and symlink resolution, is not
    the root itself or a descendant of it.

    Returns:
        Path: the canonical absolute path. It may not exist yet.

    Raises:
        TraversalError: the path escapes the root. Nothing has been touched.
    """
    raw = relative_path or ""
    normalized = raw.replace("\\", "/")

    if "\x00" in raw or normalized.startswith("/") or _DRIVE_RE.match(normalized):
        _reject(site, raw, reason="absolute or malformed path")

    root = root_for(site).resolve()
    candidate = (root / normalized).resolve()

    if candidate != root and root not in candidate.parents:
        _reject(site, raw, reason=f"resolves to {candidate}")

    return candidate


def _reject(site, raw, reason):
    logger.warning(
        f"Path traversal attempt blocked: site={site.id} owner={site.owner_id} "
        f"path={raw!r} ({reason})"
    )
    raise TraversalError(f"traversal outside site root: {raw!r}")


def _require_not_root(site, path, field="filename"):
    if path == root_for(site).resolve():
        raise ValidationError([field_error(field, "Filename is required")])


def _require_parent_dirs(site, path, relative_path, field="filename"):
    root = root_for(site).resolve()
    for parent in path.parents:
        if parent == root:
            break
        if parent.exists() and not parent.is_dir():
            raise ValidationError(
                [field_error(field, "A file exists in the parent path", relative_path)]
            )


# ──────────────────────────────────────────────
# Root lifecycle
# ──────────────────────────────────────────────

def ensure_root(site):
    """Create the site root (and parents) if missing. Returns the root path."""
    root = root_for(site)
    with _backend("mkdir", root):
        root.mkdir(parents=True, exist_ok=True)
    return root


def remove_root(site):
    """Recursively delete the site root. An absent root is not an error."""
    return remove_root_path(root_for(site))


def remove_root_path(root):
    with _backend("rmtree", root):
        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            logger.info(f"Site root already absent: {root}")
            return False

    # Drop the owner directory once its last site is gone.
    owner_dir = root.parent
    try:
        owner_dir.rmdir()
    except OSError:
        pass
    return True


# ──────────────────────────────────────────────
# Inspection
# ──────────────────────────────────────────────

def tree_size(path):
    """Total bytes of regular files at or below `path`. 0 if absent."""
    if not path.exists():
        return 0
    if path.is_file():
        return path.stat().st_size

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except FileNotFoundError:
                continue
    return total


def existing_size(site, relative_path):
    """Size of the file currently at `relative_path`, or 0 if there is none."""
    path = resolve(site, relative_path)
    if path.is_file():
        return path.stat().st_size
    return 0


def _entry(path):
    stat = path.stat()
    return {
        "name": path.name,
        "type": "directory" if path.is_dir() else "file",
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
    }


def list_directory(site, relative_path=""):
    """List a directory inside the site.

    Raises:
        NotFound: the path does not exist.
        ValidationError: the path is a file, not a directory.
    """
    path = resolve(site, relative_path)
    if not path.exists():
        raise NotFound(f"no directory {relative_path!r}", public_message="File not found")
    if not path.is_dir():
        raise ValidationError([field_error("path", "Not a directory", relative_path)])

    with _backend("list", path):
        return [_entry(child) for child in sorted(path.iterdir())]


def read(site, relative_path):
    """Read a file or directory.

    Returns one of:
        {"files": [...], "path": p}                  for directories
        {"content": str, "filename": p, "size": n}   for text extensions
        {"filename": p, "size": n, "type": "binary"} for everything else
    """
    path = resolve(site, relative_path)
    if not path.exists():
        raise NotFound(f"no file {relative_path!r}", public_message="File not found")

    if path.is_dir():
        return {"files": list_directory(site, relative_path), "path": relative_path}

    with _backend("read", path):
        size = path.stat().st_size
        if path.suffix.lower() in TEXT_EXTENSIONS:
            content = path.read_text(encoding="utf-8", errors="replace")
            return {"content": content, "filename": relative_path, "size": size}

    return {"filename": relative_path, "size": size, "type": "binary"}


def read_index(site):
    """Return the bytes of the site's default document, or None."""
    try:
        index = resolve(site, current_app.config.get("DEFAULT_DOCUMENT", "index.html"))
        return index.read_bytes()
    except (TraversalError, FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None


# ──────────────────────────────────────────────
# Mutation
# ──────────────────────────────────────────────

def write(site, relative_path, data):
    """Write `data` (str or bytes) to a file, creating parent directories.

    Returns:
        int: the new size of the file in bytes.
    """
    path = resolve(site, relative_path)
    _require_not_root(site, path)
    _require_parent_dirs(site, path, relative_path)
    if path.is_dir():
        raise ValidationError(
            [field_error("filename", "A directory exists at this path", relative_path)]
        )

    if isinstance(data, str):
        data = data.encode("utf-8")

    with _backend("write", path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return len(data)


def write_stream(site, relative_path, stream):
    """Stream a file-like object to disk. Returns bytes written."""
    path = resolve(site, relative_path)
    _require_not_root(site, path)
    _require_parent_dirs(site, path, relative_path, field="files")
    if path.is_dir():
        raise ValidationError(
            [field_error("files", "A directory exists at this path", relative_path)]
        )

    with _backend("write", path):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        return path.stat().st_size


def delete(site, relative_path):
    """Remove a file or a whole subtree.

    Deleting something that is not there succeeds and frees 0 bytes, so
    retries and cascades never trip over earlier partial work.

    Returns:
        int: bytes freed.
    """
    path = resolve(site, relative_path)
    _require_not_root(site, path)

    if not path.exists() and not path.is_symlink():
        return 0

    with _backend("delete", path):
        freed = tree_size(path) if not path.is_symlink() else 0
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            return 0
    return freed


def rename(site, old_relative_path, new_relative_path):
    """Move a file or directory to a new path within the same site root.

    Raises:
        NotFound: the source does not exist.
        Conflict: something already exists at the destination.
    """
    old_path = resolve(site, old_relative_path)
    new_path = resolve(site, new_relative_path)
    _require_not_root(site, old_path)
    _require_not_root(site, new_path, field="newFilename")

    if not old_path.exists():
        raise NotFound(f"no file {old_relative_path!r}", public_message="File not found")
    if new_path.exists():
        raise Conflict(
            f"rename target exists: {new_relative_path!r}",
            public_message="A file with that name already exists",
        )
    if new_path == old_path or old_path in new_path.parents:
        raise ValidationError(
            [field_error("newFilename", "Cannot move a directory into itself")]
        )
    _require_parent_dirs(site, new_path, new_relative_path, field="newFilename")

    with _backend("rename", old_path):
        new_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(old_path), str(new_path))
    return new_path


def upload_batch(site, items):
    """Write a batch of uploaded files into the site.

    Plan limits are the caller's concern. The batch is not transactional:
    each file is written independently and its outcome is reported in the
    returned list.

    Args:
        site: target Site.
        items: list of UploadItem.

    Returns:
        list of dicts: {"name", "size", "ok": True} or
        {"name", "ok": False, "error": "..."}.
    """
    ensure_root(site)
    results = []
    for item in items:
        try:
            size = write_stream(site, item.filename, item.stream)
        except TraversalError:
            results.append({"name": item.filename, "ok": False, "error": "Invalid file path"})
            continue
        except ValidationError as e:
            results.append({"name": item.filename, "ok": False, "error": str(e)})
            continue
        except StorageBackendError:
            results.append({"name": item.filename, "ok": False, "error": "Write failed"})
            continue
        results.append({"name": item.filename, "size": size, "ok": True})

    logger.info(
        f"Upload to site {site.id}: "
        f"{sum(1 for r in results if r['ok'])}/{len(results)} files written"
    )
    return results
