"""File service — site file operations with storage accounting.

Wraps storage_service (disk) with site_service (stats + quota). Bytes are
reserved against the owner's storage quota *before* anything is written;
if the write then fails, the reservation is released. This applies to
direct edits as well as uploads.
"""

import logging

from sitehost.errors import TraversalError, ValidationError, field_error
from sitehost.services import quota_service, site_service, storage_service

logger = logging.getLogger(__name__)


def read_file(site, filename):
    return storage_service.read(site, filename)


def list_files(site, path=""):
    """List a directory; a site whose root was never created lists as empty."""
    if not path and not storage_service.root_for(site).exists():
        return []
    return storage_service.list_directory(site, path)


def write_file(site, filename, content):
    """Create or overwrite a file with `content` (str or bytes).

    Returns:
        int: new file size.

    Raises:
        ValidationError: missing filename, or a directory is in the way.
        QuotaExceeded: the growth would overflow the owner's storage.
        TraversalError: the filename escapes the site root.
    """
    if not filename:
        raise ValidationError([field_error("filename", "Filename is required")])

    data = (content or "").encode("utf-8") if not isinstance(content, bytes) else content
    previous = storage_service.existing_size(site, filename)
    delta = len(data) - previous

    if delta > 0:
        site_service.record_upload(site, delta)

    try:
        size = storage_service.write(site, filename, data)
    except Exception:
        if delta > 0:
            site_service.record_deletion(site, delta)
        raise

    if delta < 0:
        site_service.record_deletion(site, -delta)

    logger.info(f"File saved: site={site.id} file={filename} size={size}")
    return size


def delete_file(site, filename):
    """Delete a file or directory. Missing paths are a no-op. Returns bytes freed."""
    freed = storage_service.delete(site, filename)
    site_service.record_deletion(site, freed)
    if freed:
        logger.info(f"File deleted: site={site.id} file={filename} freed={freed}")
    return freed


def rename_file(site, old_filename, new_filename):
    if not new_filename:
        raise ValidationError([field_error("newFilename", "New filename is required")])
    storage_service.rename(site, old_filename, new_filename)
    logger.info(f"File renamed: site={site.id} {old_filename} -> {new_filename}")


def upload_files(site, account, items):
    """Upload a batch of files.

    File count and per-file size limits, and the storage quota for the
    batch's net growth, are all checked before the first write. Individual
    writes may still fail; those files are reported with ok=False and their
    reserved bytes are given back.

    Returns:
        list of per-file result dicts (see storage_service.upload_batch).
    """
    if not items:
        raise ValidationError([field_error("files", "No files uploaded")])

    quota_service.check_upload_batch(
        account, [(item.filename, item.size) for item in items]
    )

    previous = {}
    for item in items:
        try:
            previous[item.filename] = storage_service.existing_size(site, item.filename)
        except TraversalError:
            previous[item.filename] = 0

    reserved = sum(max(item.size - previous[item.filename], 0) for item in items)
    site_service.record_upload(site, reserved)

    try:
        results = storage_service.upload_batch(site, items)
    except Exception:
        site_service.record_deletion(site, reserved)
        raise

    actual = sum(r["size"] - previous[r["name"]] for r in results if r["ok"])
    surplus = reserved - actual
    if surplus > 0:
        site_service.record_deletion(site, surplus)
    elif surplus < 0:
        # Streams ran longer than declared; the bytes are on disk either way.
        site_service.record_upload(site, -surplus, enforce_quota=False)

    return results
