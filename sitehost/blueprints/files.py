"""Files blueprint — /api/files/<site_id>/*

File management inside one of the caller's sites. Paths in URLs and
bodies are relative to the site root; anything that escapes it answers
exactly like a missing file.

Route Map:
  POST   /api/files/<site_id>/upload            — multipart upload ("files")
  POST   /api/files/<site_id>/files             — create/overwrite {filename, content}
  GET    /api/files/<site_id>/files/<path>      — read file or list directory
  DELETE /api/files/<site_id>/files/<path>      — delete file or directory
  PUT    /api/files/<site_id>/files/<path>      — rename {newFilename}
"""

import os

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from sitehost.services import file_service, site_service
from sitehost.services.storage_service import UploadItem

files_bp = Blueprint("files", __name__, url_prefix="/api/files")


def _measure(file):
    """Size of an uploaded FileStorage (read + seek back)."""
    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    return size


# ──────────────────────────────────────────────
# POST /api/files/<site_id>/upload
# ──────────────────────────────────────────────

@files_bp.route("/<site_id>/upload", methods=["POST"])
@login_required
def upload(site_id):
    """Upload a batch of files.

    Plan limits (file count, per-file size, storage) are checked before
    any file is written. After that each file succeeds or fails on its
    own; the response lists every file with an `ok` flag.
    """
    site = site_service.get_owned_site(current_user, site_id)

    uploads = [f for f in request.files.getlist("files") if f and f.filename]
    if not uploads:
        return jsonify({"error": "No files uploaded"}), 400

    items = [UploadItem(f.filename, f.stream, _measure(f)) for f in uploads]
    results = file_service.upload_files(site, current_user, items)

    failed = [r for r in results if not r["ok"]]
    if failed and len(failed) == len(results):
        return jsonify({"error": "Failed to upload files", "files": results}), 400
    if failed:
        return jsonify({"message": "Some files failed to upload", "files": results}), 207
    return jsonify({"message": "Files uploaded successfully", "files": results})


# ──────────────────────────────────────────────
# POST /api/files/<site_id>/files
# ──────────────────────────────────────────────

@files_bp.route("/<site_id>/files", methods=["POST"])
@login_required
def save_file(site_id):
    site = site_service.get_owned_site(current_user, site_id)
    data = request.get_json(silent=True) or {}

    filename = data.get("filename")
    if not filename:
        return jsonify({"error": "Filename is required"}), 400

    size = file_service.write_file(site, filename, data.get("content") or "")
    return jsonify({"message": "File saved successfully", "filename": filename, "size": size})


# ──────────────────────────────────────────────
# /api/files/<site_id>/files/<path>
# ──────────────────────────────────────────────

@files_bp.route("/<site_id>/files/<path:filename>", methods=["GET"])
@login_required
def get_file(site_id, filename):
    site = site_service.get_owned_site(current_user, site_id)
    return jsonify(file_service.read_file(site, filename))


@files_bp.route("/<site_id>/files/<path:filename>", methods=["DELETE"])
@login_required
def delete_file(site_id, filename):
    site = site_service.get_owned_site(current_user, site_id)
    freed = file_service.delete_file(site, filename)
    return jsonify({"message": "File deleted successfully", "freed": freed})


@files_bp.route("/<site_id>/files/<path:filename>", methods=["PUT"])
@login_required
def rename_file(site_id, filename):
    site = site_service.get_owned_site(current_user, site_id)
    data = request.get_json(silent=True) or {}

    new_filename = data.get("newFilename")
    if not new_filename:
        return jsonify({"error": "New filename is required"}), 400

    file_service.rename_file(site, filename, new_filename)
    return jsonify({
        "message": "File renamed successfully",
        "oldFilename": filename,
        "newFilename": new_filename,
    })
