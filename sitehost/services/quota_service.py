"""Quota service — plan/role → limits lookup and the checks built on it.

limits() is a pure table lookup. Admins are unbounded on site count and
storage regardless of plan; an unrecognised plan falls back to "free".
"""

import math
from collections import namedtuple

from sitehost.errors import QuotaExceeded

MB = 1024 * 1024
GB = 1024 * MB

Limits = namedtuple(
    "Limits",
    ["max_sites", "max_storage_bytes", "max_upload_bytes", "max_files_per_upload"],
)

ADMIN_LIMITS = Limits(
    max_sites=math.inf,
    max_storage_bytes=math.inf,
    max_upload_bytes=100 * MB,
    max_files_per_upload=50,
)

PLAN_LIMITS = {
    "free": Limits(1, 100 * MB, 10 * MB, 5),
    "pro": Limits(10, 10 * GB, 50 * MB, 10),
    "enterprise": Limits(100, 100 * GB, 100 * MB, 20),
}


def limits(account):
    """Return the Limits that apply to `account` (a User)."""
    if account.role == "admin":
        return ADMIN_LIMITS
    return PLAN_LIMITS.get(account.plan, PLAN_LIMITS["free"])


def check_site_quota(account, current_site_count):
    """Raise QuotaExceeded if `account` may not create another site."""
    if current_site_count >= limits(account).max_sites:
        raise QuotaExceeded(
            f"account {account.id} at site limit ({current_site_count})",
            public_message="Site limit reached for your plan",
        )


def check_storage_quota(account, current_bytes, additional_bytes):
    """Raise QuotaExceeded if adding `additional_bytes` would overflow storage."""
    if additional_bytes <= 0:
        return
    if current_bytes + additional_bytes > limits(account).max_storage_bytes:
        raise QuotaExceeded(
            f"account {account.id} storage {current_bytes}+{additional_bytes} over limit",
            public_message="Storage limit reached for your plan",
        )


def check_upload_batch(account, sizes):
    """Validate an upload batch's file count and per-file sizes.

    Args:
        account: the uploading User.
        sizes: list of (filename, size_in_bytes).

    Raises:
        QuotaExceeded: on the first violated limit. Nothing has been
            written when this is raised.
    """
    plan_limits = limits(account)

    if len(sizes) > plan_limits.max_files_per_upload:
        raise QuotaExceeded(
            f"batch of {len(sizes)} files over limit {plan_limits.max_files_per_upload}",
            public_message=(
                f"Too many files in one upload (max {plan_limits.max_files_per_upload})"
            ),
        )

    for filename, size in sizes:
        if size > plan_limits.max_upload_bytes:
            raise QuotaExceeded(
                f"{filename} is {size} bytes, over {plan_limits.max_upload_bytes}",
                public_message=f"File '{filename}' exceeds the upload size limit",
            )
