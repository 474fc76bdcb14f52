"""Tests for plan/role quota limits.

Covers:
- limits() lookup per plan, admin override, unknown plan fallback
- site count, storage and upload batch checks
"""

import math
from types import SimpleNamespace

import pytest

from sitehost.errors import QuotaExceeded
from sitehost.services import quota_service
from sitehost.services.quota_service import MB, GB


def account(plan="free", role="user"):
    return SimpleNamespace(id="acct-1", plan=plan, role=role)


class TestLimits:

    def test_free_plan(self):
        limits = quota_service.limits(account("free"))
        assert limits.max_sites == 1
        assert limits.max_storage_bytes == 100 * MB
        assert limits.max_upload_bytes == 10 * MB
        assert limits.max_files_per_upload == 5

    def test_pro_plan(self):
        limits = quota_service.limits(account("pro"))
        assert limits.max_sites == 10
        assert limits.max_storage_bytes == 10 * GB
        assert limits.max_upload_bytes == 50 * MB
        assert limits.max_files_per_upload == 10

    def test_enterprise_plan(self):
        limits = quota_service.limits(account("enterprise"))
        assert limits.max_sites == 100
        assert limits.max_storage_bytes == 100 * GB

    def test_admin_role_is_unbounded_regardless_of_plan(self):
        limits = quota_service.limits(account("free", role="admin"))
        assert limits.max_sites == math.inf
        assert limits.max_storage_bytes == math.inf
        assert limits.max_upload_bytes == 100 * MB
        assert limits.max_files_per_upload == 50

    def test_unknown_plan_falls_back_to_free(self):
        assert quota_service.limits(account("platinum")) == quota_service.PLAN_LIMITS["free"]


class TestSiteQuota:

    def test_first_site_allowed_on_free(self):
        quota_service.check_site_quota(account("free"), 0)

    def test_second_site_rejected_on_free(self):
        with pytest.raises(QuotaExceeded) as exc:
            quota_service.check_site_quota(account("free"), 1)
        assert exc.value.status_code == 403
        assert "acct-1" not in exc.value.public_message

    def test_admin_never_hits_site_limit(self):
        quota_service.check_site_quota(account(role="admin"), 10_000)


class TestStorageQuota:

    def test_exactly_at_limit_is_allowed(self):
        quota_service.check_storage_quota(account("free"), 100 * MB - 10, 10)

    def test_one_byte_over_is_rejected(self):
        with pytest.raises(QuotaExceeded):
            quota_service.check_storage_quota(account("free"), 100 * MB - 10, 11)

    def test_shrinking_write_is_never_rejected(self):
        quota_service.check_storage_quota(account("free"), 200 * MB, -5)


class TestUploadBatch:

    def test_too_many_files(self):
        sizes = [(f"f{i}.txt", 1) for i in range(6)]
        with pytest.raises(QuotaExceeded) as exc:
            quota_service.check_upload_batch(account("free"), sizes)
        assert "max 5" in exc.value.public_message

    def test_file_over_per_file_limit(self):
        with pytest.raises(QuotaExceeded) as exc:
            quota_service.check_upload_batch(
                account("free"), [("small.txt", 10), ("huge.zip", 10 * MB + 1)]
            )
        assert "huge.zip" in exc.value.public_message

    def test_batch_within_limits(self):
        quota_service.check_upload_batch(
            account("pro"), [(f"f{i}.css", 50 * MB) for i in range(10)]
        )
