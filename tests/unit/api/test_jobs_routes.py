"""Unit tests for Jobs and Health Routes."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import HTTPException, status

from pulse.api.routes.health import check_storage_health, health_check
from pulse.api.routes.jobs import run_pulse_batch, verify_cron_secret
from pulse.services.pulse_service import BatchResult, PulseService


# ============================================================================
# Tests for cron secret verification
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
class TestVerifyCronSecret:
    """Test X-Cron-Secret check."""

    def test_matching_secret(self):
        """✅ Matching secret accepted."""
        with patch("pulse.api.routes.jobs.settings") as mock_settings:
            mock_settings.cron_secret = "s3cret"
            assert verify_cron_secret("s3cret") is None

    @pytest.mark.parametrize("configured,given", [
        ("s3cret", "wrong"),
        ("s3cret", None),
        (None, "anything"),
        ("", ""),
    ])
    def test_rejected(self, configured, given):
        """✅ Wrong, missing or unconfigured secret → 401."""
        with patch("pulse.api.routes.jobs.settings") as mock_settings:
            mock_settings.cron_secret = configured
            with pytest.raises(HTTPException) as exc_info:
                verify_cron_secret(given)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.unit
class TestRunPulseBatch:
    """Test batch trigger endpoint."""

    async def test_reports_counts(self):
        """✅ Batch counts returned."""
        service = MagicMock(spec=PulseService)
        service.run_batch = AsyncMock(return_value=BatchResult(due=3, processed=2, failed=1))

        response = await run_pulse_batch(limit=10, service=service)

        assert response == {"ok": True, "due": 3, "processed": 2, "failed": 1}
        service.run_batch.assert_awaited_once_with(10)


# ============================================================================
# Tests for health endpoints
# ============================================================================

@pytest.mark.unit
class TestHealth:
    """Test health checks."""

    async def test_basic(self):
        """✅ Static healthy payload."""
        assert await health_check() == {"status": "healthy", "service": "town-pulse-api"}

    async def test_local_storage_healthy(self, tmp_path):
        """✅ Writable data dir → healthy."""
        with patch("pulse.api.routes.health.settings") as mock_settings:
            mock_settings.storage_mode = "local"
            mock_settings.local_data_dir = str(tmp_path / "data")
            response = await check_storage_health()

        assert response == {"status": "healthy", "storage_mode": "local"}

    async def test_local_storage_unhealthy(self, tmp_path):
        """✅ Data dir path is a file → unhealthy with error type."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with patch("pulse.api.routes.health.settings") as mock_settings:
            mock_settings.storage_mode = "local"
            mock_settings.local_data_dir = str(blocker)
            response = await check_storage_health()

        assert response["status"] == "unhealthy"
        assert response["error_type"]
