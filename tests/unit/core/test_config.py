"""Unit tests for application settings."""
import pytest
from pydantic import ValidationError

from pulse.core.config import Settings


@pytest.mark.unit
class TestSettings:
    """Test settings validation."""

    def test_defaults(self):
        """✅ Defaults are usable without any environment."""
        config = Settings(_env_file=None)
        assert config.storage_mode == "local"
        assert config.model_stale_hours == 24
        assert config.default_range_days == 45

    def test_storage_mode_normalized(self):
        """✅ Storage mode case-insensitive."""
        assert Settings(_env_file=None, storage_mode=" Database ").storage_mode == "database"

    def test_unknown_storage_mode(self):
        """✅ Unknown backend rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, storage_mode="s3")

    def test_log_level(self):
        """✅ Log level upper-cased, unknown rejected."""
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="verbose")

    @pytest.mark.parametrize("overrides", [
        {"default_range_days": 3},
        {"default_range_days": 120},
        {"model_stale_hours": 0},
        {"batch_concurrency": 0},
    ])
    def test_invalid_values(self, overrides):
        """✅ Out-of-range values rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    def test_cors_origins_list(self):
        """✅ Comma-separated origins split and trimmed."""
        config = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]
