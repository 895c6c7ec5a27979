import pytest

from tagnormalizer.config import Settings


def test_defaults_are_safe():
    settings = Settings.from_env({})
    assert settings.dry_run is True
    assert settings.max_workers == 1
    assert settings.resource_timeout is None
    assert settings.log_dir is None


@pytest.mark.parametrize("raw,expected", [("false", False), ("0", False), ("TRUE", True), ("yes", True), ("", True)])
def test_dry_run_from_env(raw, expected):
    assert Settings.from_env({"DRY_RUN": raw}).dry_run is expected


def test_numeric_settings_from_env():
    settings = Settings.from_env({
        "MAX_WORKERS": "8",
        "RESOURCE_TIMEOUT": "45",
        "RETRY_MAX_ATTEMPTS": "2",
        "RETRY_BASE_DELAY": "0.5",
        "LOG_LEVEL": "debug",
    })
    assert settings.max_workers == 8
    assert settings.resource_timeout == 45.0
    assert settings.retry_max_attempts == 2
    assert settings.retry_base_delay == 0.5
    assert settings.log_level == "DEBUG"


def test_default_output_path_names_the_mode(tmp_path):
    apply_path = Settings(dry_run=False, output_dir=str(tmp_path)).default_output_path()
    assert apply_path.startswith(str(tmp_path))
    assert "_apply_" in apply_path
    assert apply_path.endswith(".csv")
    assert "_dryrun_" in Settings(output_dir=str(tmp_path)).default_output_path("json")
