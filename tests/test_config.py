import pytest

# NOTE: conftest.py sets GEMINI_API_KEY, DB_PATH and TARGET_COMPANIES in
# os.environ before any source imports. These tests use monkeypatch to
# override/remove env vars for specific scenarios.


def test_import_config_does_not_crash():
    """Test that importing config module does not raise."""
    import ats_job_aggregator.config  # noqa: F401


def test_blank_api_key_is_none():
    """Test that a blank GEMINI_API_KEY disables the classifier credential."""
    from ats_job_aggregator.config import GEMINI_API_KEY

    assert GEMINI_API_KEY is None


def test_api_key_is_stripped(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "  secret-key  ")

    from ats_job_aggregator.config import _Config

    assert _Config().GEMINI_API_KEY == "secret-key"


def test_target_companies_parsed_from_env():
    from ats_job_aggregator.config import TARGET_COMPANIES

    assert TARGET_COMPANIES == [("greenhouse", "stripe"), ("lever", "netlify")]


def test_target_companies_default(monkeypatch):
    """Test that the default company list is used when the variable is unset."""
    monkeypatch.delenv("TARGET_COMPANIES", raising=False)

    from ats_job_aggregator.config import _Config

    companies = _Config().TARGET_COMPANIES
    assert ("greenhouse", "stripe") in companies
    assert ("smartrecruiters", "visa") in companies
    assert len(companies) == 7


def test_parse_target_companies_normalizes_whitespace_and_case():
    from ats_job_aggregator.config import parse_target_companies

    assert parse_target_companies(" Lever:notion , ashby:ramp,, ") == [
        ("lever", "notion"),
        ("ashby", "ramp"),
    ]


@pytest.mark.parametrize("raw", ["greenhouse", "greenhouse:", ":stripe"])
def test_parse_target_companies_rejects_malformed_entries(raw):
    from ats_job_aggregator.config import parse_target_companies

    with pytest.raises(ValueError, match="source:company"):
        parse_target_companies(raw)


def test_parse_target_companies_rejects_unknown_source():
    from ats_job_aggregator.config import parse_target_companies

    with pytest.raises(ValueError, match="unknown source 'bogussource'"):
        parse_target_companies("bogussource:x")


def test_numeric_defaults(monkeypatch):
    for name in ("STALE_AFTER_DAYS", "VERIFY_COOLDOWN_HOURS", "VERIFY_BATCH_SIZE"):
        monkeypatch.delenv(name, raising=False)

    from ats_job_aggregator.config import _Config

    cfg = _Config()
    assert cfg.STALE_AFTER_DAYS == 7
    assert cfg.VERIFY_COOLDOWN_HOURS == 20
    assert cfg.VERIFY_BATCH_SIZE == 10
    assert cfg.AI_TIMEOUT_SECONDS == 8.0


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_invalid_stale_after_days_raises(monkeypatch, raw):
    monkeypatch.setenv("STALE_AFTER_DAYS", raw)

    from ats_job_aggregator.config import _Config

    with pytest.raises(ValueError, match="STALE_AFTER_DAYS must be a positive integer"):
        _ = _Config().STALE_AFTER_DAYS


def test_invalid_timeout_raises(monkeypatch):
    monkeypatch.setenv("AI_TIMEOUT_SECONDS", "soon")

    from ats_job_aggregator.config import _Config

    with pytest.raises(ValueError, match="AI_TIMEOUT_SECONDS must be a positive number"):
        _ = _Config().AI_TIMEOUT_SECONDS


def test_load_app_config(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "key")
    monkeypatch.setenv("VERIFY_BATCH_DELAY", "0.5")

    from ats_job_aggregator.config import AppConfig, load_app_config

    config = load_app_config()
    assert isinstance(config, AppConfig)
    assert config.gemini_api_key == "key"
    assert config.verify_batch_delay == 0.5
    assert config.db_path == ":memory:"
    assert config.target_companies == (("greenhouse", "stripe"), ("lever", "netlify"))


def test_unknown_attribute_raises():
    import ats_job_aggregator.config as config

    with pytest.raises(AttributeError):
        _ = config.NOT_A_SETTING
