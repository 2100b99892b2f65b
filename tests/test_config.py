import pytest
from pydantic import ValidationError

from gestro.core.config import EnvironmentMode, Settings, parse_hour_ranges


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_env_mode_is_case_insensitive():
    settings = make_settings(env_mode="STAGING")
    assert settings.env_mode == EnvironmentMode.STAGING
    assert settings.use_real_services is True
    assert settings.is_development is False


def test_unknown_env_mode_is_rejected():
    with pytest.raises(ValidationError):
        make_settings(env_mode="qa")


def test_peak_hours():
    assert parse_hour_ranges("12-14, 20-22") == [(12, 14), (20, 22)]
    assert parse_hour_ranges("") == []
    assert make_settings(delivery_peak_hours="18-19").peak_hour_ranges == [(18, 19)]


@pytest.mark.parametrize("value", ["12", "14-12", "20-24", "a-b"])
def test_bad_peak_hours(value):
    with pytest.raises(ValidationError):
        make_settings(delivery_peak_hours=value)


def test_development_needs_no_provider_keys():
    assert make_settings(env_mode="development").validate_production_config() == []


def test_production_lists_missing_keys():
    settings = make_settings(
        env_mode="production",
        stripe_secret_key="sk_live_x",
        stripe_webhook_secret=None,
        sendgrid_api_key="SG.x",
        twilio_account_sid="AC1",
        twilio_auth_token=None,
    )
    assert settings.validate_production_config() == [
        "STRIPE_WEBHOOK_SECRET",
        "TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN",
    ]


def test_cors_origins_list():
    settings = make_settings(cors_origins="https://a.example, https://b.example,")
    assert settings.cors_origins_list == ["https://a.example", "https://b.example"]
