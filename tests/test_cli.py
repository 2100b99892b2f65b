import httpx
import pytest

from gestro import cli
from gestro.core.config import EnvironmentMode, get_settings
from gestro.models import Profile, UserRole


@pytest.fixture
def cli_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(cli, "async_session_maker", session_factory)
    return session_factory


def test_check_env_in_development(capsys):
    assert cli.main(["check-env"]) == 0
    out = capsys.readouterr().out
    assert "Environment: development" in out
    assert "Configuration complete" in out


def test_check_env_reports_missing_production_keys(monkeypatch, capsys):
    production = get_settings().model_copy(update={
        "env_mode": EnvironmentMode.PRODUCTION,
        "stripe_secret_key": "",
        "stripe_webhook_secret": "",
        "sendgrid_api_key": "",
        "twilio_account_sid": "",
        "twilio_auth_token": "",
    })
    monkeypatch.setattr(cli, "get_settings", lambda: production)

    assert cli.check_env() == 1
    out = capsys.readouterr().out
    assert "STRIPE_SECRET_KEY" in out
    assert "TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN" in out


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        cli.main(["drop-database"])


def test_create_admin_requires_email():
    with pytest.raises(SystemExit):
        cli.main(["create-admin", "--name", "Chef"])


async def test_create_and_list_admins(cli_sessions, capsys):
    assert await cli.list_admins() == 0
    assert "No admin accounts found" in capsys.readouterr().out

    assert await cli.create_admin("chef@example.com", "Head Chef") == 0
    assert "chef@example.com is now an admin" in capsys.readouterr().out

    assert await cli.list_admins() == 0
    assert "Head Chef" in capsys.readouterr().out


async def test_create_admin_promotes_existing_profile(cli_sessions, customer, capsys):
    assert await cli.create_admin("ana@example.com", "Someone Else") == 0

    async with cli_sessions() as session:
        profile = await session.get(Profile, customer.id)
        assert profile.role == UserRole.ADMIN
        assert profile.name == "Ana"


def test_ping_all_routes_up(capsys):
    seen = []

    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(200, json={})

    assert cli.ping("http://gestro.test", transport=httpx.MockTransport(handler)) == 0
    assert seen == list(cli.PING_ROUTES)


def test_ping_counts_failures(capsys):
    def handler(request):
        if request.url.path == "/health":
            return httpx.Response(503)
        if request.url.path == "/api/mcp":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    assert cli.ping("http://gestro.test", transport=httpx.MockTransport(handler)) == 1
    out = capsys.readouterr().out
    assert "❌ /health: 503" in out
    assert "❌ /api/mcp" in out
    assert "✅ /: 200" in out
