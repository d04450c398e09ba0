"""CLI tests — operator commands against a memory-backend container.

Learn: the commands build their own container through
warden.bootstrap.build_container; we patch that to hand back the test
container so the command sees the data the test prepared.
"""

import json
import uuid

import pytest
from click.testing import CliRunner

import warden.bootstrap
from warden.cli.main import main


@pytest.fixture()
def runner(monkeypatch, container, test_settings):
    monkeypatch.setattr(warden.bootstrap, "build_container", lambda *a, **kw: container)
    monkeypatch.setattr("warden.cli.main.settings", test_settings)
    return CliRunner()


async def _register(container, username="alice", email="alice@example.com"):
    async with container.scope() as services:
        pair = await services.sessions.register(username, email, "secure_password_123")
        principal = await services.users.find_by_email(email)
    return pair, principal


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "warden" in result.output


@pytest.mark.asyncio
async def test_unlock(runner, container):
    async with container.scope() as services:
        for _ in range(5):
            await services.throttle.record_failure("bob@example.com")

    result = runner.invoke(main, ["unlock", "BOB@example.com"])
    assert result.exit_code == 0, result.output
    assert "5 failed attempts cleared" in result.output
    async with container.scope() as services:
        assert await services.throttle.attempts("bob@example.com") == 0


@pytest.mark.asyncio
async def test_unlock_nothing_to_clear(runner):
    result = runner.invoke(main, ["unlock", "carol@example.com"])
    assert result.exit_code == 0
    assert "no failed attempts" in result.output


@pytest.mark.asyncio
async def test_revoke_all(runner, container):
    pair, principal = await _register(container)
    result = runner.invoke(main, ["revoke-all", str(principal.id)])
    assert result.exit_code == 0, result.output
    assert "Revoked 2 token(s)" in result.output
    async with container.scope() as services:
        assert not await services.ledger.is_active(pair.access_token)


def test_revoke_all_rejects_non_uuid(runner):
    result = runner.invoke(main, ["revoke-all", "not-a-uuid"])
    assert result.exit_code == 1


@pytest.mark.asyncio
async def test_inspect(runner, container):
    pair, principal = await _register(container)
    result = runner.invoke(main, ["inspect", pair.refresh_token])
    assert result.exit_code == 0, result.output
    out = json.loads(result.output)
    assert out["signature"] == "valid"
    assert out["claims"]["type"] == "REFRESH"
    assert out["ledger"]["user_id"] == str(principal.id)
    assert out["ledger"]["active"] is True


def test_inspect_unknown_token(runner):
    result = runner.invoke(main, ["inspect", "garbage"])
    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out["signature"].startswith("invalid")
    assert out["ledger"] is None


def test_revoke_all_unknown_user(runner):
    result = runner.invoke(main, ["revoke-all", str(uuid.uuid4())])
    assert result.exit_code == 0
    assert "Revoked 0 token(s)" in result.output
