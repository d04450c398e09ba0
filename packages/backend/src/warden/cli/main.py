"""Warden CLI — run the service and act on sessions from a shell.

Usage:
    warden serve                          # Run the API with uvicorn
    warden unlock bob@example.com         # Clear a login lockout
    warden revoke-all <user-uuid>         # Sign a user out everywhere
    warden inspect <token>                # Decode a token, show its ledger state

The operator commands talk to the stores directly through the same
service container the API uses, so they honor WARDEN_* settings.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import sys
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import click

from warden import __version__
from warden.config import settings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    When a loop is already running (CliRunner inside an async test) the
    coroutine runs on a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


@asynccontextmanager
async def _services() -> AsyncIterator:
    """One service scope, with Redis/Postgres opened and closed around it."""
    from warden.bootstrap import build_container

    if settings.storage_backend == "memory":
        async with build_container(settings).scope() as services:
            yield services
        return

    from warden.db.engine import dispose_engine
    from warden.realtime.pubsub import close_redis, init_redis

    redis = await init_redis(settings.redis_url)
    try:
        async with build_container(settings, redis).scope() as services:
            yield services
    finally:
        await close_redis()
        await dispose_engine()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="warden")
def main():
    """Warden — token lifecycle service."""


# ---------------------------------------------------------------------------
# warden serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: WARDEN_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: WARDEN_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes (dev only)")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run(
        "warden.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# warden unlock
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
def unlock(email: str):
    """Clear the failed-login counter for EMAIL."""
    _run(_unlock_impl(email))


async def _unlock_impl(email: str):
    from warden.domain.models import normalize_email

    identity = normalize_email(email)
    async with _services() as services:
        before = await services.throttle.attempts(identity)
        await services.throttle.reset(identity)
    if before:
        click.secho(f"Unlocked {identity} ({before} failed attempts cleared)", fg="green")
    else:
        click.echo(f"{identity} had no failed attempts")


# ---------------------------------------------------------------------------
# warden revoke-all
# ---------------------------------------------------------------------------


@main.command("revoke-all")
@click.argument("user_id")
def revoke_all(user_id: str):
    """Revoke every active token of USER_ID."""
    try:
        uid = uuid.UUID(user_id)
    except ValueError:
        click.secho(f"Error: not a UUID: {user_id}", fg="red", err=True)
        sys.exit(1)
    _run(_revoke_all_impl(uid))


async def _revoke_all_impl(user_id: uuid.UUID):
    async with _services() as services:
        count = await services.ledger.revoke_sessions(user_id)
    click.secho(f"Revoked {count} token(s) for {user_id}", fg="green")


# ---------------------------------------------------------------------------
# warden inspect
# ---------------------------------------------------------------------------


@main.command()
@click.argument("token")
def inspect(token: str):
    """Show TOKEN's claims and its ledger record."""
    _run(_inspect_impl(token))


async def _inspect_impl(token: str):
    from warden.auth.jwt import JwtSigner, TokenError

    signer = JwtSigner.from_settings(settings)
    try:
        claims = signer.verify(token, verify_exp=False)
        signature = "valid"
    except TokenError as e:
        claims = {}
        signature = f"invalid ({e})"

    async with _services() as services:
        record = await services.ledger.find(token)

    out: dict = {"signature": signature, "claims": claims}
    if record is None:
        out["ledger"] = None
    else:
        out["ledger"] = {
            "user_id": record.owner_id,
            "token_type": record.token_type.value,
            "active": record.active,
            "issued_at": record.issued_at,
            "expires_at": record.expires_at,
            "expired": record.is_expired(),
            "ip_address": record.ip_address,
            "user_agent": record.user_agent,
        }
    click.echo(_pretty_json(out))


if __name__ == "__main__":
    main()
