"""
Shared helpers for the Warden examples.

Handles the health check and a throwaway account per run so each example
can focus on its own flow.
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8000/api/v1"
PASSWORD = "demo-password-123"


def check_backend() -> dict:
    """Verify the service is reachable and healthy."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Warden not reachable at {BASE}")
        print("Start it with:  WARDEN_STORAGE_BACKEND=memory warden serve")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print(f"Warden {health['version']} ({health['backend']} backend): {health['status']}")
    for dep in ("postgres", "redis"):
        if dep in health:
            print(f"  {dep.capitalize():9} {'✓' if health[dep] == 'ok' else '✗ ' + health[dep]}")
    return health


def register() -> tuple[str, dict]:
    """Register a fresh account. Returns (email, token pair).

    Uses a unique email per run so examples are idempotent.
    """
    run_id = uuid.uuid4().hex[:8]
    email = f"demo-{run_id}@example.com"
    resp = httpx.post(
        f"{BASE}/auth/register",
        json={"username": f"demo-{run_id}", "email": email, "password": PASSWORD},
        timeout=10,
    )
    if resp.status_code != 201:
        print(f"ERROR: Registration failed: {resp.status_code} {resp.text}")
        sys.exit(1)
    return email, resp.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
