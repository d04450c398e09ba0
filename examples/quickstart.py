#!/usr/bin/env python3
"""
Warden Quickstart — one session, start to finish.

Registers an account → calls /me → rotates the refresh token → shows the
old refresh token is dead → logs out → shows the access token is dead.
Run with: python examples/quickstart.py

Requires: pip install httpx
Service must be running: http://localhost:8000
"""

import httpx

from _common import BASE, bearer, check_backend, register


def main():
    check_backend()
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Register ──────────────────────────────────────────────────
    print("\n1. Registering...")
    email, tokens = register()
    print(f"   {email}: access + refresh issued")

    # ── Who am I ──────────────────────────────────────────────────
    print("\n2. GET /auth/me with the access token...")
    resp = client.get("/auth/me", headers=bearer(tokens["access_token"]))
    assert resp.status_code == 200, f"Failed: {resp.text}"
    me = resp.json()
    print(f"   {me['username']} ({me['id'][:8]}...) roles={me['roles']} verified={me['email_verified']}")

    # ── Rotate ────────────────────────────────────────────────────
    print("\n3. Refreshing...")
    resp = client.post("/auth/refresh", headers=bearer(tokens["refresh_token"]))
    assert resp.status_code == 200, f"Failed: {resp.text}"
    rotated = resp.json()
    print("   New pair issued")

    print("\n4. Replaying the old refresh token...")
    resp = client.post("/auth/refresh", headers=bearer(tokens["refresh_token"]))
    print(f"   {resp.status_code} {resp.json()['code']} (rotation is single-use)")

    # ── Logout ────────────────────────────────────────────────────
    print("\n5. Logging out...")
    resp = client.post("/auth/logout", headers=bearer(rotated["access_token"]))
    assert resp.status_code == 200, f"Failed: {resp.text}"
    resp = client.get("/auth/me", headers=bearer(rotated["access_token"]))
    print(f"   /me after logout: {resp.status_code} {resp.json()['code']}")

    print("\nDone.")


if __name__ == "__main__":
    main()
