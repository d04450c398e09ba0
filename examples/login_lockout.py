#!/usr/bin/env python3
"""
Warden login lockout — watch the throttle guard trip.

Five wrong passwords lock the email for the attempt window; the sixth
attempt is refused with 423 even with the right password. Clear it with:
    warden unlock <email>

The password is checked before the email-verified flag, so the lockout
shows on a fresh, unverified account.
Run with: python examples/login_lockout.py
"""

import httpx

from _common import BASE, PASSWORD, check_backend, register


def main():
    check_backend()
    client = httpx.Client(base_url=BASE, timeout=10)
    email, _ = register()
    print(f"\nAccount: {email}")

    for attempt in range(1, 6):
        resp = client.post("/auth/login", json={"email": email, "password": "wrong"})
        print(f"  attempt {attempt}: {resp.status_code} {resp.json()['code']}")

    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    print(f"  correct password: {resp.status_code} {resp.json()['code']}")
    print(f"\nUnlock with:  warden unlock {email}")


if __name__ == "__main__":
    main()
