"""Warden — authentication and credential lifecycle service.

Issues paired access/refresh tokens, rotates and revokes them across a
durable ledger and a fast cache, throttles brute-force logins, and hands
out single-use email verification links and password reset codes.
"""

__version__ = "0.1.0"
