"""Event topic constants.

Learn: Centralizing topics as constants prevents typos and makes it easy
to discover everything Warden announces. Downstream consumers (mailer,
profile service) subscribe to these; Warden never waits for them.
"""

# ─── Account lifecycle ───────────────────────────────────

USER_REGISTERED = "auth.user_registered"
USER_DELETED = "auth.user_deleted"

# ─── Outbound mail triggers ──────────────────────────────

EMAIL_VERIFICATION_REQUESTED = "auth.email_verification_requested"
PASSWORD_RESET_REQUESTED = "auth.password_reset_requested"
