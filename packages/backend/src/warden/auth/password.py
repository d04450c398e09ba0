"""Password hashing.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12) takes ~100ms per hash on modern hardware;
tests drop it to 4 through WARDEN_BCRYPT_ROUNDS.

dummy_verify() burns the same time as a real comparison. Login calls it
when the email is unknown, so response time does not reveal whether an
account exists.
"""

import bcrypt


class BcryptHasher:
    """One-way hash + verify for raw passwords."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self._dummy_hash = self.hash("warden-timing-equalizer")

    def hash(self, password: str) -> str:
        """Hash a password with bcrypt.

        Passwords are truncated to 72 bytes (bcrypt's limit).
        """
        pw_bytes = password.encode("utf-8")[:72]
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            pw_bytes = password.encode("utf-8")[:72]
            return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, password: str) -> None:
        self.verify(password, self._dummy_hash)
