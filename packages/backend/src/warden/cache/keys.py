"""Cache key layout.

Learn: every key lives under one prefix (WARDEN_CACHE_PREFIX) so several
deployments can share a Redis without colliding:

    {prefix}:token:{value}                         cached token mirror
    {prefix}:user-tokens:{user_id}                 set of cached token values
    {prefix}:login-fail:{email}                    failed login counter
    {prefix}:reset-fail:{email}                    wrong reset code counter
    {prefix}:email-verification:{user_id}:{token}  single-use verification record
    {prefix}:password-reset:{user_id}              single-use reset code
    {prefix}:session-lock:{user_id}                one session mutation at a time
"""

import uuid


class CacheKeys:
    def __init__(self, prefix: str = "warden"):
        self.prefix = prefix

    def token(self, value: str) -> str:
        return f"{self.prefix}:token:{value}"

    def user_tokens(self, user_id: uuid.UUID) -> str:
        return f"{self.prefix}:user-tokens:{user_id}"

    def failures(self, namespace: str, identity: str) -> str:
        return f"{self.prefix}:{namespace}:{identity}"

    def email_verification(self, user_id: uuid.UUID, token: str) -> str:
        return f"{self.prefix}:email-verification:{user_id}:{token}"

    def password_reset(self, user_id: uuid.UUID) -> str:
        return f"{self.prefix}:password-reset:{user_id}"

    def session_lock(self, user_id: uuid.UUID) -> str:
        return f"{self.prefix}:session-lock:{user_id}"
