"""Failure taxonomy of the identity core.

Every error is scoped to a single request. Errors flagged ``public`` carry a
message the caller may show as-is; all others collapse to a generic
"authentication failed" at the HTTP boundary so they cannot be used as an
oracle, while the services log the precise subclass.
"""

from __future__ import annotations

GENERIC_FAILURE = "authentication failed"


class AuthError(ValueError):
    public: bool = False
    default_message = GENERIC_FAILURE

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def public_message(self) -> str:
        return str(self) if self.public else GENERIC_FAILURE


class InvalidCredentials(AuthError):
    default_message = "invalid credentials"


class ChallengeExpired(AuthError):
    default_message = "challenge expired"


class ChallengeConsumed(AuthError):
    default_message = "challenge already consumed"


class CeremonyVerificationFailed(AuthError):
    default_message = "ceremony verification failed"


class SignatureInvalid(CeremonyVerificationFailed):
    default_message = "signature invalid"


class CounterReplay(CeremonyVerificationFailed):
    default_message = "signature counter did not increase"


class NoSuchCredential(CeremonyVerificationFailed):
    default_message = "no such credential"


class RateLimited(AuthError):
    default_message = "too many attempts"


class InvariantViolation(AuthError):
    public = True
    default_message = "operation would leave the account without a login method"


class AlreadyLinkedElsewhere(AuthError):
    public = True
    default_message = "this provider account is already linked to another user"


class TOTPAlreadyEnabled(AuthError):
    public = True
    default_message = "two-factor authentication is already enabled"


class TOTPNotEnabled(AuthError):
    public = True
    default_message = "two-factor authentication is not enabled"


class SignupRejected(AuthError):
    public = True
    default_message = "signup rejected"


class PasswordRejected(AuthError):
    public = True
    default_message = "password rejected"


class UnknownProvider(AuthError):
    public = True
    default_message = "unknown provider"


class CredentialNotFound(AuthError):
    public = True
    default_message = "not found"
