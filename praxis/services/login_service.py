from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta

from praxis.constants import utcnow
from praxis.errors import AlreadyLinkedElsewhere, InvalidCredentials, RateLimited
from praxis.models.linked_account import LinkedAccount, ProviderIdentity
from praxis.models.login import LoginMethod, LoginResult, LoginState, PendingLogin
from praxis.models.session import DeviceDescriptor
from praxis.models.user import User
from praxis.repositories.base import LinkedAccountRepository, PendingLoginRepository, UserRepository
from praxis.services.credential_service import CredentialService
from praxis.services.passkey_service import PasskeyService
from praxis.services.session_service import SessionService, hash_token
from praxis.services.totp_service import TOTPService
from praxis.settings import settings

logger = logging.getLogger(__name__)

PENDING_TOKEN_BYTES = 32

_USERNAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]")


class LoginService:
    """Login state machine.

    AwaitingPrimary -> (AwaitingSecondFactor ->) Authenticated, or Rejected
    through an exception. Users with an enabled TOTP secret always pass
    through AwaitingSecondFactor on the password path; passkey and provider
    logins are single-step.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        pending_repo: PendingLoginRepository,
        credential_service: CredentialService,
        totp_service: TOTPService,
        session_service: SessionService,
        passkey_service: PasskeyService | None = None,
        linked_repo: LinkedAccountRepository | None = None,
    ) -> None:
        self.user_repo = user_repo
        self.pending_repo = pending_repo
        self.credential_service = credential_service
        self.totp_service = totp_service
        self.session_service = session_service
        self.passkey_service = passkey_service
        self.linked_repo = linked_repo

    def _authenticated(
        self,
        user_id: int,
        method: LoginMethod,
        device: DeviceDescriptor,
        used_recovery_code: bool = False,
    ) -> LoginResult:
        issued = self.session_service.issue(user_id, device)
        logger.info("Login complete: user=%s method=%s", user_id, method.value)
        return LoginResult(
            state=LoginState.AUTHENTICATED,
            user_id=user_id,
            method=method,
            session_token=issued.token,
            session_id=issued.session.uuid,
            used_recovery_code=used_recovery_code,
        )

    def submit_primary(self, identifier: str, secret: str, device: DeviceDescriptor) -> LoginResult:
        user = self.credential_service.authenticate(identifier, secret)
        if user is None:
            logger.warning("Login failed: bad primary factor identifier=%s ip=%s", identifier, device.ip_address)
            raise InvalidCredentials()

        if not self.totp_service.is_enabled(user.id):
            return self._authenticated(user.id, LoginMethod.PASSWORD, device)

        now = utcnow()
        self.pending_repo.delete_expired(now)
        token = secrets.token_urlsafe(PENDING_TOKEN_BYTES)
        pending = self.pending_repo.create(
            PendingLogin(
                token_hash=hash_token(token),
                user_id=user.id,
                user_agent=device.user_agent,
                ip_address=device.ip_address,
                expires_at=now + timedelta(seconds=settings.pending_login_ttl_seconds),
            )
        )
        logger.info("Login awaiting second factor: user=%s", user.id)
        return LoginResult(
            state=LoginState.AWAITING_SECOND_FACTOR,
            user_id=user.id,
            method=LoginMethod.PASSWORD,
            pending_token=token,
            pending_expires_at=pending.expires_at,
        )

    def submit_second_factor(self, pending_token: str, code: str) -> LoginResult:
        pending = self.pending_repo.get_by_token_hash(hash_token(pending_token or ""))
        if pending is None or pending.consumed_at is not None or utcnow() >= pending.expires_at:
            logger.warning("Second factor rejected: pending login unknown, used or expired")
            raise InvalidCredentials()

        method = self.totp_service.verify_second_factor(pending.user_id, code)
        if method is None:
            attempts = self.pending_repo.record_failure(pending.id)
            if attempts >= settings.second_factor_max_attempts:
                self.pending_repo.consume(pending.id)
                logger.warning(
                    "Second factor rejected: attempts exhausted user=%s attempts=%d", pending.user_id, attempts
                )
                raise RateLimited()
            logger.warning("Second factor rejected: bad code user=%s attempts=%d", pending.user_id, attempts)
            raise InvalidCredentials()

        if not self.pending_repo.consume(pending.id):
            logger.warning("Second factor rejected: pending login consumed concurrently user=%s", pending.user_id)
            raise InvalidCredentials()

        device = DeviceDescriptor(user_agent=pending.user_agent, ip_address=pending.ip_address)
        return self._authenticated(
            pending.user_id,
            method,
            device,
            used_recovery_code=method == LoginMethod.RECOVERY_CODE,
        )

    def login_with_passkey(self, challenge_id: str, credential: dict | str, device: DeviceDescriptor) -> LoginResult:
        if self.passkey_service is None:
            raise InvalidCredentials()
        passkey = self.passkey_service.finish_authentication(challenge_id, credential)
        return self._authenticated(passkey.user_id, LoginMethod.PASSKEY, device)

    def login_with_provider(self, provider: str, identity: ProviderIdentity, device: DeviceDescriptor) -> LoginResult:
        """Log in through a linked provider identity, creating the account on first use.

        An existing account is never matched by e-mail; only a prior link
        grants access to it.
        """
        if self.linked_repo is None:
            raise InvalidCredentials()
        linked = self.linked_repo.get_by_subject(provider, identity.subject)
        if linked is not None:
            return self._authenticated(linked.user_id, LoginMethod.PROVIDER, device)

        user = self._create_provider_user(provider, identity)
        account = self.linked_repo.upsert(
            LinkedAccount(
                user_id=user.id,
                provider=provider,
                provider_subject=identity.subject,
                provider_email=identity.email,
            )
        )
        if account is None:
            self.user_repo.delete(user.id)
            logger.warning("Provider signup lost link race: provider=%s subject=%s", provider, identity.subject)
            raise AlreadyLinkedElsewhere()
        logger.info("Account created from provider login: user=%s provider=%s", user.id, provider)
        return self._authenticated(user.id, LoginMethod.PROVIDER, device)

    def _create_provider_user(self, provider: str, identity: ProviderIdentity) -> User:
        base = _USERNAME_UNSAFE.sub("", identity.name or "") or f"{provider}-{identity.subject}"
        base = base[:40]
        username = base
        while self.user_repo.get_by_username(username) is not None:
            username = f"{base}-{secrets.token_hex(3)}"

        email = identity.email.lower() if identity.email else None
        if email and self.user_repo.get_by_email(email) is not None:
            email = None
        return self.user_repo.create(User(username=username, email=email, password_hash=None))
