from __future__ import annotations

import logging

from praxis.errors import (
    AlreadyLinkedElsewhere,
    CeremonyVerificationFailed,
    ChallengeExpired,
    CredentialNotFound,
    InvariantViolation,
    UnknownProvider,
)
from praxis.models.challenge import Challenge, ChallengePurpose
from praxis.models.linked_account import LinkedAccount, LinkStart, ProviderIdentity
from praxis.models.login import LoginResult
from praxis.models.session import DeviceDescriptor
from praxis.providers import authorization_url
from praxis.repositories.base import LinkedAccountRepository
from praxis.services.challenge_service import ChallengeService
from praxis.services.login_service import LoginService
from praxis.settings import ProviderConfig, settings

logger = logging.getLogger(__name__)

STATE_SEPARATOR = "."


class AccountLinkService:
    def __init__(
        self,
        linked_repo: LinkedAccountRepository,
        challenge_service: ChallengeService,
        login_service: LoginService | None = None,
        providers: dict[str, ProviderConfig] | None = None,
    ) -> None:
        self.linked_repo = linked_repo
        self.challenge_service = challenge_service
        self.login_service = login_service
        self.providers = providers if providers is not None else settings.providers

    def link(self, user_id: int, provider: str, provider_subject: str, provider_email: str | None = None) -> LinkedAccount:
        existing = self.linked_repo.get_by_subject(provider, provider_subject)
        if existing is not None and existing.user_id != user_id:
            logger.warning(
                "Link refused: provider=%s subject=%s already linked to another user (requested by user=%s)",
                provider,
                provider_subject,
                user_id,
            )
            raise AlreadyLinkedElsewhere()
        account = self.linked_repo.upsert(
            LinkedAccount(
                user_id=user_id,
                provider=provider,
                provider_subject=provider_subject,
                provider_email=provider_email,
            )
        )
        if account is None:
            logger.warning("Link refused: concurrent link won provider=%s subject=%s", provider, provider_subject)
            raise AlreadyLinkedElsewhere()
        logger.info("Account linked: user=%s provider=%s", user_id, provider)
        return account

    def unlink(self, user_id: int, provider: str) -> LinkedAccount:
        account = self.linked_repo.get(user_id, provider)
        if account is None:
            raise CredentialNotFound()
        if not self.linked_repo.delete_keeping_login_method(user_id, provider):
            logger.warning("Unlink refused: last login method user=%s provider=%s", user_id, provider)
            raise InvariantViolation()
        logger.info("Account unlinked: user=%s provider=%s", user_id, provider)
        return account

    def list_accounts(self, user_id: int) -> list[LinkedAccount]:
        return self.linked_repo.list_by_user(user_id)

    # --- Redirect delegation ---

    def start_link(self, user_id: int | None, provider: str) -> LinkStart:
        """Begin a provider redirect; with no user the flow is a login.

        The returned state is ``<challenge id>.<nonce>`` and must come back
        unchanged on the callback.
        """
        config = self.providers.get(provider)
        if config is None:
            raise UnknownProvider()
        challenge = self.challenge_service.issue(
            ChallengePurpose.ACCOUNT_LINK,
            user_id=user_id,
            provider=provider,
            ttl_seconds=settings.account_link_ttl_seconds,
        )
        state = f"{challenge.uuid}{STATE_SEPARATOR}{challenge.nonce}"
        return LinkStart(state=state, authorization_url=authorization_url(provider, config, state))

    def consume_state(self, state: str, provider: str) -> Challenge:
        challenge_id, sep, nonce = (state or "").partition(STATE_SEPARATOR)
        if not sep or not challenge_id or not nonce:
            logger.warning("Provider callback rejected: malformed state provider=%s", provider)
            raise ChallengeExpired()
        challenge = self.challenge_service.consume(challenge_id, ChallengePurpose.ACCOUNT_LINK, nonce=nonce)
        if challenge.provider != provider:
            logger.warning(
                "Provider callback rejected: state issued for provider=%s used with provider=%s",
                challenge.provider,
                provider,
            )
            raise CeremonyVerificationFailed()
        return challenge

    def complete_link(
        self,
        challenge: Challenge,
        identity: ProviderIdentity,
        device: DeviceDescriptor | None = None,
        user_id: int | None = None,
    ) -> LinkedAccount | LoginResult:
        """Finish a consumed redirect: link for a bound state, log in otherwise."""
        provider = challenge.provider or ""
        if challenge.user_id is None:
            if self.login_service is None:
                raise CeremonyVerificationFailed()
            return self.login_service.login_with_provider(provider, identity, device or DeviceDescriptor())
        if user_id != challenge.user_id:
            logger.warning(
                "Provider callback rejected: state bound to user=%s presented by user=%s", challenge.user_id, user_id
            )
            raise CeremonyVerificationFailed()
        return self.link(challenge.user_id, provider, identity.subject, identity.email)
