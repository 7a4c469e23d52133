from __future__ import annotations

import json
import logging

import webauthn
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_authentication_credential_json,
    parse_authenticator_data,
    parse_registration_credential_json,
)
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from praxis.errors import (
    CeremonyVerificationFailed,
    CounterReplay,
    CredentialNotFound,
    InvalidCredentials,
    InvariantViolation,
    NoSuchCredential,
    SignatureInvalid,
)
from praxis.models.challenge import ChallengePurpose
from praxis.models.mfa import CeremonyOptions, UserPasskey
from praxis.repositories.base import PasskeyRepository, UserRepository
from praxis.services.challenge_service import ChallengeService
from praxis.services.credential_service import CredentialService
from praxis.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_PASSKEY_NAME = "Passkey"
PASSKEY_NAME_MAX_LENGTH = 100


def _descriptor(passkey: UserPasskey) -> PublicKeyCredentialDescriptor:
    return PublicKeyCredentialDescriptor(id=base64url_to_bytes(passkey.credential_id))


class PasskeyService:
    """WebAuthn registration and authentication ceremonies.

    Every finish step consumes its challenge before anything is verified, so a
    response can be checked at most once whether it passes or not.
    """

    def __init__(
        self,
        passkey_repo: PasskeyRepository,
        user_repo: UserRepository,
        challenge_service: ChallengeService,
        credential_service: CredentialService,
    ) -> None:
        self.passkey_repo = passkey_repo
        self.user_repo = user_repo
        self.challenge_service = challenge_service
        self.credential_service = credential_service

    # --- Registration ---

    def start_registration(self, user_id: int, password: str | None = None) -> CeremonyOptions:
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise InvalidCredentials()
        if settings.passkey_require_password and user.has_password:
            if not password or not self.credential_service.verify_password(user, password):
                logger.warning("Passkey registration refused: password re-check failed for user=%s", user_id)
                raise InvalidCredentials()

        challenge = self.challenge_service.issue(ChallengePurpose.PASSKEY_REGISTRATION, user_id=user_id)
        options = webauthn.generate_registration_options(
            rp_id=settings.webauthn_rp_id,
            rp_name=settings.webauthn_rp_name,
            user_id=user.uuid.encode(),
            user_name=user.username,
            user_display_name=user.username,
            challenge=base64url_to_bytes(challenge.nonce),
            timeout=settings.ceremony_ttl_seconds * 1000,
            exclude_credentials=[_descriptor(pk) for pk in self.passkey_repo.list_by_user(user_id)],
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
        )
        return CeremonyOptions(challenge_id=challenge.uuid, options=json.loads(webauthn.options_to_json(options)))

    def finish_registration(
        self,
        user_id: int,
        challenge_id: str,
        credential: dict | str,
        name: str | None = None,
    ) -> UserPasskey:
        challenge = self.challenge_service.consume(
            challenge_id, ChallengePurpose.PASSKEY_REGISTRATION, user_id=user_id
        )
        try:
            parsed = parse_registration_credential_json(credential)
            verification = webauthn.verify_registration_response(
                credential=parsed,
                expected_challenge=base64url_to_bytes(challenge.nonce),
                expected_rp_id=settings.webauthn_rp_id,
                expected_origin=settings.webauthn_origin,
            )
        except WebAuthnException as e:
            logger.warning("Passkey registration failed for user=%s: %s", user_id, e)
            raise CeremonyVerificationFailed() from e

        credential_id = bytes_to_base64url(verification.credential_id)
        if self.passkey_repo.get_by_credential_id(credential_id) is not None:
            logger.warning("Passkey registration refused: credential already registered user=%s", user_id)
            raise CeremonyVerificationFailed()

        transports = parsed.response.transports or []
        passkey = self.passkey_repo.create(
            UserPasskey(
                user_id=user_id,
                credential_id=credential_id,
                public_key=bytes_to_base64url(verification.credential_public_key),
                sign_count=verification.sign_count,
                name=_clean_name(name),
                transports=",".join(t.value for t in transports) or None,
            )
        )
        logger.info("Passkey registered for user=%s passkey=%s", user_id, passkey.uuid)
        return passkey

    # --- Authentication ---

    def start_authentication(self, identifier: str | None = None) -> CeremonyOptions:
        """Issue an assertion challenge, bound to a user when one is named.

        An unknown identifier yields the same unbound challenge a
        discoverable-credential flow gets.
        """
        user = self.credential_service.find_user(identifier) if identifier else None
        allow_credentials = []
        if user is not None:
            allow_credentials = [_descriptor(pk) for pk in self.passkey_repo.list_by_user(user.id)]

        challenge = self.challenge_service.issue(
            ChallengePurpose.PASSKEY_AUTHENTICATION,
            user_id=user.id if user is not None else None,
        )
        options = webauthn.generate_authentication_options(
            rp_id=settings.webauthn_rp_id,
            challenge=base64url_to_bytes(challenge.nonce),
            timeout=settings.ceremony_ttl_seconds * 1000,
            allow_credentials=allow_credentials,
            user_verification=UserVerificationRequirement.PREFERRED,
        )
        return CeremonyOptions(challenge_id=challenge.uuid, options=json.loads(webauthn.options_to_json(options)))

    def finish_authentication(self, challenge_id: str, credential: dict | str) -> UserPasskey:
        challenge = self.challenge_service.consume(challenge_id, ChallengePurpose.PASSKEY_AUTHENTICATION)
        try:
            parsed = parse_authentication_credential_json(credential)
            auth_data = parse_authenticator_data(parsed.response.authenticator_data)
        except WebAuthnException as e:
            logger.warning("Passkey assertion malformed: challenge=%s %s", challenge_id, e)
            raise CeremonyVerificationFailed() from e

        passkey = self.passkey_repo.get_by_credential_id(bytes_to_base64url(parsed.raw_id))
        if passkey is None:
            logger.warning("Passkey assertion rejected: unknown credential challenge=%s", challenge_id)
            raise NoSuchCredential()
        if challenge.user_id is not None and passkey.user_id != challenge.user_id:
            logger.warning(
                "Passkey assertion rejected: credential owner mismatch passkey=%s challenge_user=%s",
                passkey.uuid,
                challenge.user_id,
            )
            raise NoSuchCredential()

        if not self._counter_advances(passkey.sign_count, auth_data.sign_count):
            logger.warning(
                "Passkey assertion rejected: counter replay passkey=%s stored=%d received=%d",
                passkey.uuid,
                passkey.sign_count,
                auth_data.sign_count,
            )
            raise CounterReplay()

        try:
            verification = webauthn.verify_authentication_response(
                credential=parsed,
                expected_challenge=base64url_to_bytes(challenge.nonce),
                expected_rp_id=settings.webauthn_rp_id,
                expected_origin=settings.webauthn_origin,
                credential_public_key=base64url_to_bytes(passkey.public_key),
                credential_current_sign_count=passkey.sign_count,
            )
        except WebAuthnException as e:
            logger.warning("Passkey assertion rejected: signature invalid passkey=%s %s", passkey.uuid, e)
            raise SignatureInvalid() from e

        if not self.passkey_repo.advance_sign_count(passkey.id, passkey.sign_count, verification.new_sign_count):
            logger.warning("Passkey assertion rejected: counter advanced concurrently passkey=%s", passkey.uuid)
            raise CounterReplay()
        self.passkey_repo.update_last_used(passkey.id)

        logger.info("Passkey assertion verified for user=%s passkey=%s", passkey.user_id, passkey.uuid)
        return passkey.model_copy(update={"sign_count": verification.new_sign_count})

    @staticmethod
    def _counter_advances(stored: int, received: int) -> bool:
        if received > stored:
            return True
        return settings.passkey_allow_zero_counter and stored == 0 and received == 0

    # --- Management ---

    def list_passkeys(self, user_id: int) -> list[UserPasskey]:
        return self.passkey_repo.list_by_user(user_id)

    def _owned(self, user_id: int, passkey_uuid: str) -> UserPasskey:
        passkey = self.passkey_repo.get_by_uuid(passkey_uuid)
        if passkey is None or passkey.user_id != user_id:
            raise CredentialNotFound()
        return passkey

    def rename_passkey(self, user_id: int, passkey_uuid: str, name: str) -> UserPasskey:
        passkey = self._owned(user_id, passkey_uuid)
        new_name = _clean_name(name)
        self.passkey_repo.rename(passkey.id, new_name)
        logger.info("Passkey renamed for user=%s passkey=%s", user_id, passkey_uuid)
        return passkey.model_copy(update={"name": new_name})

    def delete_passkey(self, user_id: int, passkey_uuid: str) -> UserPasskey:
        """Remove a passkey unless it is the account's last login method."""
        passkey = self._owned(user_id, passkey_uuid)
        if not self.passkey_repo.delete_keeping_login_method(passkey.id, user_id):
            logger.warning("Passkey delete refused: last login method user=%s passkey=%s", user_id, passkey_uuid)
            raise InvariantViolation()
        logger.info("Passkey deleted for user=%s passkey=%s", user_id, passkey_uuid)
        return passkey


def _clean_name(name: str | None) -> str:
    name = (name or "").strip()[:PASSKEY_NAME_MAX_LENGTH]
    return name or DEFAULT_PASSKEY_NAME
