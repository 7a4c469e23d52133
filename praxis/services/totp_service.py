from __future__ import annotations

import base64
import io
import logging
import secrets
import string
from datetime import datetime, timezone

import pyotp
import qrcode
from pyotp.utils import strings_equal

from praxis.constants import TOTP_DIGITS, TOTP_INTERVAL
from praxis.errors import InvalidCredentials, TOTPAlreadyEnabled, TOTPNotEnabled
from praxis.models.challenge import ChallengePurpose
from praxis.models.login import LoginMethod
from praxis.models.mfa import TOTPSetup, TOTPStatus, UserTOTP
from praxis.repositories.base import MFATOTPRepository, RecoveryCodeRepository
from praxis.services.challenge_service import ChallengeService
from praxis.services.credential_service import check_secret, hash_secret
from praxis.settings import settings

logger = logging.getLogger(__name__)

RECOVERY_CODE_COUNT = 10
RECOVERY_CODE_LENGTH = 8
RECOVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits

# current step plus one step of drift either way
VALID_STEP_OFFSETS = (-1, 0, 1)


def normalize_code(code: str) -> str:
    return "".join(code.split()).replace("-", "").upper()


def looks_like_totp(code: str) -> bool:
    return len(code) == TOTP_DIGITS and code.isdigit()


class TOTPService:
    def __init__(
        self,
        totp_repo: MFATOTPRepository,
        recovery_repo: RecoveryCodeRepository,
        challenge_service: ChallengeService,
        issuer: str | None = None,
    ) -> None:
        self.totp_repo = totp_repo
        self.recovery_repo = recovery_repo
        self.challenge_service = challenge_service
        self.issuer = issuer or settings.totp_issuer

    @staticmethod
    def _totp(secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)

    def _matching_step(self, secret: str, code: str) -> int | None:
        totp = self._totp(secret)
        current = totp.timecode(datetime.now(timezone.utc))
        for offset in VALID_STEP_OFFSETS:
            step = current + offset
            if strings_equal(code, totp.generate_otp(step)):
                return step
        return None

    def _check_code(self, record: UserTOTP, code: str) -> bool:
        """Accept a code once per time step for this secret."""
        code = normalize_code(code)
        if not looks_like_totp(code):
            return False
        step = self._matching_step(record.secret, code)
        if step is None:
            return False
        if record.last_used_step is not None and step <= record.last_used_step:
            logger.warning("TOTP code replayed for user=%s step=%d", record.user_id, step)
            return False
        if not self.totp_repo.advance_last_used_step(record.user_id, step):
            logger.warning("TOTP step already used concurrently for user=%s step=%d", record.user_id, step)
            return False
        return True

    # --- Setup / enable / disable ---

    def setup(self, user_id: int, account_name: str) -> TOTPSetup:
        """Generate a fresh secret, stored disabled until a code confirms it.

        A pending (never enabled) secret is replaced; an enabled one is kept
        and TOTPAlreadyEnabled is raised. The returned challenge must be
        presented to ``enable`` before it expires.
        """
        existing = self.totp_repo.get_by_user_id(user_id)
        if existing is not None and existing.enabled:
            raise TOTPAlreadyEnabled()
        if existing is not None:
            self.totp_repo.delete_by_user_id(user_id)

        secret = pyotp.random_base32()
        self.totp_repo.create(UserTOTP(user_id=user_id, secret=secret, enabled=False))
        challenge = self.challenge_service.issue(ChallengePurpose.TOTP_SETUP, user_id=user_id)

        provisioning_uri = self._totp(secret).provisioning_uri(name=account_name, issuer_name=self.issuer)
        qr = qrcode.make(provisioning_uri)
        buf = io.BytesIO()
        qr.save(buf, format="PNG")
        qr_base64 = base64.b64encode(buf.getvalue()).decode()

        logger.info("TOTP setup initiated for user=%s", user_id)
        return TOTPSetup(
            secret=secret,
            provisioning_uri=provisioning_uri,
            qr_code_base64=qr_base64,
            challenge_id=challenge.uuid,
            expires_at=challenge.expires_at,
        )

    def enable(self, user_id: int, challenge_id: str, code: str) -> list[str]:
        """Confirm the pending secret. Returns the new plaintext recovery codes, once.

        The setup challenge is checked before the code and consumed only once
        the code matches, so a mistyped code can be retried until it expires.
        """
        self.challenge_service.validate(challenge_id, ChallengePurpose.TOTP_SETUP, user_id=user_id)
        record = self.totp_repo.get_by_user_id(user_id)
        if record is None:
            logger.warning("TOTP enable rejected: no pending secret for user=%s", user_id)
            raise InvalidCredentials()
        if record.enabled:
            raise TOTPAlreadyEnabled()
        if not self._check_code(record, code):
            logger.warning("TOTP enable rejected: invalid code for user=%s", user_id)
            raise InvalidCredentials()
        self.challenge_service.consume(challenge_id, ChallengePurpose.TOTP_SETUP, user_id=user_id)

        self.totp_repo.enable(user_id)
        codes = self._generate_recovery_codes(user_id)
        logger.info("TOTP enabled for user=%s", user_id)
        return codes

    def disable(self, user_id: int, code: str) -> None:
        """Destroy the secret and recovery set; requires proof of possession."""
        record = self.totp_repo.get_by_user_id(user_id)
        if record is None or not record.enabled:
            raise TOTPNotEnabled()
        if not self._check_code(record, code) and not self.consume_recovery_code(user_id, code):
            logger.warning("TOTP disable rejected: invalid code for user=%s", user_id)
            raise InvalidCredentials()
        self.totp_repo.delete_by_user_id(user_id)
        self.recovery_repo.delete_all_by_user(user_id)
        logger.info("TOTP disabled for user=%s", user_id)

    def status(self, user_id: int) -> TOTPStatus:
        record = self.totp_repo.get_by_user_id(user_id)
        if record is None or not record.enabled:
            return TOTPStatus(enabled=False, recovery_codes_remaining=0)
        return TOTPStatus(
            enabled=True,
            recovery_codes_remaining=len(self.recovery_repo.list_unused_by_user(user_id)),
        )

    def is_enabled(self, user_id: int) -> bool:
        record = self.totp_repo.get_by_user_id(user_id)
        return record is not None and record.enabled

    # --- Verification ---

    def verify_code(self, user_id: int, code: str) -> bool:
        record = self.totp_repo.get_by_user_id(user_id)
        if record is None or not record.enabled:
            return False
        return self._check_code(record, code)

    def verify_second_factor(self, user_id: int, code: str) -> LoginMethod | None:
        """Try the code as a TOTP code, then as a recovery code."""
        if self.verify_code(user_id, code):
            return LoginMethod.TOTP
        if self.consume_recovery_code(user_id, code):
            return LoginMethod.RECOVERY_CODE
        return None

    # --- Recovery codes ---

    def _generate_recovery_codes(self, user_id: int) -> list[str]:
        """Generate new recovery codes, replacing any existing ones."""
        self.recovery_repo.delete_all_by_user(user_id)
        codes = [
            "".join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(RECOVERY_CODE_LENGTH))
            for _ in range(RECOVERY_CODE_COUNT)
        ]
        self.recovery_repo.create_batch(user_id, [hash_secret(code) for code in codes])
        logger.info("Generated %d recovery codes for user=%s", len(codes), user_id)
        return codes

    def regenerate_recovery_codes(self, user_id: int, code: str) -> list[str]:
        """Replace the recovery set. Requires a current TOTP code."""
        record = self.totp_repo.get_by_user_id(user_id)
        if record is None or not record.enabled:
            raise TOTPNotEnabled()
        if not self._check_code(record, code):
            logger.warning("Recovery code regeneration rejected: invalid code for user=%s", user_id)
            raise InvalidCredentials()
        return self._generate_recovery_codes(user_id)

    def consume_recovery_code(self, user_id: int, code: str) -> bool:
        """Verify and consume a recovery code; each code works at most once."""
        code = normalize_code(code)
        if len(code) != RECOVERY_CODE_LENGTH:
            return False
        for rc in self.recovery_repo.list_unused_by_user(user_id):
            if check_secret(code, rc.code_hash):
                if not self.recovery_repo.mark_used(rc.id):
                    logger.warning("Recovery code already consumed concurrently for user=%s", user_id)
                    return False
                logger.info("Recovery code used for user=%s", user_id)
                return True
        return False
