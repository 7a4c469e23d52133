from __future__ import annotations

import base64
import hmac
import logging
import secrets
from datetime import datetime, timedelta

from praxis.constants import utcnow
from praxis.errors import CeremonyVerificationFailed, ChallengeConsumed, ChallengeExpired
from praxis.models.challenge import Challenge, ChallengePurpose
from praxis.repositories.base import ChallengeRepository
from praxis.settings import settings

logger = logging.getLogger(__name__)

NONCE_BYTES = 32


def new_nonce() -> str:
    """Random base64url nonce without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(NONCE_BYTES)).rstrip(b"=").decode()


class ChallengeService:
    """Single-use, short-lived challenges backing every ceremony.

    A challenge is consumed with one compare-and-set statement, so two
    concurrent finishers presenting the same id can never both succeed.
    """

    def __init__(self, repo: ChallengeRepository) -> None:
        self.repo = repo

    def issue(
        self,
        purpose: ChallengePurpose,
        *,
        user_id: int | None = None,
        provider: str | None = None,
        ttl_seconds: int | None = None,
    ) -> Challenge:
        """Record a new challenge. Expired challenges are deleted first."""
        now = utcnow()
        self.sweep(now)
        ttl = ttl_seconds if ttl_seconds is not None else settings.ceremony_ttl_seconds
        challenge = Challenge(
            purpose=purpose,
            nonce=new_nonce(),
            user_id=user_id,
            provider=provider,
            expires_at=now + timedelta(seconds=ttl),
        )
        created = self.repo.create(challenge)
        logger.info("Challenge issued: purpose=%s user=%s id=%s", purpose.value, user_id, created.uuid)
        return created

    def validate(
        self,
        challenge_id: str,
        purpose: ChallengePurpose,
        *,
        user_id: int | None = None,
        nonce: str | None = None,
    ) -> Challenge:
        """Check a challenge is usable without consuming it.

        Raises ChallengeExpired for unknown (already swept) or expired ids,
        ChallengeConsumed when it was used before, and
        CeremonyVerificationFailed when purpose, owner or nonce disagree.
        """
        challenge = self.repo.get_by_uuid(challenge_id)
        if challenge is None:
            logger.warning("Challenge rejected: unknown id=%s", challenge_id)
            raise ChallengeExpired()
        if challenge.purpose != purpose:
            logger.warning(
                "Challenge rejected: purpose mismatch id=%s expected=%s got=%s",
                challenge_id,
                purpose.value,
                challenge.purpose.value,
            )
            raise CeremonyVerificationFailed()
        if user_id is not None and challenge.user_id != user_id:
            logger.warning("Challenge rejected: owner mismatch id=%s user=%s", challenge_id, user_id)
            raise CeremonyVerificationFailed()
        if nonce is not None and not hmac.compare_digest(nonce.encode(), challenge.nonce.encode()):
            logger.warning("Challenge rejected: nonce mismatch id=%s", challenge_id)
            raise CeremonyVerificationFailed()
        if challenge.is_consumed:
            logger.warning("Challenge rejected: already consumed id=%s", challenge_id)
            raise ChallengeConsumed()
        if challenge.is_expired(utcnow()):
            logger.warning("Challenge rejected: expired id=%s", challenge_id)
            raise ChallengeExpired()
        return challenge

    def consume(
        self,
        challenge_id: str,
        purpose: ChallengePurpose,
        *,
        user_id: int | None = None,
        nonce: str | None = None,
    ) -> Challenge:
        """Consume a challenge exactly once and return it.

        Fails like ``validate``, plus ChallengeConsumed when a concurrent
        caller won the compare-and-set.
        """
        challenge = self.validate(challenge_id, purpose, user_id=user_id, nonce=nonce)
        if not self.repo.consume(challenge.id):
            logger.warning("Challenge rejected: lost consume race id=%s", challenge_id)
            raise ChallengeConsumed()
        logger.debug("Challenge consumed: id=%s", challenge_id)
        return challenge

    def sweep(self, now: datetime | None = None) -> int:
        removed = self.repo.delete_expired(now or utcnow())
        if removed:
            logger.info("Swept %s expired challenges", removed)
        return removed
