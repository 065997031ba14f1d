"""
Local identity verification: national-ID number + OTP challenge.

States: unverified -> otp_sent -> verified.
- OTP stored as SHA-256 hash: sha256(code + ":" + OTP_PEPPER). Never store raw OTP.
- ID number stored as hash + last 4 digits only.
- Code source is pluggable (OtpGenerator). The reference deployment uses one fixed
  test code; set OTP_MODE=random for real codes.
- Attempt limits, expiry and lockout are optional (OtpPolicy); the defaults impose none.
"""
import hashlib
import logging
import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from signing import config
from signing.errors import (
    AlreadyVerified,
    InvalidIdFormat,
    InvalidOtpFormat,
    OtpExpired,
    OtpLocked,
    OtpMismatch,
    OtpNotRequested,
)
from signing.models.documents import VerificationChallenge, VerificationState

logger = logging.getLogger(__name__)


class OtpGenerator(ABC):
    @abstractmethod
    def generate(self) -> str:
        pass


class FixedOtpGenerator(OtpGenerator):
    """Always issues the same code (test / demo deployments)."""

    def __init__(self, code: str = config.OTP_FIXED_CODE):
        self.code = code

    def generate(self) -> str:
        return self.code


class RandomOtpGenerator(OtpGenerator):
    def __init__(self, length: int = config.OTP_LENGTH):
        self.length = length

    def generate(self) -> str:
        return "".join(secrets.choice("0123456789") for _ in range(self.length))


@dataclass(frozen=True)
class OtpPolicy:
    """None disables the corresponding limit."""
    max_attempts: Optional[int] = None
    ttl_seconds: Optional[int] = None
    lockout_seconds: Optional[int] = None

    @classmethod
    def from_config(cls) -> "OtpPolicy":
        return cls(
            max_attempts=config.OTP_MAX_ATTEMPTS or None,
            ttl_seconds=config.OTP_TTL_SECONDS or None,
            lockout_seconds=config.OTP_LOCKOUT_SECONDS or None,
        )


def default_otp_generator() -> OtpGenerator:
    if config.OTP_MODE == "random":
        return RandomOtpGenerator()
    return FixedOtpGenerator()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class LocalIdVerifier:
    """Drives a VerificationChallenge through its states. Mutates the challenge in place;
    persistence is the caller's job."""

    def __init__(
        self,
        generator: Optional[OtpGenerator] = None,
        policy: Optional[OtpPolicy] = None,
        pepper: str = config.OTP_PEPPER,
        clock: Callable[[], datetime] = _utcnow,
        id_length: int = config.NATIONAL_ID_LENGTH,
        otp_length: int = config.OTP_LENGTH,
    ):
        self.generator = generator or default_otp_generator()
        self.policy = policy or OtpPolicy()
        self.pepper = pepper
        self.clock = clock
        self._id_pattern = re.compile(rf"^\d{{{id_length}}}$")
        self._otp_pattern = re.compile(rf"^\d{{{otp_length}}}$")

    def _hash(self, value: str) -> str:
        return hashlib.sha256((value + ":" + self.pepper).encode()).hexdigest()

    def _issue(self, challenge: VerificationChallenge) -> str:
        now = self.clock()
        code = self.generator.generate()
        challenge.code_hash = self._hash(code)
        challenge.otp_issued_at = now
        challenge.otp_expires_at = (
            now + timedelta(seconds=self.policy.ttl_seconds) if self.policy.ttl_seconds else None
        )
        challenge.send_count += 1
        challenge.state = VerificationState.OTP_SENT
        return code

    def _check_lockout(self, challenge: VerificationChallenge) -> None:
        """Failed attempts survive request/resend; only an elapsed lockout clears them.
        With an attempt limit and no lockout window, reaching the limit is final."""
        locked_until = _aware(challenge.locked_until)
        if locked_until:
            if self.clock() < locked_until:
                raise OtpLocked(f"Too many attempts. Try again after {locked_until.isoformat()}")
            challenge.locked_until = None
            challenge.attempts = 0
        if self.policy.max_attempts and challenge.attempts >= self.policy.max_attempts:
            raise OtpLocked("Too many attempts")

    def request_otp(self, challenge: VerificationChallenge, id_number: str) -> str:
        """Validate the ID number and issue an OTP. Returns the raw code for dispatch."""
        if challenge.state == VerificationState.VERIFIED:
            raise AlreadyVerified()
        id_number = (id_number or "").strip()
        if not self._id_pattern.match(id_number):
            raise InvalidIdFormat(f"Please enter a valid {config.NATIONAL_ID_LENGTH}-digit ID number")
        self._check_lockout(challenge)

        challenge.subject_id_hash = self._hash(id_number)
        challenge.subject_id_last4 = id_number[-4:]
        code = self._issue(challenge)
        logger.info(f"otp_request issued subject_hash={challenge.subject_id_hash[:16]} send_count={challenge.send_count}")
        return code

    def resend_otp(self, challenge: VerificationChallenge) -> str:
        """Re-enter otp_sent with a fresh code; previously entered codes no longer count."""
        if challenge.state == VerificationState.VERIFIED:
            raise AlreadyVerified()
        if not challenge.subject_id_hash:
            raise OtpNotRequested("Request an OTP before resending")
        self._check_lockout(challenge)
        code = self._issue(challenge)
        logger.info(f"otp_resend issued subject_hash={challenge.subject_id_hash[:16]} send_count={challenge.send_count}")
        return code

    def submit_otp(self, challenge: VerificationChallenge, code: str) -> VerificationChallenge:
        """Check the code. On OtpMismatch the attempt counter has already been incremented."""
        if challenge.state == VerificationState.VERIFIED:
            raise AlreadyVerified()
        if challenge.state != VerificationState.OTP_SENT:
            raise OtpNotRequested()
        code = (code or "").strip()
        if not self._otp_pattern.match(code):
            raise InvalidOtpFormat(f"Please enter a valid {config.OTP_LENGTH}-digit OTP")

        now = self.clock()
        self._check_lockout(challenge)
        expires_at = _aware(challenge.otp_expires_at)
        if expires_at and now > expires_at:
            raise OtpExpired("OTP has expired. Please request a new one")

        if challenge.code_hash != self._hash(code):
            challenge.attempts += 1
            if self.policy.max_attempts and challenge.attempts >= self.policy.max_attempts and self.policy.lockout_seconds:
                challenge.locked_until = now + timedelta(seconds=self.policy.lockout_seconds)
            logger.info(f"otp_verify failed subject_hash={(challenge.subject_id_hash or '')[:16]} attempt_count={challenge.attempts}")
            raise OtpMismatch("Invalid OTP. Please try again")

        challenge.state = VerificationState.VERIFIED
        challenge.verified_at = now
        challenge.code_hash = None
        challenge.attempts = 0
        logger.info(f"otp_verify success subject_hash={(challenge.subject_id_hash or '')[:16]}")
        return challenge
