"""
Password policy engine.

validate() reports every violated rule as a discrete PolicyViolation code
rather than stopping at the first one; ensure_valid() turns a failing result
into a WeakPasswordError for request handlers.

Hashing uses argon2id (argon2-cffi). Hash and verify run in a worker thread
so the event loop is not blocked by the deliberately slow hash.
"""

from __future__ import annotations

import asyncio
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from errors import PolicyConfigurationError, WeakPasswordError
from shared.crypto import generate_secure_token, hash_token
from shared.datetime_utils import utcnow

MIN_LENGTH = 8
MAX_LENGTH = 128
MAX_REPEATING_CHARS = 3
SPECIAL_CHARS = '!@#$%^&*(),.?":{}|<>'

COMMON_PASSWORDS = frozenset(
    {
        "password", "12345678", "qwerty", "abc123", "password123",
        "admin", "letmein", "welcome", "123456789", "password1",
        "iloveyou", "princess", "monkey", "shadow", "master",
    }
)

_NUMERIC_RUNS = ["123", "234", "345", "456", "567", "678", "789", "890"]
_ALPHA_RUNS = ["abc", "bcd", "cde", "def", "efg", "fgh", "ghi", "hij"]
_KEYBOARD_RUNS = ["qwe", "wer", "ert", "rty", "tyu", "yui", "uio", "iop"]
COMMON_SEQUENCES = tuple(
    seq
    for runs in (_NUMERIC_RUNS, _ALPHA_RUNS, _KEYBOARD_RUNS)
    for s in runs
    for seq in (s, s[::-1])
)

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
UPPERCASE_UNAMBIGUOUS = "ABCDEFGHJKLMNPQRSTUVWXYZ"
LOWERCASE_UNAMBIGUOUS = "abcdefghjkmnpqrstuvwxyz"
DIGITS_UNAMBIGUOUS = "23456789"
GENERATOR_SPECIALS = "!@#$%^&*"

_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARS) + "]")


class PolicyViolation(str, Enum):
    TOO_SHORT = "TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    MISSING_UPPERCASE = "MISSING_UPPERCASE"
    MISSING_LOWERCASE = "MISSING_LOWERCASE"
    MISSING_NUMBER = "MISSING_NUMBER"
    MISSING_SPECIAL = "MISSING_SPECIAL"
    REPEATING_CHARACTERS = "REPEATING_CHARACTERS"
    COMMON_PASSWORD = "COMMON_PASSWORD"
    COMMON_SEQUENCE = "COMMON_SEQUENCE"


VIOLATION_MESSAGES = {
    PolicyViolation.TOO_SHORT: f"Password must be at least {MIN_LENGTH} characters long",
    PolicyViolation.TOO_LONG: f"Password cannot exceed {MAX_LENGTH} characters",
    PolicyViolation.MISSING_UPPERCASE: "Password must contain at least one uppercase letter",
    PolicyViolation.MISSING_LOWERCASE: "Password must contain at least one lowercase letter",
    PolicyViolation.MISSING_NUMBER: "Password must contain at least one number",
    PolicyViolation.MISSING_SPECIAL: "Password must contain at least one special character",
    PolicyViolation.REPEATING_CHARACTERS: (
        f"Password cannot have more than {MAX_REPEATING_CHARS} consecutive repeating characters"
    ),
    PolicyViolation.COMMON_PASSWORD: "Password is too common. Please choose a more secure password",
    PolicyViolation.COMMON_SEQUENCE: (
        'Password cannot contain common sequences like "123", "abc", or "qwerty"'
    ),
}


@dataclass(frozen=True)
class PolicyResult:
    violations: tuple[PolicyViolation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def messages(self) -> list[str]:
        return [VIOLATION_MESSAGES[v] for v in self.violations]


@dataclass(frozen=True)
class PasswordStrength:
    score: int
    strength: str
    feedback: list[str] = field(default_factory=list)
    max_score: int = 10


@dataclass(frozen=True)
class ResetToken:
    token: str  # sent to the user
    token_hash: str  # stored
    expires_at: datetime


def has_excessive_repeats(password: str) -> bool:
    run = 1
    for prev, cur in zip(password, password[1:]):
        run = run + 1 if cur == prev else 1
        if run > MAX_REPEATING_CHARS:
            return True
    return False


def is_common_password(password: str) -> bool:
    return password.lower() in COMMON_PASSWORDS


def has_common_sequence(password: str) -> bool:
    lowered = password.lower()
    return any(seq in lowered for seq in COMMON_SEQUENCES)


def _shuffle(chars: list[str]) -> str:
    # Fisher-Yates with a CSPRNG
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


class PasswordPolicy:
    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 65536,
        reset_token_ttl_minutes: int = 10,
    ) -> None:
        self._hasher = PasswordHasher(time_cost=time_cost, memory_cost=memory_cost)
        self._reset_ttl = timedelta(minutes=reset_token_ttl_minutes)

    # ── validation ──────────────────────────────────────────────────────────

    def validate(self, password: str) -> PolicyResult:
        password = password or ""
        violations: list[PolicyViolation] = []

        if len(password) < MIN_LENGTH:
            violations.append(PolicyViolation.TOO_SHORT)
        if len(password) > MAX_LENGTH:
            violations.append(PolicyViolation.TOO_LONG)
        if not re.search(r"[A-Z]", password):
            violations.append(PolicyViolation.MISSING_UPPERCASE)
        if not re.search(r"[a-z]", password):
            violations.append(PolicyViolation.MISSING_LOWERCASE)
        if not re.search(r"\d", password):
            violations.append(PolicyViolation.MISSING_NUMBER)
        if not _SPECIAL_RE.search(password):
            violations.append(PolicyViolation.MISSING_SPECIAL)
        if has_excessive_repeats(password):
            violations.append(PolicyViolation.REPEATING_CHARACTERS)
        if is_common_password(password):
            violations.append(PolicyViolation.COMMON_PASSWORD)
        if has_common_sequence(password):
            violations.append(PolicyViolation.COMMON_SEQUENCE)

        return PolicyResult(tuple(violations))

    def ensure_valid(self, password: str) -> None:
        result = self.validate(password)
        if not result.ok:
            raise WeakPasswordError(
                ". ".join(result.messages),
                field="password",
                details={"violations": [v.value for v in result.violations]},
            )

    def describe(self) -> dict:
        return {
            "requirements": {
                "min_length": MIN_LENGTH,
                "max_length": MAX_LENGTH,
                "require_uppercase": True,
                "require_lowercase": True,
                "require_numbers": True,
                "require_special_chars": True,
                "max_repeating_chars": MAX_REPEATING_CHARS,
            },
            "description": [
                f"Must be between {MIN_LENGTH} and {MAX_LENGTH} characters long",
                "Must contain at least one uppercase letter (A-Z)",
                "Must contain at least one lowercase letter (a-z)",
                "Must contain at least one number (0-9)",
                "Must contain at least one special character (!@#$%^&*)",
                f"Cannot have more than {MAX_REPEATING_CHARS} consecutive repeating characters",
                "Cannot contain common sequences (123, abc, qwerty)",
                "Cannot be a commonly used password",
            ],
        }

    # ── hashing ─────────────────────────────────────────────────────────────

    async def hash(self, password: str) -> str:
        self.ensure_valid(password)
        return await asyncio.to_thread(self._hasher.hash, password)

    async def verify(self, password: str, password_hash: str | None) -> bool:
        if not password or not password_hash:
            return False
        return await asyncio.to_thread(self._verify_sync, password, password_hash)

    def _verify_sync(self, password: str, password_hash: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    # ── scoring ─────────────────────────────────────────────────────────────

    def score(self, password: str) -> PasswordStrength:
        password = password or ""
        score = 0

        for threshold in (8, 12, 16):
            if len(password) >= threshold:
                score += 1
        if re.search(r"[a-z]", password):
            score += 1
        if re.search(r"[A-Z]", password):
            score += 1
        if re.search(r"\d", password):
            score += 1
        specials = _SPECIAL_RE.findall(password)
        if specials:
            score += 1
        if len(password) >= 20:
            score += 1
        if len(specials) >= 2:
            score += 1

        if has_excessive_repeats(password):
            score -= 2
        if has_common_sequence(password):
            score -= 2
        if is_common_password(password):
            score -= 3

        score = min(max(score, 0), 10)

        if score <= 2:
            strength, tip = "Very Weak", "Consider using a longer password with mixed characters"
        elif score <= 4:
            strength, tip = "Weak", "Add more character variety and length"
        elif score <= 6:
            strength, tip = "Moderate", "Good, but could be stronger with more complexity"
        elif score <= 8:
            strength, tip = "Strong", "Very good password strength"
        else:
            strength, tip = "Very Strong", "Excellent password strength"

        return PasswordStrength(score=score, strength=strength, feedback=[tip])

    # ── generation ──────────────────────────────────────────────────────────

    def generate(
        self,
        length: int = 12,
        *,
        include_uppercase: bool = True,
        include_lowercase: bool = True,
        include_numbers: bool = True,
        include_special: bool = True,
        exclude_similar: bool = True,
    ) -> str:
        pools: list[str] = []
        if include_uppercase:
            pools.append(UPPERCASE_UNAMBIGUOUS if exclude_similar else UPPERCASE)
        if include_lowercase:
            pools.append(LOWERCASE_UNAMBIGUOUS if exclude_similar else LOWERCASE)
        if include_numbers:
            pools.append(DIGITS_UNAMBIGUOUS if exclude_similar else DIGITS)
        if include_special:
            pools.append(GENERATOR_SPECIALS)

        if not pools:
            raise PolicyConfigurationError("At least one character set must be included")
        if length < len(pools):
            raise PolicyConfigurationError(
                f"Length {length} is too short for {len(pools)} required character sets"
            )

        charset = "".join(pools)
        chars = [secrets.choice(pool) for pool in pools]
        chars.extend(secrets.choice(charset) for _ in range(length - len(chars)))
        return _shuffle(chars)

    # ── reset tokens ────────────────────────────────────────────────────────

    def generate_reset_token(self) -> ResetToken:
        token = generate_secure_token(32)
        return ResetToken(
            token=token, token_hash=hash_token(token), expires_at=utcnow() + self._reset_ttl
        )
