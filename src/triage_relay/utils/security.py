"""Security utilities for webhook verification, secret redaction and input validation.

Everything here fails closed: a signature check without a configured
secret raises instead of passing, and a redaction pattern that does not
compile stops startup instead of letting text through unfiltered.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()


class SecurityError(Exception):
    """Base exception for security-related errors."""


class RedactionError(SecurityError):
    """Raised when secret redaction fails."""


class SignatureConfigError(SecurityError):
    """Raised when webhook signature verification is not configured."""


# Prefix GitHub puts in front of the hex digest in X-Hub-Signature-256
SIGNATURE_PREFIX = "sha256="

REDACTED = "[REDACTED]"

# GitHub caps owner and repository names at 100 characters
MAX_NAME_LENGTH = 100
NAME_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
# Control characters other than tab, newline and carriage return
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Credentials likely to turn up in issue text or in our own log lines
SECRET_PATTERNS: tuple[tuple[str, str], ...] = (
    ("Slack token", r"xox[abprs]-[\w-]+"),
    ("GitHub token", r"gh[opsur]_[A-Za-z0-9]{36}"),
    ("GitHub fine-grained PAT", r"github_pat_[A-Za-z0-9_]{22,}"),
    ("Anthropic API key", r"sk-ant-[\w-]{40,}"),
    ("OpenAI project key", r"sk-proj-[A-Za-z0-9]{20,}"),
    ("AWS access key ID", r"AKIA[0-9A-Z]{16}"),
    (
        "Connection string with password",
        r"(?i:postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis|amqp)://[^:\s]+:[^@\s]+@\S+",
    ),
    ("Private key header", r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"),
    ("JWT", r"eyJ[\w-]*\.eyJ[\w-]*\.[\w-]*"),
    (
        "Key-value secret",
        r"(?i:api[_-]?key|secret|token|password|credential)\s*[=:]\s*[\"']?[\w-]{16,}",
    ),
)


class SecretRedactor:
    """Replaces credentials in text with ``[REDACTED]``.

    All patterns are joined into one alternation and applied in a single
    pass. Issue text is redacted before it is sent to the analysis
    provider, and every log field goes through the same redactor.

    Usage:
        redactor = SecretRedactor()
        prompt_body = redactor.redact(issue.body)
    """

    def __init__(self, custom_patterns: Sequence[tuple[str, str]] | None = None) -> None:
        """Compile the built-in patterns plus any extras.

        Args:
            custom_patterns: Additional (description, regex) pairs, in the
                same order as ``SECRET_PATTERNS``.

        Raises:
            RedactionError: If any pattern fails to compile.
        """
        sources = [regex for _, regex in SECRET_PATTERNS]
        for description, regex in custom_patterns or ():
            try:
                re.compile(regex)
            except re.error as e:
                log.error("secret_pattern_invalid", description=description, error=str(e))
                raise RedactionError(f"Invalid secret pattern for {description}: {e}") from e
            sources.append(regex)

        self._combined = re.compile("|".join(f"(?:{s})" for s in sources))

    def redact(self, text: str) -> str:
        """Return ``text`` with every detected secret replaced.

        Raises:
            RedactionError: If matching fails, so unfiltered text never leaks.
        """
        if not text:
            return text
        try:
            return self._combined.sub(REDACTED, text)
        except (re.error, RecursionError, MemoryError) as e:
            log.error("redaction_failed", error=type(e).__name__)
            raise RedactionError(f"Redaction failed: {e}") from e


def sign_payload(payload: bytes, secret: str) -> str:
    """Compute the X-Hub-Signature-256 header value for a payload."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """Verify a GitHub webhook HMAC-SHA256 signature.

    Args:
        payload: Raw request body, exactly as received.
        signature: Value of the X-Hub-Signature-256 header.
        secret: Shared webhook secret.

    Returns:
        True if the signature matches the payload.

    Raises:
        SignatureConfigError: If no secret is configured.
    """
    if not secret:
        raise SignatureConfigError("Webhook secret not configured")

    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False

    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def validate_name(name: str) -> bool:
    """Return True if ``name`` is a bare GitHub owner or repository name.

    Such names reach URL paths and the fix agent's command line, so
    anything outside letters, digits, ``_``, ``.`` and ``-`` is refused,
    as are ``.`` and ``..``.
    """
    if not name or len(name) > MAX_NAME_LENGTH or name in (".", ".."):
        return False
    return NAME_PATTERN.fullmatch(name) is not None


def sanitize_for_logging(text: str) -> str:
    """Strip ANSI escapes and control characters from subprocess output."""
    if not text:
        return text
    return CONTROL_CHARS.sub("", ANSI_ESCAPE.sub("", text))


def mask_secret(value: str) -> str:
    """Mask a credential for display, keeping its first and last four characters."""
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"
