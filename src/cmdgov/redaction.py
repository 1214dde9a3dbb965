"""Secret redaction for run log payloads.

Three layers, applied in order to every string:

1. ``Bearer <token>``                           -> ``Bearer [REDACTED]``
2. ``token=...``, ``password: ...`` and friends -> value replaced
3. known provider token formats                  -> dedicated markers

Keys are never removed and non-string values pass through unchanged.
Redacting already-redacted text is a no-op.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

REDACTED = "[REDACTED]"
REDACTED_GITHUB_TOKEN = "[REDACTED_GITHUB_TOKEN]"
REDACTED_SLACK_TOKEN = "[REDACTED_SLACK_TOKEN]"
REDACTED_API_KEY = "[REDACTED_API_KEY]"

_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+(?!\[REDACTED\])[a-z0-9._~+/=\-]+")

# Keys may carry an identifier prefix (GITHUB_TOKEN, db_password, client.secret).
# The value lookahead leaves "Authorization: Bearer [REDACTED]" intact.
_SECRET_KV_PATTERN = re.compile(
    r"(?i)\b([\w.-]*?(?:token|secret|password|api[_\- ]?key|authorization))\b"
    r"(\s*[:=]\s*)(?!bearer\s)([^\s,;]+)"
)

_PROVIDER_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), REDACTED_GITHUB_TOKEN),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"), REDACTED_GITHUB_TOKEN),
    (re.compile(r"\bxox[abprs]-[A-Za-z0-9\-]{10,}"), REDACTED_SLACK_TOKEN),
    (re.compile(r"\b[sr]k-[A-Za-z0-9_\-]{20,}"), REDACTED_API_KEY),
)


def redact_string(text: str) -> str:
    """Mask secrets inside a single string."""
    out = _BEARER_PATTERN.sub("Bearer " + REDACTED, text)
    out = _SECRET_KV_PATTERN.sub(lambda m: m.group(1) + m.group(2) + REDACTED, out)
    for pattern, marker in _PROVIDER_PATTERNS:
        out = pattern.sub(marker, out)
    return out


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return redact_payload(value)
    if isinstance(value, (list, tuple)):
        return [redact_value(item) for item in value]
    return value


def redact_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a redacted copy of a payload mapping, recursing into nested values."""
    if not payload:
        return {}
    return {key: redact_value(value) for key, value in payload.items()}
