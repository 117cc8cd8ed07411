from __future__ import annotations

import logging
import re
from collections.abc import Iterable


_PATTERNS = [
    # Authorization headers and bearer tokens.
    (re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)[^\s,;]+"), r"\1[REDACTED]"),
    (re.compile(r"(?i)(bearer\s+)[^\s,;]+"), r"\1[REDACTED]"),
    # Vendor API key headers.
    (re.compile(r"(?i)(x-(?:goog-)?api-key\s*[:=]\s*)[^\s,;]+"), r"\1[REDACTED]"),
    # Common secret key/value pairs, including JSON-ish "key": "value".
    (
        re.compile(
            r"(?i)\b(token|access_token|refresh_token|api_key|apikey|client_secret|code_verifier|secret)"
            r"(\"?\s*[:=]\s*\"?)[^\s,;\"]+"
        ),
        r"\1\2[REDACTED]",
    ),
    # Provider key shapes (sk-..., sk-ant-..., AIza...).
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"), "[REDACTED]"),
    (re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"), "[REDACTED]"),
]


def redact_secrets(text: str | None, known_secrets: Iterable[str] = ()) -> str | None:
    if text is None:
        return None
    out = text
    for secret in known_secrets:
        if secret:
            out = out.replace(secret, "[REDACTED]")
    for pattern, repl in _PATTERNS:
        out = pattern.sub(repl, out)
    return out


class RedactingFilter(logging.Filter):
    """Rewrites log records so no token or key shape reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True
