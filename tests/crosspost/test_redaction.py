import logging

from crosspost.core.redaction import RedactingFilter, redact_secrets


def test_redact_bearer_and_token_pairs():
    text = "Authorization: Bearer abc123 token=xyz refresh_token: rrr"
    out = redact_secrets(text)
    assert out is not None
    assert "abc123" not in out
    assert "xyz" not in out
    assert "rrr" not in out
    assert "[REDACTED]" in out


def test_redact_json_pairs_and_key_shapes():
    text = '{"access_token": "tok-1", "client_secret": "cs-2"} key sk-abcdef0123456789 x-api-key: k3'
    out = redact_secrets(text)
    for leaked in ("tok-1", "cs-2", "sk-abcdef0123456789", "k3"):
        assert leaked not in out


def test_redact_known_secret_values():
    out = redact_secrets("upstream echoed plain-value back", known_secrets=["plain-value"])
    assert out == "upstream echoed [REDACTED] back"


def test_redact_none_passthrough():
    assert redact_secrets(None) is None


def test_filter_rewrites_formatted_message():
    record = logging.LogRecord("crosspost", logging.INFO, __file__, 1, "call failed: %s", ("Bearer abc",), None)
    assert RedactingFilter().filter(record)
    assert record.getMessage() == "call failed: Bearer [REDACTED]"
