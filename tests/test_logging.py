from sessionguard.logging import (
    _add_correlation_id,
    _redact_secrets,
    correlation_id_var,
    set_correlation_id,
)


def test_credential_keys_are_masked():
    event = {
        "event": "session_login",
        "refresh_token": "eyJhbGciOiJIUzI1NiJ9.payload.sig",
        "Authorization": "Bearer abcdef",
        "kind": "access",
    }

    redacted = _redact_secrets(None, "info", event)

    assert redacted["refresh_token"] == "ey***ig"
    assert redacted["Authorization"] == "Be***ef"
    assert redacted["kind"] == "access"
    assert redacted["event"] == "session_login"


def test_short_values_left_alone():
    assert _redact_secrets(None, "info", {"token": "abc"}) == {"token": "abc"}


def test_correlation_id_added_to_events():
    token = correlation_id_var.set(None)
    try:
        cid = set_correlation_id()
        assert _add_correlation_id(None, "info", {"event": "x"})["correlation_id"] == cid
        assert set_correlation_id("req-1") == "req-1"
    finally:
        correlation_id_var.reset(token)
