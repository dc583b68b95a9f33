import structlog

from ghostwriter.logging_config import build_processors, mask_email, redact_emails, request_context


def test_mask_email():
    assert mask_email("ada@x.com") == "a***@x.com"
    assert mask_email("not-an-email") == "***"


def test_redact_emails_masks_known_fields():
    event = {"event": "song_saved", "email": "ada@x.com", "user_email": "bob@y.org", "user_id": 3}

    assert redact_emails(None, "info", event) == {
        "event": "song_saved",
        "email": "a***@x.com",
        "user_email": "b***@y.org",
        "user_id": 3,
    }


def test_redaction_only_when_requested():
    assert redact_emails in build_processors("json", redact=True)
    assert redact_emails not in build_processors("console", redact=False)


def test_json_format_renders_json():
    processors = build_processors("json", redact=False)

    assert isinstance(processors[-1], structlog.processors.JSONRenderer)


def test_request_context_binds_and_clears():
    with request_context("req-1", path="/api/v1/credits") as request_id:
        assert request_id == "req-1"
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "path": "/api/v1/credits"}

    assert "request_id" not in structlog.contextvars.get_contextvars()


def test_request_context_generates_id():
    with request_context() as request_id:
        assert len(request_id) == 32
