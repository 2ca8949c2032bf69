from receiptscanner.core import observability
from receiptscanner.core.config import settings


def test_before_send_scrubs_receipt_text_and_user():
    event = {"extra": {"raw_text": "TESCO MILK", "receipt_id": "r1"}, "user": {"id": "u1", "email": "a@b.c"}}
    scrubbed = observability._before_send(event)
    assert scrubbed["extra"] == {"receipt_id": "r1"}
    assert scrubbed["user"] == {"id": "u1"}


def test_helpers_are_noops_without_dsn(monkeypatch):
    monkeypatch.setattr(settings, "SENTRY_DSN", None)
    assert observability.init_sentry("tests") is False
    observability.sentry_set_tags({"receipt.user_id": "u1"})
    observability.sentry_breadcrumb(category="receipts", message="receipt.added")
    observability.sentry_capture(RuntimeError("boom"))


def test_init_sentry_tags_the_project_once(monkeypatch):
    calls = []
    tags = {}
    monkeypatch.setattr(settings, "SENTRY_DSN", "https://key@sentry.example/1")
    monkeypatch.setattr(observability, "_initialised", False)
    monkeypatch.setattr(observability.sentry_sdk, "init", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setattr(observability.sentry_sdk, "set_tag", lambda key, value: tags.__setitem__(key, value))

    assert observability.init_sentry("worker") is True
    assert observability.init_sentry("worker") is True
    assert len(calls) == 1
    assert calls[0]["before_send"] is observability._before_send
    assert tags == {"component": settings.PROJECT_NAME, "service": "worker"}
