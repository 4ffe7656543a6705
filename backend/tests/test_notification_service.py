"""
Notifier tests: subjects, provider client, best-effort delivery and logging.
"""

import httpx
import pytest

from gudang.models import NotificationKind, NotificationLog
from gudang.services import approval_service, notification_service
from gudang.services.notification_service import EmailSendError, ResendEmailSender


def _sender(api_key="re_test"):
    return ResendEmailSender(
        api_key=api_key,
        api_url="https://mail.test/emails",
        sender="Gudang <noreply@gudang.test>",
        timeout=2,
    )


class TestResendEmailSender:

    def test_posts_message_and_returns_id(self, monkeypatch):
        captured = {}

        def _post(url, json, headers, timeout):
            captured.update(url=url, json=json, headers=headers, timeout=timeout)
            return httpx.Response(200, json={"id": "msg_123"}, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx, "post", _post)

        email_id = _sender().send(to=["a@test"], subject="Hi", html="<p>x</p>")

        assert email_id == "msg_123"
        assert captured["url"] == "https://mail.test/emails"
        assert captured["headers"]["Authorization"] == "Bearer re_test"
        assert captured["json"] == {
            "from": "Gudang <noreply@gudang.test>",
            "to": ["a@test"],
            "subject": "Hi",
            "html": "<p>x</p>",
        }
        assert captured["timeout"] == 2

    def test_provider_error_raises(self, monkeypatch):
        monkeypatch.setattr(
            httpx,
            "post",
            lambda url, **kw: httpx.Response(422, text="invalid from", request=httpx.Request("POST", url)),
        )

        with pytest.raises(EmailSendError, match="422"):
            _sender().send(to=["a@test"], subject="Hi", html="x")

    def test_timeout_raises(self, monkeypatch):
        def _post(url, **kw):
            raise httpx.ReadTimeout("timed out", request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx, "post", _post)

        with pytest.raises(EmailSendError, match="timed out"):
            _sender().send(to=["a@test"], subject="Hi", html="x")

    def test_missing_api_key(self, monkeypatch):
        def _post(url, **kw):
            raise AssertionError("must not call the provider")

        monkeypatch.setattr(httpx, "post", _post)
        sender = _sender(api_key=None)

        assert sender.configured is False
        with pytest.raises(EmailSendError, match="RESEND_API_KEY"):
            sender.send(to=["a@test"], subject="Hi", html="x")


class TestBuildSubject:

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (NotificationKind.APPROVAL_REQUEST, "Persetujuan Surat Jalan - SJ-1"),
            (NotificationKind.REMINDER, "[REMINDER] Persetujuan Surat Jalan - SJ-1"),
            (NotificationKind.APPROVED, "Surat Jalan Disetujui - SJ-1"),
            (NotificationKind.REJECTED, "Surat Jalan Ditolak - SJ-1"),
        ],
    )
    def test_subjects(self, kind, expected):
        class _Note:
            delivery_number = "SJ-1"

        assert notification_service.build_subject(kind, _Note()) == expected


class TestSendNotification:

    def test_success_is_logged(self, chain, make_note):
        division, (supervisor, _) = chain
        note = make_note(division)

        logs = notification_service.list_attempts(note.id)

        assert len(logs) == 1
        assert logs[0].kind == "approval_request"
        assert logs[0].success is True
        assert logs[0].recipient == supervisor.email
        assert logs[0].provider_message_id == "email-1"

    def test_failure_is_returned_not_raised(self, chain, make_note, email_sender):
        division, (supervisor, _) = chain
        note = make_note(division)
        email_sender.fail_with = EmailSendError("quota exceeded")

        result = notification_service.send_notification(
            note, NotificationKind.APPROVED, approver_email=supervisor.email, approver_name=supervisor.name
        )

        assert result.success is False
        assert result.error == "quota exceeded"
        assert result.to_dict()["success"] is False
        log = NotificationLog.query.order_by(NotificationLog.id.desc()).first()
        assert log.success is False
        assert log.error == "quota exceeded"

    def test_request_requires_action_links(self, chain, make_note):
        division, (supervisor, _) = chain
        note = make_note(division)

        with pytest.raises(ValueError):
            notification_service.send_notification(
                note, NotificationKind.APPROVAL_REQUEST, approver_email=supervisor.email
            )

    def test_final_emails_copy_cc_list(self, app, chain, make_note, email_sender, monkeypatch):
        monkeypatch.setitem(app.config, "APPROVAL_CC_EMAILS", ["admin@gudang.test"])
        division, (supervisor, manager) = chain
        note = make_note(division)
        approval_service.resolve(note.id, supervisor.id, "approve")
        email_sender.reset()

        approval_service.resolve(note.id, manager.id, "approve")

        assert email_sender.sent[0]["to"] == [manager.email, "admin@gudang.test"]

    def test_request_emails_are_not_copied(self, app, chain, make_note, email_sender, monkeypatch):
        monkeypatch.setitem(app.config, "APPROVAL_CC_EMAILS", ["admin@gudang.test"])
        division, (supervisor, _) = chain

        make_note(division)

        assert email_sender.sent[0]["to"] == [supervisor.email]

    def test_request_body_has_both_links(self, chain, make_note, email_sender):
        division, _ = chain
        note = make_note(division)

        html = email_sender.sent[0]["html"]

        assert "handle-email-approval?token=" in html
        assert "action=approve" in html
        assert "action=reject" in html
        assert note.delivery_number in html
