"""Tests for the SMTP session state machine."""

import pytest

from herdmail.models.session_state import SessionState
from herdmail.services.smtp.session import SmtpSession
from herdmail.storage.audit_log import AuditLog
from herdmail.storage.message_store import StorageError


class FailingStore:
    """Store whose save always fails, for 452 handling."""

    def __init__(self):
        self.attempts = 0

    def save(self, message):
        self.attempts += 1
        raise StorageError("disk full")


def feed(session, *lines):
    """Send lines and return the reply codes (None for buffered body lines)."""
    codes = []
    for line in lines:
        reply = session.handle_line(line.encode("utf-8") + b"\r\n")
        codes.append(reply.code if reply is not None else None)
    return codes


class TestHappyPath:
    """Test the full EHLO..QUIT dialogue."""

    @pytest.fixture
    def session(self, store):
        return SmtpSession(store, peer="127.0.0.1:40000")

    def test_greeting(self, session):
        reply = session.greeting()
        assert reply.code == 220
        assert reply.render().startswith(b"220 herd.local")

    def test_scenario_reply_codes(self, session, store):
        codes = feed(
            session,
            "EHLO test",
            "AUTH LOGIN",
            "MAIL FROM:<a@x.com>",
            "RCPT TO:<b@x.com>",
            "DATA",
            "Hello",
            ".",
            "QUIT",
        )

        assert codes == [250, 235, 250, 250, 354, None, 250, 221]
        assert session.closed is True

        messages = store.list()
        assert len(messages) == 1
        assert messages[0].sender == "a@x.com"
        assert messages[0].recipients == ("b@x.com",)
        assert store.get_raw(messages[0].message_id) == b"Hello\r\n"

    def test_multiple_recipients_keep_order(self, session, store):
        feed(session, "EHLO test", "AUTH PLAIN", "MAIL FROM:<a@x.com>")
        feed(session, "RCPT TO:<c@x.com>", "RCPT TO:<b@x.com>", "DATA", "Hi", ".")

        assert store.list()[0].recipients == ("c@x.com", "b@x.com")

    def test_dot_stuffed_body_is_unstuffed(self, session, store):
        feed(session, "EHLO test", "AUTH PLAIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA")
        feed(session, "..", "..leading dot", "end", ".")

        message_id = session.stored_ids[0]
        assert store.get_raw(message_id) == b".\r\n.leading dot\r\nend\r\n"

    def test_second_message_after_done(self, session, store):
        feed(session, "EHLO test", "AUTH PLAIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "one", ".")
        assert session.state is SessionState.DONE

        codes = feed(session, "MAIL FROM:<c@x.com>", "RCPT TO:<d@x.com>", "DATA", "two", ".")

        assert codes == [250, 250, 354, None, 250]
        assert store.count() == 2
        second = store.get(session.stored_ids[1])
        assert second.sender == "c@x.com"
        assert second.recipients == ("d@x.com",)

    def test_ehlo_advertises_auth_and_size(self, session):
        reply = session.handle_line(b"EHLO client.test\r\n")
        assert "AUTH PLAIN" in reply.lines
        assert any(line.startswith("SIZE ") for line in reply.lines)
        assert reply.render().endswith(b"250 8BITMIME\r\n")

    def test_helo(self, session):
        assert feed(session, "HELO client.test", "AUTH LOGIN") == [250, 235]

    def test_lowercase_commands(self, session):
        assert feed(session, "ehlo test", "auth login", "mail from:<a@x.com>") == [250, 235, 250]

    def test_bare_lf_lines(self, session):
        reply = session.handle_line(b"EHLO test\n")
        assert reply.code == 250

    def test_auth_username_recorded(self, session, store):
        # "\0WordPress\0" as sent with an empty password
        feed(session, "EHLO test", "AUTH PLAIN AFdvcmRQcmVzcwA=")
        feed(session, "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "x", ".")

        assert store.list()[0].auth_username == "WordPress"


class TestProtocolErrors:
    """Test out-of-sequence, unknown and malformed commands."""

    @pytest.fixture
    def session(self, store):
        return SmtpSession(store)

    @pytest.fixture
    def authed(self, session):
        feed(session, "EHLO test", "AUTH LOGIN")
        return session

    def test_rcpt_before_mail_from(self, authed):
        assert feed(authed, "RCPT TO:<b@x.com>") == [503]

    def test_rcpt_before_anything(self, session):
        assert feed(session, "RCPT TO:<b@x.com>") == [503]

    def test_data_without_recipients(self, authed):
        assert feed(authed, "MAIL FROM:<a@x.com>", "DATA") == [250, 503]

    def test_data_before_mail_from(self, authed):
        assert feed(authed, "DATA") == [503]

    def test_mail_before_auth(self, session):
        assert feed(session, "EHLO test", "MAIL FROM:<a@x.com>") == [250, 503]

    def test_auth_before_ehlo(self, session):
        assert feed(session, "AUTH LOGIN") == [503]

    def test_second_ehlo(self, authed):
        assert feed(authed, "EHLO again") == [503]

    def test_unknown_command(self, session):
        assert feed(session, "VRFY someone") == [500]
        assert feed(session, "") == [500]

    def test_malformed_mail_from(self, authed):
        assert feed(authed, "MAIL FROM:a@x.com") == [501]
        assert authed.state is SessionState.AFTER_AUTH

    def test_malformed_rcpt_to(self, authed):
        feed(authed, "MAIL FROM:<a@x.com>")
        assert feed(authed, "RCPT TO:b@x.com", "RCPT TO:<>") == [501, 501]
        assert authed.state is SessionState.MAIL_FROM

    def test_ehlo_without_domain(self, session):
        assert feed(session, "EHLO") == [501]
        assert session.state is SessionState.GREETING

    def test_errors_do_not_close_session(self, authed, store):
        feed(authed, "BOGUS", "RCPT TO:<b@x.com>", "MAIL FROM:nope")
        assert authed.closed is False

        codes = feed(authed, "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "ok", ".")
        assert codes == [250, 250, 354, None, 250]
        assert store.count() == 1

    def test_quit_from_any_state(self, session):
        assert feed(session, "QUIT") == [221]
        assert session.closed is True


class TestResetAndNoop:
    """Test RSET and NOOP."""

    @pytest.fixture
    def session(self, store):
        return SmtpSession(store)

    def test_rset_returns_to_after_auth(self, session):
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        assert feed(session, "RSET") == [250]
        assert session.state is SessionState.AFTER_AUTH
        assert session.envelope.recipients == []
        assert feed(session, "DATA") == [503]

    def test_rset_without_auth(self, session):
        feed(session, "EHLO test")
        assert feed(session, "RSET") == [250]
        assert session.state is SessionState.AFTER_EHLO

    def test_rset_before_greeting(self, session):
        assert feed(session, "RSET") == [503]

    def test_noop_anywhere(self, session):
        assert feed(session, "NOOP", "EHLO test", "NOOP") == [250, 250, 250]


class TestDataLimits:
    """Test storage failures and the size limit."""

    def test_storage_error_replies_452_and_allows_retry(self):
        store = FailingStore()
        session = SmtpSession(store)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        assert feed(session, "DATA", "Hello", ".") == [354, None, 452]
        assert session.state is SessionState.RCPT_TO
        assert session.envelope.recipients == ["b@x.com"]

        assert feed(session, "DATA", "Hello", ".") == [354, None, 452]
        assert store.attempts == 2

    def test_storage_error_is_audited(self, audit_log):
        session = SmtpSession(FailingStore(), audit_log=audit_log)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "x", ".")

        events = audit_log.read_events()
        assert events[-1]["event_type"] == "storage_error"
        assert events[-1]["error_details"] == "disk full"

    def test_oversize_message_rejected(self, store):
        session = SmtpSession(store, max_message_size=10)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        codes = feed(session, "DATA", "0123456789", "more", ".")

        assert codes == [354, None, None, 552]
        assert store.count() == 0
        assert session.state is SessionState.AFTER_AUTH

    def test_message_at_size_limit_accepted(self, store):
        session = SmtpSession(store, max_message_size=7)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        assert feed(session, "DATA", "Hello", ".") == [354, None, 250]

    def test_nothing_visible_before_terminator(self, store):
        session = SmtpSession(store)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "partial")

        assert store.count() == 0
        feed(session, ".")
        assert store.count() == 1

    def test_captured_message_is_audited(self, store, audit_log):
        session = SmtpSession(store, audit_log=audit_log, peer="127.0.0.1:1")
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>", "DATA", "x", ".")

        event = audit_log.read_events()[-1]
        assert event["event_type"] == "message_captured"
        assert event["message_id"] == session.stored_ids[0]
        assert event["recipients"] == ["b@x.com"]

    def test_malformed_encoded_subject_is_captured(self, store):
        session = SmtpSession(store)
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        codes = feed(session, "DATA", "Subject: =?UTF-8?B?a?=", "", "hi", ".")

        assert codes == [354, None, None, None, 250]
        assert session.state is SessionState.DONE
        assert store.get(session.stored_ids[0]).subject == "=?UTF-8?B?a?="

    def test_audit_write_failure_still_replies_250(self, store, tmp_path):
        # Appending to a directory fails with IsADirectoryError
        audit_dir = tmp_path / "audit-dir"
        audit_dir.mkdir()
        session = SmtpSession(store, audit_log=AuditLog(audit_dir))
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        codes = feed(session, "DATA", "Hello", ".", "MAIL FROM:<a@x.com>")

        assert codes == [354, None, 250, 250]
        assert store.count() == 1

    def test_audit_write_failure_keeps_452(self, tmp_path):
        audit_dir = tmp_path / "audit-dir"
        audit_dir.mkdir()
        session = SmtpSession(FailingStore(), audit_log=AuditLog(audit_dir))
        feed(session, "EHLO test", "AUTH LOGIN", "MAIL FROM:<a@x.com>", "RCPT TO:<b@x.com>")

        assert feed(session, "DATA", "Hello", ".") == [354, None, 452]
        assert session.state is SessionState.RCPT_TO
