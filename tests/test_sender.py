"""Tests for SMTPSender against a scripted socket."""

import logging

import pytest

from mailcraft.common.config import SMTPSettings
from mailcraft.common.exceptions import (
    InvalidConfigError,
    MailError,
    ProtocolError,
    RecipientRejectedError,
)
from mailcraft.message import Message
from mailcraft.smtp.protocol import SMTPProtocol
from mailcraft.smtp.sender import DeliveryResult, SMTPSender, create_smtp_sender

GREETING = ("220 mail.example.com ESMTP", "250 mail.example.com")


@pytest.fixture
def message():
    msg = Message()
    msg.set_from("foo@bar.com", "Foo Bar")
    msg.add_to("wedeto@wedeto.net", "Wedeto DevTeam")
    msg.set_subject("Test")
    msg.set_body("This is a test\n.")
    return msg


@pytest.fixture
def sender():
    return SMTPSender(SMTPSettings(host="mail.example.com"))


def accept(recipients):
    """Replies for MAIL, each RCPT and DATA."""
    return ("250 ok", *["250 ok"] * recipients, "354 go ahead",
            "250 2.0.0 queued")


class TestSend:
    def test_minimal_message(self, fake_server, sender, message):
        sock = fake_server(*GREETING, *accept(1))
        result = sender.send(message)

        lines = sock.lines
        assert lines[:4] == [
            "EHLO 127.0.0.1",
            "MAIL FROM:<foo@bar.com>",
            "RCPT TO:<wedeto@wedeto.net>",
            "DATA",
        ]
        assert "From: Foo Bar <foo@bar.com>" in lines
        assert "To: Wedeto DevTeam <wedeto@wedeto.net>" in lines
        assert lines[-3:] == ["This is a test", "..", "."]

        assert isinstance(result, DeliveryResult)
        assert result.sender == "foo@bar.com"
        assert result.recipients == ["wedeto@wedeto.net"]
        assert result.smtp_message == "2.0.0 queued"
        assert result.host == "mail.example.com"

    def test_recipient_order_and_bcc(self, fake_server, sender, message):
        message.add_cc("cc@wedeto.net")
        message.add_bcc("hidden@wedeto.net")
        message.add_bcc("wedeto@wedeto.net")
        sock = fake_server(*GREETING, *accept(3))
        result = sender.send(message)

        rcpts = [line for line in sock.lines if line.startswith("RCPT TO:")]
        assert rcpts == [
            "RCPT TO:<wedeto@wedeto.net>",
            "RCPT TO:<cc@wedeto.net>",
            "RCPT TO:<hidden@wedeto.net>",
        ]
        assert result.recipients == [
            "wedeto@wedeto.net", "cc@wedeto.net", "hidden@wedeto.net"]
        data = sock.lines[sock.lines.index("DATA"):]
        assert "Cc: cc@wedeto.net" in data
        assert not any(line.startswith("Bcc:") for line in data)
        assert not any("hidden@wedeto.net" in line for line in data)

    def test_recipients_differing_in_case_are_sent_once(self, fake_server,
                                                        sender, message):
        message.add_bcc("WEDETO@Wedeto.net")
        sock = fake_server(*GREETING, *accept(1))
        result = sender.send(message)
        rcpts = [line for line in sock.lines if line.startswith("RCPT TO:")]
        assert rcpts == ["RCPT TO:<wedeto@wedeto.net>"]
        assert result.recipients == ["wedeto@wedeto.net"]

    def test_sender_header_is_envelope_from(self, fake_server, sender, message):
        message.set_sender("bounces@wedeto.net")
        sock = fake_server(*GREETING, *accept(1))
        sender.send(message)
        assert "MAIL FROM:<bounces@wedeto.net>" in sock.lines

    def test_international_domain_is_punycoded(self, fake_server, sender,
                                               message):
        message.set_to("info@bücher.example.com")
        sock = fake_server(*GREETING, *accept(1))
        sender.send(message)
        assert "RCPT TO:<info@xn--bcher-kva.example.com>" in sock.lines

    def test_session_is_reused(self, fake_server, sender, message):
        sock = fake_server(*GREETING, *accept(1), "250 flushed", *accept(1))
        sender.send(message)
        sender.send(message)
        assert sock.lines.count("EHLO 127.0.0.1") == 1
        assert sock.lines.count("RSET") == 1
        assert len(fake_server.created) == 1

    def test_to_dict(self):
        result = DeliveryResult("a@bar.com", ["b@bar.com"], "queued", "host")
        data = result.to_dict()
        assert data["sender"] == "a@bar.com"
        assert data["recipients"] == ["b@bar.com"]
        assert data["timestamp"].endswith("+00:00")


class TestSendFailures:
    def test_no_sender(self, fake_server, sender):
        message = Message()
        message.add_to("wedeto@wedeto.net")
        with pytest.raises(MailError, match="No sender"):
            sender.send(message)
        assert fake_server.created == []

    def test_no_recipients(self, fake_server, sender):
        message = Message()
        message.set_from("foo@bar.com")
        with pytest.raises(MailError, match="at least one recipient"):
            sender.send(message)
        assert fake_server.created == []

    def test_rejected_recipient_aborts(self, fake_server, sender, message):
        message.add_to("second@wedeto.net")
        message.add_to("third@wedeto.net")
        sock = fake_server(*GREETING, "250 ok", "250 ok",
                           "550 5.1.1 no such user")
        with pytest.raises(RecipientRejectedError) as exc_info:
            sender.send(message)

        error = exc_info.value
        assert error.recipient == "second@wedeto.net"
        assert error.accepted == ["wedeto@wedeto.net"]
        assert error.code == 550
        assert "third@wedeto.net" not in "".join(sock.sent)
        assert "DATA" not in sock.lines

    def test_protocol_errors_propagate(self, fake_server, sender, message):
        fake_server(*GREETING, "250 ok", "250 ok", "354 go", "552 too big")
        with pytest.raises(ProtocolError) as exc_info:
            sender.send(message)
        assert exc_info.value.code == 552


class TestLifecycle:
    def test_close_quits_and_disconnects(self, fake_server, sender, message):
        sock = fake_server(*GREETING, *accept(1), "221 bye")
        sender.send(message)
        sender.close()
        assert sock.lines[-1] == "QUIT"
        assert sock.closed

    def test_close_swallows_quit_failure(self, fake_server, sender, message,
                                         caplog):
        sock = fake_server(*GREETING, *accept(1), "500 confused")
        sender.send(message)
        with caplog.at_level(logging.WARNING):
            sender.close()
        assert sock.closed
        assert "QUIT failed" in caplog.text

    def test_send_after_close_reconnects(self, fake_server, message):
        sender = SMTPSender(SMTPSettings(), auto_disconnect=False)
        first = fake_server(*GREETING, *accept(1), "221 bye")
        sender.send(message)
        sender.close()
        assert first.closed
        assert not sender.connection.is_connected

        second = fake_server(*GREETING, *accept(1))
        sender.send(message)
        assert second.lines[0] == "EHLO 127.0.0.1"
        assert len(fake_server.created) == 2

    def test_close_without_auto_disconnect_keeps_unused_connection(
            self, fake_server):
        sender = SMTPSender(SMTPSettings(), auto_disconnect=False)
        sock = fake_server()
        sender.connection.connect()
        sender.close()
        assert not sock.closed
        sender.disconnect()
        assert sock.closed

    def test_connection_without_session_is_replaced(self, fake_server,
                                                    message):
        sender = SMTPSender(SMTPSettings())
        stale = fake_server()
        sender.connection.connect()
        fresh = fake_server(*GREETING, *accept(1))
        sender.send(message)
        assert stale.closed
        assert fresh.lines[0] == "EHLO 127.0.0.1"

    def test_context_manager(self, fake_server, message):
        sock = fake_server(*GREETING, *accept(1), "221 bye")
        with SMTPSender(SMTPSettings()) as sender:
            sender.send(message)
        assert sock.closed

    def test_close_before_connect(self, sender):
        sender.close()

    def test_custom_connection(self):
        connection = SMTPProtocol(SMTPSettings())
        sender = SMTPSender(connection=connection)
        assert sender.connection is connection


class TestFactory:
    def test_create_smtp_sender(self):
        sender = create_smtp_sender(host="mail.example.com", ssl="TLS",
                                    username="user", password="secret")
        settings = sender.connection.settings
        assert settings.port == 587
        assert settings.ssl == "tls"
        assert settings.auth_type == "PLAIN"

    def test_invalid_options(self):
        with pytest.raises(InvalidConfigError):
            create_smtp_sender(auth_type="LOGIN")
