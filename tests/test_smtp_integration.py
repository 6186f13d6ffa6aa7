"""Tests with a real SMTP server using aiosmtpd."""

import io
import socket
from email import message_from_bytes
from email.policy import default
from typing import Any

import pytest
from aiosmtpd.controller import Controller

from mailcraft.common.config import SMTPSettings
from mailcraft.common.exceptions import RecipientRejectedError
from mailcraft.html_message import HTMLMessage
from mailcraft.message import Message
from mailcraft.smtp.sender import SMTPSender


def get_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


class CapturingHandler:
    """SMTP handler that captures received messages."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.rejected: set[str] = set()

    async def handle_RCPT(self, server, session, envelope, address, rcpt_options):
        if address in self.rejected:
            return "550 5.1.1 Mailbox not found"
        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(self, server, session, envelope):
        self.messages.append({
            "from": envelope.mail_from,
            "to": list(envelope.rcpt_tos),
            "data": envelope.content,
        })
        return "250 Message accepted for delivery"


@pytest.fixture
def smtp_handler():
    return CapturingHandler()


@pytest.fixture
def smtp_server(smtp_handler):
    """Start a real SMTP server on a free port."""
    port = get_free_port()
    controller = Controller(smtp_handler, hostname="127.0.0.1", port=port)
    controller.start()
    yield port
    controller.stop()


@pytest.fixture
def sender(smtp_server):
    with SMTPSender(SMTPSettings(host="127.0.0.1", port=smtp_server)) as sender:
        yield sender


def parse(data: bytes):
    return message_from_bytes(data, policy=default)


class TestDelivery:
    def test_plain_message(self, sender, smtp_handler):
        message = Message()
        message.set_from("foo@bar.com", "Foo Bar")
        message.add_to("wedeto@wedeto.net", "Wedeto DevTeam")
        message.add_bcc("hidden@wedeto.net")
        message.set_subject("Grüße aus Köln")
        message.set_body("This is a test\n.\n.. two dots")

        result = sender.send(message)

        assert result.smtp_message == "Message accepted for delivery"
        received = smtp_handler.messages[0]
        assert received["from"] == "foo@bar.com"
        assert received["to"] == ["wedeto@wedeto.net", "hidden@wedeto.net"]

        parsed = parse(received["data"])
        assert parsed["Subject"] == "Grüße aus Köln"
        assert parsed["From"] == "Foo Bar <foo@bar.com>"
        assert parsed["Bcc"] is None
        assert parsed.get_payload().splitlines() == [
            "This is a test", ".", ".. two dots"]

    def test_html_message_with_attachment(self, sender, smtp_handler):
        message = HTMLMessage()
        message.set_from("foo@bar.com")
        message.add_to("wedeto@wedeto.net")
        message.set_subject("Report")
        cid = message.embed("logo.png", io.BytesIO(b"\x89PNG fake image"))
        message.set_html(f'<p>Bonjour, voilà le rapport</p><img src="{cid}">')
        message.attach("report.bin", io.BytesIO(bytes(range(256)) * 10))

        sender.send(message)

        parsed = parse(smtp_handler.messages[0]["data"])
        assert parsed.get_content_type() == "multipart/mixed"
        types = [part.get_content_type() for part in parsed.walk()]
        assert types == [
            "multipart/mixed",
            "multipart/alternative",
            "text/plain",
            "multipart/related",
            "text/html",
            "image/png",
            "application/octet-stream",
        ]
        parts = list(parsed.walk())
        assert "voilà" in parts[4].get_content()
        assert parts[5].get_content() == b"\x89PNG fake image"
        assert parts[6].get_filename() == "report.bin"
        assert parts[6].get_content() == bytes(range(256)) * 10

    def test_session_reuse(self, sender, smtp_handler):
        for i in range(3):
            message = Message()
            message.set_from("foo@bar.com")
            message.add_to(f"user{i}@wedeto.net")
            message.set_subject(f"Message {i}")
            message.set_body(f"Body {i}")
            sender.send(message)

        assert [m["to"] for m in smtp_handler.messages] == [
            ["user0@wedeto.net"], ["user1@wedeto.net"], ["user2@wedeto.net"]]

    def test_rejected_recipient(self, sender, smtp_handler):
        smtp_handler.rejected.add("nobody@wedeto.net")
        message = Message()
        message.set_from("foo@bar.com")
        message.add_to("wedeto@wedeto.net")
        message.add_to("nobody@wedeto.net")
        message.set_body("x")

        with pytest.raises(RecipientRejectedError) as exc_info:
            sender.send(message)

        assert exc_info.value.accepted == ["wedeto@wedeto.net"]
        assert smtp_handler.messages == []

    def test_send_after_close(self, smtp_server, smtp_handler):
        sender = SMTPSender(SMTPSettings(host="127.0.0.1", port=smtp_server),
                            auto_disconnect=False)
        message = Message()
        message.set_from("foo@bar.com")
        message.add_to("wedeto@wedeto.net")
        message.set_body("x")

        sender.send(message)
        sender.close()
        sender.send(message)
        sender.close()

        assert len(smtp_handler.messages) == 2
