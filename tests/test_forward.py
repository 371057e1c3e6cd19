"""Tests for mailrelay.forward."""

from __future__ import annotations

from mailrelay.forward import build_forward_message
from mailrelay.parser import MessageParser

from tests.conftest import _build_multipart_email, make_account


class TestBuildForwardMessage:
    def test_envelope_from_account(self, plain_eml_bytes: bytes):
        account = make_account("work", forward_target="me@home.example")
        message = build_forward_message(MessageParser().parse(plain_eml_bytes), account)

        assert message.sender == "me@work.example"
        assert message.recipient == "me@home.example"

    def test_body_is_byte_identical(self):
        # 8-bit body, odd header folding and bare LF line ends must survive.
        raw = (
            b"From: =?utf-8?q?Jos=C3=A9?= <jose@example.com>\r\n"
            b"To: me@work.example\r\n"
            b"Subject: folded\r\n  header\r\n"
            b"Content-Type: text/plain; charset=latin-1\r\n"
            b"Content-Transfer-Encoding: 8bit\r\n"
            b"\r\n"
            b"d\xe9j\xe0 vu\nsecond line\r\n"
        )
        message = build_forward_message(MessageParser().parse(raw), make_account("work"))
        assert message.body == raw

    def test_multipart_body_not_reserialized(self):
        raw = _build_multipart_email(attachments=[("a.bin", "application/octet-stream", b"\x00\x01")])
        message = build_forward_message(MessageParser().parse(raw), make_account("work"))
        assert message.body == raw
