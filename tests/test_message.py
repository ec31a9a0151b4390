from mail_relay.message import (
    HeaderMap,
    InboundMessage,
    build_structured_email,
    normalize_header_name,
    resolve_original_sender,
    structure_message,
)
from mail_relay.models import EmailBody

RAW = (
    b"From: Sender <sender@example.com>\r\n"
    b"To: Alice <alice@example.org>, \"Bob, Jr\" <bob@example.org>\r\n"
    b"Cc: carol@example.org\r\n"
    b"Subject: =?utf-8?B?WmHFvMOzxYLEhw==?=\r\n"
    b"Date: Mon, 01 Jan 2024 10:00:00 +0000\r\n"
    b"Message-ID: <abc@example.com>\r\n"
    b"X-Mailer: Test\r\n"
    b"Received: from a\r\n"
    b"Received: from b\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
    b"Hello\r\n"
)


def test_normalize_header_name():
    assert normalize_header_name("X-Original-To") == "x_original_to"


def test_header_map_unfolds_and_decodes_encoded_words():
    headers = HeaderMap.from_bytes(
        b"Subject: Hello\r\n World\r\n"
        b"X-Note: =?utf-8?Q?Cze=C5=9B=C4=87?=\r\n"
        b"\r\n"
    )
    assert headers["subject"] == "Hello World"
    assert headers["x-note"] == "Cześć"


def test_header_map_reads_raw_utf8_values():
    raw = (
        "From: Łukasz Wójcik <lukasz@example.pl>\r\n"
        "To: Zofia Żak <zofia@example.pl>, bob@example.org\r\n"
        "Subject: Zażółć gęślą\r\n"
        "X-Label: jaźń\r\n"
        "\r\n"
        "body\r\n"
    ).encode("utf-8")
    message = InboundMessage.from_bytes(raw, mail_from="lukasz@example.pl", rcpt_to="zofia@example.pl")

    email = structure_message(message)

    assert email.subject == "Zażółć gęślą"
    assert [(a.name, a.email) for a in email.to] == [("Zofia Żak", "zofia@example.pl"), ("", "bob@example.org")]
    assert email.headers["x_label"] == "jaźń"
    assert "\ufffd" not in email.subject


def test_forwarded_sender_keeps_utf8_display_name():
    raw = (
        "X-Forwarded-To: me@example.org\r\n"
        "Return-Path: <orig@example.pl>\r\n"
        "To: Zofia Żak <zofia@example.pl>\r\n"
        "\r\n"
    ).encode("utf-8")
    message = InboundMessage.from_bytes(raw, mail_from="relay@example.org", rcpt_to="zofia@example.pl")

    email = structure_message(message)

    assert email.from_.email == "orig@example.pl"
    assert email.to[0].name == "Zofia Żak"


def test_header_map_is_case_insensitive_and_joins_duplicates():
    headers = HeaderMap.from_bytes(RAW)
    assert headers["SUBJECT"] == "Zażółć"
    assert headers.get("x-mailer") == "Test"
    assert headers["received"] == "from a, from b"
    assert "content-type" in headers


def test_header_map_normalized_removes_names():
    headers = HeaderMap([("Message-ID", "<a>"), ("X-Spam-Score", "1")])
    assert headers.normalized(remove=("message-id",)) == {"x_spam_score": "1"}


def test_resolve_original_sender_without_forwarding():
    headers = {"Return-Path": "<bounce@example.com>"}
    assert resolve_original_sender("env@example.com", headers) == "env@example.com"


def test_resolve_original_sender_uses_return_path_of_forwarded_mail():
    headers = {"X-Forwarded-To": "me@example.org", "Return-Path": "<orig@example.com>"}
    assert resolve_original_sender("fwd@example.org", headers) == "orig@example.com"


def test_resolve_original_sender_forwarded_without_return_path():
    headers = {"X-Forwarded-For": "me@example.org"}
    assert resolve_original_sender("fwd@example.org", headers) == "fwd@example.org"


def test_structure_message_builds_full_record():
    message = InboundMessage.from_bytes(RAW, mail_from="sender@example.com", rcpt_to="alice@example.org")
    email = structure_message(message)

    assert email.subject == "Zażółć"
    assert email.from_.email == "sender@example.com"
    assert [a.email for a in email.to] == ["alice@example.org", "bob@example.org"]
    assert email.to[1].name == "Bob, Jr"
    assert [a.email for a in email.cc] == ["carol@example.org"]
    assert email.bcc == []
    assert email.message_id == "<abc@example.com>"
    assert email.date == "Mon, 01 Jan 2024 10:00:00 +0000"
    assert email.body.text == "Hello"
    assert email.raw_content.startswith("From: Sender")
    assert email.headers["x_mailer"] == "Test"
    assert email.headers["content_type"] == "text/plain; charset=utf-8"
    for removed in ("subject", "from", "to", "cc", "bcc", "date", "message_id", "message-id"):
        assert removed not in email.headers


def test_structured_email_falls_back_to_envelope_recipient():
    message = InboundMessage(mail_from="a@example.com", rcpt_to="hidden@example.org")
    email = build_structured_email(message, EmailBody(), "")
    assert [a.email for a in email.to] == ["hidden@example.org"]
    assert email.from_.email == "a@example.com"
    assert email.subject == ""


def test_payload_uses_from_alias_and_drops_missing_body_parts():
    message = InboundMessage.from_bytes(RAW, mail_from="sender@example.com", rcpt_to="alice@example.org")
    payload = structure_message(message).to_payload()
    assert payload["from"] == {"name": "", "email": "sender@example.com"}
    assert "from_" not in payload
    assert payload["body"] == {"text": "Hello"}
