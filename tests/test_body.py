import base64

from mail_relay.body import extract_body

MULTIPART = (
    "Content-Type: multipart/alternative; boundary=\"b1\"\r\n"
    "\r\n"
    "--b1\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "Content-Transfer-Encoding: quoted-printable\r\n"
    "\r\n"
    "Oto przyk=C5=82ad\r\n"
    "--b1\r\n"
    "Content-Type: text/html; charset=utf-8\r\n"
    "Content-Transfer-Encoding: base64\r\n"
    "\r\n"
    + base64.b64encode("<p>Cześć</p>".encode("utf-8")).decode("ascii")
    + "\r\n"
    "--b1--\r\n"
)


def test_extracts_and_decodes_both_sections():
    body = extract_body(MULTIPART)
    assert body.text == "Oto przykład"
    assert body.html == "<p>Cześć</p>"


def test_single_part_plain_text_runs_to_end_of_content():
    raw = "Subject: hi\r\nContent-Type: text/plain; charset=utf-8\r\n\r\nHello there\r\n\r\n"
    body = extract_body(raw)
    assert body.text == "Hello there"
    assert body.html is None


def test_missing_sections_are_none():
    body = extract_body("Subject: hi\r\n\r\nno content type here")
    assert body.text is None
    assert body.html is None


def test_unknown_transfer_encoding_leaves_text_untouched():
    raw = (
        "--b\r\n"
        "Content-Type: text/plain\r\n"
        "Content-Transfer-Encoding: 8bit\r\n"
        "\r\n"
        "price =41 EUR\r\n"
        "--b--\r\n"
    )
    assert extract_body(raw).text == "price =41 EUR"


def test_content_type_match_is_case_insensitive():
    raw = "--b\r\ncontent-type: TEXT/PLAIN\r\n\r\nshout\r\n--b--"
    assert extract_body(raw).text == "shout"


def test_bare_lf_line_endings():
    raw = "--b\nContent-Type: text/html\n\n<b>x</b>\n--b--\n"
    assert extract_body(raw).html == "<b>x</b>"
