import base64

from mail_relay.decoding import (
    decode_base64,
    decode_by_transfer_encoding,
    decode_bytes,
    decode_content,
    decode_quoted_printable,
    detect_charset,
)

POLISH = "Zażółć gęślą jaźń"


def test_detect_charset_reads_content_type_declaration():
    raw = b'Subject: hi\r\nContent-Type: text/plain; charset="ISO-8859-2"\r\n\r\nbody'
    assert detect_charset(raw) == "iso-8859-2"


def test_detect_charset_follows_folded_header():
    raw = b"Content-Type: text/plain;\r\n\tcharset=windows-1250\r\n\r\nbody"
    assert detect_charset(raw) == "windows-1250"


def test_detect_charset_defaults_to_utf8():
    assert detect_charset(b"Subject: hi\r\n\r\nbody") == "utf-8"


def test_detect_charset_ignores_declarations_past_header_window():
    raw = b"X-Pad: " + b"a" * 2100 + b"\r\nContent-Type: text/plain; charset=iso-8859-2\r\n\r\n"
    assert detect_charset(raw) == "utf-8"


def test_decode_bytes_uses_charset():
    assert decode_bytes(b"caf\xe9", "iso-8859-1") == "café"


def test_decode_bytes_falls_back_on_unknown_charset():
    assert decode_bytes("żółw".encode("utf-8"), "x-not-a-charset") == "żółw"


def test_decode_content_prefers_legacy_reading_of_mislabelled_body():
    raw = f"Content-Type: text/plain; charset=utf-8\r\n\r\n{POLISH}".encode("windows-1250")
    assert POLISH in decode_content(raw)


def test_decode_content_keeps_genuine_utf8():
    raw = f"Content-Type: text/plain; charset=utf-8\r\n\r\n{POLISH}".encode("utf-8")
    assert POLISH in decode_content(raw)


def test_decode_content_honours_declared_legacy_charset():
    raw = f"Content-Type: text/plain; charset=iso-8859-2\r\n\r\n{POLISH}".encode("iso-8859-2")
    assert POLISH in decode_content(raw)


def test_decode_content_never_raises_on_garbage():
    assert isinstance(decode_content(b"\xff\xfe\x00\x81garbage"), str)


def test_quoted_printable_decodes_utf8_escapes():
    assert decode_quoted_printable("Oto przyk=C5=82ad") == "Oto przykład"


def test_quoted_printable_removes_soft_line_breaks():
    assert decode_quoted_printable("Hello=\r\nWorld=\nAgain") == "HelloWorldAgain"


def test_quoted_printable_keeps_non_hex_sequences():
    assert decode_quoted_printable("a=ZZb =4") == "a=ZZb =4"


def test_base64_ignores_line_breaks():
    encoded = base64.b64encode(POLISH.encode("utf-8")).decode("ascii")
    wrapped = encoded[:10] + "\r\n" + encoded[10:]
    assert decode_base64(wrapped) == POLISH


def test_base64_returns_input_when_malformed():
    assert decode_base64("not base64!!") == "not base64!!"


def test_base64_returns_input_when_not_utf8():
    assert decode_base64("//4=") == "//4="


def test_transfer_encoding_dispatch_is_case_insensitive():
    assert decode_by_transfer_encoding("SGVsbG8=", "BASE64") == "Hello"
    assert decode_by_transfer_encoding("=41", "Quoted-Printable") == "A"


def test_transfer_encoding_passthrough_values():
    for encoding in ("7bit", "8bit", "binary", "x-unknown", None, ""):
        assert decode_by_transfer_encoding("=41", encoding) == "=41"
