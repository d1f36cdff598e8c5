import hashlib
import hmac
import json

from layer_receipts.webhooks import signature

SECRET = "Frodo is a Dodo"


def _expected(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def test_valid_signature_is_accepted():
    body = json.dumps({"event": {"type": "message.sent"}}).encode("utf-8")
    assert signature.validate(body, SECRET, _expected(SECRET, body)) is True


def test_single_byte_mutation_is_rejected():
    body = json.dumps({"event": {"type": "message.sent"}}).encode("utf-8")
    provided = _expected(SECRET, body)
    mutated = body.replace(b"sent", b"sena")
    assert signature.validate(mutated, SECRET, provided) is False


def test_wrong_secret_is_rejected():
    body = b'{"a":1}'
    assert signature.validate(body, "other secret", _expected(SECRET, body)) is False


def test_missing_signature_is_rejected():
    assert signature.validate(b"{}", SECRET, None) is False
    assert signature.validate(b"{}", SECRET, "") is False


def test_text_payload_is_signed_as_utf8():
    text = json.dumps({"body": "héllo ✓"}, ensure_ascii=False)
    provided = _expected(SECRET, text.encode("utf-8"))
    assert signature.validate(text, SECRET, provided) is True
    assert signature.compute_signature(text, SECRET) == signature.compute_signature(
        text.encode("utf-8"), SECRET
    )
