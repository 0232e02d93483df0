import base64
import hashlib
import hmac

from checkout_service.signatures import HEX, hmac_digest, verify


def test_digest_matches_reference_hmac():
    expected = base64.b64encode(
        hmac.new(b"key", b"oid1salt1success2000", hashlib.sha256).digest()
    ).decode()
    assert hmac_digest("key", "oid1", "salt1", "success", 2000) == expected


def test_hex_encoding():
    expected = hmac.new(b"key", b"ab", hashlib.sha256).hexdigest()
    assert hmac_digest("key", "a", "b", encoding=HEX) == expected


def test_untampered_fields_verify():
    signature = hmac_digest("secret", "oid42", "salt", "success", "1999")
    assert verify(hmac_digest("secret", "oid42", "salt", "success", "1999"), signature)


def test_tampered_fields_never_verify():
    signature = hmac_digest("secret", "oid42", "salt", "success", "1999")
    tampered = [
        ("oid43", "salt", "success", "1999"),
        ("oid42", "salt", "failed", "1999"),
        ("oid42", "salt", "success", "1"),
    ]
    for parts in tampered:
        assert not verify(hmac_digest("secret", *parts), signature)


def test_wrong_secret_never_verifies():
    signature = hmac_digest("secret", "oid42", "success")
    assert not verify(hmac_digest("other", "oid42", "success"), signature)


def test_missing_signature_is_rejected():
    assert not verify(hmac_digest("secret", "x"), None)
    assert not verify(hmac_digest("secret", "x"), "")
