"""
Tests for request signing and verification.

Digests below are recorded fixtures: they were computed independently of
this module and pin the exact canonical strings each provider expects.
"""

import pytest

from gateway.exceptions import InvalidSchemeError, SignatureMismatchError
from gateway.signing import (
    Digest,
    SigningScheme,
    canonical_string,
    get_scheme,
    sign,
    verify,
    verify_or_raise,
)

PASSPAY_CALLBACK = {
    "mchid": "mch001",
    "out_trade_no": "dep-1001",
    "amount": "500.00",
    "status": 2,
}


# =============================================================================
# Canonical String Tests
# =============================================================================


class TestCanonicalString:
    """Tests for the string that gets digested."""

    def test_sorts_keys_and_joins_pairs(self):
        """Keys are sorted and joined as key=value with &."""
        assert (
            canonical_string(PASSPAY_CALLBACK, "passpay")
            == "amount=500.00&mchid=mch001&out_trade_no=dep-1001&status=2"
        )

    def test_drops_empty_values_and_signature_fields(self):
        """None, empty strings, sign and signature never reach the digest."""
        params = {
            "b": "2",
            "a": "1",
            "empty": "",
            "missing": None,
            "sign": "abc",
            "signature": "def",
        }

        assert canonical_string(params, "passpay") == "a=1&b=2"

    def test_keeps_zero_values(self):
        """0 is a value, not an empty field."""
        assert canonical_string({"status": 0, "amount": "1.00"}, "passpay") == (
            "amount=1.00&status=0"
        )

    def test_orders_by_utf8_bytes(self):
        """Upper case sorts before lower case, as in byte-wise ordering."""
        params = {"b": "1", "B": "2", "a": "3"}

        assert canonical_string(params, "passpay") == "B=2&a=3&b=1"

    def test_renders_booleans_and_nested_values(self):
        """Booleans are lower case; dicts and lists are compact sorted JSON."""
        params = {"flag": False, "meta": {"z": 1, "a": "x"}, "ids": [1, 2]}

        assert canonical_string(params, "passpay") == (
            'flag=false&ids=[1,2]&meta={"a":"x","z":1}'
        )


# =============================================================================
# Recorded Fixture Tests
# =============================================================================


class TestRecordedSignatures:
    """Tests pinning each registered scheme to a known digest."""

    def test_passpay_md5_lowercase(self):
        """PassPay: &key=SECRET, MD5, lower case."""
        assert (
            sign(PASSPAY_CALLBACK, "passpay-secret", "passpay")
            == "081fdd9a9bcacc416f166b9fc2501511"
        )

    def test_unispay_md5_uppercase(self):
        """UniSpay: &key=SECRET, MD5, upper case."""
        params = {"mchNo": "uni001", "mchOrderId": "dep-1001", "amount": 50000, "state": 1}

        assert (
            sign(params, "unispay-secret", "unispay")
            == "1545EB71B32E10F20396A3E1659ED75E"
        )

    def test_dhpay_secret_key_field(self):
        """DhPay: &secretKey=SECRET, MD5, upper case."""
        params = {"mchOrderNo": "dep-1001", "amount": 50000, "status": "SUCCESS"}

        assert (
            sign(params, "dhpay-secret", "dhpay")
            == "B92FF10582A3BBB4C8CAA53CFF8543DB"
        )

    def test_merchant_concatenates_secret(self):
        """Merchant scheme glues the secret straight onto the string."""
        params = {
            "merchant_id": "M100",
            "merchant_order_id": "dep-1001",
            "amount": 50000,
            "timestamp": 1760000000,
        }

        assert (
            sign(params, "merchant-secret", "merchant")
            == "3ead822ba49762d915cf87d7741a83a0"
        )

    def test_empty_params_sign_secret_only(self):
        """With nothing to sign, only the secret pair is digested."""
        assert sign({}, "passpay-secret", "passpay") == "acfdb57cfdc8501e710b008732ca853b"

    def test_sha256_digest(self):
        """A scheme value object can select SHA-256."""
        scheme = SigningScheme(scheme_id="custom", digest=Digest.SHA256)

        assert sign({"a": 1, "b": 2}, "s", scheme) == (
            "73ccb841b44448fd12c402044a9dac10d72175095886ab4e323c6e7ebc500ad3"
        )

    def test_hmac_sha256_digest(self):
        """HMAC keys the digest with the secret instead of appending it."""
        scheme = SigningScheme(scheme_id="custom", digest=Digest.HMAC_SHA256)

        assert sign({"a": 1, "b": 2}, "hmac-secret", scheme) == (
            "081fd99c82a53629011cd7ad142e5c75a70772980ff060f9c1c8fc442e5d6973"
        )


# =============================================================================
# Verification Tests
# =============================================================================


class TestVerify:
    """Tests for signature verification."""

    @pytest.mark.parametrize("scheme", ["passpay", "unispay", "dhpay", "merchant"])
    def test_round_trip(self, scheme):
        """A freshly computed signature verifies under every scheme."""
        signature = sign(PASSPAY_CALLBACK, "secret", scheme)

        assert verify(PASSPAY_CALLBACK, "secret", scheme, signature) is True

    def test_tampered_amount_fails(self):
        """A changed amount with the original signature does not verify."""
        payload = {
            **PASSPAY_CALLBACK,
            "sign": "081fdd9a9bcacc416f166b9fc2501511",
        }
        tampered = {**payload, "amount": "900.00"}

        assert verify(payload, "passpay-secret", "passpay", payload["sign"]) is True
        assert verify(tampered, "passpay-secret", "passpay", tampered["sign"]) is False

    def test_tampered_signature_matches_no_recomputation(self):
        """The original signature matches no scheme's digest of the tampered body."""
        tampered = {**PASSPAY_CALLBACK, "amount": "900.00"}
        original = sign(PASSPAY_CALLBACK, "passpay-secret", "passpay")

        for scheme in ("passpay", "unispay", "dhpay", "merchant"):
            assert sign(tampered, "passpay-secret", scheme).lower() != original

    def test_wrong_secret_fails(self):
        signature = sign(PASSPAY_CALLBACK, "passpay-secret", "passpay")

        assert verify(PASSPAY_CALLBACK, "other-secret", "passpay", signature) is False

    def test_candidate_case_is_normalised(self):
        """Upper-case schemes accept a lower-case candidate and vice versa."""
        params = {"mchNo": "uni001", "mchOrderId": "dep-1001", "amount": 50000, "state": 1}

        assert verify(params, "unispay-secret", "unispay", "1545eb71b32e10f20396a3e1659ed75e")
        assert verify(
            PASSPAY_CALLBACK, "passpay-secret", "passpay", "081FDD9A9BCACC416F166B9FC2501511"
        )

    @pytest.mark.parametrize("candidate", [None, "", 12345])
    def test_missing_candidate_fails(self, candidate):
        assert verify(PASSPAY_CALLBACK, "passpay-secret", "passpay", candidate) is False

    def test_sign_field_in_params_is_ignored(self):
        """Verification recomputes over the payload minus its own sign field."""
        payload = {**PASSPAY_CALLBACK, "sign": sign(PASSPAY_CALLBACK, "k", "passpay")}

        assert verify(payload, "k", "passpay", payload["sign"]) is True

    def test_verify_or_raise(self):
        with pytest.raises(SignatureMismatchError) as exc_info:
            verify_or_raise(PASSPAY_CALLBACK, "passpay-secret", "passpay", "bad")

        assert exc_info.value.error_code == "SIGNATURE_MISMATCH"
        assert exc_info.value.details == {"scheme": "passpay"}


# =============================================================================
# Scheme Registry Tests
# =============================================================================


class TestGetScheme:
    def test_resolves_registered_id(self):
        scheme = get_scheme("dhpay")

        assert scheme.secret_field == "secretKey"
        assert scheme.uppercase is True

    def test_passes_value_object_through(self):
        scheme = SigningScheme(scheme_id="custom")

        assert get_scheme(scheme) is scheme

    def test_unknown_scheme_raises(self):
        with pytest.raises(InvalidSchemeError) as exc_info:
            sign({"a": 1}, "secret", "nope")

        assert exc_info.value.error_code == "INVALID_SCHEME"
        assert exc_info.value.is_retryable is False
