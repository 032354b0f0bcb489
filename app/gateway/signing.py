"""
Request signing and verification for providers and merchants.

Every provider signs the same way with small variations: drop empty values
and the signature field, sort the remaining keys, join them as
``key=value`` pairs with ``&``, append the secret, digest, normalise case.
The variations are data (SigningScheme), so one signer serves all of them.

Usage:
    from gateway.signing import sign, verify

    params["sign"] = sign(params, secret, "passpay")
    ok = verify(payload, secret, "passpay", payload.get("sign"))
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import models

from gateway.exceptions import InvalidSchemeError, SignatureMismatchError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any


class SecretPlacement(models.TextChoices):
    # "&<secret_field>=SECRET"
    APPEND_PAIR = "append_pair", "Append as key pair"
    # "SECRET" glued to the end of the canonical string
    CONCATENATE = "concatenate", "Concatenate"


class Digest(models.TextChoices):
    MD5 = "md5", "MD5"
    SHA256 = "sha256", "SHA-256"
    HMAC_SHA256 = "hmac_sha256", "HMAC-SHA256"


@dataclass(frozen=True)
class SigningScheme:
    """
    Value object describing one party's signing rules.

    Attributes:
        scheme_id: Registry key
        secret_placement: How the secret joins the canonical string
        secret_field: Key name used with APPEND_PAIR
        digest: Hash function; HMAC keys with the secret instead of appending
        uppercase: Case of the hex digest
        excluded_fields: Never part of the canonical string
    """

    scheme_id: str
    secret_placement: str = SecretPlacement.APPEND_PAIR
    secret_field: str = "key"
    digest: str = Digest.MD5
    uppercase: bool = False
    excluded_fields: frozenset[str] = field(
        default_factory=lambda: frozenset({"sign", "signature"})
    )


SCHEMES: dict[str, SigningScheme] = {
    "passpay": SigningScheme(scheme_id="passpay"),
    "unispay": SigningScheme(scheme_id="unispay", uppercase=True),
    "dhpay": SigningScheme(
        scheme_id="dhpay",
        secret_field="secretKey",
        uppercase=True,
    ),
    # Merchant API requests and outbound merchant notifications
    "merchant": SigningScheme(
        scheme_id="merchant",
        secret_placement=SecretPlacement.CONCATENATE,
    ),
}


def get_scheme(scheme: SigningScheme | str) -> SigningScheme:
    """Resolve a scheme id to its SigningScheme."""
    if isinstance(scheme, SigningScheme):
        return scheme
    try:
        return SCHEMES[str(scheme)]
    except KeyError:
        raise InvalidSchemeError(
            f"Unknown signing scheme '{scheme}'",
            details={"scheme": str(scheme), "known": sorted(SCHEMES)},
        ) from None


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def canonical_string(params: Mapping[str, Any], scheme: SigningScheme | str) -> str:
    """
    Build the string to be digested, without the secret.

    Keys are ordered by their UTF-8 bytes, which matches the byte-wise
    ordering providers use on their side.
    """
    scheme = get_scheme(scheme)
    pairs = [
        (str(key), _render(value))
        for key, value in params.items()
        if key not in scheme.excluded_fields and value is not None and value != ""
    ]
    pairs.sort(key=lambda pair: pair[0].encode("utf-8"))
    return "&".join(f"{key}={value}" for key, value in pairs)


def sign(params: Mapping[str, Any], secret: str, scheme: SigningScheme | str) -> str:
    """Compute the signature of params under scheme."""
    scheme = get_scheme(scheme)
    base = canonical_string(params, scheme)

    if scheme.digest == Digest.HMAC_SHA256:
        signature = hmac.new(
            secret.encode("utf-8"), base.encode("utf-8"), hashlib.sha256
        ).hexdigest()
    else:
        if scheme.secret_placement == SecretPlacement.CONCATENATE:
            material = f"{base}{secret}"
        elif base:
            material = f"{base}&{scheme.secret_field}={secret}"
        else:
            material = f"{scheme.secret_field}={secret}"
        algorithm = "md5" if scheme.digest == Digest.MD5 else "sha256"
        signature = hashlib.new(algorithm, material.encode("utf-8")).hexdigest()

    return signature.upper() if scheme.uppercase else signature.lower()


def verify(
    params: Mapping[str, Any],
    secret: str,
    scheme: SigningScheme | str,
    candidate: str | None,
) -> bool:
    """
    Check candidate against a recomputed signature.

    The candidate is case-normalised to the scheme's case first. The
    comparison is constant-time.
    """
    if not candidate or not isinstance(candidate, str):
        return False
    scheme = get_scheme(scheme)
    expected = sign(params, secret, scheme)
    normalised = candidate.upper() if scheme.uppercase else candidate.lower()
    return hmac.compare_digest(expected.encode("utf-8"), normalised.encode("utf-8"))


def verify_or_raise(
    params: Mapping[str, Any],
    secret: str,
    scheme: SigningScheme | str,
    candidate: str | None,
) -> None:
    """Like verify(), but raise SignatureMismatchError on failure."""
    if not verify(params, secret, scheme, candidate):
        scheme_id = get_scheme(scheme).scheme_id
        raise SignatureMismatchError(
            "Signature verification failed",
            details={"scheme": scheme_id},
        )
