"""HMAC verification for GitHub webhook deliveries.

GitHub signs the exact request body with the shared secret and sends the
hex digest as ``X-Hub-Signature-256: sha256=<hex>``. Older integrations
also send ``X-Hub-Signature: sha1=<hex>``. The SHA-256 header wins whenever
it is present and well formed; SHA-1 is consulted only when it is absent or
malformed.

The digest must be computed over the bytes read from the socket. Parsing
the JSON and re-serialising it changes key order and whitespace, which
yields a different digest and rejects every legitimate delivery.
"""

from __future__ import annotations

import collections.abc as cabc
import enum
import hashlib
import hmac
import re

from .envelope import SHA1_HEADER, SHA256_HEADER
from .errors import SignatureMismatchError, SignatureMissingError

_SHA256_VALUE = re.compile(r"^sha256=([0-9a-fA-F]{64})$")
_SHA1_VALUE = re.compile(r"^sha1=([0-9a-fA-F]{40})$")


class SignatureAlgorithm(enum.StrEnum):
    """HMAC algorithm that authenticated a delivery."""

    SHA256 = "sha256"
    SHA1 = "sha1"


def compute_signature(
    body: bytes,
    secret: str | bytes,
    algorithm: SignatureAlgorithm = SignatureAlgorithm.SHA256,
) -> str:
    """Return the ``<algo>=<hex>`` header value GitHub would send for *body*."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digestmod = hashlib.sha256 if algorithm is SignatureAlgorithm.SHA256 else hashlib.sha1
    digest = hmac.new(key, body, digestmod).hexdigest()
    return f"{algorithm.value}={digest}"


def _extract(value: str | None, pattern: re.Pattern[str]) -> str | None:
    if value is None:
        return None
    match = pattern.match(value.strip())
    if match is None:
        return None
    return match.group(1).lower()


def _lookup(headers: cabc.Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def verify_signature(
    body: bytes,
    secret: str | bytes,
    headers: cabc.Mapping[str, str],
) -> SignatureAlgorithm:
    """Authenticate a delivery against the shared secret.

    Parameters
    ----------
    body
        Raw request body bytes.
    secret
        Shared webhook secret.
    headers
        Request headers; names are matched case-insensitively.

    Returns
    -------
    SignatureAlgorithm
        The algorithm whose signature matched.

    Raises
    ------
    SignatureMissingError
        If neither signature header is present.
    SignatureMismatchError
        If the authoritative signature does not match the body.

    """
    sha256_raw = _lookup(headers, SHA256_HEADER)
    sha1_raw = _lookup(headers, SHA1_HEADER)
    if sha256_raw is None and sha1_raw is None:
        raise SignatureMissingError

    key = secret.encode("utf-8") if isinstance(secret, str) else secret

    sha256_hex = _extract(sha256_raw, _SHA256_VALUE)
    if sha256_hex is not None:
        expected = hmac.new(key, body, hashlib.sha256).hexdigest()
        if hmac.compare_digest(expected, sha256_hex):
            return SignatureAlgorithm.SHA256
        raise SignatureMismatchError(SignatureAlgorithm.SHA256.value)

    sha1_hex = _extract(sha1_raw, _SHA1_VALUE)
    if sha1_hex is not None:
        expected = hmac.new(key, body, hashlib.sha1).hexdigest()
        if hmac.compare_digest(expected, sha1_hex):
            return SignatureAlgorithm.SHA1
        raise SignatureMismatchError(SignatureAlgorithm.SHA1.value)

    # Headers were present but none was well formed.
    raise SignatureMismatchError("malformed")
