# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""ECDSA P-256 signing and verification for Coordinator traffic.

Signatures are ECDSA over the UTF-8 bytes of the canonical message with a
SHA-256 digest, ASN.1 DER encoded, then standard base64. This is what the
Coordinator and the Node.js services produce with crypto.createSign('SHA256').

sign() is strict: a missing identity or key raises MissingCredential, since an
unsigned request that looks signed is worse than a visible failure.
verify() is lenient: every failure is a False result, never an exception.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
    load_pem_public_key,
)

from coursebridge.core.errors import MissingCredential
from coursebridge.signing.canonical import build_message

logger = logging.getLogger("coursebridge.signing")

CURVE = ec.SECP256R1


def _pem_bytes(pem: str | bytes) -> bytes:
    return pem.encode("utf-8") if isinstance(pem, str) else pem


def load_private_key(private_key_pem: str | bytes) -> ec.EllipticCurvePrivateKey:
    """Parse a PEM private key and check it is an EC key.

    Raises:
        ValueError: If the PEM cannot be parsed or is not an EC key.
    """
    try:
        key = load_pem_private_key(_pem_bytes(private_key_pem), password=None)
    except (TypeError, UnsupportedAlgorithm) as exc:
        raise ValueError(f"Unusable private key: {exc}") from exc
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise ValueError(f"Expected an EC private key, got {type(key).__name__}")
    return key


def load_public_key(public_key_pem: str | bytes) -> ec.EllipticCurvePublicKey:
    """Parse a PEM public key and check it is an EC key.

    Raises:
        ValueError: If the PEM cannot be parsed or is not an EC key.
    """
    try:
        key = load_pem_public_key(_pem_bytes(public_key_pem))
    except UnsupportedAlgorithm as exc:
        raise ValueError(f"Unusable public key: {exc}") from exc
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise ValueError(f"Expected an EC public key, got {type(key).__name__}")
    return key


def _sign_message(key: ec.EllipticCurvePrivateKey, message: str) -> str:
    der = key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
    return base64.b64encode(der).decode("ascii")


def sign(
    service_name: str,
    private_key_pem: Optional[str | bytes],
    payload: Any = None,
    sort_keys: bool = False,
) -> str:
    """Sign (service_name, payload). Returns a base64 DER signature.

    Raises:
        MissingCredential: If service_name or private_key_pem is empty.
        ValueError: If the key is not a usable EC private key.
    """
    if not service_name or not private_key_pem:
        raise MissingCredential("Missing serviceName or private key for signature")
    key = load_private_key(private_key_pem)
    return _sign_message(key, build_message(service_name, payload, sort_keys=sort_keys))


def verify(
    service_name: Optional[str],
    signature_b64: Optional[str],
    public_key_pem: Optional[str | bytes],
    payload: Any = None,
    sort_keys: bool = False,
) -> bool:
    """Verify a base64 signature over (service_name, payload). Never raises."""
    if not service_name or not signature_b64 or not public_key_pem:
        return False
    try:
        der = base64.b64decode(signature_b64, validate=True)
        key = load_public_key(public_key_pem)
        message = build_message(service_name, payload, sort_keys=sort_keys)
        key.verify(der, message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        return True
    except InvalidSignature:
        return False
    except (binascii.Error, ValueError, TypeError) as exc:
        logger.debug("Signature check failed for %s: %s", service_name, exc)
        return False


class ServiceSigner:
    """Holds one service identity and its parsed private key."""

    def __init__(self, service_name: str, private_key_pem: str | bytes, sort_keys: bool = False):
        if not service_name or not private_key_pem:
            raise MissingCredential("Missing serviceName or private key for signature")
        self._service_name = service_name
        self._key = load_private_key(private_key_pem)
        self._sort_keys = sort_keys

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def public_key_pem(self) -> str:
        return self._key.public_key().public_bytes(
            Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
        ).decode("ascii")

    def sign(self, payload: Any = None) -> str:
        """Sign a payload under this service's identity."""
        message = build_message(self._service_name, payload, sort_keys=self._sort_keys)
        return _sign_message(self._key, message)

    def verify(self, signature_b64: str, payload: Any = None) -> bool:
        """Check a signature against this service's own public key."""
        return verify(
            self._service_name, signature_b64, self.public_key_pem, payload,
            sort_keys=self._sort_keys,
        )


def generate_keypair() -> tuple[str, str]:
    """Generate a P-256 key pair. Returns (pkcs8 private PEM, spki public PEM)."""
    private_key = ec.generate_private_key(CURVE())
    private_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("ascii")
    public_pem = private_key.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    ).decode("ascii")
    return private_pem, public_pem
