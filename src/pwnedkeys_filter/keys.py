"""
Conversion of keys into the canonical bytes stored in a filter.

Every entry is the DER-encoded SubjectPublicKeyInfo of a public key, so a key
matches regardless of whether it was supplied as a private key, a public key,
a certificate, PEM or DER.
"""
import hashlib
from typing import Any, Callable, List

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import (
    dsa,
    ec,
    ed448,
    ed25519,
    rsa,
    x448,
    x25519,
)

from pwnedkeys_filter.errors import InvalidKeyError


PUBLIC_KEY_TYPES = (
    rsa.RSAPublicKey,
    dsa.DSAPublicKey,
    ec.EllipticCurvePublicKey,
    ed25519.Ed25519PublicKey,
    ed448.Ed448PublicKey,
    x25519.X25519PublicKey,
    x448.X448PublicKey,
)

PRIVATE_KEY_TYPES = (
    rsa.RSAPrivateKey,
    dsa.DSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
    x25519.X25519PrivateKey,
    x448.X448PrivateKey,
)

_PARSE_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def _private_key_loader(load: Callable[..., Any]) -> Callable[[bytes], Any]:
    return lambda data: load(data, password=None).public_key()


def _certificate_loader(load: Callable[[bytes], Any]) -> Callable[[bytes], Any]:
    return lambda data: load(data).public_key()


# Tried in order until one succeeds.
_LOADERS: List[Callable[[bytes], Any]] = [
    serialization.load_der_public_key,
    _private_key_loader(serialization.load_der_private_key),
    _certificate_loader(x509.load_der_x509_certificate),
    serialization.load_pem_public_key,
    _private_key_loader(serialization.load_pem_private_key),
    _certificate_loader(x509.load_pem_x509_certificate),
    _certificate_loader(x509.load_pem_x509_csr),
]


def _load_public_key(data: bytes):
    for load in _LOADERS:
        try:
            return load(data)
        except _PARSE_ERRORS:
            continue

    raise InvalidKeyError("Could not parse provided key as a key or SPKI structure")


def public_key_of(key):
    """
    Resolve any supported key representation to a public key object.

    Args:
        key: Public or private key object, certificate, CSR, or PEM/DER
            encoded key material as ``bytes`` or ``str``

    Returns:
        A ``cryptography`` public key object

    Raises:
        InvalidKeyError: If the value is not recognised as a key
    """
    if isinstance(key, PUBLIC_KEY_TYPES):
        return key
    if isinstance(key, PRIVATE_KEY_TYPES):
        return key.public_key()
    if isinstance(key, (x509.Certificate, x509.CertificateSigningRequest)):
        try:
            return key.public_key()
        except _PARSE_ERRORS as e:
            raise InvalidKeyError(f"Unsupported public key: {e}") from e
    if isinstance(key, str):
        try:
            key = key.encode("ascii")
        except UnicodeEncodeError as e:
            raise InvalidKeyError("Key text is not PEM") from e
    if isinstance(key, (bytes, bytearray, memoryview)):
        return _load_public_key(bytes(key))

    raise InvalidKeyError("Did not recognise the provided key")


def spki_der(key) -> bytes:
    """
    Produce the canonical filter entry for a key.

    Args:
        key: Anything accepted by :func:`public_key_of`

    Returns:
        DER encoding of the key's SubjectPublicKeyInfo

    Raises:
        InvalidKeyError: If the value is not recognised as a key
    """
    return public_key_of(key).public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def spki_fingerprint(key) -> str:
    """Hex SHA-256 digest of a key's SPKI, as used to identify pwned keys."""
    return hashlib.sha256(spki_der(key)).hexdigest()
