"""
Signing Key Helpers

Generates and checks the PEM private key the application uses to sign
session tokens.
"""

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519


def generate_private_key_pem() -> bytes:
    """Generate an unencrypted Ed25519 key in PKCS#8 PEM form."""
    key = ed25519.Ed25519PrivateKey.generate()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def is_private_key_pem(data: bytes) -> bool:
    """
    Check that data is an unencrypted PEM private key.

    Accepts PKCS#8 and the traditional PKCS#1 / SEC1 encodings.
    """
    try:
        serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True
