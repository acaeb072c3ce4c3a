from __future__ import annotations

"""
secp256k1 keypair generation for new games.

- sk: 32-byte big-endian private scalar
- pk: 33-byte SEC1 compressed public point
"""

from typing import Callable, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

Keypair = Tuple[bytes, bytes]
KeypairFn = Callable[[], Keypair]

SK_LEN = 32
PK_LEN = 33


def generate_secp256k1_keypair() -> Keypair:
    """Fresh (sk, pk) from the OS CSPRNG."""
    priv = ec.generate_private_key(ec.SECP256K1())
    sk = priv.private_numbers().private_value.to_bytes(SK_LEN, "big")
    pk = priv.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )
    return sk, pk


def public_key_of(sk: bytes) -> bytes:
    """Compressed public key for a 32-byte private scalar."""
    if len(sk) != SK_LEN:
        raise ValueError(f"private key must be {SK_LEN} bytes, got {len(sk)}")
    priv = ec.derive_private_key(int.from_bytes(sk, "big"), ec.SECP256K1())
    return priv.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


__all__ = ["Keypair", "KeypairFn", "generate_secp256k1_keypair", "public_key_of", "SK_LEN", "PK_LEN"]
