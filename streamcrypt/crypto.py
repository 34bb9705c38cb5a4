"""
Key material and checksum functions for streamcrypt.
Uses PyNaCl (libsodium) for random bytes and cryptography for hashing.
"""
import struct

from nacl.utils import random
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.constant_time import bytes_eq

from streamcrypt.constants import (
    SECRET_SIZE, IV_SIZE, TAG_SIZE, COUNTER_FORMAT, COUNTER_MAX
)


def generate_secret():
    """
    Generate a random 32-byte shared secret.

    In production the handshake layer delivers the secret; this helper
    exists for tests and tooling that need a throwaway connection.

    Returns:
        bytes: 32 random bytes

    Example:
        >>> len(generate_secret())
        32
    """
    return random(SECRET_SIZE)


def generate_iv():
    """Generate a random 16-byte initialization vector."""
    return random(IV_SIZE)


def compute_checksum(counter, payload, secret):
    """
    Compute the 8-byte tag appended to a packet.

    tag = SHA256(LE64(counter) || payload || secret)[0:8]

    The counter acts as an implicit nonce: both peers derive it from
    packet order, so nothing extra is sent on the wire.

    Args:
        counter (int): Packet counter for this direction (0 to 2^64-1)
        payload (bytes): Compressed packet body, before the tag is appended
        secret (bytes): 32-byte shared secret

    Returns:
        bytes: 8-byte tag

    Raises:
        ValueError: If the counter is out of range or the secret has wrong length
    """
    if not (0 <= counter <= COUNTER_MAX):
        raise ValueError(f"Counter must be 0-{COUNTER_MAX}, got {counter}")
    if len(secret) != SECRET_SIZE:
        raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(secret)}")

    digest = hashes.Hash(hashes.SHA256())
    digest.update(struct.pack(COUNTER_FORMAT, counter))
    digest.update(bytes(payload))
    digest.update(secret)
    return digest.finalize()[:TAG_SIZE]


def verify_checksum(counter, payload, secret, tag):
    """Check a received tag against the expected one in constant time."""
    expected = compute_checksum(counter, payload, secret)
    return bytes_eq(expected, bytes(tag))
