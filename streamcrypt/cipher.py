"""
Stream cipher engines for streamcrypt.

Every packet in one direction of a connection is fed through the same
AES-256-CFB8 keystream. An engine is created once per direction and
never reset, so byte N of call K continues from the last byte of call K-1.

Two engines implement the mode:
- NativeEngine: cryptography's AES/CFB8 (OpenSSL)
- SoftwareEngine: CFB8 driven byte by byte over a single-block AES primitive,
  used when the native mode is not offered by the installed backend

Both produce identical bytes for the same secret, IV and plaintext,
however the plaintext is split across calls.
"""
import enum
import logging

from cryptography.exceptions import AlreadyFinalized, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
try:
    from cryptography.hazmat.decrepit.ciphers.modes import CFB8
except ImportError:  # older cryptography releases keep CFB8 in primitives
    from cryptography.hazmat.primitives.ciphers.modes import CFB8

from streamcrypt.constants import (
    CIPHER_NAME, SECRET_SIZE, IV_SIZE, BLOCK_SIZE,
    ENGINE_AUTO, ENGINE_NATIVE, ENGINE_SOFTWARE, ENGINE_CHOICES
)
from streamcrypt.errors import EngineError

logger = logging.getLogger(__name__)


class CipherDirection(enum.Enum):
    ENCRYPT = 'encrypt'
    DECRYPT = 'decrypt'


def _validate_key_material(secret, iv):
    if len(secret) != SECRET_SIZE:
        raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(secret)}")
    if len(iv) != IV_SIZE:
        raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")


def native_cfb8_available():
    """Return True if the installed cryptography backend offers AES/CFB8."""
    try:
        Cipher(algorithms.AES(bytes(SECRET_SIZE)), CFB8(bytes(IV_SIZE))).encryptor()
    except UnsupportedAlgorithm:
        return False
    return True


class NativeEngine:
    """AES-256-CFB8 backed by cryptography's OpenSSL bindings."""

    name = ENGINE_NATIVE

    def __init__(self, secret, iv, direction):
        _validate_key_material(secret, iv)
        self.direction = CipherDirection(direction)
        cipher = Cipher(algorithms.AES(bytes(secret)), CFB8(bytes(iv)))
        try:
            if self.direction is CipherDirection.ENCRYPT:
                self._context = cipher.encryptor()
            else:
                self._context = cipher.decryptor()
        except UnsupportedAlgorithm as e:
            raise EngineError(f"Native {CIPHER_NAME} unavailable: {e}") from e

    @property
    def closed(self):
        return self._context is None

    def encrypt(self, data):
        return self._apply(CipherDirection.ENCRYPT, data)

    def decrypt(self, data):
        return self._apply(CipherDirection.DECRYPT, data)

    def _apply(self, direction, data):
        _check_usable(self, direction)
        try:
            return self._context.update(bytes(data))
        except AlreadyFinalized as e:
            raise EngineError("Cipher context already finalized") from e

    def close(self):
        if self._context is not None:
            # CFB8 keeps no partial block, finalize() never yields bytes
            self._context.finalize()
            self._context = None


class SoftwareEngine:
    """
    AES-256-CFB8 implemented one byte at a time.

    Each step encrypts the 16-byte shift register with the raw block
    cipher, XORs the first keystream byte into the data byte, then shifts
    the resulting ciphertext byte into the register.
    """

    name = ENGINE_SOFTWARE

    def __init__(self, secret, iv, direction):
        _validate_key_material(secret, iv)
        self.direction = CipherDirection(direction)
        self._block = Cipher(algorithms.AES(bytes(secret)), modes.ECB()).encryptor()
        self._register = bytearray(iv)

    @property
    def closed(self):
        return self._block is None

    def encrypt(self, data):
        _check_usable(self, CipherDirection.ENCRYPT)
        out = bytearray(len(data))
        register = self._register
        for i, byte in enumerate(bytes(data)):
            c = byte ^ self._block.update(bytes(register))[0]
            out[i] = c
            del register[0]
            register.append(c)
        return bytes(out)

    def decrypt(self, data):
        _check_usable(self, CipherDirection.DECRYPT)
        out = bytearray(len(data))
        register = self._register
        for i, byte in enumerate(bytes(data)):
            out[i] = byte ^ self._block.update(bytes(register))[0]
            del register[0]
            register.append(byte)
        return bytes(out)

    def close(self):
        if self._block is not None:
            self._block.finalize()
            self._block = None
            self._register = bytearray(BLOCK_SIZE)


def _check_usable(engine, direction):
    if engine.closed:
        raise EngineError(f"{engine.name} engine used after close()")
    if engine.direction is not direction:
        raise EngineError(
            f"{engine.name} engine is bound to {engine.direction.value}, "
            f"cannot {direction.value}"
        )


ENGINES = {
    ENGINE_NATIVE: NativeEngine,
    ENGINE_SOFTWARE: SoftwareEngine,
}


def create_engine(secret, iv, direction, prefer=ENGINE_AUTO):
    """
    Create a stream cipher engine for one direction of a connection.

    Args:
        secret (bytes): 32-byte shared secret
        iv (bytes): 16-byte initialization vector
        direction (CipherDirection | str): 'encrypt' or 'decrypt'
        prefer (str): 'auto' probes for the native mode and falls back to
            software; 'native' or 'software' force one engine

    Returns:
        NativeEngine | SoftwareEngine

    Raises:
        EngineError: If 'native' is requested but not available
        ValueError: If prefer, secret or iv is invalid
    """
    if prefer not in ENGINE_CHOICES:
        raise ValueError(f"Unknown engine {prefer!r} (expected one of {ENGINE_CHOICES})")

    if prefer == ENGINE_AUTO:
        prefer = ENGINE_NATIVE if native_cfb8_available() else ENGINE_SOFTWARE
    elif prefer == ENGINE_NATIVE and not native_cfb8_available():
        raise EngineError(f"Native {CIPHER_NAME} requested but not supported by this backend")

    engine = ENGINES[prefer](secret, iv, direction)
    logger.info("Created %s %s %s engine", prefer, CIPHER_NAME, engine.direction.value)
    return engine
