"""Tests for the AES-256-CFB8 stream cipher engines."""
import pytest

from streamcrypt import cipher
from streamcrypt.cipher import (
    CipherDirection, NativeEngine, SoftwareEngine, create_engine, native_cfb8_available
)
from streamcrypt.constants import CIPHER_NAME
from streamcrypt.crypto import generate_secret, generate_iv
from streamcrypt.errors import EngineError

# NIST SP 800-38A, F.3.17 CFB8-AES256.Encrypt
NIST_KEY = bytes.fromhex(
    '603deb1015ca71be2b73aef0857d77811f352c073b6108d72d9810a30914dff4'
)
NIST_IV = bytes.fromhex('000102030405060708090a0b0c0d0e0f')
NIST_PLAINTEXT = bytes.fromhex('6bc1bee22e409f96e93d7e117393172aae2d')
NIST_CIPHERTEXT = bytes.fromhex('dc1f1a8520a64db55fcc8ac554844e889700')

ENGINE_CLASSES = [NativeEngine, SoftwareEngine]

requires_native = pytest.mark.skipif(
    not native_cfb8_available(), reason="backend lacks AES/CFB8"
)


def _chunks(data, sizes):
    """Split data into consecutive pieces of the given sizes (last takes the rest)."""
    pieces = []
    start = 0
    for size in sizes:
        pieces.append(data[start:start + size])
        start += size
    pieces.append(data[start:])
    return pieces


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_known_answer_encrypt(engine_class):
    engine = engine_class(NIST_KEY, NIST_IV, CipherDirection.ENCRYPT)
    assert engine.encrypt(NIST_PLAINTEXT) == NIST_CIPHERTEXT


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_known_answer_decrypt(engine_class):
    engine = engine_class(NIST_KEY, NIST_IV, CipherDirection.DECRYPT)
    assert engine.decrypt(NIST_CIPHERTEXT) == NIST_PLAINTEXT


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_split_calls_match_single_call(engine_class):
    """Encrypting "AB" in two calls yields the same bytes as one call."""
    secret, iv = generate_secret(), generate_iv()
    data = bytes(range(256)) * 3

    whole = engine_class(secret, iv, 'encrypt').encrypt(data)

    split = engine_class(secret, iv, 'encrypt')
    pieces = [split.encrypt(piece) for piece in _chunks(data, [1, 15, 16, 17, 0, 100])]

    assert b"".join(pieces) == whole


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_encrypt_decrypt_roundtrip(engine_class):
    secret, iv = generate_secret(), generate_iv()
    encryptor = engine_class(secret, iv, 'encrypt')
    decryptor = engine_class(secret, iv, 'decrypt')

    first = encryptor.encrypt(b"Hello, ")
    second = encryptor.encrypt(b"stream!")

    assert decryptor.decrypt(first + second) == b"Hello, stream!"


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_keystream_continues_across_calls(engine_class):
    """The same plaintext encrypted twice in a row gives different bytes."""
    engine = engine_class(generate_secret(), generate_iv(), 'encrypt')
    assert engine.encrypt(b"same block") != engine.encrypt(b"same block")


@requires_native
def test_native_and_software_engines_agree():
    """Both engines produce identical ciphertext regardless of chunking."""
    secret, iv = generate_secret(), generate_iv()
    data = bytes((i * 31 + 7) % 256 for i in range(1000))

    native = NativeEngine(secret, iv, 'encrypt')
    software = SoftwareEngine(secret, iv, 'encrypt')

    native_out = b"".join(native.encrypt(p) for p in _chunks(data, [3, 300, 1]))
    software_out = b"".join(software.encrypt(p) for p in _chunks(data, [128, 5, 64, 700]))

    assert native_out == software_out


@requires_native
def test_native_decrypts_software_ciphertext():
    secret, iv = generate_secret(), generate_iv()
    ciphertext = SoftwareEngine(secret, iv, 'encrypt').encrypt(b"cross-engine")
    assert NativeEngine(secret, iv, 'decrypt').decrypt(ciphertext) == b"cross-engine"


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_empty_input_does_not_advance_keystream(engine_class):
    secret, iv = generate_secret(), generate_iv()
    a = engine_class(secret, iv, 'encrypt')
    b = engine_class(secret, iv, 'encrypt')

    assert a.encrypt(b"") == b""
    assert a.encrypt(b"xyz") == b.encrypt(b"xyz")


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_closed_engine_raises(engine_class):
    engine = engine_class(generate_secret(), generate_iv(), 'encrypt')
    engine.close()

    assert engine.closed
    with pytest.raises(EngineError):
        engine.encrypt(b"late")


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_close_is_idempotent(engine_class):
    engine = engine_class(generate_secret(), generate_iv(), 'decrypt')
    engine.close()
    engine.close()
    assert engine.closed


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_wrong_direction_raises(engine_class):
    engine = engine_class(generate_secret(), generate_iv(), 'encrypt')
    with pytest.raises(EngineError):
        engine.decrypt(b"nope")


@pytest.mark.parametrize("engine_class", ENGINE_CLASSES)
def test_validates_key_material(engine_class):
    with pytest.raises(ValueError):
        engine_class(b"short", generate_iv(), 'encrypt')
    with pytest.raises(ValueError):
        engine_class(generate_secret(), b"short", 'encrypt')


@requires_native
def test_create_engine_prefers_native():
    engine = create_engine(generate_secret(), generate_iv(), 'encrypt')
    assert isinstance(engine, NativeEngine)
    assert engine.direction is CipherDirection.ENCRYPT


def test_create_engine_falls_back_to_software(monkeypatch):
    """Without a native CFB8 mode, 'auto' picks the software engine."""
    monkeypatch.setattr(cipher, 'native_cfb8_available', lambda: False)
    engine = create_engine(generate_secret(), generate_iv(), 'decrypt')
    assert isinstance(engine, SoftwareEngine)


def test_create_engine_native_unavailable_raises(monkeypatch):
    monkeypatch.setattr(cipher, 'native_cfb8_available', lambda: False)
    with pytest.raises(EngineError, match=CIPHER_NAME):
        create_engine(generate_secret(), generate_iv(), 'encrypt', prefer='native')


def test_create_engine_forced_software():
    engine = create_engine(generate_secret(), generate_iv(), 'encrypt', prefer='software')
    assert isinstance(engine, SoftwareEngine)


def test_create_engine_rejects_unknown_preference():
    with pytest.raises(ValueError):
        create_engine(generate_secret(), generate_iv(), 'encrypt', prefer='gpu')
