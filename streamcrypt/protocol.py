"""
Packet layer for streamcrypt.

Turns plaintext buffers into encrypted wire units and back.

Wire unit (one per encode/decode call):
┌───────────────────────────────┬──────────────┐
│ deflate_raw(plaintext)        │  Tag         │
│ (N bytes)                     │  (8 bytes)   │
└───────────────────────────────┴──────────────┘

The whole unit is then encrypted with AES-256-CFB8, continuing the
keystream of that direction.

Tag = SHA256(LE64(counter) || deflate_raw(plaintext) || secret)[0:8]

Both counters start at 0 and advance once per packet, so the peers must
process every wire unit exactly once and in order.
"""
import logging

from streamcrypt.cipher import CipherDirection, create_engine
from streamcrypt.compression import Compressor
from streamcrypt.config import FramingConfig
from streamcrypt.constants import SECRET_SIZE, TAG_SIZE, COUNTER_MAX
from streamcrypt.crypto import compute_checksum, verify_checksum
from streamcrypt.errors import CounterExhausted, EngineError, IntegrityError

logger = logging.getLogger(__name__)


class ConnectionCryptoState:
    """
    Everything one connection needs to frame packets in both directions.

    Owned by a single connection. Engines are created once and never reset;
    a reconnect must build a new state from a fresh secret and IV.
    """

    def __init__(self, secret, send_engine, receive_engine, compressor, config):
        if len(secret) != SECRET_SIZE:
            raise ValueError(f"Secret must be {SECRET_SIZE} bytes, got {len(secret)}")
        self.secret = bytes(secret)
        self.send_counter = 0
        self.receive_counter = 0
        self.send_engine = send_engine
        self.receive_engine = receive_engine
        self.compressor = compressor
        self.config = config

    @classmethod
    def create(cls, secret, iv, receive_iv=None, config=None):
        """
        Build the state at handshake completion.

        Args:
            secret (bytes): 32-byte shared secret
            iv (bytes): 16-byte IV for the send direction
            receive_iv (bytes): IV for the receive direction (defaults to iv)
            config (FramingConfig): Framing settings (defaults apply if None)

        Returns:
            ConnectionCryptoState
        """
        config = config or FramingConfig()
        if receive_iv is None:
            receive_iv = iv
        send_engine = create_engine(secret, iv, CipherDirection.ENCRYPT, config.engine)
        receive_engine = create_engine(secret, receive_iv, CipherDirection.DECRYPT, config.engine)
        compressor = Compressor(
            level=config.compression_level,
            max_size=config.max_packet_size
        )
        return cls(secret, send_engine, receive_engine, compressor, config)

    @property
    def closed(self):
        return self.send_engine.closed and self.receive_engine.closed

    def close(self):
        """Dispose both engines. Any later encode/decode raises EngineError."""
        self.send_engine.close()
        self.receive_engine.close()
        logger.debug(
            "Crypto state closed (sent=%d, received=%d)",
            self.send_counter, self.receive_counter
        )


def _next_counter(counter):
    if counter >= COUNTER_MAX:
        raise CounterExhausted("Packet counter exhausted, connection must rekey")
    return counter + 1


class PacketEncoder:
    """Send path: compress, tag, encrypt. Owns the send counter of its state."""

    def __init__(self, state):
        self.state = state

    @property
    def counter(self):
        return self.state.send_counter

    def encode(self, plaintext):
        """Frame one plaintext buffer into a wire unit."""
        return self.frame(self.state.compressor.compress(plaintext))

    def frame(self, payload):
        """
        Tag and encrypt an already-compressed payload.

        The counter advances only once the ciphertext exists, so a failing
        call leaves the send state untouched.

        Args:
            payload (bytes): Output of Compressor.compress()

        Returns:
            bytes: Wire unit (len(payload) + 8 bytes)

        Raises:
            EngineError: If the send engine was closed
            CounterExhausted: If 2^64 packets were already sent
        """
        state = self.state
        if state.send_engine.closed:
            raise EngineError("Cannot encode on a closed connection")
        counter = state.send_counter
        next_counter = _next_counter(counter)

        payload = bytes(payload)
        tag = compute_checksum(counter, payload, state.secret)
        wire = state.send_engine.encrypt(payload + tag)
        state.send_counter = next_counter

        logger.debug("Encoded packet %d (%d payload bytes)", counter, len(payload))
        return wire


class PacketDecoder:
    """Receive path: decrypt, verify, inflate. Owns the receive counter of its state."""

    def __init__(self, state):
        self.state = state

    @property
    def counter(self):
        return self.state.receive_counter

    def decode(self, wire):
        """Recover the plaintext of one wire unit."""
        return self.state.compressor.decompress(self.unframe(wire))

    def unframe(self, wire):
        """
        Decrypt one wire unit and verify its tag.

        The receive counter advances whether or not the tag matches.
        A rejected payload is never returned.

        Args:
            wire (bytes): One wire unit, exactly as produced by the peer

        Returns:
            bytes: Compressed payload

        Raises:
            IntegrityError: If the tag does not match or the unit is too short
            EngineError: If the receive engine was closed
        """
        state = self.state
        if state.receive_engine.closed:
            raise EngineError("Cannot decode on a closed connection")
        counter = state.receive_counter
        next_counter = _next_counter(counter)

        packet = state.receive_engine.decrypt(wire)
        state.receive_counter = next_counter

        if len(packet) < TAG_SIZE:
            logger.warning("Packet %d too short: %d bytes", counter, len(packet))
            raise IntegrityError(
                f"Packet {counter} is {len(packet)} bytes, shorter than its {TAG_SIZE}-byte tag"
            )

        payload, tag = packet[:-TAG_SIZE], packet[-TAG_SIZE:]
        if not verify_checksum(counter, payload, state.secret, tag):
            logger.warning("Checksum mismatch on packet %d", counter)
            raise IntegrityError(f"Checksum mismatch on packet {counter}")

        logger.debug("Decoded packet %d (%d payload bytes)", counter, len(payload))
        return payload
