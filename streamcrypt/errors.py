"""Exceptions raised by the framing layer."""
from nacl.exceptions import CryptoError


class FramingError(Exception):
    """Base class for every framing failure."""
    pass


class EngineError(FramingError):
    """Raised when a cipher engine is misused (closed, wrong direction, unavailable)."""
    pass


class DecompressionError(FramingError):
    """Raised when a payload cannot be inflated back into a packet."""
    pass


class IntegrityError(FramingError, CryptoError):
    """Raised when a packet's checksum tag does not match."""
    pass


class CounterExhausted(FramingError):
    """Raised when a packet counter would wrap past 64 bits."""
    pass
