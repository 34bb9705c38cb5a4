"""Per-connection framing settings."""
from dataclasses import dataclass, fields
from typing import Optional

from streamcrypt.constants import (
    DEFAULT_COMPRESSION_LEVEL, ENGINE_AUTO, ENGINE_CHOICES
)


@dataclass(frozen=True)
class FramingConfig:
    """
    Tunables for one connection's framing layer.

    compression_level: zlib level for outbound packets (-1 or 0-9)
    engine: 'auto', 'native' or 'software' stream cipher engine
    max_packet_size: Largest inflated inbound packet, None for no limit
    offload_compression: Run (de)compression in an executor inside pipelines
    """
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    engine: str = ENGINE_AUTO
    max_packet_size: Optional[int] = None
    offload_compression: bool = True

    def __post_init__(self):
        if not (self.compression_level == -1 or 0 <= self.compression_level <= 9):
            raise ValueError(
                f"compression_level must be -1 or 0-9, got {self.compression_level}"
            )
        if self.engine not in ENGINE_CHOICES:
            raise ValueError(
                f"engine must be one of {ENGINE_CHOICES}, got {self.engine!r}"
            )
        if self.max_packet_size is not None and self.max_packet_size <= 0:
            raise ValueError(
                f"max_packet_size must be positive, got {self.max_packet_size}"
            )

    @classmethod
    def from_mapping(cls, mapping):
        """
        Build a config from a plain dict, e.g. a parsed settings file.

        Raises:
            ValueError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ValueError(f"Unknown framing settings: {', '.join(sorted(unknown))}")
        return cls(**mapping)
