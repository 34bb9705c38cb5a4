"""
Raw DEFLATE compression for streamcrypt packets.

Every packet is compressed with a fresh compressor and closed with a
synchronous flush, so the receiver can inflate it without seeing any
neighbouring packet.
"""
import zlib

from streamcrypt.constants import (
    DEFLATE_WBITS, DEFAULT_COMPRESSION_LEVEL, SYNC_FLUSH_MARKER
)
from streamcrypt.errors import DecompressionError

FLUSH_MODES = (zlib.Z_SYNC_FLUSH, zlib.Z_FULL_FLUSH, zlib.Z_FINISH)


class Compressor:
    """
    Headerless DEFLATE compressor/decompressor with per-packet flushing.

    Args:
        level (int): zlib compression level, -1 or 0-9 (default 7)
        flush (int): zlib.Z_SYNC_FLUSH, Z_FULL_FLUSH or Z_FINISH
        max_size (int | None): Largest inflated packet accepted, None for no limit
    """

    def __init__(self, level=DEFAULT_COMPRESSION_LEVEL, flush=zlib.Z_SYNC_FLUSH, max_size=None):
        if not (level == -1 or 0 <= level <= 9):
            raise ValueError(f"Compression level must be -1 or 0-9, got {level}")
        if flush not in FLUSH_MODES:
            raise ValueError(f"Unsupported flush mode: {flush}")
        if max_size is not None and max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.level = level
        self.flush = flush
        self.max_size = max_size

    def compress(self, data):
        """Compress one packet into a self-contained raw DEFLATE block."""
        compressor = zlib.compressobj(self.level, zlib.DEFLATED, DEFLATE_WBITS)
        return compressor.compress(bytes(data)) + compressor.flush(self.flush)

    def decompress(self, data):
        """
        Inflate one packet produced by compress().

        Raises:
            DecompressionError: If the block is corrupt, truncated,
                followed by stray bytes, or inflates past max_size
        """
        data = bytes(data)
        decompressor = zlib.decompressobj(DEFLATE_WBITS)
        try:
            if self.max_size is None:
                result = decompressor.decompress(data)
            else:
                # One spare byte tells "exactly max_size" apart from "more"
                result = decompressor.decompress(data, self.max_size + 1)
                if len(result) > self.max_size:
                    raise DecompressionError(
                        f"Packet inflates past {self.max_size} bytes"
                    )
        except zlib.error as e:
            raise DecompressionError(f"Corrupt compressed packet: {e}") from e

        if decompressor.eof:
            if decompressor.unused_data:
                raise DecompressionError(
                    f"{len(decompressor.unused_data)} stray bytes after final block"
                )
        elif not data.endswith(SYNC_FLUSH_MARKER):
            raise DecompressionError("Truncated compressed packet (no flush marker)")

        return result
