"""
Framing constants for streamcrypt.

Defines key sizes, the wire tag layout and compression defaults.
The packet counter is hashed little-endian, unlike most network fields.
"""
import zlib

# Cipher (AES-256 in 8-bit cipher feedback mode)
CIPHER_NAME = 'aes-256-cfb8'
SECRET_SIZE = 32   # 256-bit key
IV_SIZE = 16       # One AES block
BLOCK_SIZE = 16

# Checksum tag appended to every compressed payload
TAG_SIZE = 8                  # Truncated SHA-256
COUNTER_FORMAT = '<Q'         # Unsigned 64-bit, little-endian
COUNTER_MAX = 2**64 - 1

# Compression (raw DEFLATE, no zlib header or trailer)
DEFLATE_WBITS = -zlib.MAX_WBITS
DEFAULT_COMPRESSION_LEVEL = 7
SYNC_FLUSH_MARKER = b'\x00\x00\xff\xff'  # Empty stored block emitted by Z_SYNC_FLUSH

# Engine selection
ENGINE_AUTO = 'auto'
ENGINE_NATIVE = 'native'
ENGINE_SOFTWARE = 'software'
ENGINE_CHOICES = (ENGINE_AUTO, ENGINE_NATIVE, ENGINE_SOFTWARE)
