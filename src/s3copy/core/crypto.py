"""Cryptographic functions for s3copy.

This module provides:
- Key derivation using Argon2id
- Chunked streaming authenticated encryption using ChaCha20-Poly1305
- File hashing with MD5 (matches the S3 single-part ETag)

Encrypted stream layout::

    salt (32 bytes) || base nonce (12 bytes)
    repeated until EOF:
        length (4 bytes, big-endian) || sealed chunk (plaintext <= 1 MiB + 16-byte tag)
"""

from __future__ import annotations

import hashlib
import os
import struct
from pathlib import Path
from typing import BinaryIO

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

# Argon2id parameters (OWASP recommendations for password hashing)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits

SALT_SIZE = 32
NONCE_SIZE = 12  # 96 bits (ChaCha20-Poly1305 IETF)
HEADER_SIZE = SALT_SIZE + NONCE_SIZE
TAG_SIZE = 16
CHUNK_SIZE = 1024 * 1024  # 1 MiB of plaintext per sealed chunk
MAX_SEALED_CHUNK = CHUNK_SIZE + TAG_SIZE

_LENGTH = struct.Struct(">I")
_COUNTER_OFFSET = NONCE_SIZE - 8


class CryptoError(Exception):
    """Base class for encryption codec failures."""


class CorruptHeaderError(CryptoError):
    """Raised when the salt/nonce header is missing or truncated."""


class CorruptStreamError(CryptoError):
    """Raised when a length prefix or sealed chunk is truncated or oversized."""


class DecryptionError(CryptoError):
    """Raised when a chunk fails authentication.

    A wrong password and tampered data are indistinguishable here.
    """


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt."""
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 256-bit encryption key from a password using Argon2id.

    Args:
        password: The user's passphrase.
        salt: A 32-byte random salt (use generate_salt()).

    Returns:
        32 bytes (256 bits) derived key suitable for ChaCha20-Poly1305.
    """
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )


def chunk_nonce(base_nonce: bytes, counter: int) -> bytes:
    """Build the nonce for chunk ``counter``.

    The low 8 bytes of the base nonce are replaced by the big-endian counter.
    """
    return base_nonce[:_COUNTER_OFFSET] + counter.to_bytes(8, "big")


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, re-filling short reads until EOF."""
    parts: list[bytes] = []
    remaining = size
    while remaining > 0:
        data = reader.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b"".join(parts)


def encrypt_stream(password: str, reader: BinaryIO, writer: BinaryIO) -> int:
    """Encrypt everything readable from ``reader`` into ``writer``.

    Memory use is bounded by one chunk regardless of the stream length.

    Args:
        password: Passphrase used to derive the key.
        reader: Plaintext source.
        writer: Destination for the header and sealed chunks.

    Returns:
        Number of chunks written.
    """
    salt = generate_salt()
    base_nonce = os.urandom(NONCE_SIZE)
    cipher = ChaCha20Poly1305(derive_key(password, salt))

    writer.write(salt + base_nonce)

    counter = 0
    while True:
        chunk = _read_exact(reader, CHUNK_SIZE)
        if not chunk:
            break
        sealed = cipher.encrypt(chunk_nonce(base_nonce, counter), chunk, None)
        writer.write(_LENGTH.pack(len(sealed)) + sealed)
        counter += 1
        if len(chunk) < CHUNK_SIZE:
            break
    return counter


def decrypt_stream(password: str, reader: BinaryIO, writer: BinaryIO) -> int:
    """Decrypt a stream produced by encrypt_stream().

    Args:
        password: Passphrase used at encryption time.
        reader: Encrypted source.
        writer: Destination for the plaintext.

    Returns:
        Number of plaintext bytes written.

    Raises:
        CorruptHeaderError: If the header is shorter than 44 bytes.
        CorruptStreamError: If a length prefix or chunk is truncated or oversized.
        DecryptionError: If a chunk fails authentication.
    """
    header = _read_exact(reader, HEADER_SIZE)
    if len(header) < HEADER_SIZE:
        raise CorruptHeaderError(
            f"encrypted header truncated: got {len(header)} of {HEADER_SIZE} bytes"
        )
    salt, base_nonce = header[:SALT_SIZE], header[SALT_SIZE:]
    cipher = ChaCha20Poly1305(derive_key(password, salt))

    counter = 0
    written = 0
    while True:
        prefix = _read_exact(reader, _LENGTH.size)
        if not prefix:
            break
        if len(prefix) < _LENGTH.size:
            raise CorruptStreamError(f"truncated length prefix for chunk {counter}")

        (length,) = _LENGTH.unpack(prefix)
        if length > MAX_SEALED_CHUNK:
            raise CorruptStreamError(
                f"chunk {counter} declares {length} bytes, max is {MAX_SEALED_CHUNK}"
            )

        sealed = _read_exact(reader, length)
        if len(sealed) < length:
            raise CorruptStreamError(
                f"truncated chunk {counter}: got {len(sealed)} of {length} bytes"
            )

        try:
            plaintext = cipher.decrypt(chunk_nonce(base_nonce, counter), sealed, None)
        except InvalidTag as e:
            raise DecryptionError("decryption failed (wrong password or corrupted data)") from e

        writer.write(plaintext)
        written += len(plaintext)
        counter += 1
    return written


def compute_file_md5(path: Path | str) -> str:
    """Compute the MD5 hex digest of a file.

    Reads the file in blocks so memory stays constant for large files.
    """
    hasher = hashlib.md5()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            hasher.update(block)
    return hasher.hexdigest()
