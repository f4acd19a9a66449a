"""Core module - Shared crypto, streaming pipe, config and models."""

from s3copy.core.config import S3Config, TransferOptions
from s3copy.core.crypto import (
    CHUNK_SIZE,
    HEADER_SIZE,
    CorruptHeaderError,
    CorruptStreamError,
    CryptoError,
    DecryptionError,
    compute_file_md5,
    decrypt_stream,
    derive_key,
    encrypt_stream,
    generate_salt,
)
from s3copy.core.pipe import BytePipe, PipeClosedError
from s3copy.core.types import CompareMode, FileRecord, Tree

__all__ = [
    # Config
    "S3Config",
    "TransferOptions",
    # Crypto
    "CHUNK_SIZE",
    "HEADER_SIZE",
    "CorruptHeaderError",
    "CorruptStreamError",
    "CryptoError",
    "DecryptionError",
    "compute_file_md5",
    "decrypt_stream",
    "derive_key",
    "encrypt_stream",
    "generate_salt",
    # Pipe
    "BytePipe",
    "PipeClosedError",
    # Types
    "CompareMode",
    "FileRecord",
    "Tree",
]
