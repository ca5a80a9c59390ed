"""
Centralized integrity operations for PVAR archives.
"""

from collections.abc import Callable
from pathlib import Path

from cryptography.hazmat.primitives import constant_time, hashes

from .exceptions import IntegrityMismatch
from .models import DIGEST_SIZE, TRAILER_SIZE, ArchiveTrailer

SignatureCheck = Callable[[bytes], None]


def digest(data: bytes | memoryview) -> bytes:
    """Computes the 32-byte SHA-256 digest used in the archive trailer."""
    hasher = hashes.Hash(hashes.SHA256())
    hasher.update(bytes(data))
    result = hasher.finalize()
    if len(result) != DIGEST_SIZE:
        raise AssertionError(f"Digest size is {len(result)}, expected {DIGEST_SIZE}.")
    return result


def verify_digest(data: bytes | memoryview, expected: bytes) -> bytes:
    """Recomputes the digest of `data` and compares it in constant time."""
    actual = digest(data)
    if not constant_time.bytes_eq(actual, expected):
        raise IntegrityMismatch(
            f"Archive digest mismatch: expected {expected.hex()}, computed {actual.hex()}."
        )
    return actual


def verify(
    raw: bytes | memoryview, signature_check: SignatureCheck | None = None
) -> bytes:
    """
    Verifies an archive image against its trailer digest.

    Only the stored (compressed) bytes are hashed, so the cost does not depend
    on the compression used. `signature_check`, when given, receives the
    verified digest and may raise to reject it.
    """
    view = memoryview(raw)
    trailer = ArchiveTrailer.read_from(view)
    start = trailer.data_start(len(view))
    verified = verify_digest(view[start : len(view) - TRAILER_SIZE], trailer.digest)
    if signature_check is not None:
        signature_check(verified)
    return verified


def verify_file(path: Path, signature_check: SignatureCheck | None = None) -> bytes:
    if not path.is_file():
        raise FileNotFoundError(f"Archive not found at: {path}")
    return verify(path.read_bytes(), signature_check)
