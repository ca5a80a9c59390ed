"""Tests for archive digests and caller-supplied signature checks."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pyvider.archive.crypto import digest, verify, verify_digest, verify_file
from pyvider.archive.exceptions import IntegrityMismatch
from pyvider.archive.models import DIGEST_SIZE, TRAILER_SIZE
from pyvider.archive.packaging.container import Container


def test_digest_is_sha256_sized() -> None:
    assert len(digest(b"payload")) == DIGEST_SIZE
    assert digest(b"payload") == digest(memoryview(b"payload"))
    assert digest(b"payload") != digest(b"payload!")


def test_verify_digest_mismatch() -> None:
    expected = digest(b"one")
    assert verify_digest(b"one", expected) == expected
    with pytest.raises(IntegrityMismatch, match="digest mismatch"):
        verify_digest(b"two", expected)


def test_signature_check_receives_the_archive_digest(built_archive: Path) -> None:
    check = MagicMock()

    result = verify_file(built_archive, check)

    expected = Container.open(built_archive).digest
    assert result == expected
    check.assert_called_once_with(expected)


def test_signature_check_can_reject(built_archive: Path) -> None:
    class Rejected(Exception):
        pass

    def reject(received: bytes) -> None:
        raise Rejected(received.hex())

    with pytest.raises(Rejected):
        verify(built_archive.read_bytes(), reject)


def test_tampered_content_fails_before_signature_check(built_archive: Path) -> None:
    raw = bytearray(built_archive.read_bytes())
    raw[-TRAILER_SIZE - 1] ^= 0xFF
    check = MagicMock()

    with pytest.raises(IntegrityMismatch):
        verify(bytes(raw), check)
    check.assert_not_called()


def test_verify_file_missing(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Archive not found"):
        verify_file(tmp_path / "missing.pvar")
