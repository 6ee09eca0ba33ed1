"""Content identity and presence probes."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from fnv_sanity_check import probes


def test_file_digest_matches_md5(tmp_path: Path) -> None:
    data = b"MZ" + bytes(range(256)) * 5000
    target = tmp_path / "FalloutNV.exe"
    target.write_bytes(data)

    assert probes.file_digest(target) == hashlib.md5(data).hexdigest()


def test_known_variant_requires_exact_match(tmp_path: Path) -> None:
    target = tmp_path / "FalloutNV.exe"
    target.write_bytes(b"patched build")
    digest = hashlib.md5(b"patched build").hexdigest()

    assert probes.is_known_variant(target, {digest})
    assert not probes.is_known_variant(target, {digest[:16]})
    assert not probes.is_known_variant(target, {digest.upper()})


def test_every_known_hash_is_recognized(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "FalloutNV.exe"
    target.write_bytes(b"whatever")
    for known in probes.PATCHED_EXECUTABLE_HASHES:
        monkeypatch.setattr(probes, "file_digest", lambda path, known=known: known)
        assert probes.is_known_variant(target, probes.PATCHED_EXECUTABLE_HASHES)


def test_missing_file_is_not_known(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert probes.read_digest(tmp_path / "missing.exe") is None
    assert not probes.is_known_variant(tmp_path / "missing.exe", probes.PATCHED_EXECUTABLE_HASHES)
    assert "Error reading" in caplog.text


def test_path_present(tmp_path: Path) -> None:
    target = tmp_path / "FalloutNV_lang.esp"
    assert not probes.path_present(target)
    target.write_bytes(b"")
    assert probes.path_present(target)


def test_broken_symlink_counts_as_absent(tmp_path: Path) -> None:
    link = tmp_path / "FalloutNV_lang.esp"
    try:
        link.symlink_to(tmp_path / "nowhere.esp")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not available")
    assert not probes.path_present(link)


def test_stat_errors_count_as_absent(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "FalloutNV_lang.esp"
    target.write_bytes(b"")

    def deny(self: Path, *args: object, **kwargs: object) -> None:
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "stat", deny)
    assert not probes.path_present(target)
