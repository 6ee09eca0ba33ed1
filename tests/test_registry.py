"""Mitigation blob decoding, ASLR remediation and driver matching."""

from __future__ import annotations

import pytest

from fnv_sanity_check import registry
from fnv_sanity_check.registry import (
    KERNEL_KEY,
    MEMORY_MANAGEMENT_KEY,
    MITIGATION_OPTIONS,
    MOVE_IMAGES,
)

from conftest import FakeStore


@pytest.mark.parametrize(
    ("blob", "forced"),
    [
        (bytes([0x00, 0x00]), False),
        (bytes([0x00, 0x01]), True),
        (bytes([0x00, 0x02]), True),
        (bytes([0x00, 0x03]), True),
        (bytes([0x00, 0x04]), False),
        (bytes([0xFF, 0xFC, 0xFF]), False),
        (bytes([0x01]), False),
        (b"", False),
    ],
)
def test_mandatory_aslr_decode(blob: bytes, forced: bool) -> None:
    assert registry.mandatory_aslr_forced(blob) is forced


def test_clear_only_touches_mandatory_bits() -> None:
    blob = bytes([0x11, 0xFF, 0x22, 0x33, 0x44, 0x55, 0x66, 0x77])
    cleared = registry.clear_mandatory_aslr(blob)

    assert cleared == bytes([0x11, 0xFC, 0x22, 0x33, 0x44, 0x55, 0x66, 0x77])
    assert not registry.mandatory_aslr_forced(cleared)


def test_clear_is_idempotent() -> None:
    blob = bytes([0xAB, 0xF4, 0xCD, 0x01])
    assert registry.clear_mandatory_aslr(blob) == blob
    once = registry.clear_mandatory_aslr(bytes([0xAB, 0xF7, 0xCD, 0x01]))
    assert registry.clear_mandatory_aslr(once) == once


def test_clear_missing_blob_starts_from_zeroes() -> None:
    assert registry.clear_mandatory_aslr(None) == bytes(8)


def test_clear_short_blob_is_unchanged() -> None:
    assert registry.clear_mandatory_aslr(bytes([0x03])) == bytes([0x03])


def test_missing_keys_are_safe() -> None:
    assert not registry.is_aslr_forced(FakeStore())


def test_move_images_forces_aslr() -> None:
    store = FakeStore({(MEMORY_MANAGEMENT_KEY, MOVE_IMAGES): 0xFFFFFFFF})
    assert registry.is_aslr_forced(store)

    store.values[(MEMORY_MANAGEMENT_KEY, MOVE_IMAGES)] = 0
    assert not registry.is_aslr_forced(store)


def test_mitigation_options_forces_aslr() -> None:
    store = FakeStore({(KERNEL_KEY, MITIGATION_OPTIONS): bytes([0x00, 0x01] + [0] * 6)})
    assert registry.is_aslr_forced(store)


def test_read_errors_are_not_findings(caplog: pytest.LogCaptureFixture) -> None:
    store = FakeStore({(KERNEL_KEY, MITIGATION_OPTIONS): bytes([0x00, 0x01])})
    store.fail_reads = {MOVE_IMAGES, MITIGATION_OPTIONS}

    assert not registry.is_aslr_forced(store)
    assert "Failed to read" in caplog.text


def test_disable_aslr_preserves_other_mitigations() -> None:
    original = bytes([0x10, 0x13, 0x00, 0x20, 0x00, 0x00, 0x00, 0x01])
    store = FakeStore({
        (MEMORY_MANAGEMENT_KEY, MOVE_IMAGES): 1,
        (KERNEL_KEY, MITIGATION_OPTIONS): original,
    })

    assert registry.disable_aslr(store)

    assert store.values[(MEMORY_MANAGEMENT_KEY, MOVE_IMAGES)] == 0
    assert store.values[(KERNEL_KEY, MITIGATION_OPTIONS)] == bytes(
        [0x10, 0x10, 0x00, 0x20, 0x00, 0x00, 0x00, 0x01]
    )
    assert not registry.is_aslr_forced(store)


def test_disable_aslr_creates_blob_when_missing() -> None:
    store = FakeStore()
    assert registry.disable_aslr(store)
    assert store.values[(KERNEL_KEY, MITIGATION_OPTIONS)] == bytes(8)


def test_disable_aslr_does_not_clobber_unreadable_blob() -> None:
    store = FakeStore({(KERNEL_KEY, MITIGATION_OPTIONS): bytes([0xFF, 0xFF])})
    store.fail_reads = {MITIGATION_OPTIONS}

    assert not registry.disable_aslr(store)
    assert all(name != MITIGATION_OPTIONS for _, name, _ in store.writes)


def test_disable_aslr_reports_write_failure() -> None:
    store = FakeStore({(KERNEL_KEY, MITIGATION_OPTIONS): bytes([0x00, 0x01])})
    store.fail_writes = {MOVE_IMAGES, MITIGATION_OPTIONS}

    assert not registry.disable_aslr(store)


@pytest.mark.parametrize("version", ["24.3.1", "24.5.1", "24.1.1", "24.4.1.12345"])
def test_problematic_driver_versions(version: str) -> None:
    assert registry.is_problematic_driver_version(version)


@pytest.mark.parametrize("version", ["24.6.0", "23.9.9", "24.10.1", "31.0.24033.1003", ""])
def test_fine_driver_versions(version: str) -> None:
    assert not registry.is_problematic_driver_version(version)


def test_has_outdated_amd_driver() -> None:
    store = FakeStore({(registry.DISPLAY_ADAPTER_KEY, registry.DRIVER_VERSION): "24.3.1"})
    assert registry.has_outdated_amd_driver(store)
    assert not registry.has_outdated_amd_driver(FakeStore())
