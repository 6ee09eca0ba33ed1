"""
Windows registry probes: forced ASLR and known-bad AMD GPU drivers.

Mandatory ASLR lives in two places. `MoveImages` is a system-wide DWORD
override. `MitigationOptions` is a REG_BINARY blob of per-feature flags where
bits 0-1 of the second byte force image randomization for every process.
"""

from __future__ import annotations

import logging
import platform
import re
from typing import Any, Protocol

logger = logging.getLogger(__name__)

HKLM = "HKEY_LOCAL_MACHINE"
MEMORY_MANAGEMENT_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Memory Management"
KERNEL_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Kernel"
DISPLAY_ADAPTER_KEY = (
    r"SYSTEM\CurrentControlSet\Control\Class"
    r"\{4d36e968-e325-11ce-bfc1-08002be10318}\0000"
)

MOVE_IMAGES = "MoveImages"
MITIGATION_OPTIONS = "MitigationOptions"
DRIVER_VERSION = "DriverVersion"

MANDATORY_ASLR_BYTE = 1
MANDATORY_ASLR_MASK = 0x03
DEFAULT_MITIGATION_OPTIONS = bytes(8)

PROBLEMATIC_DRIVER_VERSION = re.compile(r"^24\.[1-5]\.\d+")


class RegistryStore(Protocol):
    """Missing keys or values raise FileNotFoundError."""

    def read_value(self, hive: str, key: str, name: str) -> Any: ...

    def write_dword(self, hive: str, key: str, name: str, value: int) -> None: ...

    def write_binary(self, hive: str, key: str, name: str, value: bytes) -> None: ...


class WinRegStore:
    """RegistryStore backed by the winreg module. Off Windows nothing exists."""

    def _hive(self, hive: str):
        import winreg
        return getattr(winreg, hive)

    def read_value(self, hive: str, key: str, name: str) -> Any:
        if platform.system() != "Windows":
            raise FileNotFoundError(f"{hive}\\{key}\\{name}")
        import winreg
        with winreg.OpenKey(self._hive(hive), key) as handle:
            value, _ = winreg.QueryValueEx(handle, name)
        return value

    def _write(self, hive: str, key: str, name: str, kind: int, value: Any) -> None:
        import winreg
        with winreg.CreateKeyEx(self._hive(hive), key, 0, winreg.KEY_SET_VALUE) as handle:
            winreg.SetValueEx(handle, name, 0, kind, value)

    def write_dword(self, hive: str, key: str, name: str, value: int) -> None:
        if platform.system() != "Windows":
            raise OSError("registry is only available on Windows")
        import winreg
        self._write(hive, key, name, winreg.REG_DWORD, value)

    def write_binary(self, hive: str, key: str, name: str, value: bytes) -> None:
        if platform.system() != "Windows":
            raise OSError("registry is only available on Windows")
        import winreg
        self._write(hive, key, name, winreg.REG_BINARY, value)


# ---------------------------------------------------------------------------
# Mitigation blob
# ---------------------------------------------------------------------------

def mandatory_aslr_forced(blob: bytes) -> bool:
    if len(blob) <= MANDATORY_ASLR_BYTE:
        return False
    return blob[MANDATORY_ASLR_BYTE] & MANDATORY_ASLR_MASK != 0


def clear_mandatory_aslr(blob: bytes | None) -> bytes:
    """Clear bits 0-1 of byte 1, leaving every other bit untouched."""
    data = bytearray(DEFAULT_MITIGATION_OPTIONS if blob is None else blob)
    if len(data) > MANDATORY_ASLR_BYTE:
        data[MANDATORY_ASLR_BYTE] &= ~MANDATORY_ASLR_MASK & 0xFF
    return bytes(data)


def _read_optional(store: RegistryStore, key: str, name: str) -> Any:
    try:
        return store.read_value(HKLM, key, name)
    except FileNotFoundError:
        logger.debug("%s does not exist (default behavior)", name)
    except OSError as e:
        logger.error("Failed to read %s: %s", name, e)
    return None


def is_aslr_forced(store: RegistryStore) -> bool:
    move_images = _read_optional(store, MEMORY_MANAGEMENT_KEY, MOVE_IMAGES)
    if isinstance(move_images, int) and move_images != 0:
        logger.warning("MoveImages is set to %s, ASLR is enabled system-wide", move_images)
        return True

    options = _read_optional(store, KERNEL_KEY, MITIGATION_OPTIONS)
    if isinstance(options, (bytes, bytearray)) and mandatory_aslr_forced(bytes(options)):
        logger.warning("Mandatory ASLR (force randomization) is enabled in MitigationOptions")
        return True
    return False


def disable_aslr(store: RegistryStore) -> bool:
    """
    Reset MoveImages and clear the mandatory ASLR bits of MitigationOptions.
    Returns False when the mitigation blob could not be written.
    """
    try:
        store.write_dword(HKLM, MEMORY_MANAGEMENT_KEY, MOVE_IMAGES, 0)
        logger.info("MoveImages set to 0 (system-wide ASLR disabled)")
    except OSError as e:
        logger.debug("Failed to set MoveImages: %s", e)

    # Only a missing value may start from the all-zero blob
    try:
        current = store.read_value(HKLM, KERNEL_KEY, MITIGATION_OPTIONS)
    except FileNotFoundError:
        current = None
    except OSError as e:
        logger.error("Failed to read MitigationOptions: %s", e)
        return False
    if current is not None and not isinstance(current, (bytes, bytearray)):
        logger.error("MitigationOptions has unexpected type %s", type(current).__name__)
        return False
    blob = bytes(current) if current is not None else None
    try:
        store.write_binary(HKLM, KERNEL_KEY, MITIGATION_OPTIONS, clear_mandatory_aslr(blob))
    except OSError as e:
        logger.error("Failed to disable ASLR: %s", e)
        return False
    logger.info("Mandatory ASLR disabled in MitigationOptions, other mitigations preserved")
    logger.info("A system restart is required for the change to take effect")
    return True


# ---------------------------------------------------------------------------
# GPU driver
# ---------------------------------------------------------------------------

def is_problematic_driver_version(version: str) -> bool:
    return bool(PROBLEMATIC_DRIVER_VERSION.match(version))


def has_outdated_amd_driver(store: RegistryStore) -> bool:
    version = _read_optional(store, DISPLAY_ADAPTER_KEY, DRIVER_VERSION)
    if isinstance(version, str) and is_problematic_driver_version(version):
        logger.warning("Detected problematic AMD GPU driver version: %s", version)
        return True
    return False
