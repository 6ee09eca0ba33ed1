"""Result types shared by probes, the runner and hosts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

Fix = Callable[[], Awaitable[None]]
Recheck = Callable[[], Awaitable[bool]]


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Description:
    short: str
    long: str = ""  # BBCode markup


@dataclass(frozen=True)
class Finding:
    """
    Outcome of a probe that found a problem.

    `automatic_fix` performs the remediation. `on_recheck` resolves to True
    once the condition is gone, so a host can refresh its state without
    running the whole probe again.
    """
    severity: Severity
    description: Description
    automatic_fix: Optional[Fix] = None
    on_recheck: Optional[Recheck] = None

    @property
    def fix_available(self) -> bool:
        return self.automatic_fix is not None


@dataclass(frozen=True)
class NotificationAction:
    title: str
    action: Callable[[], Any]  # a returned awaitable is awaited by the host


@dataclass(frozen=True)
class Notification:
    id: str | None
    type: str  # 'info', 'success', 'warning', 'error'
    message: str
    allow_suppress: bool = False
    actions: list[NotificationAction] = field(default_factory=list)
    display_ms: int | None = None


@dataclass(frozen=True)
class DialogButton:
    label: str
    action: Optional[Callable[[], Any]] = None
