"""Named, independently invocable checks keyed by lifecycle event."""

from __future__ import annotations

import asyncio
import logging

from fnv_sanity_check.findings import Finding
from fnv_sanity_check.host import GameSnapshot, Host, Probe

logger = logging.getLogger(__name__)


class DiagnosticRunner:
    def __init__(self) -> None:
        self._checks: dict[str, tuple[str, Probe]] = {}

    def add(self, check_id: str, event: str, probe: Probe) -> None:
        if check_id in self._checks:
            raise ValueError(f"Duplicate check id: {check_id}")
        self._checks[check_id] = (event, probe)

    def checks(self, event: str | None = None) -> dict[str, Probe]:
        return {
            check_id: probe
            for check_id, (ev, probe) in self._checks.items()
            if event is None or ev == event
        }

    def register(self, host: Host) -> None:
        for check_id, (event, probe) in self._checks.items():
            host.register_test(check_id, event, guarded(check_id, probe))

    async def run(self, event: str, snapshot: GameSnapshot) -> dict[str, Finding | None]:
        """Run every check for `event` concurrently. Failing checks yield None."""
        checks = self.checks(event)
        results = await asyncio.gather(
            *(guarded(check_id, probe)(snapshot) for check_id, probe in checks.items())
        )
        return dict(zip(checks, results))


def guarded(check_id: str, probe: Probe) -> Probe:
    """Wrap a probe so nothing it raises reaches the host."""
    async def wrapper(snapshot: GameSnapshot) -> Finding | None:
        try:
            return await probe(snapshot)
        except Exception:
            logger.exception("Check %s failed", check_id)
            return None
    return wrapper
