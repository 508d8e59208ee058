"""The fixed, ordered set of dashboard sources."""

from __future__ import annotations

from sysdash.config import Settings
from sysdash.sources import (
    CommandRunner,
    CpuSource,
    CpuUsageTracker,
    DisksSource,
    GpuSource,
    InfoSource,
    MemorySource,
    MotherboardSource,
    NetworkSource,
    SystemUsageSource,
    TemperaturesSource,
)
from sysdash.runner import run_command

SOURCE_TYPES: tuple[type[InfoSource], ...] = (
    CpuSource,
    SystemUsageSource,
    TemperaturesSource,
    MotherboardSource,
    MemorySource,
    DisksSource,
    NetworkSource,
    GpuSource,
)


def build_registry(
    runner: CommandRunner = run_command,
    settings: Settings | None = None,
    tracker: CpuUsageTracker | None = None,
) -> list[InfoSource]:
    """Instantiate every source in SOURCE_TYPES once, in menu order."""
    settings = settings or Settings()
    common = {"runner": runner, "timeout": settings.command_timeout}
    extra: dict[type[InfoSource], dict[str, object]] = {
        SystemUsageSource: {"tracker": tracker or CpuUsageTracker()},
        GpuSource: {"vendor_timeout": settings.vendor_timeout},
    }
    return [cls(**common, **extra.get(cls, {})) for cls in SOURCE_TYPES]


def source_labels(sources: list[InfoSource]) -> list[str]:
    return [s.label for s in sources]
