"""The eight info sources shown in the dashboard menu.

Each source turns one or more bounded command runs (or /proc reads) into a
human-readable report. ``fetch()`` never raises: missing tools, missing
privileges, timeouts and empty output all come back as report text.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

import psutil

from sysdash.parsers import (
    NVIDIA_QUERY_FIELDS,
    SEPARATOR,
    CpuTicks,
    bluetooth_status,
    fmt_bytes,
    join_lines,
    memory_percent,
    parse_dmidecode_memory,
    parse_ip_links,
    parse_lscpu,
    parse_lsblk,
    parse_lspci_gpus,
    parse_meminfo,
    parse_net_dev,
    parse_nvidia_smi,
    parse_proc_stat,
    parse_radeontop,
    parse_sensors,
)
from sysdash.runner import DEFAULT_TIMEOUT, ProcessResult, run_command

log = logging.getLogger(__name__)

CommandRunner = Callable[[str, float], ProcessResult]
UtilityProbe = Callable[[str], bool]
PrivilegeCheck = Callable[[], bool]

SYSTEM_BIN_DIRS = (
    "/usr/sbin",
    "/usr/bin",
    "/sbin",
    "/bin",
    "/usr/local/sbin",
    "/usr/local/bin",
)
VENDOR_TIMEOUT = 3

ROOT_WARNING = "Warning: dmidecode requires root privileges\nRun with sudo for full info"


# ── Preconditions ──────────────────────────────────────────────────────────


def is_utility_installed(name: str) -> bool:
    """Look for *name* in the fixed system binary directories."""
    return any(os.path.exists(os.path.join(d, name)) for d in SYSTEM_BIN_DIRS)


def running_as_root() -> bool:
    return os.geteuid() == 0


def not_installed(utility: str, package: str, *hints: str) -> str:
    lines = [
        f"Error: {utility} utility not found",
        f"Please install {package} package",
        *hints,
    ]
    return "\n".join(lines)


# ── Base ───────────────────────────────────────────────────────────────────


class InfoSource:
    """One dashboard menu entry.

    Subclasses implement :meth:`collect`; :meth:`fetch` is the public entry
    point and turns unexpected I/O errors into report text.
    """

    label = ""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        probe: UtilityProbe = is_utility_installed,
        is_root: PrivilegeCheck = running_as_root,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.probe = probe
        self.is_root = is_root
        self.timeout = timeout

    def fetch(self) -> str:
        try:
            return self.collect()
        except (OSError, ValueError) as e:
            log.warning("%s source failed: %s", self.label, e, exc_info=True)
            return f"Error: {e}"

    def collect(self) -> str:
        raise NotImplementedError

    def run(self, command: str, timeout: float | None = None) -> ProcessResult:
        result = self.runner(command, self.timeout if timeout is None else timeout)
        if result.failed:
            log.debug(
                "%s: %r failed (timed_out=%s, rc=%s)",
                self.label,
                command,
                result.timed_out,
                result.returncode,
            )
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label!r}>"


# ── Variants ───────────────────────────────────────────────────────────────


class CpuSource(InfoSource):
    label = "CPU"
    missing = not_installed("lscpu", "util-linux")

    def collect(self) -> str:
        if not self.probe("lscpu"):
            return self.missing
        result = self.run("lscpu 2>/dev/null")
        if result.failed:
            return self.missing
        return parse_lscpu(result.text) or "No CPU data found"


class CpuUsageTracker:
    """Previous /proc/stat tick counts, so usage is a delta between samples."""

    def __init__(self) -> None:
        self.prev: CpuTicks | None = None

    def update(self, ticks: CpuTicks) -> float | None:
        """Record *ticks*; return the busy percentage since the last sample.

        The first sample only primes the tracker and returns None.
        """
        prev, self.prev = self.prev, ticks
        if prev is None:
            return None
        delta_total = ticks.total - prev.total
        if delta_total <= 0:
            return 0.0
        delta_idle = ticks.idle - prev.idle
        return (delta_total - delta_idle) * 100.0 / delta_total


class SystemUsageSource(InfoSource):
    label = "System Usage"

    def __init__(
        self,
        tracker: CpuUsageTracker | None = None,
        proc_root: Path = Path("/proc"),
        disk_path: str = "/",
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.tracker = tracker if tracker is not None else CpuUsageTracker()
        self.proc_root = proc_root
        self.disk_path = disk_path

    def _read(self, name: str) -> str | None:
        try:
            return (self.proc_root / name).read_text(encoding="utf-8")
        except OSError as e:
            log.warning("cannot read %s: %s", self.proc_root / name, e)
            return None

    def collect(self) -> str:
        stat = self._read("stat")
        if stat is None:
            return f"Error: cannot open {self.proc_root / 'stat'}"
        usage = self.tracker.update(parse_proc_stat(stat))
        cpu = "sampling..." if usage is None else f"{usage:.2f}%"
        lines = [f"CPU Usage: {cpu}", SEPARATOR]

        meminfo = self._read("meminfo")
        if meminfo is None:
            return f"Error: cannot open {self.proc_root / 'meminfo'}"
        mem_pct = memory_percent(parse_meminfo(meminfo))
        mem = "n/a" if mem_pct is None else f"{mem_pct:.2f}%"
        lines += [f"Memory Usage: {mem}", SEPARATOR]

        try:
            disk = psutil.disk_usage(self.disk_path)
            lines.append(f"Disk Usage ({self.disk_path}): {disk.percent:.2f}%")
        except OSError as e:
            log.warning("disk usage for %s failed: %s", self.disk_path, e)
            lines.append("Disk Usage: Error")
        lines.append(SEPARATOR)

        netdev = self._read("net/dev")
        if netdev is None:
            return f"Error: cannot open {self.proc_root / 'net/dev'}"
        for iface, rx, tx in parse_net_dev(netdev):
            lines += [
                f"Network ({iface}):",
                f"RX: {rx} bytes ({fmt_bytes(rx)})",
                f"TX: {tx} bytes ({fmt_bytes(tx)})",
                SEPARATOR,
            ]
        return join_lines(lines)


class TemperaturesSource(InfoSource):
    label = "Temperatures"
    missing = (
        "Error: sensors utility not found\n"
        "Please install lm_sensors and run 'sudo sensors-detect'"
    )

    def collect(self) -> str:
        if not self.probe("sensors"):
            return self.missing
        result = self.run("sensors 2>/dev/null")
        if result.failed:
            return self.missing
        return parse_sensors(result.text) or (
            "No temperature data found\n"
            "Run 'sudo sensors-detect' to configure sensors"
        )


class MotherboardSource(InfoSource):
    label = "Motherboard"
    missing = not_installed("dmidecode", "dmidecode", "Try: sudo dnf install dmidecode")

    def collect(self) -> str:
        if not self.is_root():
            return ROOT_WARNING
        if not self.probe("dmidecode"):
            return self.missing
        result = self.run("dmidecode -t baseboard 2>/dev/null")
        if result.failed:
            return self.missing
        return result.text if result.text.strip() else "No motherboard data found"


class MemorySource(InfoSource):
    label = "Memory"
    missing = not_installed("dmidecode", "dmidecode")

    def collect(self) -> str:
        if not self.is_root():
            return ROOT_WARNING
        if not self.probe("dmidecode"):
            return self.missing
        result = self.run("dmidecode -t memory 2>/dev/null")
        if result.failed:
            return self.missing
        return parse_dmidecode_memory(result.text) or "No memory data found"


class DisksSource(InfoSource):
    label = "Disks"
    missing = not_installed("lsblk", "util-linux")

    def collect(self) -> str:
        if not self.probe("lsblk"):
            return self.missing
        result = self.run("lsblk -d -o NAME,SIZE,MODEL 2>/dev/null")
        if result.failed:
            return self.missing
        return parse_lsblk(result.text) or "No disk data found"


class NetworkSource(InfoSource):
    label = "Network"
    missing = not_installed("ip", "iproute")

    def collect(self) -> str:
        if not self.probe("ip"):
            return self.missing
        result = self.run("ip -br link 2>/dev/null")
        if result.failed:
            return self.missing
        report = parse_ip_links(result.text)

        if not self.probe("bluetoothctl"):
            return report + "Bluetooth: bluetoothctl not found\n"
        bt = self.run("bluetoothctl show 2>/dev/null")
        return report + bluetooth_status("" if bt.failed else bt.text) + "\n"


class GpuSource(InfoSource):
    label = "GPU"
    missing = not_installed("lspci", "pciutils")
    nvidia_command = (
        "nvidia-smi --query-gpu="
        + ",".join(field for _, field in NVIDIA_QUERY_FIELDS)
        + " --format=csv,noheader 2>/dev/null"
    )
    radeontop_command = "LC_ALL=en_US.UTF-8 radeontop -d - -l 1 2>/dev/null"

    def __init__(self, vendor_timeout: float = VENDOR_TIMEOUT, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.vendor_timeout = vendor_timeout

    def collect(self) -> str:
        if not self.probe("lspci"):
            return self.missing
        result = self.run("lspci 2>/dev/null")
        if result.failed:
            return self.missing
        report = parse_lspci_gpus(result.text)

        if self.probe("nvidia-smi"):
            nv = self.run(self.nvidia_command, self.vendor_timeout)
            details = "" if nv.failed else parse_nvidia_smi(nv.text)
            report += details or join_lines([SEPARATOR, "NVIDIA GPU: Data unavailable"])

        if self.probe("radeontop"):
            amd = self.run(self.radeontop_command, self.vendor_timeout)
            if amd.failed or not amd.text.strip():
                report += join_lines([SEPARATOR, "AMD GPU: Data unavailable"])
            else:
                report += parse_radeontop(amd.text)

        return report or "No GPU data found"
