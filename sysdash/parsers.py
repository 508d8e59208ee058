"""Text reduction rules for each diagnostic tool's output.

Everything here is a pure function of its input text so the rules can be
tested without the tools installed.
"""

from __future__ import annotations

from dataclasses import dataclass

SEPARATOR = "-------------------"

CPU_FIELDS = (
    "Model name:",
    "CPU(s):",
    "Thread(s) per core:",
    "Core(s) per socket:",
    "Socket(s):",
    "CPU MHz:",
)
MEMORY_DEVICE_FIELDS = ("Size:", "Type:", "Speed:", "Manufacturer:", "Part Number:")
PHYSICAL_IFACE_PREFIXES = ("en", "wl", "eth")
GPU_CLASS_MARKERS = ("VGA", "3D")
NVIDIA_QUERY_FIELDS = (
    ("Name", "name"),
    ("Driver Version", "driver_version"),
    ("Memory Total", "memory.total"),
    ("Memory Used", "memory.used"),
    ("GPU Utilization", "utilization.gpu"),
    ("Temperature", "temperature.gpu"),
)
RADEONTOP_FIELDS = {
    "bus": "Bus: {}",
    "gpu": "GPU Usage: {}",
    "vram": "VRAM Usage: {}",
    "mclk": "Memory Clock: {} (percentage of max)",
    "sclk": "Shader Clock: {}",
}


def join_lines(lines: list[str]) -> str:
    return "".join(f"{line}\n" for line in lines)


def fmt_bytes(n: int | float) -> str:
    """Human-readable byte count (binary prefixes)."""
    v = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(v) < 1024:
            return f"{v:.1f} {unit}"
        v /= 1024
    return f"{v:.1f} TiB"


def is_physical_iface(name: str) -> bool:
    return name.startswith(PHYSICAL_IFACE_PREFIXES)


# ── CPU ────────────────────────────────────────────────────────────────────


def parse_lscpu(text: str) -> str:
    return join_lines(
        [line for line in text.splitlines() if any(f in line for f in CPU_FIELDS)]
    )


# ── /proc readers ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CpuTicks:
    """Aggregate jiffies from the first ``cpu`` line of /proc/stat."""

    total: int
    idle: int


def parse_proc_stat(text: str) -> CpuTicks:
    """Parse the aggregate ``cpu`` line.

    total = user + nice + system + idle + iowait + irq + softirq,
    idle = idle + iowait.
    """
    for line in text.splitlines():
        parts = line.split()
        if parts and parts[0] == "cpu":
            values = [int(x) for x in parts[1:8]]
            values += [0] * (7 - len(values))
            return CpuTicks(total=sum(values), idle=values[3] + values[4])
    raise ValueError("no aggregate cpu line in /proc/stat")


def parse_meminfo(text: str) -> dict[str, int]:
    """Map /proc/meminfo keys to their kB values."""
    fields: dict[str, int] = {}
    for line in text.splitlines():
        key, sep, rest = line.partition(":")
        if not sep:
            continue
        parts = rest.split()
        if parts and parts[0].isdigit():
            fields[key.strip()] = int(parts[0])
    return fields


def memory_percent(meminfo: dict[str, int]) -> float | None:
    total = meminfo.get("MemTotal", 0)
    if total <= 0:
        return None
    available = meminfo.get("MemAvailable", meminfo.get("MemFree", 0))
    return (total - available) * 100.0 / total


def parse_net_dev(text: str) -> list[tuple[str, int, int]]:
    """Return ``(iface, rx_bytes, tx_bytes)`` for physical interfaces."""
    rows: list[tuple[str, int, int]] = []
    for line in text.splitlines():
        iface, sep, rest = line.partition(":")
        if not sep:
            continue
        iface = iface.strip()
        if not is_physical_iface(iface):
            continue
        fields = rest.split()
        if len(fields) < 9:
            continue
        rows.append((iface, int(fields[0]), int(fields[8])))
    return rows


# ── Temperatures ───────────────────────────────────────────────────────────


def parse_sensors(text: str) -> str:
    lines: list[str] = []
    for line in text.splitlines():
        lines.append(line)
        if not line.strip():
            lines.append(SEPARATOR)
    return join_lines(lines)


# ── dmidecode ──────────────────────────────────────────────────────────────


def parse_dmidecode_memory(text: str) -> str:
    """Keep the interesting fields of each ``Memory Device`` block."""
    lines: list[str] = []
    in_device = False
    for line in text.splitlines():
        if "Memory Device" in line:
            if in_device:
                lines.append(SEPARATOR)
            in_device = True
            continue
        if in_device and any(f in line for f in MEMORY_DEVICE_FIELDS):
            lines.append(line)
    return join_lines(lines)


# ── Disks ──────────────────────────────────────────────────────────────────


def parse_lsblk(text: str) -> str:
    lines: list[str] = []
    for line in text.splitlines():
        if "NAME" in line or not line.strip():
            continue
        if lines:
            lines.append(SEPARATOR)
        lines.append(line)
    return join_lines(lines)


# ── Network ────────────────────────────────────────────────────────────────


def parse_ip_links(text: str) -> str:
    """Adapter/state blocks from ``ip -br link``."""
    lines: list[str] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2 or not is_physical_iface(parts[0]):
            continue
        lines += [f"Adapter: {parts[0]}", f"State: {parts[1]}", SEPARATOR]
    return join_lines(lines)


def bluetooth_status(text: str) -> str:
    if "Controller" in text:
        return "Bluetooth: Enabled"
    return "Bluetooth: Disabled or not found"


# ── GPU ────────────────────────────────────────────────────────────────────


def parse_lspci_gpus(text: str) -> str:
    lines: list[str] = []
    for line in text.splitlines():
        if not any(marker in line for marker in GPU_CLASS_MARKERS):
            continue
        if lines:
            lines.append(SEPARATOR)
        lines.append(f"GPU Model: {line.strip()}")
    return join_lines(lines)


def parse_nvidia_smi(text: str) -> str:
    """One details section per CSV row of the nvidia-smi query."""
    lines: list[str] = []
    for row in text.splitlines():
        if not row.strip():
            continue
        values = [v.strip() for v in row.split(",")]
        values += [""] * (len(NVIDIA_QUERY_FIELDS) - len(values))
        lines += [SEPARATOR, "NVIDIA GPU Details:"]
        for (label, _), value in zip(NVIDIA_QUERY_FIELDS, values):
            lines.append(f"{label}: {value}")
    return join_lines(lines)


def parse_radeontop(text: str) -> str:
    """Pick bus/gpu/vram/mclk/sclk out of a ``radeontop -d -`` dump."""
    lines = [SEPARATOR, "AMD GPU Details:"]
    for line in text.splitlines():
        if "Dumping to" in line:
            continue
        if "Unknown Radeon card" in line:
            lines.append(f"Warning: {line.strip()}")
            continue
        tokens = [t.rstrip(",") for t in line.split()]
        for key, value in zip(tokens, tokens[1:]):
            template = RADEONTOP_FIELDS.get(key)
            if template is not None:
                lines.append(template.format(value))
    return join_lines(lines)
