"""Tests for sysdash.sources (runner, probes and /proc mocked)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sysdash.parsers import SEPARATOR, CpuTicks
from sysdash.runner import ProcessResult
from sysdash.sources import (
    ROOT_WARNING,
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
    is_utility_installed,
)


class FakeRunner:
    """Maps a command's first word to a canned ProcessResult."""

    def __init__(self, results: dict[str, ProcessResult] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, float]] = []

    def __call__(self, command: str, timeout: float) -> ProcessResult:
        self.calls.append((command, timeout))
        words = command.replace("LC_ALL=en_US.UTF-8 ", "").split()
        return self.results.get(words[0], ProcessResult(text="", exit_failed=True, returncode=127))

    def commands(self) -> list[str]:
        return [c.split()[0] for c, _ in self.calls]


def ok(text: str) -> ProcessResult:
    return ProcessResult(text=text, returncode=0)


TIMED_OUT = ProcessResult(text="", timed_out=True, exit_failed=True, returncode=-9)


def installed(*names: str):
    return lambda name: name in names


# ── Probes ────────────────────────────────────────────────────────────────


class TestIsUtilityInstalled:
    @patch("sysdash.sources.os.path.exists")
    def test_found_in_sbin(self, mock_exists: MagicMock) -> None:
        mock_exists.side_effect = lambda p: p == "/usr/sbin/dmidecode"
        assert is_utility_installed("dmidecode") is True

    @patch("sysdash.sources.os.path.exists", return_value=False)
    def test_missing(self, mock_exists: MagicMock) -> None:
        assert is_utility_installed("nvidia-smi") is False


# ── fetch() never raises ──────────────────────────────────────────────────


class TestFetchContract:
    def test_os_error_becomes_text(self) -> None:
        class Broken(InfoSource):
            label = "Broken"

            def collect(self) -> str:
                raise PermissionError("nope")

        assert Broken().fetch() == "Error: nope"

    def test_repr(self) -> None:
        assert repr(CpuSource(runner=FakeRunner())) == "<CpuSource 'CPU'>"


# ── CPU ───────────────────────────────────────────────────────────────────


class TestCpuSource:
    def test_report(self) -> None:
        runner = FakeRunner({"lscpu": ok("CPU(s): 8\nVendor ID: Intel\nModel name: i7\n")})
        src = CpuSource(runner=runner, probe=installed("lscpu"))
        assert src.fetch() == "CPU(s): 8\nModel name: i7\n"
        assert runner.calls == [("lscpu 2>/dev/null", 5)]

    def test_probe_failure_skips_runner(self) -> None:
        runner = FakeRunner()
        out = CpuSource(runner=runner, probe=installed()).fetch()
        assert runner.calls == []
        assert "lscpu" in out
        assert "util-linux" in out

    def test_timeout(self) -> None:
        src = CpuSource(runner=FakeRunner({"lscpu": TIMED_OUT}), probe=installed("lscpu"))
        assert src.fetch().startswith("Error: lscpu utility not found")

    def test_parse_empty(self) -> None:
        src = CpuSource(runner=FakeRunner({"lscpu": ok("")}), probe=installed("lscpu"))
        assert src.fetch() == "No CPU data found"

    def test_custom_timeout_passed(self) -> None:
        runner = FakeRunner({"lscpu": ok("CPU(s): 2\n")})
        CpuSource(runner=runner, probe=installed("lscpu"), timeout=2).fetch()
        assert runner.calls[0][1] == 2


# ── System usage ──────────────────────────────────────────────────────────


class TestCpuUsageTracker:
    def test_first_sample_primes(self) -> None:
        tracker = CpuUsageTracker()
        assert tracker.update(CpuTicks(total=960, idle=810)) is None
        assert tracker.prev == CpuTicks(total=960, idle=810)

    def test_delta_between_samples(self) -> None:
        tracker = CpuUsageTracker()
        # cpu 100 0 50 800 10 0 0  ->  cpu 150 0 70 820 15 0 0
        tracker.update(CpuTicks(total=100 + 50 + 800 + 10, idle=800 + 10))
        usage = tracker.update(CpuTicks(total=150 + 70 + 820 + 15, idle=820 + 15))
        delta_total = (150 - 100) + (70 - 50) + (820 - 800) + (15 - 10)
        delta_idle = (820 - 800) + (15 - 10)
        assert usage == pytest.approx(100 * (delta_total - delta_idle) / delta_total)
        assert usage == pytest.approx(73.684, abs=1e-3)

    def test_no_ticks_elapsed(self) -> None:
        tracker = CpuUsageTracker()
        tracker.update(CpuTicks(total=10, idle=5))
        assert tracker.update(CpuTicks(total=10, idle=5)) == 0.0


def _proc_tree(root: Path, stat: str) -> Path:
    (root / "net").mkdir(parents=True, exist_ok=True)
    (root / "stat").write_text(stat)
    (root / "meminfo").write_text("MemTotal: 1000 kB\nMemFree: 100 kB\nMemAvailable: 250 kB\n")
    (root / "net" / "dev").write_text(
        "Inter-| Receive | Transmit\n"
        " face |bytes packets|bytes packets\n"
        "    lo: 10 1 0 0 0 0 0 0 10 1 0 0 0 0 0 0\n"
        "enp3s0: 2048 4 0 0 0 0 0 0 1024 2 0 0 0 0 0 0\n"
    )
    return root


class TestSystemUsageSource:
    @patch("sysdash.sources.psutil.disk_usage")
    def test_report_uses_delta(self, mock_disk: MagicMock, tmp_path: Path) -> None:
        mock_disk.return_value = MagicMock(percent=42.5)
        root = _proc_tree(tmp_path, "cpu 100 0 50 800 10 0 0 0 0 0\n")
        src = SystemUsageSource(proc_root=root)

        first = src.fetch()
        assert first.startswith("CPU Usage: sampling...\n")

        (root / "stat").write_text("cpu 150 0 70 820 15 0 0 0 0 0\n")
        second = src.fetch()
        lines = second.splitlines()
        assert lines[0] == "CPU Usage: 73.68%"
        assert "Memory Usage: 75.00%" in lines
        assert "Disk Usage (/): 42.50%" in lines
        assert "Network (enp3s0):" in lines
        assert "RX: 2048 bytes (2.0 KiB)" in lines
        assert "TX: 1024 bytes (1.0 KiB)" in lines
        assert not any("lo" in line for line in lines if line.startswith("Network"))
        mock_disk.assert_called_with("/")

    @patch("sysdash.sources.psutil.disk_usage")
    def test_shared_tracker(self, mock_disk: MagicMock, tmp_path: Path) -> None:
        mock_disk.return_value = MagicMock(percent=1.0)
        tracker = CpuUsageTracker()
        tracker.update(CpuTicks(total=960, idle=810))
        root = _proc_tree(tmp_path, "cpu 150 0 70 820 15 0 0\n")
        out = SystemUsageSource(tracker=tracker, proc_root=root).fetch()
        assert out.startswith("CPU Usage: 73.68%")

    def test_missing_proc_stat(self, tmp_path: Path) -> None:
        out = SystemUsageSource(proc_root=tmp_path).fetch()
        assert out == f"Error: cannot open {tmp_path / 'stat'}"

    @patch("sysdash.sources.psutil.disk_usage", side_effect=OSError("statvfs failed"))
    def test_disk_error_degrades(self, mock_disk: MagicMock, tmp_path: Path) -> None:
        out = SystemUsageSource(proc_root=_proc_tree(tmp_path, "cpu 1 2 3 4 5 6 7\n")).fetch()
        assert "Disk Usage: Error" in out.splitlines()

    def test_never_runs_commands(self, tmp_path: Path) -> None:
        runner = FakeRunner()
        with patch("sysdash.sources.psutil.disk_usage", return_value=MagicMock(percent=1.0)):
            SystemUsageSource(runner=runner, proc_root=_proc_tree(tmp_path, "cpu 1 2 3 4\n")).fetch()
        assert runner.calls == []


# ── Temperatures ──────────────────────────────────────────────────────────


class TestTemperaturesSource:
    def test_report(self) -> None:
        runner = FakeRunner({"sensors": ok("chip\ntemp1: +40.0°C\n\nchip2\n")})
        out = TemperaturesSource(runner=runner, probe=installed("sensors")).fetch()
        assert SEPARATOR in out
        assert "temp1: +40.0°C" in out

    def test_not_installed(self) -> None:
        runner = FakeRunner()
        out = TemperaturesSource(runner=runner, probe=installed()).fetch()
        assert runner.calls == []
        assert "sensors" in out
        assert "sensors-detect" in out

    def test_empty_output(self) -> None:
        runner = FakeRunner({"sensors": ok("")})
        out = TemperaturesSource(runner=runner, probe=installed("sensors")).fetch()
        assert out.startswith("No temperature data found")


# ── dmidecode sources ─────────────────────────────────────────────────────


class TestMotherboardSource:
    def test_requires_root(self) -> None:
        runner = FakeRunner()
        src = MotherboardSource(runner=runner, probe=installed("dmidecode"), is_root=lambda: False)
        assert src.fetch() == ROOT_WARNING
        assert runner.calls == []

    def test_as_root(self) -> None:
        runner = FakeRunner({"dmidecode": ok("Base Board Information\n\tManufacturer: ASUS\n")})
        src = MotherboardSource(runner=runner, probe=installed("dmidecode"), is_root=lambda: True)
        assert "Manufacturer: ASUS" in src.fetch()
        assert runner.calls[0][0] == "dmidecode -t baseboard 2>/dev/null"

    def test_not_installed(self) -> None:
        runner = FakeRunner()
        src = MotherboardSource(runner=runner, probe=installed(), is_root=lambda: True)
        out = src.fetch()
        assert runner.calls == []
        assert "dmidecode" in out
        assert "Try: sudo dnf install dmidecode" in out

    def test_empty(self) -> None:
        src = MotherboardSource(
            runner=FakeRunner({"dmidecode": ok("")}),
            probe=installed("dmidecode"),
            is_root=lambda: True,
        )
        assert src.fetch() == "No motherboard data found"


class TestMemorySource:
    def test_requires_root(self) -> None:
        runner = FakeRunner()
        src = MemorySource(runner=runner, probe=installed("dmidecode"), is_root=lambda: False)
        assert src.fetch().startswith("Warning: dmidecode requires root privileges")
        assert runner.calls == []

    def test_report(self) -> None:
        text = "Memory Device\n\tSize: 8 GB\n\tType: DDR4\nMemory Device\n\tSize: 4 GB\n"
        src = MemorySource(
            runner=FakeRunner({"dmidecode": ok(text)}),
            probe=installed("dmidecode"),
            is_root=lambda: True,
        )
        assert src.fetch().splitlines() == ["\tSize: 8 GB", "\tType: DDR4", SEPARATOR, "\tSize: 4 GB"]

    def test_no_devices(self) -> None:
        src = MemorySource(
            runner=FakeRunner({"dmidecode": ok("# dmidecode 3.3\n")}),
            probe=installed("dmidecode"),
            is_root=lambda: True,
        )
        assert src.fetch() == "No memory data found"


# ── Disks ─────────────────────────────────────────────────────────────────


class TestDisksSource:
    def test_report(self) -> None:
        runner = FakeRunner({"lsblk": ok("NAME SIZE MODEL\nsda 1T Disk\n")})
        assert DisksSource(runner=runner, probe=installed("lsblk")).fetch() == "sda 1T Disk\n"

    def test_not_installed(self) -> None:
        runner = FakeRunner()
        out = DisksSource(runner=runner, probe=installed()).fetch()
        assert runner.calls == []
        assert "lsblk" in out

    def test_empty(self) -> None:
        runner = FakeRunner({"lsblk": ok("NAME SIZE MODEL\n")})
        assert DisksSource(runner=runner, probe=installed("lsblk")).fetch() == "No disk data found"


# ── Network ───────────────────────────────────────────────────────────────


class TestNetworkSource:
    IP = "lo UNKNOWN 00:00\nenp3s0 UP aa:bb\n"

    def test_with_bluetooth(self) -> None:
        runner = FakeRunner({"ip": ok(self.IP), "bluetoothctl": ok("Controller 00:1A (public)\n")})
        out = NetworkSource(runner=runner, probe=installed("ip", "bluetoothctl")).fetch()
        assert out.splitlines() == ["Adapter: enp3s0", "State: UP", SEPARATOR, "Bluetooth: Enabled"]

    def test_bluetooth_missing(self) -> None:
        runner = FakeRunner({"ip": ok(self.IP)})
        out = NetworkSource(runner=runner, probe=installed("ip")).fetch()
        assert out.endswith("Bluetooth: bluetoothctl not found\n")
        assert runner.commands() == ["ip"]

    def test_bluetooth_timeout(self) -> None:
        runner = FakeRunner({"ip": ok(self.IP), "bluetoothctl": TIMED_OUT})
        out = NetworkSource(runner=runner, probe=installed("ip", "bluetoothctl")).fetch()
        assert out.endswith("Bluetooth: Disabled or not found\n")

    def test_ip_missing(self) -> None:
        runner = FakeRunner()
        out = NetworkSource(runner=runner, probe=installed("bluetoothctl")).fetch()
        assert runner.calls == []
        assert "iproute" in out


# ── GPU ───────────────────────────────────────────────────────────────────


class TestGpuSource:
    LSPCI = (
        "00:00.0 Host bridge: Intel Corporation Device 3e34\n"
        "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620\n"
    )

    def test_lspci_only(self) -> None:
        runner = FakeRunner({"lspci": ok(self.LSPCI)})
        out = GpuSource(runner=runner, probe=installed("lspci")).fetch()
        assert out.count("GPU Model:") == 1
        assert "NVIDIA" not in out
        assert "AMD" not in out
        assert runner.commands() == ["lspci"]

    def test_nvidia_details_use_vendor_timeout(self) -> None:
        runner = FakeRunner(
            {
                "lspci": ok(self.LSPCI),
                "nvidia-smi": ok("RTX 3060, 535.54, 12288 MiB, 512 MiB, 3 %, 41\n"),
            }
        )
        out = GpuSource(runner=runner, probe=installed("lspci", "nvidia-smi")).fetch()
        assert "NVIDIA GPU Details:" in out
        assert "Name: RTX 3060" in out
        assert runner.calls[1][1] == 3
        assert "--query-gpu=name,driver_version,memory.total" in runner.calls[1][0]

    def test_nvidia_unavailable(self) -> None:
        runner = FakeRunner({"lspci": ok(self.LSPCI), "nvidia-smi": TIMED_OUT})
        out = GpuSource(runner=runner, probe=installed("lspci", "nvidia-smi")).fetch()
        assert out.endswith(f"{SEPARATOR}\nNVIDIA GPU: Data unavailable\n")

    def test_amd_details(self) -> None:
        runner = FakeRunner(
            {
                "lspci": ok(self.LSPCI),
                "radeontop": ok("Dumping to -\n1.0: bus 03, gpu 5.00%, vram 1.00% 40mb\n"),
            }
        )
        out = GpuSource(runner=runner, probe=installed("lspci", "radeontop")).fetch()
        assert "AMD GPU Details:" in out
        assert "GPU Usage: 5.00%" in out

    def test_amd_unavailable(self) -> None:
        runner = FakeRunner({"lspci": ok(self.LSPCI), "radeontop": ok("")})
        out = GpuSource(runner=runner, probe=installed("lspci", "radeontop")).fetch()
        assert "AMD GPU: Data unavailable" in out

    def test_no_gpu(self) -> None:
        runner = FakeRunner({"lspci": ok("00:00.0 Host bridge: Intel\n")})
        assert GpuSource(runner=runner, probe=installed("lspci")).fetch() == "No GPU data found"

    def test_lspci_missing(self) -> None:
        runner = FakeRunner()
        out = GpuSource(runner=runner, probe=installed("nvidia-smi")).fetch()
        assert runner.calls == []
        assert "lspci" in out
        assert "pciutils" in out
