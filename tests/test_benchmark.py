import subprocess
import sys

import pytest

from ampbench import accel_matmul, benchmark, devices
from ampbench.report import CSV_HEADER


@pytest.fixture
def host_only(monkeypatch):
    monkeypatch.setattr(devices, "DEFAULT_ENUMERATORS", (devices.host_devices,))


def test_make_inputs_count_up_then_down():
    A, B = benchmark.make_inputs(2, 3, 2)
    assert A.tolist() == [0, 1, 2, 3]
    assert B.tolist() == [4, 3, 2, 1, 0, -1]
    A, B = benchmark.make_inputs(2, 2, 7, op="add")
    assert len(A) == len(B) == 4


def test_single_run_reports_both_engines(host_only, capsys):
    assert benchmark.main(["--M", "3", "--N", "4", "--W", "5"]) == 0
    out = capsys.readouterr().out
    assert "All accelerators:" in out
    assert "CPU shared memory: true" in out
    assert "Chosen device path: cpu" in out
    assert "CPU took" in out
    assert "AMP took" in out
    assert "Verification successful." in out


def test_add_op(host_only, capsys):
    assert benchmark.main(["--M", "4", "--N", "4", "--op", "add"]) == 0
    assert "Verification successful." in capsys.readouterr().out


def test_zero_sized_run(host_only, capsys):
    assert benchmark.main(["--M", "0", "--N", "4", "--W", "3"]) == 0
    assert "AMP took" in capsys.readouterr().out


def test_multi_run_timing_writes_csv(host_only, capsys):
    assert benchmark.main(["--M", "2", "--N", "2", "--W", "2", "--reps", "2",
                           "--mode", "multi_run_timing"]) == 0
    captured = capsys.readouterr()
    lines = captured.out.strip().splitlines()
    assert lines[0] == CSV_HEADER
    rows = [line.split(",") for line in lines[1:]]
    assert [(r[0], r[2], r[6]) for r in rows] == [
        ("CPU", "host", "1"), ("CPU", "host", "2"), ("AMP", "cpu", "1"), ("AMP", "cpu", "2"),
    ]
    assert "All accelerators:" in captured.err


def test_failed_engine_is_reported_and_skipped(host_only, monkeypatch, capsys):
    def broken(A, B, C):
        raise RuntimeError("driver reset")

    monkeypatch.setitem(accel_matmul.HOST_KERNELS, "matmul", broken)
    assert benchmark.main(["--M", "2", "--N", "2", "--W", "2"]) == 0
    captured = capsys.readouterr()
    assert "CPU took" in captured.out
    assert "AMP took" not in captured.out
    assert "AMP failed" in captured.err
    assert "driver reset" in captured.err


def test_mismatch_fails_verification(host_only, monkeypatch, capsys):
    def wrong(A, B, C):
        C[:] = 1
        return C

    monkeypatch.setitem(accel_matmul.HOST_KERNELS, "matmul", wrong)
    assert benchmark.main(["--M", "2", "--N", "2", "--W", "2"]) == 1
    assert "VERIFICATION FAILED" in capsys.readouterr().err


def test_gpu_policy_falls_back_to_default(host_only, capsys):
    assert benchmark.main(["--M", "1", "--N", "1", "--W", "1", "--policy", "gpu"]) == 0
    captured = capsys.readouterr()
    assert "no accelerator matches policy 'gpu'" in captured.err
    assert "Chosen device path: cpu" in captured.out


def test_rejects_negative_sizes(capsys):
    assert benchmark.main(["--M", "-1"]) == 2


def test_module_entry_point_exits_cleanly():
    # The host kernel threads must not keep the interpreter alive
    result = subprocess.run(
        [sys.executable, "-m", "ampbench", "--M", "4", "--N", "4", "--W", "4"],
        capture_output=True, text=True, timeout=300,
    )
    assert result.returncode == 0, result.stderr
    assert "AMP took" in result.stdout
    assert "Verification successful." in result.stdout
