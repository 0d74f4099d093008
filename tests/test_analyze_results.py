import os

import pytest

from ampbench import analyze_results
from ampbench.report import CSV_HEADER

ROWS = [
    "CPU,mul,host,64,64,64,1,0.400000000",
    "CPU,mul,host,64,64,64,2,0.600000000",
    "AMP,mul,cpu,64,64,64,1,0.100000000",
    "AMP,mul,cpu,64,64,64,2,0.100000000",
    "CPU,mul,host,128,128,128,1,4.000000000",
    "AMP,mul,cpu,128,128,128,1,0.500000000",
]


@pytest.fixture
def csv_path(tmp_path):
    path = tmp_path / "results.csv"
    path.write_text("\n".join([CSV_HEADER] + ROWS) + "\n")
    return str(path)


def test_prepare_dataframe(csv_path):
    df = analyze_results.prepare_dataframe(csv_path)
    assert len(df) == 6
    assert set(df["size"]) == {"64x64x64", "128x128x128"}
    assert df["time_ms"].max() == pytest.approx(4000.0)


def test_prepare_dataframe_requires_timing_column(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("engine,op\nCPU,mul\n")
    with pytest.raises(ValueError):
        analyze_results.prepare_dataframe(str(path))


def test_summarize(csv_path):
    summary = analyze_results.summarize(analyze_results.prepare_dataframe(csv_path))
    row = summary[(summary["engine"] == "CPU") & (summary["N"] == 64)].iloc[0]
    assert row["avg_time_sec"] == pytest.approx(0.5)
    assert row["min_time_sec"] == pytest.approx(0.4)


def test_speedup_table(csv_path):
    speedups = analyze_results.speedup_table(analyze_results.prepare_dataframe(csv_path))
    by_size = dict(zip(speedups["size"], speedups["speedup"]))
    assert by_size["64x64x64"] == pytest.approx(5.0)
    assert by_size["128x128x128"] == pytest.approx(8.0)


def test_speedup_table_needs_both_engines(csv_path):
    df = analyze_results.prepare_dataframe(csv_path)
    assert analyze_results.speedup_table(df[df["engine"] == "CPU"]).empty


def test_main_writes_plots(csv_path, tmp_path, capsys):
    plot_dir = str(tmp_path / "plots")
    analyze_results.main([csv_path, plot_dir])
    assert os.path.exists(os.path.join(plot_dir, analyze_results.RUNTIME_PLOT))
    assert os.path.exists(os.path.join(plot_dir, analyze_results.SPEEDUP_PLOT))
    assert "Best observed speedup: 128x128x128 (mul)" in capsys.readouterr().out


def test_main_missing_csv(tmp_path):
    with pytest.raises(SystemExit):
        analyze_results.main([str(tmp_path / "missing.csv"), str(tmp_path / "plots")])


def test_main_reads_command_line(csv_path, tmp_path, monkeypatch):
    plot_dir = str(tmp_path / "cli_plots")
    monkeypatch.setattr("sys.argv", ["ampbench-analyze", csv_path, plot_dir])
    analyze_results.main()
    assert os.path.exists(os.path.join(plot_dir, analyze_results.RUNTIME_PLOT))
