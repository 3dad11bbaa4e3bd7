"""
Reading measurement files from disk, batch analysis and CSV export.
"""

import polars as pl
import pytest

from conftest import GEOMETRY, hysteresis_table, output_table, tlm_sheet, transfer_table
from tft_extract.core.analysis import analyze_file, analyze_files
from tft_extract.core.errors import ExtractionError, MalformedInputError
from tft_extract.core.export import (
    FUSED_FIELDS,
    fused_to_frame,
    tlm_results_to_csv,
    write_fused_csv,
    write_tlm_csv,
)
from tft_extract.core.loaders import (
    discover_measurement_files,
    read_measurement_table,
    read_tlm_sample,
)
from tft_extract.derived.extractors import IDVDAnalyzer
from tft_extract.derived.tlm import analyze_tlm_batch
from tft_extract.models.measurements import MeasurementKind

SAMPLE = "0616_1sccm_100"


@pytest.fixture
def device_dir(tmp_path):
    """One device measured four ways, plus a file that is not a measurement."""
    d = tmp_path / "device"
    d.mkdir()
    transfer_table().write_csv(d / "0616_IDVG_Lin_1sccm_100.csv")
    transfer_table(vds=20.0).write_csv(d / "0616_IDVG_Sat_1sccm_100.csv")
    output_table().write_csv(d / "0616_IDVD_1sccm_100.csv")
    hysteresis_table().write_csv(d / "0616_IDVG_Lin_Hys_1sccm_100.csv")
    (d / "notes.csv").write_text("comment\nnothing to see\n")
    return d


@pytest.fixture
def tlm_dir(tmp_path):
    d = tmp_path / "sample_A"
    d.mkdir()
    for distance in (0.5, 1.0, 1.5, 2.0):
        tlm_sheet(20.0 + 100.0 * distance).write_csv(d / f"{distance}mm.csv")
    return d


class TestReadMeasurementTable:
    def test_unit_rows_and_blank_cells(self, tmp_path):
        path = tmp_path / "idvg.csv"
        path.write_text(
            "DrainI,DrainV,GateI,GateV\n"
            "A,V,A,V\n"
            " 1e-9 , 0.1 ,1e-13,0\n"
            "2e-9,0.1,,1\n"
        )
        df = read_measurement_table(path)

        assert df.columns == ["DrainI", "DrainV", "GateI", "GateV"]
        assert df.height == 2
        assert df["DrainI"].to_list() == [1e-9, 2e-9]
        assert df["GateI"].to_list() == [1e-13, None]

    def test_comment_lines_ignored(self, tmp_path):
        path = tmp_path / "idvg.csv"
        path.write_text("# exported by the probe station\nDrainI,GateV\n1e-9,0\n")
        assert read_measurement_table(path).height == 1

    def test_duplicate_headers_kept_as_columns(self, tmp_path):
        """IDVD exports repeat the block labels for every gate voltage."""
        path = tmp_path / "idvd.csv"
        block = "DrainI,DrainV,GateI,GateV,Time"
        rows = [f"{vd / 1000},{vd},0,5,{i},{vd / 500},{vd},0,10,{i}" for i, vd in enumerate(range(0, 11))]
        path.write_text(f"{block},{block}\n" + "\n".join(rows) + "\n")

        df = read_measurement_table(path)

        assert df.width == 10
        assert "draini" in df.columns[5].lower()

    def test_header_only_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("DrainI,DrainV,GateI,GateV\n")
        with pytest.raises(MalformedInputError):
            read_measurement_table(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MalformedInputError):
            read_measurement_table(tmp_path / "missing.csv")


class TestDiscovery:
    def test_directories_expand_sorted(self, device_dir, tmp_path):
        extra = tmp_path / "extra_IDVD.csv"
        output_table().write_csv(extra)

        files = discover_measurement_files([device_dir, extra, tmp_path / "ghost.csv"])

        assert [f.name for f in files[:5]] == sorted(p.name for p in device_dir.glob("*.csv"))
        assert files[-1] == extra
        assert len(files) == 6


class TestAnalyzeFiles:
    def test_single_file(self, device_dir):
        result = analyze_file(device_dir / "0616_IDVD_1sccm_100.csv", GEOMETRY)

        assert result.kind == MeasurementKind.IDVD
        assert result.sample.name == SAMPLE
        assert result.parameters["ron"].value == pytest.approx(5000.0)

    def test_unknown_kind_raises(self, device_dir):
        with pytest.raises(MalformedInputError):
            analyze_file(device_dir / "notes.csv", GEOMETRY)

    def test_batch_end_to_end(self, device_dir):
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY)

        assert len(outcome.results) == 4
        assert list(outcome.skipped) == ["notes.csv"]
        assert list(outcome.fused) == [SAMPLE]

        fused = outcome.fused[SAMPLE]
        assert fused.quality.score == 100
        assert fused.ron.value == pytest.approx(5000.0)
        assert fused.delta_vth.value == pytest.approx(0.8)
        assert fused.ss.value == pytest.approx(0.25)

    def test_batch_with_custom_ss_range(self, device_dir):
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY, ss_range=(0.5, 0.9))
        fused = outcome.fused[SAMPLE]

        assert fused.ss_range == (0.5, 0.9)
        assert fused.ss.method == "custom_range"

    def test_bad_file_does_not_stop_batch(self, device_dir):
        (device_dir / "0616_IDVG_Lin_broken.csv").write_text("DrainI,GateV\n")
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY)

        assert "0616_IDVG_Lin_broken.csv" in outcome.skipped
        assert SAMPLE in outcome.fused

    @pytest.mark.parametrize("error", [ExtractionError("fit blew up"), ValueError("x and y must have same length")])
    def test_failing_analyzer_does_not_stop_batch(self, device_dir, monkeypatch, error):
        def broken(self, table, geometry, source):
            raise error

        monkeypatch.setattr(IDVDAnalyzer, "analyze", broken)
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY)

        assert outcome.skipped["0616_IDVD_1sccm_100.csv"] == f"analysis failed: {error}"
        assert len(outcome.results) == 3
        fused = outcome.fused[SAMPLE]
        assert not fused.ron.is_available
        assert fused.vth.is_available


class TestFusedExport:
    def test_frame_columns(self, device_dir):
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY)
        df = fused_to_frame(outcome.fused)

        assert df.height == 1
        for name in FUSED_FIELDS:
            assert name in df.columns
            assert f"{name}_status" in df.columns
        assert df["quality_grade"].to_list() == ["A"]

    def test_unmeasurable_values_are_null(self, device_dir):
        outcome = analyze_files([device_dir / "0616_IDVG_Lin_1sccm_100.csv"], GEOMETRY)
        df = fused_to_frame(outcome.fused)

        assert df["ron"].to_list() == [None]
        assert df["ron_status"].to_list() == ["unmeasurable"]

    def test_write_fused_csv(self, device_dir, tmp_path):
        outcome = analyze_files(discover_measurement_files([device_dir]), GEOMETRY)
        path = write_fused_csv(outcome.fused, tmp_path / "out" / "fused.csv")

        back = pl.read_csv(path)
        assert back["sample"].to_list() == [SAMPLE]
        assert back["ron"][0] == pytest.approx(5000.0)

    def test_empty_frame_keeps_schema(self):
        df = fused_to_frame({})
        assert df.height == 0
        assert "vth" in df.columns


class TestTLMLoadingAndExport:
    def test_read_sample_directory(self, tlm_dir):
        sheets = read_tlm_sample(tlm_dir)
        assert sorted(sheets) == ["0.5mm", "1.0mm", "1.5mm", "2.0mm"]
        assert sheets["0.5mm"].columns == ["AV", "AI"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(MalformedInputError):
            read_tlm_sample(tmp_path / "nope")

    def test_directory_without_sheets(self, tmp_path):
        with pytest.raises(MalformedInputError):
            read_tlm_sample(tmp_path)

    def test_csv_layout(self, tlm_dir):
        batch = analyze_tlm_batch(
            {"sample_A.xlsx": read_tlm_sample(tlm_dir), "bad.xlsx": {"1.0mm": tlm_sheet(120.0)}},
            contact_width_mm=1.0,
            distance_step_mm=0.5,
        )
        lines = tlm_results_to_csv(batch).splitlines()

        assert lines[0] == "File,Distance (mm),Resistance (Ω),Conductance (S),R²"
        assert lines[1].startswith("sample_A.xlsx,0.5,70.00,")
        assert lines[5] == ""
        assert lines[6] == "TLM parameters per file"
        assert lines[7] == "File,Rc (Ω),Rsh (Ω/sq),LT (cm),ρc (Ω·cm²),R²,Points"
        assert lines[8] == "sample_A.xlsx,10.00,100.00,0.010,1.00e-02,1.0000,4"
        assert lines[9] == "bad.xlsx,N/A,N/A,N/A,N/A,N/A,0"
        assert lines[10] == ""
        assert lines[11].startswith("Analysis time: ")
        assert lines[12] == "Contact width: 1.0 mm"
        assert lines[13] == "Distance step: 0.5 mm"

    def test_write_tlm_csv(self, tlm_dir, tmp_path):
        batch = analyze_tlm_batch({"sample_A": read_tlm_sample(tlm_dir)})
        path = write_tlm_csv(batch, tmp_path / "exports" / "tlm.csv")

        assert path.exists()
        assert "TLM parameters per file" in path.read_text(encoding="utf-8")
