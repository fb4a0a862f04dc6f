"""
End-to-end tests: synthetic sources on disk through every stage to exports.
"""

import json

import geopandas as gpd
import pandas as pd
import pytest

from ice_cream_noise.hashing import hash_file
from ice_cream_noise.pipeline import DEFAULT_OUTPUTS, run_pipeline

EXPORTS = ["points_geojson", "polygons_geojson", "parks_geojson"]


@pytest.fixture
def result(source_files, logger, tmp_path):
    return run_pipeline(
        source_files,
        logger,
        export_dir=tmp_path / "processed",
        figures_dir=tmp_path / "figures",
    )


class TestRunPipeline:
    """Tests for a full run over the synthetic layers."""

    def test_every_output_written(self, result):
        assert set(result.outputs) == set(DEFAULT_OUTPUTS)
        for path in result.outputs.values():
            assert path.exists(), f"Missing output: {path}"
            assert path.stat().st_size > 0

    def test_complaint_counts(self, result):
        assert len(result.complaints) == 14
        assert result.join_stats["matched_within"] == 12
        assert result.join_stats["dropped"] == 2

    def test_polygons_export(self, result):
        polygons = gpd.read_file(result.outputs["polygons_geojson"]).set_index("ntacode")
        assert len(polygons) == 3
        assert polygons.loc["MN12", "total_complaints"] == 10
        assert polygons.loc["MN12", "complaints_per_1000"] == pytest.approx(2.0)
        # Zero population: rate reported as 0
        assert polygons.loc["MN13", "total_complaints"] == 2
        assert polygons.loc["MN13", "complaints_per_1000"] == 0.0
        # No complaints: zero-filled rather than dropped
        assert polygons.loc["BK01", "total_complaints"] == 0
        assert polygons.loc["BK01", "complaints_per_1000"] == 0.0

    def test_polygons_keep_boundary_geometry(self, result, nta_gdf):
        polygons = gpd.read_file(result.outputs["polygons_geojson"]).set_index("ntacode")
        expected = nta_gdf.set_index("ntacode")
        for code in expected.index:
            assert polygons.loc[code, "geometry"].equals_exact(expected.loc[code, "geometry"], 1e-9)

    def test_points_export(self, result):
        points = gpd.read_file(result.outputs["points_geojson"])
        assert len(points) == 14
        assert points.crs.to_epsg() == 4326
        assert (points.geometry.geom_type == "Point").all()
        assert "60000100" not in points["complaint_id"].astype(str).tolist()

    def test_parks_export_repaired(self, result):
        parks = gpd.read_file(result.outputs["parks_geojson"])
        assert sorted(parks["signname"]) == ["Bowtie Playground", "Ice Cream Playground"]
        assert parks.geometry.is_valid.all()

    def test_distance_summary(self, result):
        summary = result.nta_distance.set_index("ntacode")
        assert summary.index.tolist() == ["MN12", "MN13"]
        assert (summary["avg_distance_to_greenspace"] >= 0).all()
        assert result.correlation["n"] == 2

    def test_log_records_outputs_and_metrics(self, result, logger):
        records = [json.loads(line) for line in logger.log_file.read_text().splitlines()]
        metrics = [r for r in records if r["message"] == "Metrics recorded"][-1]["extra"]["metrics"]
        assert metrics["complaints_retained"] == 14
        assert metrics["total_complaints"] == 12
        assert set(metrics["export_sha256"]) == {
            DEFAULT_OUTPUTS[name] for name in EXPORTS
        }


class TestDeterminism:
    """Repeated runs over the same inputs give byte-identical exports."""

    def test_exports_identical(self, source_files, logger, tmp_path):
        first = run_pipeline(source_files, logger, tmp_path / "a", tmp_path / "fig_a")
        second = run_pipeline(source_files, logger, tmp_path / "b", tmp_path / "fig_b")
        for name in EXPORTS:
            assert hash_file(first.outputs[name]) == hash_file(second.outputs[name])

    def test_indexed_method_same_distances(self, source_files, logger, tmp_path):
        pairwise = run_pipeline(source_files, logger, tmp_path / "p", tmp_path / "fig_p")
        config = {**source_files, "proximity": {"method": "indexed"}}
        indexed = run_pipeline(config, logger, tmp_path / "i", tmp_path / "fig_i")
        assert indexed.nta_distance["avg_distance_to_greenspace"].tolist() == pytest.approx(
            pairwise.nta_distance["avg_distance_to_greenspace"].tolist()
        )


class TestFailures:
    """Tests for failures surfaced before any export is written."""

    def test_missing_source_raises(self, source_files, logger, tmp_path):
        config = {**source_files}
        config["sources"] = {**source_files["sources"], "parks_geojson": str(tmp_path / "nope.geojson")}
        with pytest.raises(Exception):
            run_pipeline(config, logger, tmp_path / "out", tmp_path / "fig")
        assert not (tmp_path / "out" / DEFAULT_OUTPUTS["points_geojson"]).exists()

    def test_nta_without_code_raises(self, source_files, logger, nta_gdf, tmp_path):
        bad = tmp_path / "raw" / "bad_nta.geojson"
        nta_gdf.rename(columns={"ntacode": "nta2020"}).to_file(bad, driver="GeoJSON")
        config = {**source_files}
        config["sources"] = {**source_files["sources"], "nta_boundaries": str(bad)}
        with pytest.raises(KeyError):
            run_pipeline(config, logger, tmp_path / "out", tmp_path / "fig")


def _rewrite_complaints(config, raw_complaints_df, extra_rows):
    """Append rows to the on-disk complaints CSV the config points at."""
    df = pd.concat([raw_complaints_df, pd.DataFrame(extra_rows)], ignore_index=True)
    df.to_csv(config["sources"]["complaints_csv"], index=False)


class TestBadRowsDoNotAbort:
    """Individual bad complaint rows are tolerated, never fatal."""

    def test_point_outside_nyc_dropped_by_join(self, source_files, raw_complaints_df, logger, tmp_path):
        stray = {**raw_complaints_df.iloc[1].to_dict(), "Unique Key": "60000200",
                 "Longitude": 0.0, "Latitude": 0.0}
        _rewrite_complaints(source_files, raw_complaints_df, [stray])

        result = run_pipeline(source_files, logger, tmp_path / "out", tmp_path / "fig")

        assert len(result.complaints) == 15
        assert result.join_stats["matched_within"] == 12
        assert result.join_stats["dropped"] == 3
        assert "outside the NYC envelope" in logger.log_file.read_text()

    def test_blank_and_repeated_ids_kept(self, source_files, raw_complaints_df, logger, tmp_path):
        repeated = raw_complaints_df.iloc[2].to_dict()
        blank = {**raw_complaints_df.iloc[3].to_dict(), "Unique Key": None}
        _rewrite_complaints(source_files, raw_complaints_df, [repeated, blank])

        result = run_pipeline(source_files, logger, tmp_path / "out", tmp_path / "fig")

        assert len(result.complaints) == 16
        polygons = result.nta_polygons.set_index("ntacode")
        assert polygons.loc["MN12", "total_complaints"] == 12
        records = [json.loads(line) for line in logger.log_file.read_text().splitlines()]
        metrics = [r for r in records if r["message"] == "Metrics recorded"][-1]["extra"]["metrics"]
        assert metrics["complaint_id_issues"] == {"null_ids": 1, "duplicate_ids": 1}
