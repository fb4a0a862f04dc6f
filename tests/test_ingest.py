"""
Tests for source ingestion and normalization.

- snake_case column names
- fixed-format created dates, whitespace tolerant, NaT on bad rows
- single-year population with ntacode key
- remote sources fetched once, Socrata row limit applied
"""

import io

import geopandas as gpd
import pandas as pd
import pytest
import requests

from ice_cream_noise import io_utils
from ice_cream_noise.ingest import (
    clean_column_names,
    load_complaints,
    load_nta,
    load_parks,
    load_population,
    parse_created_date,
)


class TestCleanColumnNames:
    """Tests for header normalization."""

    def test_title_case_with_spaces(self):
        df = pd.DataFrame(columns=["Unique Key", "Created Date", "Community Board"])
        assert list(clean_column_names(df).columns) == [
            "unique_key", "created_date", "community_board"
        ]

    def test_punctuation_collapsed(self):
        df = pd.DataFrame(columns=["Park.Name", "  Incident  Zip ", "X/Y (State Plane)"])
        assert list(clean_column_names(df).columns) == [
            "park_name", "incident_zip", "x_y_state_plane"
        ]

    def test_camel_case_split(self):
        df = pd.DataFrame(columns=["BoroCode", "NTACode", "typecategory"])
        assert list(clean_column_names(df).columns) == ["boro_code", "ntacode", "typecategory"]

    def test_does_not_mutate_input(self):
        df = pd.DataFrame(columns=["Unique Key"])
        clean_column_names(df)
        assert list(df.columns) == ["Unique Key"]


class TestParseCreatedDate:
    """Tests for created-date parsing."""

    def test_parses_fixed_format(self):
        parsed = parse_created_date(pd.Series(["07/14/2024 03:22:10 PM"]))
        assert parsed.iloc[0] == pd.Timestamp("2024-07-14 15:22:10")

    def test_tolerates_surrounding_whitespace(self):
        parsed = parse_created_date(pd.Series(["   07/14/2024 03:22:10 AM  "]))
        assert parsed.iloc[0] == pd.Timestamp("2024-07-14 03:22:10")

    def test_malformed_becomes_nat(self):
        parsed = parse_created_date(
            pd.Series(["07/14/2024 03:22:10 PM", "not a date", None, "2024-07-14"])
        )
        assert parsed.iloc[0] == pd.Timestamp("2024-07-14 15:22:10")
        assert parsed.iloc[1:].isna().all()


class TestLoadComplaints:
    """Tests for the 311 export loader."""

    def test_columns_normalized_and_dates_parsed(self, source_files):
        df = load_complaints(source_files["sources"]["complaints_csv"])
        assert "unique_key" in df.columns
        assert "descriptor" in df.columns
        assert pd.api.types.is_datetime64_any_dtype(df["created_date"])

    def test_bad_date_does_not_drop_row(self, source_files, raw_complaints_df):
        df = load_complaints(source_files["sources"]["complaints_csv"])
        assert len(df) == len(raw_complaints_df)
        assert df["created_date"].isna().sum() == 1

    def test_identifiers_kept_as_text(self, source_files):
        df = load_complaints(source_files["sources"]["complaints_csv"])
        assert df["unique_key"].iloc[0] == "60000000"


class TestLoadPopulation:
    """Tests for the NTA population loader."""

    def test_single_year(self, source_files):
        df = load_population(source_files["sources"]["nta_population"], year=2010)
        assert len(df) == 3
        assert set(df["year"].astype(str)) == {"2010"}

    def test_ntacode_renamed(self, source_files):
        df = load_population(source_files["sources"]["nta_population"], year=2010)
        assert "ntacode" in df.columns
        assert "nta_code" not in df.columns

    def test_year_as_string(self, source_files):
        df = load_population(source_files["sources"]["nta_population"], year="2000")
        assert df.set_index("ntacode").loc["MN12", "population"] == 4000


class TestLoadLayers:
    """Tests for the boundary and parks loaders."""

    def test_nta_crs_4326(self, source_files):
        gdf = load_nta(source_files["sources"]["nta_boundaries"])
        assert gdf.crs.to_epsg() == 4326
        assert gdf["ntacode"].tolist() == ["MN12", "MN13", "BK01"]

    def test_nta_requires_ntacode(self, tmp_path, nta_gdf):
        path = tmp_path / "nta_no_code.geojson"
        nta_gdf.drop(columns="ntacode").to_file(path, driver="GeoJSON")
        with pytest.raises(KeyError):
            load_nta(path)

    def test_parks_reprojected_to_target(self, tmp_path, parks_gdf):
        path = tmp_path / "parks_2263.gpkg"
        parks_gdf.to_crs(2263).to_file(path, driver="GPKG")
        gdf = load_parks(path, target_epsg=4326)
        assert gdf.crs.to_epsg() == 4326
        assert gdf.total_bounds[0] == pytest.approx(-73.998, abs=1e-6)


class _FakeResponse:
    def __init__(self, content: bytes, status: int = 200):
        self.content = content
        self.text = content.decode("utf-8")
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class TestRemoteSources:
    """Tests for URL sources."""

    def test_socrata_limit_added(self, monkeypatch, population_df):
        calls = []

        def fake_get(url, params=None, timeout=None):
            calls.append((url, params, timeout))
            return _FakeResponse(population_df.to_csv(index=False).encode("utf-8"))

        monkeypatch.setattr(io_utils.requests, "get", fake_get)

        df = load_population("https://data.cityofnewyork.us/resource/swpk-hqdp.csv", year=2010)

        assert len(df) == 3
        assert len(calls) == 1
        url, params, timeout = calls[0]
        assert params == {"$limit": io_utils.SOCRATA_ROW_LIMIT}
        assert timeout is None

    def test_remote_geojson(self, monkeypatch, nta_gdf):
        payload = nta_gdf.to_json().encode("utf-8")
        monkeypatch.setattr(
            io_utils.requests, "get",
            lambda url, params=None, timeout=None: _FakeResponse(payload),
        )

        gdf = load_nta("https://data.cityofnewyork.us/resource/93vf-i5bz.geojson")

        assert isinstance(gdf, gpd.GeoDataFrame)
        assert len(gdf) == 3
        assert gdf.crs.to_epsg() == 4326

    def test_http_error_propagates(self, monkeypatch):
        monkeypatch.setattr(
            io_utils.requests, "get",
            lambda url, params=None, timeout=None: _FakeResponse(b"", status=503),
        )
        with pytest.raises(requests.HTTPError):
            load_population("https://data.cityofnewyork.us/resource/swpk-hqdp.csv")

    def test_full_page_warns_truncation(self, monkeypatch, population_df, logger):
        monkeypatch.setattr(io_utils, "SOCRATA_ROW_LIMIT", len(population_df))
        monkeypatch.setattr(
            io_utils.requests, "get",
            lambda url, params=None, timeout=None: _FakeResponse(
                population_df.to_csv(index=False).encode("utf-8")
            ),
        )

        df = load_population(
            "https://data.cityofnewyork.us/resource/swpk-hqdp.csv", year=2010, logger=logger
        )

        assert len(df) == 3
        assert "probably truncated" in logger.log_file.read_text()

    def test_short_page_no_warning(self, monkeypatch, population_df, logger):
        monkeypatch.setattr(
            io_utils.requests, "get",
            lambda url, params=None, timeout=None: _FakeResponse(
                population_df.to_csv(index=False).encode("utf-8")
            ),
        )

        load_population("https://data.cityofnewyork.us/resource/swpk-hqdp.csv", logger=logger)

        assert "truncated" not in logger.log_file.read_text()

    def test_explicit_limit_in_url_not_flagged(self):
        url = "https://data.cityofnewyork.us/resource/erm2-nwe9.csv?$limit=10"
        assert not io_utils.warn_if_truncated(url, io_utils.SOCRATA_ROW_LIMIT)
