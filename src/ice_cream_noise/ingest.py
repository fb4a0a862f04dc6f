"""
Ingestion and normalization of the four source datasets.

- 311 noise complaints (CSV export)
- NTA boundaries (GeoJSON, NYC Open Data)
- NTA population (CSV, NYC Open Data)
- Parks properties (GeoJSON)

Column names are normalized to snake_case on read. Created dates are parsed
from the 311 export's fixed text format; unparseable values become NaT.
"""

import re
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
import pandas as pd

from ice_cream_noise.io_utils import read_df, read_gdf
from ice_cream_noise.qa import align_crs

# 311 export format, e.g. "07/14/2024 03:22:10 PM"
CREATED_DATE_FORMAT = "%m/%d/%Y %I:%M:%S %p"

Source = Union[str, Path]


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize column names to snake_case.

    "Created Date" -> "created_date", "Unique Key" -> "unique_key",
    "Park.Name" -> "park_name".
    """
    def _clean(name) -> str:
        name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(name).strip())
        name = re.sub(r"[^0-9a-zA-Z]+", "_", name)
        return name.strip("_").lower()

    df = df.copy()
    df.columns = [_clean(c) if c != "geometry" else c for c in df.columns]
    return df


def parse_created_date(
    values: pd.Series,
    fmt: str = CREATED_DATE_FORMAT,
) -> pd.Series:
    """
    Parse 311 created-date strings, tolerating surrounding whitespace.

    Malformed values become NaT rather than failing the batch.
    """
    text = values.astype("string").str.strip()
    return pd.to_datetime(text, format=fmt, errors="coerce")


def load_complaints(
    source: Source,
    date_format: str = CREATED_DATE_FORMAT,
    timeout: Optional[float] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Load the 311 noise complaint export.

    Every column is read as text so identifiers and codes survive intact;
    coordinates are made numeric later, during point construction.
    """
    df = read_df(source, timeout=timeout, logger=logger, dtype=str, keep_default_na=True)
    df = clean_column_names(df)

    if "created_date" in df.columns:
        df["created_date"] = parse_created_date(df["created_date"], date_format)

    if logger:
        logger.info(f"Loaded {len(df):,} complaint records from {source}")
        if "created_date" in df.columns:
            n_bad = int(df["created_date"].isna().sum())
            if n_bad:
                logger.warning(f"{n_bad:,} created_date values could not be parsed (set to NaT)")
        if "descriptor" in df.columns:
            logger.info(
                "Descriptors present",
                extra={"descriptors": sorted(df["descriptor"].dropna().unique().tolist())},
            )

    return df


def load_nta(
    source: Source,
    target_epsg: int = 4326,
    timeout: Optional[float] = None,
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Load NTA boundaries and align them to the complaint CRS.
    """
    gdf = read_gdf(source, timeout=timeout, logger=logger)
    gdf = clean_column_names(gdf)

    if "ntacode" not in gdf.columns:
        raise KeyError(f"NTA layer has no 'ntacode' column: {list(gdf.columns)}")

    gdf["ntacode"] = gdf["ntacode"].astype(str)
    gdf = align_crs(gdf, target_epsg, "NTA boundaries", logger)

    if logger:
        logger.info(f"Loaded {len(gdf)} NTA polygons")

    return gdf


def load_population(
    source: Source,
    year: Union[int, str] = 2010,
    timeout: Optional[float] = None,
    logger=None,
) -> pd.DataFrame:
    """
    Load NTA population and keep a single census year.

    The source's `nta_code` is renamed to `ntacode` to match the boundaries.
    """
    df = read_df(source, timeout=timeout, logger=logger)
    df = clean_column_names(df)
    df = df.rename(columns={"nta_code": "ntacode"})

    n_all = len(df)
    df = df[df["year"].astype(str).str.strip() == str(year)].copy()

    df["ntacode"] = df["ntacode"].astype(str)
    df["population"] = pd.to_numeric(df["population"], errors="coerce")
    df = df.reset_index(drop=True)

    if logger:
        logger.info(f"Population rows for {year}: {len(df)} / {n_all}")

    return df


def load_parks(
    source: Source,
    target_epsg: int = 4326,
    timeout: Optional[float] = None,
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Load the parks properties layer and align it to the complaint CRS.
    """
    gdf = read_gdf(source, timeout=timeout, logger=logger)
    gdf = clean_column_names(gdf)
    gdf = align_crs(gdf, target_epsg, "parks", logger)

    if logger:
        logger.info(f"Loaded {len(gdf):,} park properties")
        if "typecategory" in gdf.columns:
            logger.info(
                "Park categories present",
                extra={"typecategory": sorted(gdf["typecategory"].dropna().unique().tolist())},
            )

    return gdf
