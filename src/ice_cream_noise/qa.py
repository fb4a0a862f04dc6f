"""
Quality assurance utilities for geospatial layers.

- CRS mismatches are hard errors; layers are aligned with to_crs(), and a CRS
  is only ever *assigned* to a layer that has none.
- Bounds: boundary layers must lie in the NYC envelope; stray complaint
  points are reported and left for the NTA join to drop.
- Geometry validity is reported and repaired, never silently dropped.
"""

from typing import Optional, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS


# =============================================================================
# CRS Validation
# =============================================================================

class CRSError(Exception):
    """Raised when CRS validation fails."""
    pass


class BoundsError(Exception):
    """Raised when bounds validation fails."""
    pass


def assert_crs_not_none(gdf: gpd.GeoDataFrame, context: str = "") -> None:
    """
    Assert that the GeoDataFrame has a CRS set.

    Raises:
        CRSError: If CRS is None
    """
    if gdf.crs is None:
        msg = "GeoDataFrame has no CRS set"
        if context:
            msg = f"{msg} ({context})"
        raise CRSError(msg)


def get_crs_epsg(gdf: gpd.GeoDataFrame) -> Optional[int]:
    """
    Get the EPSG code of a GeoDataFrame's CRS.

    Returns:
        EPSG code or None if CRS is not set or not identifiable
    """
    if gdf.crs is None:
        return None
    return gdf.crs.to_epsg()


def safe_reproject(
    gdf: gpd.GeoDataFrame,
    target_epsg: int,
    context: str = "",
) -> gpd.GeoDataFrame:
    """
    Safely reproject a GeoDataFrame to target CRS.

    Only uses to_crs(), never set_crs with override.

    Raises:
        CRSError: If source CRS is None
    """
    assert_crs_not_none(gdf, context)

    target_crs = CRS.from_epsg(target_epsg)

    if gdf.crs.equals(target_crs):
        return gdf

    return gdf.to_crs(target_crs)


def align_crs(
    gdf: gpd.GeoDataFrame,
    target_epsg: int,
    context: str = "",
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Bring a layer onto the target CRS before any spatial predicate.

    A layer read without CRS metadata is assigned the target CRS; a layer
    with a different CRS is reprojected.
    """
    if gdf.crs is None:
        if logger:
            logger.warning(f"No CRS on {context or 'layer'}; assigning EPSG:{target_epsg}")
        return gdf.set_crs(epsg=target_epsg)
    return safe_reproject(gdf, target_epsg, context)


def assert_same_crs(*layers: Tuple[str, gpd.GeoDataFrame]) -> None:
    """
    Assert that every (name, layer) pair shares one CRS.

    Raises:
        CRSError: If any layer has no CRS or disagrees with the first
    """
    if not layers:
        return

    first_name, first = layers[0]
    assert_crs_not_none(first, first_name)

    for name, gdf in layers[1:]:
        assert_crs_not_none(gdf, name)
        if not gdf.crs.equals(first.crs):
            raise CRSError(
                f"CRS mismatch: {name} is {gdf.crs}, {first_name} is {first.crs}"
            )


def describe_crs(**layers: gpd.GeoDataFrame) -> dict:
    """Summarize the CRS of each named layer for logging."""
    return {
        name: {
            "epsg": get_crs_epsg(gdf),
            "name": gdf.crs.name if gdf.crs is not None else None,
        }
        for name, gdf in layers.items()
    }


# =============================================================================
# Bounds Validation
# =============================================================================

# Plausible NYC envelope in EPSG:4326 (lon_min, lat_min, lon_max, lat_max)
NYC_BOUNDS_4326 = (-75.0, 40.0, -73.0, 41.5)


def get_bounds(gdf: gpd.GeoDataFrame) -> Tuple[float, float, float, float]:
    """
    Get bounds of a GeoDataFrame as (minx, miny, maxx, maxy).
    """
    return tuple(gdf.total_bounds)


def check_bounds_epsg4326(
    gdf: gpd.GeoDataFrame,
    bounds: Tuple[float, float, float, float] = NYC_BOUNDS_4326,
    context: str = "",
) -> bool:
    """
    Check that a whole layer (e.g. NTA boundaries) lies in the NYC envelope.

    An empty layer passes.

    Raises:
        BoundsError: If bounds are outside expected range
    """
    if gdf.empty:
        return True

    lon_min, lat_min, lon_max, lat_max = bounds
    minx, miny, maxx, maxy = get_bounds(gdf)

    errors = []
    if minx < lon_min or maxx > lon_max:
        errors.append(f"Longitude out of range: [{minx}, {maxx}] not in [{lon_min}, {lon_max}]")
    if miny < lat_min or maxy > lat_max:
        errors.append(f"Latitude out of range: [{miny}, {maxy}] not in [{lat_min}, {lat_max}]")

    if errors:
        msg = "EPSG:4326 bounds check failed: " + "; ".join(errors)
        if context:
            msg = f"{msg} ({context})"
        raise BoundsError(msg)

    return True


def outside_bounds_mask(
    points: gpd.GeoDataFrame,
    bounds: Tuple[float, float, float, float] = NYC_BOUNDS_4326,
) -> pd.Series:
    """True for each point outside the envelope. Individual points never raise."""
    lon_min, lat_min, lon_max, lat_max = bounds
    x = points.geometry.x
    y = points.geometry.y
    return ~(x.between(lon_min, lon_max) & y.between(lat_min, lat_max))


def report_out_of_bounds(
    points: gpd.GeoDataFrame,
    context: str = "",
    id_col: str = "complaint_id",
    logger=None,
) -> int:
    """
    Warn about points outside the NYC envelope and return how many there are.

    The points are left in place; the point-in-NTA join drops them.
    """
    outside = outside_bounds_mask(points)
    n_outside = int(outside.sum())
    if n_outside:
        ids = points.loc[outside, id_col].head(10).tolist() if id_col in points.columns else []
        msg = f"{n_outside} points outside the NYC envelope ({context}); left for the NTA join to drop"
        if logger:
            logger.warning(msg, extra={"examples": ids})
        else:
            print(msg)
    return n_outside


# =============================================================================
# Geometry Validation
# =============================================================================

def check_geometry_validity(gdf: gpd.GeoDataFrame) -> pd.DataFrame:
    """
    Check geometry validity and return a summary per row.
    """
    return pd.DataFrame({
        "is_valid": gdf.geometry.is_valid,
        "is_empty": gdf.geometry.is_empty,
        "geom_type": gdf.geometry.geom_type,
        "reason": gdf.geometry.is_valid_reason(),
    })


def report_invalid_geometries(
    gdf: gpd.GeoDataFrame,
    context: str = "",
    id_cols: Optional[list[str]] = None,
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Find invalid geometries and report them without halting.

    Args:
        gdf: Layer to check
        context: Name of the layer for messages
        id_cols: Attribute columns to include in the report
        logger: Optional logger instance (uses print if None)

    Returns:
        The invalid rows (possibly empty)
    """
    validity = check_geometry_validity(gdf)
    invalid = gdf[~validity["is_valid"]]

    if invalid.empty:
        msg = f"All {len(gdf)} geometries valid ({context})"
        if logger:
            logger.info(msg)
        else:
            print(msg)
        return invalid

    cols = [c for c in (id_cols or []) if c in invalid.columns]
    report = invalid[cols].copy()
    report["reason"] = validity.loc[invalid.index, "reason"]
    records = report.reset_index().to_dict(orient="records")

    msg = f"{len(invalid)} invalid geometries found ({context}); repairing"
    if logger:
        logger.warning(msg, extra={"invalid_geometries": records})
    else:
        print(msg)
        print(report.to_string())

    return invalid


def repair_geometries(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Repair invalid geometries with make_valid.

    make_valid returns valid inputs unchanged, so no row is dropped and only
    broken rings are rewritten.
    """
    gdf = gdf.copy()
    gdf[gdf.geometry.name] = gdf.geometry.make_valid()
    return gdf


# =============================================================================
# Data Quality Summaries
# =============================================================================

def compute_na_rates(df: pd.DataFrame) -> dict[str, float]:
    """
    Compute NA rates for all columns in a DataFrame.

    Returns:
        Dictionary of column_name -> NA rate (0-1)
    """
    if len(df) == 0:
        return {col: float("nan") for col in df.columns}
    return (df.isna().sum() / len(df)).to_dict()


def summarize_distances(values: pd.Series) -> dict:
    """
    Summary statistics for a distance column, for logging.
    """
    valid = values.dropna()
    if valid.empty:
        return {"n": 0, "min": None, "mean": None, "median": None, "p95": None, "max": None}
    return {
        "n": int(len(valid)),
        "min": float(valid.min()),
        "mean": float(valid.mean()),
        "median": float(valid.median()),
        "p95": float(np.percentile(valid, 95)),
        "max": float(valid.max()),
    }
