"""
Proximity of complaints to recreation-oriented parks.

Distances are measured in a projected CRS (EPSG:32618, UTM 18N, metres by
default) so the result has a linear unit. A point on or inside a park is at
distance 0.

Two equivalent methods:
- pairwise: full points x parks distance matrix, row-wise minimum
- indexed:  nearest park through the parks spatial index (sjoin_nearest)
"""

from typing import Dict, Iterable, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from scipy import stats

from ice_cream_noise.qa import (
    assert_same_crs,
    report_invalid_geometries,
    repair_geometries,
    safe_reproject,
)

PARK_CATEGORIES = [
    "Neighborhood Park",
    "Playground",
    "Jointly Operated Playground",
    "Community Park",
    "Recreational Field/Courts",
    "Flagship Park",
]

DISTANCE_EPSG = 32618
DISTANCE_METHODS = ("pairwise", "indexed")

# Attributes worth printing when a park geometry is reported invalid
PARK_ID_COLS = ["gispropnum", "signname", "name311", "typecategory"]


def filter_parks(
    parks: gpd.GeoDataFrame,
    categories: Iterable[str] = PARK_CATEGORIES,
) -> gpd.GeoDataFrame:
    """Keep parks whose typecategory is in the allow-list."""
    return parks[parks["typecategory"].isin(list(categories))].reset_index(drop=True)


def prepare_parks(
    parks: gpd.GeoDataFrame,
    categories: Iterable[str] = PARK_CATEGORIES,
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Filter parks to the allow-list, report invalid geometries and repair them.

    Invalid parks are kept in repaired form, never dropped.
    """
    filtered = filter_parks(parks, categories)
    if logger:
        logger.info(f"Parks in recreation categories: {len(filtered):,} / {len(parks):,}")

    report_invalid_geometries(filtered, "parks", id_cols=PARK_ID_COLS, logger=logger)
    return repair_geometries(filtered)


def _pairwise_min_distance(points: gpd.GeoSeries, parks: gpd.GeoSeries) -> np.ndarray:
    # O(points x parks); fine for a few thousand complaints and parks
    matrix = shapely.distance(
        np.asarray(points.values)[:, np.newaxis],
        np.asarray(parks.values)[np.newaxis, :],
    )
    return matrix.min(axis=1)


def _indexed_min_distance(points: gpd.GeoDataFrame, parks: gpd.GeoDataFrame) -> np.ndarray:
    left = gpd.GeoDataFrame(geometry=points.geometry.values, crs=points.crs)
    right = gpd.GeoDataFrame(geometry=parks.geometry.values, crs=parks.crs)
    nearest = gpd.sjoin_nearest(left, right, how="left", distance_col="_distance")
    # Equidistant parks produce one row each; they share the same distance
    return nearest.groupby(level=0)["_distance"].min().reindex(left.index).to_numpy()


def nearest_park_distance(
    points: gpd.GeoDataFrame,
    parks: gpd.GeoDataFrame,
    epsg: int = DISTANCE_EPSG,
    method: str = "pairwise",
) -> pd.Series:
    """
    Distance from every complaint point to its nearest park polygon.

    Args:
        points: Complaint points
        parks: Park polygons (same CRS as points)
        epsg: Projected CRS the distances are measured in
        method: "pairwise" or "indexed"

    Returns:
        Series aligned to points.index, in the projection's linear unit.
        NaN for every point when there are no non-empty parks.

    Raises:
        ValueError: For an unknown method
        CRSError: If the layers do not share a CRS
    """
    if method not in DISTANCE_METHODS:
        raise ValueError(f"Unknown distance method: {method}. Use one of {DISTANCE_METHODS}")

    assert_same_crs(("complaint points", points), ("parks", parks))

    # Empty or null park shapes have no distance; both methods skip them
    parks = parks[parks.geometry.notna() & ~parks.geometry.is_empty]

    if points.empty:
        return pd.Series(dtype="float64", index=points.index, name="distance_to_greenspace")
    if parks.empty:
        return pd.Series(np.nan, index=points.index, name="distance_to_greenspace")

    points_proj = safe_reproject(points, epsg, "points for distance")
    parks_proj = safe_reproject(parks, epsg, "parks for distance")

    if method == "pairwise":
        values = _pairwise_min_distance(points_proj.geometry, parks_proj.geometry)
    else:
        values = _indexed_min_distance(points_proj, parks_proj)

    return pd.Series(
        np.asarray(values, dtype="float64"),
        index=points.index,
        name="distance_to_greenspace",
    )


def summarize_distance_by_nta(
    points: pd.DataFrame,
    distance_col: str = "distance_to_greenspace",
) -> pd.DataFrame:
    """
    Per-NTA mean distance to the nearest park (nulls excluded) and count.
    """
    summary = (
        points.groupby("ntacode", sort=True)
        .agg(
            avg_distance_to_greenspace=(distance_col, "mean"),
            total_complaints=(distance_col, "size"),
        )
        .reset_index()
    )
    summary["avg_distance_to_greenspace"] = summary["avg_distance_to_greenspace"].astype("float64")
    summary["total_complaints"] = summary["total_complaints"].astype("int64")
    return summary


def distance_complaint_correlation(
    summary: pd.DataFrame,
    x_col: str = "avg_distance_to_greenspace",
    y_col: str = "total_complaints",
) -> Dict[str, Optional[float]]:
    """
    Spearman and Pearson correlation of mean park distance vs. complaints.

    Returns NaN statistics when fewer than 3 NTAs have a distance, or when
    either variable is constant.
    """
    valid = summary[[x_col, y_col]].dropna()
    n = len(valid)

    result = {
        "n": n,
        "spearman_r": np.nan,
        "spearman_p": np.nan,
        "pearson_r": np.nan,
        "pearson_p": np.nan,
    }

    if n < 3 or valid[x_col].nunique() < 2 or valid[y_col].nunique() < 2:
        return result

    s_r, s_p = stats.spearmanr(valid[x_col], valid[y_col])
    p_r, p_p = stats.pearsonr(valid[x_col], valid[y_col])

    result.update({
        "spearman_r": float(s_r),
        "spearman_p": float(s_p),
        "pearson_r": float(p_r),
        "pearson_p": float(p_p),
    })
    return result
