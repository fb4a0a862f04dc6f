"""
Spatial join and per-capita aggregation utilities.

Point→NTA assignment uses a strict `within` predicate: a point on an NTA
boundary, or outside every NTA, is dropped. The per-NTA summary is then
joined back onto the full polygon layer so NTAs without complaints appear
as true zeros.
"""

from typing import Dict, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd

from ice_cream_noise.qa import assert_same_crs
from ice_cream_noise.schemas import validate_merge

RATE_SCALE = 1000


def assign_nta(
    points: gpd.GeoDataFrame,
    nta: gpd.GeoDataFrame,
    nta_cols: Sequence[str] = ("ntacode",),
) -> Tuple[gpd.GeoDataFrame, Dict]:
    """
    Assign each complaint the NTA polygon that contains it.

    Args:
        points: Complaint points
        nta: NTA polygons (same CRS as points)
        nta_cols: NTA attribute columns to carry onto the points

    Returns:
        Tuple of (points with NTA attributes, join stats dictionary)

    Raises:
        CRSError: If the layers do not share a CRS
    """
    assert_same_crs(("complaint points", points), ("NTA polygons", nta))

    cols = [c for c in nta_cols if c in nta.columns]
    joined = gpd.sjoin(
        points,
        nta[cols + [nta.geometry.name]],
        how="inner",
        predicate="within",
    )
    joined = joined.drop(columns=["index_right"], errors="ignore")
    joined = joined[joined["ntacode"].notna()].sort_index(kind="stable")

    matched = joined.index.nunique()
    stats = {
        "total_points": len(points),
        "matched_within": int(matched),
        "dropped": int(len(points) - matched),
        "nta_count": int(joined["ntacode"].nunique()),
    }

    return joined, stats


def summarize_by_nta(joined: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Count complaints per NTA.

    The points of each NTA are unioned into one (multi)point geometry; that
    interim geometry is what the summary is later matched on.
    """
    if joined.empty:
        return gpd.GeoDataFrame(
            {"ntacode": pd.Series(dtype="object"), "total_complaints": pd.Series(dtype="int64")},
            geometry=gpd.GeoSeries([], crs=joined.crs),
            crs=joined.crs,
        )

    counts = joined[["ntacode", joined.geometry.name]].copy()
    counts["total_complaints"] = 1

    summary = counts.dissolve(by="ntacode", aggfunc="sum", sort=True).reset_index()
    summary["total_complaints"] = summary["total_complaints"].astype("int64")
    return summary


def compute_rate(
    counts: pd.Series,
    population: pd.Series,
    scale: int = RATE_SCALE,
) -> pd.Series:
    """
    Complaints per `scale` residents.

    Zero, negative or missing population yields a rate of 0, never NaN/inf.
    """
    population = pd.to_numeric(population, errors="coerce")
    has_pop = population > 0
    rate = (counts * scale) / population.where(has_pop)
    return rate.where(has_pop, 0.0).astype("float64")


def attach_population(
    summary: gpd.GeoDataFrame,
    population: pd.DataFrame,
) -> gpd.GeoDataFrame:
    """
    Left-merge population onto the NTA summary and compute the rate.

    NTAs missing from the population table keep a null population and get a
    rate of 0.

    Raises:
        ValueError: If either side has duplicate ntacodes
    """
    pop_cols = [c for c in population.columns if c not in summary.columns or c == "ntacode"]
    merged = validate_merge(
        summary,
        population[pop_cols],
        on="ntacode",
        how="left",
        validate="one_to_one",
        context="NTA summary x population",
    )
    merged["complaints_per_1000"] = compute_rate(
        merged["total_complaints"], merged["population"]
    )
    return merged


def join_summary_to_polygons(
    nta: gpd.GeoDataFrame,
    summary: gpd.GeoDataFrame,
    value_cols: Sequence[str] = ("total_complaints", "population", "complaints_per_1000"),
) -> gpd.GeoDataFrame:
    """
    Re-join the NTA summary onto every NTA polygon.

    Uses an `intersects` predicate against the summary's unioned points.
    Polygons with no matching summary row are true zeros: their complaint
    count and rate are filled with 0.

    Raises:
        CRSError: If the layers do not share a CRS
    """
    assert_same_crs(("NTA polygons", nta), ("NTA summary", summary))

    cols = [c for c in value_cols if c in summary.columns]
    right = summary[cols + [summary.geometry.name]]
    # Columns already on the polygons would be suffixed by sjoin
    left = nta.drop(columns=[c for c in cols if c in nta.columns])

    if right.empty:
        joined = left.copy()
        for col in cols:
            joined[col] = np.nan
    else:
        joined = gpd.sjoin(left, right, how="left", predicate="intersects")
        joined = joined.drop(columns=["index_right"], errors="ignore")
    joined = joined.sort_index(kind="stable").reset_index(drop=True)

    for col in ("total_complaints", "complaints_per_1000"):
        if col not in joined.columns:
            joined[col] = np.nan

    joined["total_complaints"] = joined["total_complaints"].fillna(0).astype("int64")
    joined["complaints_per_1000"] = joined["complaints_per_1000"].fillna(0.0).astype("float64")

    return joined


def log_join_stats(stats: Dict, logger=None) -> None:
    """
    Log spatial join statistics.

    Args:
        stats: Statistics dictionary from assign_nta
        logger: Optional logger instance (uses print if None)
    """
    msg = (
        f"Spatial join stats: "
        f"{stats['total_points']} total, "
        f"{stats['matched_within']} within, "
        f"{stats['dropped']} dropped (boundary or outside all NTAs), "
        f"{stats['nta_count']} NTAs with complaints"
    )

    if logger:
        logger.info(msg)
        logger.log_join_stats(stats)
    else:
        print(msg)
