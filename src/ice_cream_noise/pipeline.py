"""
The ice cream truck complaint analysis, end to end.

Five stages run strictly in sequence, each consuming the previous stage's
output:

1. Ingestion          complaints CSV, NTA boundaries, NTA population, parks
2. Filter & geocode   one descriptor, drop missing coordinates, EPSG:4326 points
3. Join & aggregate   point-in-NTA, counts, population, rate, re-join, zero-fill
4. Proximity          park allow-list, validity repair, nearest-park distance
5. Present & export   GeoJSON exports, static figures, interactive map

Every run recomputes everything from the configured sources.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import geopandas as gpd
import pandas as pd

from ice_cream_noise.complaints import (
    ICE_CREAM_DESCRIPTOR,
    prepare_complaints,
    report_complaint_id_issues,
)
from ice_cream_noise.ingest import (
    CREATED_DATE_FORMAT,
    load_complaints,
    load_nta,
    load_parks,
    load_population,
)
from ice_cream_noise.io_utils import atomic_write_gdf
from ice_cream_noise.joins import (
    assign_nta,
    attach_population,
    join_summary_to_polygons,
    log_join_stats,
    summarize_by_nta,
)
from ice_cream_noise.paths import FIGURES_DIR, PROCESSED_DIR, resolve_source
from ice_cream_noise.plotting import (
    build_interactive_map,
    plot_distance_histogram,
    plot_distance_vs_complaints,
    plot_parks_overlay,
    plot_rate_choropleth,
)
from ice_cream_noise.proximity import (
    DISTANCE_EPSG,
    PARK_CATEGORIES,
    distance_complaint_correlation,
    nearest_park_distance,
    prepare_parks,
    summarize_distance_by_nta,
)
from ice_cream_noise.qa import (
    assert_same_crs,
    check_bounds_epsg4326,
    compute_na_rates,
    describe_crs,
    report_out_of_bounds,
    summarize_distances,
)
from ice_cream_noise.schemas import (
    COMPLAINT_POINTS_SCHEMA,
    NTA_DISTANCE_SCHEMA,
    NTA_POLYGONS_SCHEMA,
    NTA_SUMMARY_SCHEMA,
    PARKS_SCHEMA,
    validate_schema,
)

DEFAULT_OUTPUTS = {
    "points_geojson": "ice_cream_complaints_points.geojson",
    "polygons_geojson": "nta_complaints_polygons.geojson",
    "parks_geojson": "park_space_edited.geojson",
    "choropleth_png": "complaints_per_1000_choropleth.png",
    "distance_histogram_png": "distance_to_park_histogram.png",
    "distance_scatter_png": "distance_vs_complaints_scatter.png",
    "overlay_png": "parks_complaints_overlay.png",
    "overlay_html": "parks_complaints_overlay.html",
}

# Metres for the default UTM projection; EPSG:2263 would be US feet
DISTANCE_UNITS = {32618: "meters", 2263: "feet"}


@dataclass
class PipelineResult:
    """Every layer the pipeline produced, plus run bookkeeping."""
    complaints: gpd.GeoDataFrame
    complaints_with_nta: gpd.GeoDataFrame
    nta_summary: gpd.GeoDataFrame
    nta_polygons: gpd.GeoDataFrame
    parks: gpd.GeoDataFrame
    nta_distance: pd.DataFrame
    join_stats: Dict[str, Any]
    correlation: Dict[str, Any]
    outputs: Dict[str, Path] = field(default_factory=dict)


def run_pipeline(
    config: Dict[str, Any],
    logger,
    export_dir: Optional[Path] = None,
    figures_dir: Optional[Path] = None,
) -> PipelineResult:
    """
    Run all five stages with the given configuration.

    Args:
        config: Parsed params.yml
        logger: JSONLLogger for this run
        export_dir: Where GeoJSON exports go (default data/processed)
        figures_dir: Where figures go (default reports/figures)

    Returns:
        PipelineResult with every intermediate layer and the output paths
    """
    export_dir = Path(export_dir) if export_dir is not None else PROCESSED_DIR
    figures_dir = Path(figures_dir) if figures_dir is not None else FIGURES_DIR

    sources = config["sources"]
    crs_config = config.get("crs", {})
    complaint_config = config.get("complaints", {})
    proximity_config = config.get("proximity", {})
    output_names = {**DEFAULT_OUTPUTS, **config.get("outputs", {})}

    timeout = config.get("requests", {}).get("timeout")
    geo_epsg = crs_config.get("geographic_epsg", 4326)
    distance_epsg = crs_config.get("distance_epsg", DISTANCE_EPSG)
    distance_unit = DISTANCE_UNITS.get(distance_epsg, "CRS units")
    descriptor = complaint_config.get("descriptor", ICE_CREAM_DESCRIPTOR)

    inputs = {name: str(resolve_source(src)) for name, src in sources.items()}
    logger.log_inputs(inputs)

    # -------------------------------------------------------------------------
    # Stage 1: ingestion
    # -------------------------------------------------------------------------
    logger.log_stage(1, "loading sources")
    complaints_raw = load_complaints(
        inputs["complaints_csv"],
        date_format=complaint_config.get("created_date_format", CREATED_DATE_FORMAT),
        timeout=timeout,
        logger=logger,
    )
    nta = load_nta(inputs["nta_boundaries"], geo_epsg, timeout=timeout, logger=logger)
    population = load_population(
        inputs["nta_population"],
        year=config.get("population", {}).get("year", 2010),
        timeout=timeout,
        logger=logger,
    )
    parks_raw = load_parks(inputs["parks_geojson"], geo_epsg, timeout=timeout, logger=logger)

    # -------------------------------------------------------------------------
    # Stage 2: filter & geocode
    # -------------------------------------------------------------------------
    logger.log_stage(2, "filtering complaints and building points")
    complaints = prepare_complaints(complaints_raw, descriptor, geo_epsg, logger)
    id_issues = report_complaint_id_issues(complaints, logger)

    n_outside = 0
    if config.get("qa", {}).get("check_bounds", True) and geo_epsg == 4326:
        check_bounds_epsg4326(nta, context="NTA boundaries")
        n_outside = report_out_of_bounds(complaints, "ice cream complaint points", logger=logger)
    validate_schema(complaints, COMPLAINT_POINTS_SCHEMA, "complaint points")

    # -------------------------------------------------------------------------
    # Stage 3: spatial join & per-capita aggregation
    # -------------------------------------------------------------------------
    logger.log_stage(3, "joining complaints to NTAs")
    joined, join_stats = assign_nta(
        complaints,
        nta,
        nta_cols=config.get("nta", {}).get("carry_columns", ["ntacode"]),
    )
    log_join_stats(join_stats, logger)

    nta_summary = attach_population(summarize_by_nta(joined), population)
    validate_schema(nta_summary, NTA_SUMMARY_SCHEMA, "NTA summary")

    n_no_pop = int(nta_summary["population"].isna().sum())
    if n_no_pop:
        logger.warning(f"{n_no_pop} NTAs with complaints have no population row (rate set to 0)")

    nta_polygons = join_summary_to_polygons(nta, nta_summary)
    validate_schema(nta_polygons, NTA_POLYGONS_SCHEMA, "NTA polygons")

    logger.info(
        f"NTAs with complaints: {len(nta_summary)} / {len(nta_polygons)}; "
        f"max rate {nta_polygons['complaints_per_1000'].max():.2f} per 1k"
    )

    # -------------------------------------------------------------------------
    # Stage 4: proximity to parks
    # -------------------------------------------------------------------------
    logger.log_stage(4, "park proximity")
    parks = prepare_parks(
        parks_raw,
        categories=config.get("parks", {}).get("categories", PARK_CATEGORIES),
        logger=logger,
    )
    validate_schema(parks, PARKS_SCHEMA, "parks")

    logger.log_crs_info(describe_crs(complaints=joined, nta=nta, parks=parks))
    assert_same_crs(("complaints", joined), ("NTA polygons", nta), ("parks", parks))

    joined = joined.copy()
    joined["distance_to_greenspace"] = nearest_park_distance(
        joined,
        parks,
        epsg=distance_epsg,
        method=proximity_config.get("method", "pairwise"),
    )
    distance_stats = summarize_distances(joined["distance_to_greenspace"])
    logger.info(f"Distance to nearest park ({distance_unit})", extra=distance_stats)

    nta_distance = summarize_distance_by_nta(joined)
    validate_schema(nta_distance, NTA_DISTANCE_SCHEMA, "NTA distance summary")

    correlation = distance_complaint_correlation(nta_distance)
    logger.info("Distance vs. complaints correlation", extra=correlation)

    # -------------------------------------------------------------------------
    # Stage 5: presentation & export
    # -------------------------------------------------------------------------
    logger.log_stage(5, "exports and figures")
    outputs = {
        "points_geojson": atomic_write_gdf(complaints, export_dir / output_names["points_geojson"]),
        "polygons_geojson": atomic_write_gdf(nta_polygons, export_dir / output_names["polygons_geojson"]),
        "parks_geojson": atomic_write_gdf(parks, export_dir / output_names["parks_geojson"]),
    }
    export_sha256 = {path.name: logger.log_export(name, path) for name, path in outputs.items()}

    outputs["choropleth_png"] = plot_rate_choropleth(
        nta_polygons, figures_dir / output_names["choropleth_png"], logger=logger
    )
    outputs["distance_histogram_png"] = plot_distance_histogram(
        joined["distance_to_greenspace"],
        figures_dir / output_names["distance_histogram_png"],
        unit=distance_unit,
        logger=logger,
    )
    outputs["distance_scatter_png"] = plot_distance_vs_complaints(
        nta_distance,
        figures_dir / output_names["distance_scatter_png"],
        correlation=correlation,
        unit=distance_unit,
        logger=logger,
    )
    outputs["overlay_png"] = plot_parks_overlay(
        parks, complaints, figures_dir / output_names["overlay_png"], logger=logger
    )
    outputs["overlay_html"] = build_interactive_map(
        parks, complaints, figures_dir / output_names["overlay_html"], logger=logger
    )

    logger.log_metrics({
        "complaints_raw": len(complaints_raw),
        "complaints_retained": len(complaints),
        "complaints_in_nta": len(joined),
        "nta_with_complaints": len(nta_summary),
        "nta_polygons": len(nta_polygons),
        "parks": len(parks),
        "total_complaints": int(nta_polygons["total_complaints"].sum()),
        "mean_rate_per_1k": float(nta_polygons["complaints_per_1000"].mean()),
        "complaint_na_rates": compute_na_rates(complaints.drop(columns="geometry")),
        "distance": distance_stats,
        "complaints_outside_nyc": n_outside,
        "complaint_id_issues": id_issues,
        "export_sha256": export_sha256,
    })

    return PipelineResult(
        complaints=complaints,
        complaints_with_nta=joined,
        nta_summary=nta_summary,
        nta_polygons=nta_polygons,
        parks=parks,
        nta_distance=nta_distance,
        join_stats=join_stats,
        correlation=correlation,
        outputs=outputs,
    )
