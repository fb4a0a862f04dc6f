"""
Figures for the ice cream truck complaint analysis.

Every function renders one figure to disk and returns the path; nothing
computed here feeds back into the pipeline.
"""

from pathlib import Path
from typing import Optional

import folium
import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from ice_cream_noise.qa import safe_reproject

NYC_CENTER = [40.7128, -74.0060]
MISSING_COLOR = "#e5e5e5"


def _save(fig, output_path: Path, logger=None) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    if logger:
        logger.info(f"Saved figure: {output_path}")
    return output_path


def plot_rate_choropleth(
    nta_polygons: gpd.GeoDataFrame,
    output_path: Path,
    rate_col: str = "complaints_per_1000",
    logger=None,
) -> Path:
    """
    Choropleth of complaints per 1,000 residents by NTA.

    Missing values are drawn in a neutral grey.
    """
    fig, ax = plt.subplots(figsize=(10, 10))

    nta_polygons.plot(
        column=rate_col,
        cmap="plasma",
        edgecolor="white",
        linewidth=0.2,
        legend=True,
        legend_kwds={"label": "Complaints/1,000", "shrink": 0.6},
        missing_kwds={"color": MISSING_COLOR, "label": "No data"},
        ax=ax,
    )

    ax.set_axis_off()
    ax.set_title("Per 1,000 People by NTA", fontsize=11)
    fig.suptitle("Ice Cream Truck Noise Complaints", fontsize=14, fontweight="bold")

    return _save(fig, output_path, logger)


def plot_distance_histogram(
    distances: pd.Series,
    output_path: Path,
    unit: str = "meters",
    bins: int = 30,
    logger=None,
) -> Path:
    """Histogram of per-complaint distance to the nearest park."""
    fig, ax = plt.subplots(figsize=(10, 6))

    ax.hist(distances.dropna(), bins=bins, color="lightgreen", alpha=0.7, edgecolor="white")

    ax.set_title("Number of Ice Cream Truck Noise Complaints by Distance to the Nearest Park")
    ax.set_xlabel(f"Distance to Nearest Park ({unit})")
    ax.set_ylabel("Count of Complaints")
    ax.grid(axis="y", alpha=0.3)

    return _save(fig, output_path, logger)


def plot_distance_vs_complaints(
    nta_distance: pd.DataFrame,
    output_path: Path,
    correlation: Optional[dict] = None,
    unit: str = "meters",
    logger=None,
) -> Path:
    """
    Scatter of mean distance to greenspace vs. total complaints per NTA.
    """
    fig, ax = plt.subplots(figsize=(10, 6))

    ax.scatter(
        nta_distance["avg_distance_to_greenspace"],
        nta_distance["total_complaints"],
        color="blue",
        alpha=0.8,
    )

    if correlation and not np.isnan(correlation.get("spearman_r", np.nan)):
        ax.text(
            0.98, 0.95,
            f"Spearman ρ = {correlation['spearman_r']:.2f} (n={correlation['n']})",
            transform=ax.transAxes,
            ha="right",
            va="top",
            fontsize=10,
        )

    ax.set_title("Average Distance to Greenspace vs Total Complaints by NTA")
    ax.set_xlabel(f"Average Distance to Greenspace ({unit})")
    ax.set_ylabel("Total Complaints")
    ax.grid(alpha=0.3)

    return _save(fig, output_path, logger)


def plot_parks_overlay(
    parks: gpd.GeoDataFrame,
    points: gpd.GeoDataFrame,
    output_path: Path,
    logger=None,
) -> Path:
    """Parks (green) with complaint points (red) on top."""
    fig, ax = plt.subplots(figsize=(10, 10))

    if not parks.empty:
        parks.plot(ax=ax, color="green", alpha=0.5)
    if not points.empty:
        points.plot(ax=ax, color="red", markersize=4)

    ax.set_title("Ice Cream Truck Complaints and Parks")
    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")

    return _save(fig, output_path, logger)


def build_interactive_map(
    parks: gpd.GeoDataFrame,
    points: gpd.GeoDataFrame,
    output_path: Path,
    logger=None,
) -> Path:
    """
    Folium rendition of the parks/complaints overlay.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    m = folium.Map(location=NYC_CENTER, zoom_start=11, tiles="cartodbpositron")

    if not parks.empty:
        parks_4326 = safe_reproject(parks, 4326, "parks for web map")
        label_cols = [c for c in ("signname", "typecategory") if c in parks_4326.columns]
        layer = parks_4326[label_cols + [parks_4326.geometry.name]].copy()
        for col in label_cols:
            layer[col] = layer[col].astype(str)

        folium.GeoJson(
            layer,
            name="Parks",
            style_function=lambda x: {
                "fillColor": "green",
                "color": "darkgreen",
                "weight": 1,
                "fillOpacity": 0.5,
            },
            tooltip=folium.GeoJsonTooltip(fields=label_cols) if label_cols else None,
        ).add_to(m)

    if not points.empty:
        points_4326 = safe_reproject(points, 4326, "points for web map")
        complaints = folium.FeatureGroup(name="Complaints")
        for _, row in points_4326.iterrows():
            folium.CircleMarker(
                location=[row.geometry.y, row.geometry.x],
                radius=3,
                popup=f"Created: {row.get('created_date')}",
                color="red",
                fill=True,
                fill_color="red",
            ).add_to(complaints)
        complaints.add_to(m)

    folium.LayerControl().add_to(m)
    m.save(str(output_path))

    if logger:
        logger.info(f"Saved interactive map: {output_path}")

    return output_path
