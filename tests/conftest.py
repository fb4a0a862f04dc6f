"""
Shared synthetic layers for the pipeline tests.

Three NTAs side by side in lower Manhattan coordinates:

    MN12  [-74.00, -73.99]   10 complaints, population 5,000
    MN13  [-73.99, -73.98]    2 complaints, population 0
    BK01  [-73.97, -73.96]    no complaints, population 3,000

One complaint sits exactly on the MN12/MN13 edge and one lies outside every
NTA; both must be dropped by the point-in-polygon join.
"""

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point, Polygon, box

from ice_cream_noise.logging_utils import JSONLLogger

DESCRIPTOR = "Noise, Ice Cream Truck (NR4)"

MN12_COORDS = [
    (x, y)
    for y in (40.703, 40.707)
    for x in (-73.999, -73.997, -73.995, -73.993, -73.991)
]
MN13_COORDS = [(-73.985, 40.705), (-73.983, 40.708)]
BOUNDARY_COORD = (-73.99, 40.705)
OUTSIDE_COORD = (-73.95, 40.705)

# Self-intersecting bowtie inside MN13
BOWTIE = Polygon([
    (-73.988, 40.701),
    (-73.986, 40.703),
    (-73.986, 40.701),
    (-73.988, 40.703),
    (-73.988, 40.701),
])


@pytest.fixture
def nta_gdf() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "ntacode": ["MN12", "MN13", "BK01"],
            "ntaname": ["Upper West Side", "Hudson Yards-Chelsea", "Brooklyn Heights"],
        },
        geometry=[
            box(-74.00, 40.70, -73.99, 40.71),
            box(-73.99, 40.70, -73.98, 40.71),
            box(-73.97, 40.70, -73.96, 40.71),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def population_df() -> pd.DataFrame:
    return pd.DataFrame({
        "borough": ["Manhattan", "Manhattan", "Brooklyn", "Manhattan", "Manhattan", "Brooklyn"],
        "year": [2000, 2000, 2000, 2010, 2010, 2010],
        "fips_county_code": [61, 61, 47, 61, 61, 47],
        "nta_code": ["MN12", "MN13", "BK01", "MN12", "MN13", "BK01"],
        "nta_name": ["Upper West Side", "Hudson Yards-Chelsea", "Brooklyn Heights"] * 2,
        "population": [4000, 100, 2500, 5000, 0, 3000],
    })


@pytest.fixture
def raw_complaints_df() -> pd.DataFrame:
    """A 311 export as it comes off disk: title-case headers, text dates."""
    coords = MN12_COORDS + MN13_COORDS + [BOUNDARY_COORD, OUTSIDE_COORD]
    rows = []
    for i, (lon, lat) in enumerate(coords):
        rows.append({
            "Unique Key": str(60000000 + i),
            "Created Date": f" 07/{(i % 28) + 1:02d}/2024 03:22:10 PM ",
            "Complaint Type": "Noise - Vehicle",
            "Descriptor": DESCRIPTOR,
            "City": "NEW YORK",
            "Community Board": "07 MANHATTAN",
            "Borough": "MANHATTAN",
            "Latitude": lat,
            "Longitude": lon,
            "Incident Zip": "10024",
        })

    # Malformed date is kept, with a null timestamp
    rows[0]["Created Date"] = "not a date"

    # Different descriptor: excluded
    rows.append({
        **rows[1],
        "Unique Key": "60000100",
        "Descriptor": "Loud Music/Party",
    })
    # No location: excluded
    rows.append({
        **rows[1],
        "Unique Key": "60000101",
        "Latitude": np.nan,
        "Longitude": np.nan,
    })
    return pd.DataFrame(rows)


@pytest.fixture
def complaint_points() -> gpd.GeoDataFrame:
    coords = MN12_COORDS + MN13_COORDS + [BOUNDARY_COORD, OUTSIDE_COORD]
    return gpd.GeoDataFrame(
        {
            "complaint_id": [str(60000000 + i) for i in range(len(coords))],
            "descriptor": DESCRIPTOR,
        },
        geometry=[Point(xy) for xy in coords],
        crs="EPSG:4326",
    )


@pytest.fixture
def parks_gdf() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "gispropnum": ["M001", "M002", "M003"],
            "signname": ["Ice Cream Playground", "Bowtie Playground", "Quiet Cemetery"],
            "typecategory": ["Neighborhood Park", "Playground", "Cemetery"],
        },
        geometry=[
            box(-73.998, 40.702, -73.996, 40.704),
            BOWTIE,
            box(-73.984, 40.706, -73.982, 40.709),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def source_files(tmp_path, raw_complaints_df, nta_gdf, population_df, parks_gdf):
    """Write every pipeline input to disk and return a config pointing at them."""
    raw_dir = tmp_path / "raw"
    raw_dir.mkdir()

    complaints_csv = raw_dir / "311_Noise_Complaints.csv"
    raw_complaints_df.to_csv(complaints_csv, index=False)

    nta_geojson = raw_dir / "nta.geojson"
    nta_gdf.to_file(nta_geojson, driver="GeoJSON")

    population_csv = raw_dir / "nta_population.csv"
    population_df.to_csv(population_csv, index=False)

    parks_geojson = raw_dir / "Parks Properties.geojson"
    parks_gdf.to_file(parks_geojson, driver="GeoJSON")

    return {
        "sources": {
            "complaints_csv": str(complaints_csv),
            "parks_geojson": str(parks_geojson),
            "nta_boundaries": str(nta_geojson),
            "nta_population": str(population_csv),
        },
        "complaints": {"descriptor": DESCRIPTOR},
        "population": {"year": 2010},
        "crs": {"geographic_epsg": 4326, "distance_epsg": 32618},
        "proximity": {"method": "pairwise"},
    }


@pytest.fixture
def logger(tmp_path):
    log = JSONLLogger("test_run", log_dir=tmp_path / "logs")
    yield log
    log.close()
