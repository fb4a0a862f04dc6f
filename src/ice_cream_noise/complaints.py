"""
Complaint filtering and point construction.

Keeps only the ice cream truck descriptor, drops records without a location
and builds EPSG:4326 point geometries. Every layer loaded afterwards is
aligned to this CRS before it is joined against the points.
"""

import geopandas as gpd
import pandas as pd

ICE_CREAM_DESCRIPTOR = "Noise, Ice Cream Truck (NR4)"

# Source column -> complaint record column
COMPLAINT_COLUMNS = {
    "unique_key": "complaint_id",
    "created_date": "created_date",
    "complaint_type": "complaint_type",
    "descriptor": "descriptor",
    "city": "city",
    "community_board": "community_board",
    "borough": "borough",
    "latitude": "latitude",
    "longitude": "longitude",
}


def filter_descriptor(
    df: pd.DataFrame,
    descriptor: str = ICE_CREAM_DESCRIPTOR,
) -> pd.DataFrame:
    """Keep rows whose descriptor exactly matches the target category."""
    return df[df["descriptor"] == descriptor].copy()


def select_complaint_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Project to the complaint record columns, renaming unique_key."""
    missing = [c for c in COMPLAINT_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Complaint data missing columns: {missing}")
    return df[list(COMPLAINT_COLUMNS)].rename(columns=COMPLAINT_COLUMNS)


def build_complaint_points(
    df: pd.DataFrame,
    epsg: int = 4326,
) -> gpd.GeoDataFrame:
    """
    Build point geometries from longitude/latitude.

    Rows without a numeric longitude or latitude are dropped. The coordinate
    columns are consumed into the geometry.
    """
    df = df.copy()
    df["longitude"] = pd.to_numeric(df["longitude"], errors="coerce")
    df["latitude"] = pd.to_numeric(df["latitude"], errors="coerce")

    has_coords = df["longitude"].notna() & df["latitude"].notna()
    df = df[has_coords]

    gdf = gpd.GeoDataFrame(
        df.drop(columns=["longitude", "latitude"]),
        geometry=gpd.points_from_xy(df["longitude"], df["latitude"]),
        crs=f"EPSG:{epsg}",
    )
    return gdf.reset_index(drop=True)


def prepare_complaints(
    df: pd.DataFrame,
    descriptor: str = ICE_CREAM_DESCRIPTOR,
    epsg: int = 4326,
    logger=None,
) -> gpd.GeoDataFrame:
    """
    Filter to one descriptor and geocode what remains.
    """
    filtered = filter_descriptor(df, descriptor)
    selected = select_complaint_columns(filtered)
    points = build_complaint_points(selected, epsg)

    if logger:
        logger.info(f"Records matching '{descriptor}': {len(filtered):,} / {len(df):,}")
        logger.info(f"Records with coordinates: {len(points):,} / {len(filtered):,}")

    return points


def report_complaint_id_issues(points: pd.DataFrame, logger=None) -> dict:
    """
    Count blank and repeated complaint ids and warn about them.

    Such rows stay in the batch; the id is carried as an attribute only.
    """
    ids = points["complaint_id"]
    issues = {
        "null_ids": int(ids.isna().sum()),
        "duplicate_ids": int(ids.dropna().duplicated().sum()),
    }
    if issues["null_ids"] or issues["duplicate_ids"]:
        msg = (
            f"complaint_id: {issues['null_ids']} blank, "
            f"{issues['duplicate_ids']} repeated (rows kept)"
        )
        if logger:
            logger.warning(msg, extra=issues)
        else:
            print(msg)
    return issues
