"""
I/O utilities with atomic writes and source-agnostic reads.

All exports are written via temp file → rename/replace, so an existing file
at the target path is fully overwritten or left untouched.
Inputs may be local paths or http(s) URLs; remote sources are fetched with a
single blocking request (no retry).
"""

import io
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

import geopandas as gpd
import pandas as pd
import requests
import yaml

from ice_cream_noise.paths import is_remote

# Socrata resource endpoints return 1,000 rows unless a limit is given
SOCRATA_ROW_LIMIT = 50000


# =============================================================================
# Atomic Write Utilities
# =============================================================================

def _reserve_temp_path(target_path: Path) -> Path:
    """Reserve a temp path beside the target (same filesystem for replace)."""
    fd, temp_path = tempfile.mkstemp(
        suffix=target_path.suffix,
        prefix=f".{target_path.stem}_",
        dir=target_path.parent,
    )
    os.close(fd)
    temp_path = Path(temp_path)
    # OGR drivers create their own file
    temp_path.unlink()
    return temp_path


def atomic_write_gdf(
    gdf: gpd.GeoDataFrame,
    target_path: Union[str, Path],
    **kwargs,
) -> Path:
    """
    Atomically write a GeoDataFrame to GeoJSON or GeoPackage.

    Args:
        gdf: GeoDataFrame to write
        target_path: Destination path (.geojson, .gpkg)
        **kwargs: Additional arguments passed to GeoDataFrame.to_file

    Returns:
        The target path
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    suffix = target_path.suffix.lower()
    if suffix == ".geojson":
        driver = "GeoJSON"
    elif suffix == ".gpkg":
        driver = "GPKG"
    else:
        raise ValueError(f"Unsupported geo format: {suffix}")

    # Layer name is written into the file; keep it independent of the temp name
    kwargs.setdefault("layer", target_path.stem)

    temp_path = _reserve_temp_path(target_path)

    try:
        gdf.to_file(temp_path, driver=driver, **kwargs)
        temp_path.replace(target_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise

    return target_path


# =============================================================================
# Read Utilities
# =============================================================================

def read_yaml(path: Union[str, Path]) -> dict:
    """Read a YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _is_socrata_resource(url: str) -> bool:
    return "/resource/" in url


def fetch_remote(
    url: str,
    timeout: Optional[float] = None,
    params: Optional[dict[str, Any]] = None,
) -> requests.Response:
    """
    Fetch a remote dataset with one blocking GET.

    Socrata resource URLs get a `$limit` parameter so whole layers come back
    in a single page. HTTP errors raise; nothing is retried.
    """
    params = dict(params or {})
    if _is_socrata_resource(url) and "$limit" not in url:
        params.setdefault("$limit", SOCRATA_ROW_LIMIT)

    response = requests.get(url, params=params or None, timeout=timeout)
    response.raise_for_status()
    return response


def warn_if_truncated(url: str, n_rows: int, logger=None) -> bool:
    """
    Warn when a Socrata page came back exactly full.

    A full page means rows past SOCRATA_ROW_LIMIT were probably left on the
    server. Returns True if the warning fired.
    """
    if not _is_socrata_resource(url) or "$limit" in url or n_rows < SOCRATA_ROW_LIMIT:
        return False

    msg = (
        f"{url} returned {n_rows:,} rows, the request limit; "
        f"the layer is probably truncated"
    )
    if logger:
        logger.warning(msg, extra={"url": url, "rows": n_rows, "limit": SOCRATA_ROW_LIMIT})
    else:
        print(f"WARNING: {msg}")
    return True


def read_gdf(
    source: Union[str, Path],
    timeout: Optional[float] = None,
    logger=None,
    **kwargs,
) -> gpd.GeoDataFrame:
    """
    Read a GeoDataFrame from a local file or a URL.

    Args:
        source: Path to a geo file, or an http(s) URL serving GeoJSON
        timeout: Request timeout in seconds for remote sources (None = wait)
        logger: Receives the truncation warning for remote sources
        **kwargs: Additional arguments passed to the reader

    Returns:
        GeoDataFrame
    """
    if is_remote(source):
        response = fetch_remote(str(source), timeout=timeout)
        gdf = gpd.read_file(io.BytesIO(response.content), **kwargs)
        warn_if_truncated(str(source), len(gdf), logger)
        return gdf

    path = Path(source)
    if path.suffix.lower() == ".parquet":
        return gpd.read_parquet(path, **kwargs)
    return gpd.read_file(path, **kwargs)


def read_df(
    source: Union[str, Path],
    timeout: Optional[float] = None,
    logger=None,
    **kwargs,
) -> pd.DataFrame:
    """
    Read a DataFrame from a local CSV/Parquet file or a CSV URL.

    Args:
        source: Path to data file, or an http(s) URL serving CSV
        timeout: Request timeout in seconds for remote sources (None = wait)
        logger: Receives the truncation warning for remote sources
        **kwargs: Additional arguments passed to reader

    Returns:
        DataFrame
    """
    if is_remote(source):
        response = fetch_remote(str(source), timeout=timeout)
        df = pd.read_csv(io.StringIO(response.text), **kwargs)
        warn_if_truncated(str(source), len(df), logger)
        return df

    path = Path(source)
    suffix = path.suffix.lower()

    if suffix == ".parquet":
        return pd.read_parquet(path, **kwargs)
    elif suffix == ".csv":
        return pd.read_csv(path, **kwargs)
    else:
        raise ValueError(f"Unsupported format: {suffix}")
