"""
Schemas for the tables each stage hands to the next.

A failed check raises SchemaError naming every broken column, before
anything is exported. Only rules these tables need are expressed: a dtype
family, nulls, duplicate keys and a lower bound for counts, rates and
distances.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import geopandas as gpd
import pandas as pd

DTYPE_CHECKS = {
    "integer": pd.api.types.is_integer_dtype,
    "float64": pd.api.types.is_float_dtype,
    "datetime": pd.api.types.is_datetime64_any_dtype,
    "text": lambda s: pd.api.types.is_object_dtype(s) or pd.api.types.is_string_dtype(s),
}


@dataclass
class ColumnSpec:
    """Rules for one column. dtype is a DTYPE_CHECKS key or "geometry"."""
    name: str
    dtype: Optional[str] = None
    nullable: bool = True
    unique: bool = False
    min_value: Optional[float] = None

    def check(self, df: pd.DataFrame) -> List[str]:
        if self.dtype == "geometry":
            if not isinstance(df, gpd.GeoDataFrame):
                return [f"{self.name}: expected a GeoDataFrame"]
            col = df.geometry
        elif self.name in df.columns:
            col = df[self.name]
        else:
            return [f"{self.name}: missing"]

        problems = []
        if self.dtype in DTYPE_CHECKS and not DTYPE_CHECKS[self.dtype](col):
            problems.append(f"{self.name}: expected {self.dtype}, got {col.dtype}")
        if not self.nullable and col.isna().any():
            problems.append(f"{self.name}: {int(col.isna().sum())} NA values")
        if self.unique and col.duplicated().any():
            problems.append(f"{self.name}: {int(col.duplicated().sum())} duplicate values")
        if self.min_value is not None and (col < self.min_value).any():
            problems.append(f"{self.name}: values below min {self.min_value}")
        return problems


@dataclass
class Schema:
    name: str
    columns: List[ColumnSpec]
    min_rows: int = 0


class SchemaError(Exception):
    """Raised when a table breaks its schema."""
    pass


# =============================================================================
# Pipeline tables
# =============================================================================

# Stage 2: filtered complaint points. Ids may repeat or be blank in the source.
COMPLAINT_POINTS_SCHEMA = Schema(
    name="complaint_points",
    columns=[
        ColumnSpec("complaint_id", nullable=True),
        ColumnSpec("created_date", dtype="datetime", nullable=True),
        ColumnSpec("descriptor", dtype="text", nullable=False),
        ColumnSpec("geometry", dtype="geometry", nullable=False),
    ],
)

# Stage 3: one row per NTA that received complaints
NTA_SUMMARY_SCHEMA = Schema(
    name="nta_summary",
    columns=[
        ColumnSpec("ntacode", nullable=False, unique=True),
        ColumnSpec("total_complaints", dtype="integer", nullable=False, min_value=1),
        ColumnSpec("population", nullable=True, min_value=0),
        ColumnSpec("complaints_per_1000", dtype="float64", nullable=False, min_value=0),
    ],
)

# Export: every NTA polygon, zero-filled
NTA_POLYGONS_SCHEMA = Schema(
    name="nta_polygons",
    columns=[
        ColumnSpec("ntacode", nullable=False),
        ColumnSpec("total_complaints", dtype="integer", nullable=False, min_value=0),
        ColumnSpec("complaints_per_1000", dtype="float64", nullable=False, min_value=0),
        ColumnSpec("geometry", dtype="geometry", nullable=False),
    ],
    min_rows=1,
)

# Export: recreation parks after repair
PARKS_SCHEMA = Schema(
    name="parks",
    columns=[
        ColumnSpec("typecategory", dtype="text", nullable=False),
        ColumnSpec("geometry", dtype="geometry", nullable=False),
    ],
)

# Stage 4: per-NTA proximity summary
NTA_DISTANCE_SCHEMA = Schema(
    name="nta_distance",
    columns=[
        ColumnSpec("ntacode", nullable=False, unique=True),
        ColumnSpec("avg_distance_to_greenspace", dtype="float64", nullable=True, min_value=0),
        ColumnSpec("total_complaints", dtype="integer", nullable=False, min_value=1),
    ],
)


def validate_schema(
    df: Union[pd.DataFrame, gpd.GeoDataFrame],
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Check a table against its schema.

    Returns:
        List of problems (empty if valid)

    Raises:
        SchemaError: If raise_on_error and any problem was found
    """
    errors = []
    if len(df) < schema.min_rows:
        errors.append(f"expected at least {schema.min_rows} rows, got {len(df)}")
    for spec in schema.columns:
        errors.extend(spec.check(df))

    if errors and raise_on_error:
        where = f" ({context})" if context else ""
        raise SchemaError(f"{schema.name}{where} failed validation:\n  " + "\n  ".join(errors))
    return errors


def validate_merge(
    left: pd.DataFrame,
    right: pd.DataFrame,
    on: Union[str, Sequence[str]],
    how: str = "left",
    validate: str = "one_to_one",
    context: str = "",
) -> pd.DataFrame:
    """
    Merge with pandas key validation; duplicate keys are named in the error.

    Raises:
        ValueError: If the key relationship does not hold
    """
    try:
        return left.merge(right, on=on, how=how, validate=validate)
    except pd.errors.MergeError as e:
        keys = [on] if isinstance(on, str) else list(on)
        dupes = {
            side: frame.loc[frame.duplicated(keys, keep=False), keys]
            .drop_duplicates()
            .head(5)
            .to_dict(orient="records")
            for side, frame in (("left", left), ("right", right))
        }
        raise ValueError(f"Merge validation failed ({context}): {e}; duplicate keys: {dupes}") from e
