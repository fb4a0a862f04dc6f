#!/usr/bin/env python3
"""
run_ice_cream_analysis.py

Spatial analysis of NYC 311 ice cream truck noise complaints.

- Filter 311 noise complaints to "Noise, Ice Cream Truck (NR4)"
- Spatial join to NTAs, complaints per 1,000 residents (2010 population)
- Distance from each complaint to the nearest recreation park
- Choropleth, distance histogram, distance-vs-complaints scatter, overlay maps

Inputs (configs/params.yml):
- data/raw/311_Noise_Complaints_20241111.csv
- data/raw/Parks Properties_20241115.geojson
- NTA boundaries and NTA population from NYC Open Data (fetched at run time)

Outputs:
- data/processed/ice_cream_complaints_points.geojson
- data/processed/nta_complaints_polygons.geojson
- data/processed/park_space_edited.geojson
- reports/figures/*.png, reports/figures/parks_complaints_overlay.html
"""

from ice_cream_noise.hashing import hash_dict
from ice_cream_noise.io_utils import read_yaml
from ice_cream_noise.logging_utils import get_logger
from ice_cream_noise.paths import CONFIG_DIR, ensure_dirs_exist
from ice_cream_noise.pipeline import run_pipeline


def main():
    """Main entry point."""
    ensure_dirs_exist()

    with get_logger("run_ice_cream_analysis") as logger:
        logger.info("Starting run_ice_cream_analysis.py")

        config = read_yaml(CONFIG_DIR / "params.yml")
        logger.log_config(config, config_digest=hash_dict(config))

        try:
            result = run_pipeline(config, logger)

            polygons = result.nta_polygons
            top = polygons.loc[polygons["complaints_per_1000"].idxmax()]

            logger.info("=" * 60)
            logger.info("Ice cream truck complaint summary:")
            logger.info(f"  Complaints retained: {len(result.complaints):,}")
            logger.info(f"  Complaints inside an NTA: {len(result.complaints_with_nta):,}")
            logger.info(f"  NTAs with complaints: {len(result.nta_summary)} / {len(polygons)}")
            logger.info(
                f"  Highest rate: {top['ntacode']} ({top['complaints_per_1000']:.2f} per 1k)"
            )
            logger.info(f"  Parks used for proximity: {len(result.parks):,}")
            if result.correlation["n"] >= 3:
                logger.info(
                    f"  Distance vs complaints Spearman: {result.correlation['spearman_r']:.3f} "
                    f"(n={result.correlation['n']})"
                )
            logger.info("=" * 60)

            logger.info("SUCCESS: ice cream truck complaint analysis complete")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
