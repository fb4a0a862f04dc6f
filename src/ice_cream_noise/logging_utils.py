"""
Run logs for the ice cream complaint pipeline.

One JSONL file per run under logs/. Each record carries the run id, the stage
the pipeline was in when it was written (null before stage 1), a level, a
message and an optional payload. Dedicated events:

- run start (library versions) and config (with its digest)
- stage boundaries
- inputs, join stats, CRS info, metrics
- one record per export, with its sha256
"""

import json
import logging
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ice_cream_noise.hashing import hash_file
from ice_cream_noise.paths import LOGS_DIR


def generate_run_id() -> str:
    """UTC timestamp plus a short random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{stamp}_{uuid.uuid4().hex[:8]}"


def get_versions() -> dict[str, str]:
    """Versions of the libraries whose behaviour shapes the outputs."""
    import geopandas
    import matplotlib
    import numpy
    import pandas
    import pyproj
    import shapely

    versions = {"python": sys.version.split()[0]}
    for module in (geopandas, pandas, numpy, pyproj, shapely, matplotlib):
        versions[module.__name__] = module.__version__
    return versions


class JSONLLogger:
    """
    Structured run log, mirrored to the console.

    Usage:
        with get_logger("run_ice_cream_analysis") as logger:
            logger.log_stage(1, "loading sources")
            logger.log_join_stats({"total_points": 120, "dropped": 3})
            logger.log_export("polygons_geojson", path)
    """

    def __init__(
        self,
        script_name: str,
        run_id: Optional[str] = None,
        log_dir: Optional[Path] = None,
    ):
        self.script_name = script_name
        self.run_id = run_id or generate_run_id()
        self.stage: Optional[int] = None

        log_dir = Path(log_dir) if log_dir is not None else LOGS_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = log_dir / f"{script_name}_{self.run_id}.jsonl"
        self._fh = open(self.log_file, "a", encoding="utf-8")

        self._console = logging.StreamHandler(sys.stdout)
        self._console.setLevel(logging.INFO)
        self._console.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        self._logger = logging.getLogger(f"ice_cream_noise.{script_name}")
        self._logger.setLevel(logging.INFO)
        self._logger.addHandler(self._console)

        self._record("INFO", "Run started", {"versions": get_versions()})

    def _record(self, level: str, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "script_name": self.script_name,
            "run_id": self.run_id,
            "stage": self.stage,
            "level": level,
            "message": message,
        }
        if extra:
            record["extra"] = extra
        self._fh.write(json.dumps(record, default=str) + "\n")
        self._fh.flush()

    def _emit(self, level: str, message: str, extra: Optional[dict[str, Any]]) -> None:
        self._record(level, message, extra)
        self._logger.log(getattr(logging, level), message)

    def info(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("INFO", message, extra)

    def warning(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("WARNING", message, extra)

    def error(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._emit("ERROR", message, extra)

    # -------------------------------------------------------------------------
    # Pipeline events (file only; the console gets the plain messages)
    # -------------------------------------------------------------------------

    def log_stage(self, number: int, title: str) -> None:
        """Mark the start of a pipeline stage; later records carry its number."""
        self.stage = number
        self._emit("INFO", f"Stage {number}: {title}", None)

    def log_config(self, config: dict[str, Any], config_digest: Optional[str] = None) -> None:
        self._record("INFO", "Configuration loaded", {"config": config, "config_digest": config_digest})

    def log_inputs(self, inputs: dict[str, str]) -> None:
        self._record("INFO", "Inputs registered", {"inputs": inputs})

    def log_crs_info(self, crs_info: dict[str, Any]) -> None:
        self._record("INFO", "CRS info recorded", {"crs_info": crs_info})

    def log_join_stats(self, join_stats: dict[str, Any]) -> None:
        self._record("INFO", "Join stats recorded", {"join_stats": join_stats})

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self._record("INFO", "Metrics recorded", {"metrics": metrics})

    def log_export(self, name: str, path: Path) -> str:
        """Record a written export with its size and sha256; returns the digest."""
        path = Path(path)
        digest = hash_file(path)
        self._emit("INFO", f"Wrote: {path}", None)
        self._record(
            "INFO",
            "Export written",
            {"output": name, "path": str(path), "bytes": path.stat().st_size, "sha256": digest},
        )
        return digest

    def close(self) -> None:
        self._record("INFO", "Logger closing")
        self._fh.close()
        self._logger.removeHandler(self._console)

    def __enter__(self) -> "JSONLLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.error(
                f"Run failed in stage {self.stage}: {exc_type.__name__}: {exc_val}",
                extra={"traceback": traceback.format_exception(exc_type, exc_val, exc_tb)},
            )
        self.close()


def get_logger(
    script_name: str,
    run_id: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> JSONLLogger:
    return JSONLLogger(script_name=script_name, run_id=run_id, log_dir=log_dir)
