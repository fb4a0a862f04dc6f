"""
Hashing utilities for reproducibility checks.

Config digests are logged with every run and export hashes are recorded so
two runs over identical inputs can be compared byte for byte.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Union


def hash_file(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Compute hash of a file.

    Args:
        path: Path to file
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Hex digest of file hash
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {path}")

    h = hashlib.new(algorithm)

    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)

    return h.hexdigest()


def hash_string(s: str, algorithm: str = "sha256") -> str:
    h = hashlib.new(algorithm)
    h.update(s.encode("utf-8"))
    return h.hexdigest()


def hash_dict(d: Dict[str, Any], algorithm: str = "sha256") -> str:
    """
    Compute hash of a dictionary (via JSON serialization).

    Keys are sorted so the digest does not depend on insertion order.
    """
    s = json.dumps(d, sort_keys=True, default=str)
    return hash_string(s, algorithm)
