"""
Configuration constants for the GEOID pipeline.
"""

import os
from pathlib import Path

API_BASE_URL = "https://api.census.gov/data"
API_TIMEOUT = 30  # seconds per request

CENSUS_API_KEY_ENV = "CENSUS_API_KEY"
CACHE_DIR_ENV = "CENSUS_GEOIDS_CACHE"

TIGER_BASE_URL = "https://www2.census.gov/geo/tiger/TIGER2010"
COUNTY_TABLE_URL = (
    "https://www2.census.gov/geo/docs/reference/codes/files/national_county.txt"
)

DEFAULT_YEAR = 2010
SUPPORTED_YEARS = (1990, 2000, 2010)

# Decennial Summary File 1 carries complete-count population for every level
SUMMARY_FILE = "sf1"

DEFAULT_PARALLEL_WORKERS = 4


def default_cache_dir() -> Path:
    """Cache directory from the environment, or ~/.census_cache/geoids."""
    env_dir = os.environ.get(CACHE_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".census_cache" / "geoids"
