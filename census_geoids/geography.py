"""
Geography - Census granularities, FIPS code lookups and TIGER/Line boundaries.
"""

import enum
import io
import logging
import os
import re
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import geopandas as gpd
import pandas as pd
import requests

from .config import API_TIMEOUT, COUNTY_TABLE_URL, TIGER_BASE_URL, default_cache_dir
from .exceptions import ExternalServiceError, InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


class GeographyLevel(enum.Enum):
    """
    Census granularities in hierarchy order, largest to smallest.

    A GEOID at each level is its parent's GEOID with a fixed number of
    digits appended, so every level has a fixed GEOID length.
    """

    STATE = "state"
    COUNTY = "county"
    TRACT = "tract"
    BLOCK_GROUP = "block group"
    BLOCK = "block"

    @property
    def geo_length(self) -> int:
        """Number of characters in a GEOID at this level."""
        return GEOID_LENGTHS[self]

    def __str__(self) -> str:
        return self.value


GEOID_LENGTHS = {
    GeographyLevel.STATE: 2,
    GeographyLevel.COUNTY: 5,
    GeographyLevel.TRACT: 11,
    GeographyLevel.BLOCK_GROUP: 12,
    GeographyLevel.BLOCK: 15,
}

GEOGRAPHY_NAMES = [level.value for level in GeographyLevel]


def match_geography(geography: Union[str, GeographyLevel]) -> GeographyLevel:
    """
    Match a geography level name, case-insensitively.

    An exact name wins; otherwise any unambiguous prefix of one of the level
    names is accepted, so "tr" is a tract but "blo" could be either a block
    or a block group and is rejected.

    Args:
        geography: Level name or abbreviation.

    Returns:
        The matching GeographyLevel.
    """
    if isinstance(geography, GeographyLevel):
        return geography
    if not isinstance(geography, str):
        raise InvalidArgumentError(
            f"geography must be a string, one of {GEOGRAPHY_NAMES}",
            argument="geography",
            value=geography,
            allowed=GEOGRAPHY_NAMES,
        )

    name = " ".join(geography.replace("_", " ").lower().split())
    if name in GEOGRAPHY_NAMES:
        return GeographyLevel(name)

    candidates = [level for level in GeographyLevel if name and level.value.startswith(name)]
    if len(candidates) == 1:
        return candidates[0]

    raise InvalidArgumentError(
        f"'geography' should be one of {', '.join(repr(n) for n in GEOGRAPHY_NAMES)}; "
        f"got {geography!r}",
        argument="geography",
        value=geography,
        allowed=GEOGRAPHY_NAMES,
    )


# State FIPS codes
FIPS_CODES = {
    "01": "Alabama", "02": "Alaska", "04": "Arizona", "05": "Arkansas",
    "06": "California", "08": "Colorado", "09": "Connecticut", "10": "Delaware",
    "11": "District of Columbia", "12": "Florida", "13": "Georgia", "15": "Hawaii",
    "16": "Idaho", "17": "Illinois", "18": "Indiana", "19": "Iowa",
    "20": "Kansas", "21": "Kentucky", "22": "Louisiana", "23": "Maine",
    "24": "Maryland", "25": "Massachusetts", "26": "Michigan", "27": "Minnesota",
    "28": "Mississippi", "29": "Missouri", "30": "Montana", "31": "Nebraska",
    "32": "Nevada", "33": "New Hampshire", "34": "New Jersey", "35": "New Mexico",
    "36": "New York", "37": "North Carolina", "38": "North Dakota", "39": "Ohio",
    "40": "Oklahoma", "41": "Oregon", "42": "Pennsylvania", "44": "Rhode Island",
    "45": "South Carolina", "46": "South Dakota", "47": "Tennessee", "48": "Texas",
    "49": "Utah", "50": "Vermont", "51": "Virginia", "53": "Washington",
    "54": "West Virginia", "55": "Wisconsin", "56": "Wyoming", "72": "Puerto Rico"
}

STATE_ABBREVIATIONS = {
    "AL": "01", "AK": "02", "AZ": "04", "AR": "05", "CA": "06",
    "CO": "08", "CT": "09", "DE": "10", "DC": "11", "FL": "12",
    "GA": "13", "HI": "15", "ID": "16", "IL": "17", "IN": "18",
    "IA": "19", "KS": "20", "KY": "21", "LA": "22", "ME": "23",
    "MD": "24", "MA": "25", "MI": "26", "MN": "27", "MS": "28",
    "MO": "29", "MT": "30", "NE": "31", "NV": "32", "NH": "33",
    "NJ": "34", "NM": "35", "NY": "36", "NC": "37", "ND": "38",
    "OH": "39", "OK": "40", "OR": "41", "PA": "42", "RI": "44",
    "SC": "45", "SD": "46", "TN": "47", "TX": "48", "UT": "49",
    "VT": "50", "VA": "51", "WA": "53", "WV": "54", "WI": "55",
    "WY": "56", "PR": "72"
}

# State name to FIPS lookup
STATE_NAME_TO_FIPS = {v.lower(): k for k, v in FIPS_CODES.items()}

COUNTY_TABLE_COLUMNS = ["state_abbr", "state_code", "county_code", "county_name", "class_code"]

# Trailing legal/statistical area type words, e.g. "New York County" -> "New York"
COUNTY_TYPE_SUFFIX = re.compile(
    r"\s+(county|parish|city and borough|borough|census area|municipality|"
    r"municipio|city)$"
)


class FipsLookup:
    """
    Resolves state and county names to FIPS codes.

    States come from the built-in FIPS table. Counties come from the Census
    Bureau's national county file, downloaded once and cached as CSV.
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        county_table: Optional[pd.DataFrame] = None
    ):
        """
        Initialize the lookup.

        Args:
            cache_dir: Directory for caching the county code table.
            county_table: Pre-loaded county table with COUNTY_TABLE_COLUMNS
                (skips the download).
        """
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self._county_table = county_table

    def state_code(self, state: str) -> str:
        """
        Get FIPS code for a state.

        Args:
            state: State name, USPS abbreviation, or FIPS code.

        Returns:
            Two-digit FIPS code.
        """
        value = str(state).strip()

        if value.isdigit():
            code = value.zfill(2)
            if code in FIPS_CODES:
                return code
        elif value.upper() in STATE_ABBREVIATIONS:
            return STATE_ABBREVIATIONS[value.upper()]
        elif value.lower() in STATE_NAME_TO_FIPS:
            return STATE_NAME_TO_FIPS[value.lower()]

        raise NotFoundError(f"Unknown state: {state!r}", kind="state", value=state)

    def county_code(self, state_code: str, county: str) -> str:
        """
        Get the three-digit county FIPS code within a state.

        Args:
            state_code: Two-digit state FIPS code.
            county: County name ("New York" or "New York County"), three-digit
                county code, or five-digit state+county code.

        Returns:
            Three-digit county FIPS code.
        """
        value = str(county).strip()

        if value.isdigit():
            if len(value) == 3:
                return value
            if len(value) == 5:
                if value[:2] != state_code:
                    raise InvalidArgumentError(
                        f"County {value!r} is not in state {state_code!r}",
                        argument="county",
                        value=county,
                    )
                return value[2:]
            raise InvalidArgumentError(
                f"County codes must have 3 or 5 digits; got {county!r}",
                argument="county",
                value=county,
            )

        table = self.county_table()
        in_state = table[table["state_code"] == state_code]
        names = in_state["county_name"].str.lower()
        target = " ".join(value.lower().split())

        exact = in_state[names == target]
        if len(exact) == 1:
            return exact.iloc[0]["county_code"]

        short_names = names.str.replace(COUNTY_TYPE_SUFFIX, "", regex=True)
        matches = in_state[short_names == target]

        if len(matches) == 1:
            return matches.iloc[0]["county_code"]
        if len(matches) > 1:
            candidates = matches["county_name"].tolist()
            raise InvalidArgumentError(
                f"County {county!r} is ambiguous in state {state_code}: "
                f"{', '.join(candidates)}",
                argument="county",
                value=county,
                allowed=candidates,
            )

        raise NotFoundError(
            f"Unknown county {county!r} in state {state_code}",
            kind="county",
            value=county,
        )

    def county_table(self) -> pd.DataFrame:
        """Load (and cache) the national county code table."""
        if self._county_table is not None:
            return self._county_table

        cache_path = self.cache_dir / "national_county.csv"
        if cache_path.exists():
            logger.info(f"Loading cached county codes: {cache_path}")
            self._county_table = pd.read_csv(cache_path, dtype=str)
            return self._county_table

        logger.info(f"Downloading county codes: {COUNTY_TABLE_URL}")
        try:
            response = requests.get(COUNTY_TABLE_URL, timeout=API_TIMEOUT)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(
                f"Failed to download county codes: {e}", scope="county lookup"
            ) from e

        table = pd.read_csv(
            io.StringIO(response.content.decode("latin-1")),
            header=None,
            names=COUNTY_TABLE_COLUMNS,
            dtype=str,
        )

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        table.to_csv(cache_path, index=False)
        logger.info(f"Cached county codes: {cache_path}")

        self._county_table = table
        return table


# TIGER2010 folder and file layer per level; 2000 and 2010 vintages only
TIGER_LAYERS = {
    GeographyLevel.STATE: ("STATE", "state"),
    GeographyLevel.COUNTY: ("COUNTY", "county"),
    GeographyLevel.TRACT: ("TRACT", "tract"),
    GeographyLevel.BLOCK_GROUP: ("BG", "bg"),
    GeographyLevel.BLOCK: ("TABBLOCK", "tabblock"),
}

TIGER_GEOID_COLUMNS = {
    2000: {
        GeographyLevel.STATE: "STATEFP00",
        GeographyLevel.COUNTY: "CNTYIDFP00",
        GeographyLevel.TRACT: "CTIDFP00",
        GeographyLevel.BLOCK_GROUP: "BKGPIDFP00",
        GeographyLevel.BLOCK: "BLKIDFP00",
    },
    2010: {level: "GEOID10" for level in GeographyLevel},
}

TIGER_YEARS = tuple(TIGER_GEOID_COLUMNS)


class GeographyManager:
    """
    Manager for TIGER/Line boundaries of decennial census geographies.

    Handles:
    - TIGER/Line shapefile downloading (one file per state)
    - Geometry caching as GeoPackage

    Query scopes in the same state share one download; concurrent requests
    for the same boundaries wait for it instead of fetching again.
    """

    def __init__(self, cache_dir: Optional[Path] = None):
        """
        Initialize geography manager.

        Args:
            cache_dir: Directory for caching downloaded shapefiles.
        """
        self.cache_dir = Path(cache_dir or default_cache_dir()) / "tiger"
        self._locks: Dict[Tuple[GeographyLevel, int, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get_tiger_boundaries(
        self,
        geography: GeographyLevel,
        year: int,
        state: str
    ) -> gpd.GeoDataFrame:
        """
        Download and load TIGER/Line boundaries for one state.

        Args:
            geography: Geographic level.
            year: Census year (2000 or 2010).
            state: Two-digit state FIPS code.

        Returns:
            GeoDataFrame with GEOID and geometry columns.
        """
        if year not in TIGER_GEOID_COLUMNS:
            raise InvalidArgumentError(
                f"Boundaries are only available for {TIGER_YEARS}; got {year}",
                argument="year",
                value=year,
                allowed=TIGER_YEARS,
            )

        with self._lock_for(geography, year, state):
            cache_path = self._get_cache_path(geography, year, state)
            if cache_path.exists():
                logger.info(f"Loading cached boundaries: {cache_path}")
                return gpd.read_file(cache_path)

            url = self._build_tiger_url(geography, year, state)
            gdf = self._download_shapefile(url)

            geoid_col = TIGER_GEOID_COLUMNS[year][geography]
            if geoid_col not in gdf.columns:
                raise ExternalServiceError(
                    f"Boundaries from {url} have no {geoid_col} column", scope=url
                )
            gdf = gdf.rename(columns={geoid_col: "GEOID"})[["GEOID", "geometry"]]

            self._write_cache(gdf, cache_path)
            return gdf

    def _lock_for(self, geography: GeographyLevel, year: int, state: str) -> threading.Lock:
        """One lock per boundary file."""
        with self._locks_guard:
            return self._locks.setdefault((geography, year, state), threading.Lock())

    def _build_tiger_url(self, geography: GeographyLevel, year: int, state: str) -> str:
        """Build URL for a state's TIGER/Line shapefile."""
        folder, layer = TIGER_LAYERS[geography]
        filename = f"tl_2010_{state}_{layer}{str(year)[2:]}.zip"
        return f"{TIGER_BASE_URL}/{folder}/{year}/{filename}"

    def _get_cache_path(self, geography: GeographyLevel, year: int, state: str) -> Path:
        """Get cache file path for boundaries."""
        name = geography.value.replace(" ", "_")
        return self.cache_dir / f"{name}_{year}_{state}.gpkg"

    def _write_cache(self, gdf: gpd.GeoDataFrame, cache_path: Path) -> None:
        """Write a GeoPackage next to its final path, then move it into place."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=self.cache_dir) as tmp_dir:
            tmp_path = Path(tmp_dir) / cache_path.name
            gdf.to_file(tmp_path, driver="GPKG")
            os.replace(tmp_path, cache_path)
        logger.info(f"Cached boundaries: {cache_path}")

    def _download_shapefile(self, url: str) -> gpd.GeoDataFrame:
        """Download a zipped shapefile and read it."""
        logger.info(f"Downloading: {url}")

        try:
            response = requests.get(url, timeout=API_TIMEOUT * 4)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(
                f"Failed to download boundaries from {url}: {e}", scope=url
            ) from e

        try:
            with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
                shp_files = [f for f in zf.namelist() if f.endswith(".shp")]
        except zipfile.BadZipFile as e:
            raise ExternalServiceError(f"Invalid archive from {url}: {e}", scope=url) from e
        if not shp_files:
            raise ExternalServiceError(f"No shapefile found in archive {url}", scope=url)

        # Each download gets its own directory
        with tempfile.TemporaryDirectory() as tmp_dir:
            zip_path = Path(tmp_dir) / url.rsplit("/", 1)[-1]
            zip_path.write_bytes(response.content)
            return gpd.read_file(f"zip://{zip_path}!{shp_files[0]}")


def parse_geoid(geoid: str) -> Dict[str, str]:
    """
    Parse a GEOID into component FIPS codes.

    Args:
        geoid: GEOID string of any level

    Returns:
        Dict with state, county, tract, block_group, block as applicable
    """
    result = {}

    if len(geoid) >= 2:
        result["state"] = geoid[:2]
    if len(geoid) >= 5:
        result["county"] = geoid[2:5]
    if len(geoid) >= 11:
        result["tract"] = geoid[5:11]
    if len(geoid) >= 12:
        result["block_group"] = geoid[11:12]
    if len(geoid) >= 15:
        # The block group digit is also the first digit of the block code
        result["block"] = geoid[11:15]

    return result


# Census API response columns concatenated into a GEOID; a block code already
# starts with its block group digit
GEOID_COMPONENTS = {
    GeographyLevel.STATE: ["state"],
    GeographyLevel.COUNTY: ["state", "county"],
    GeographyLevel.TRACT: ["state", "county", "tract"],
    GeographyLevel.BLOCK_GROUP: ["state", "county", "tract", "block group"],
    GeographyLevel.BLOCK: ["state", "county", "tract", "block"],
}
