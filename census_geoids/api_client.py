"""
Census API Client - Executes decennial query descriptors against the Census API.
"""

import hashlib
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlencode

import geopandas as gpd
import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import API_BASE_URL, API_TIMEOUT, default_cache_dir
from .exceptions import ExternalServiceError
from .geography import GEOID_COMPONENTS, GeographyLevel, GeographyManager
from .query import QueryDescriptor

logger = logging.getLogger(__name__)


class CensusAPIClient:
    """
    Low-level client for the decennial Census API.

    Handles:
    - Request construction from QueryDescriptors
    - Rate limiting and retry logic
    - Response caching and validation
    - GEOID assembly and optional TIGER/Line geometry
    """

    BASE_URL = API_BASE_URL

    # Rate limiting: Census API has 500 requests/day without key
    RATE_LIMIT_DELAY = 0.5  # seconds between requests

    def __init__(
        self,
        api_key: Optional[str] = None,
        cache_dir: Optional[Path] = None,
        geography: Optional[GeographyManager] = None,
        timeout: float = API_TIMEOUT
    ):
        """
        Initialize the API client.

        Args:
            api_key: Census API key, used when a descriptor carries none.
            cache_dir: Directory for cached API responses and boundaries.
            geography: Boundary manager used for geometry requests.
            timeout: Seconds to wait for each HTTP request.
        """
        self.api_key = api_key
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.geography = geography or GeographyManager(self.cache_dir)
        self.timeout = timeout

        self._last_request_time = 0.0
        self._rate_lock = threading.Lock()

        # Configure session with retry logic
        self.session = requests.Session()
        retries = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504]
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def get_decennial(
        self,
        descriptor: QueryDescriptor
    ) -> Union[pd.DataFrame, gpd.GeoDataFrame]:
        """
        Fetch decennial census data for one query scope.

        Args:
            descriptor: The query to run.

        Returns:
            DataFrame with GEOID, NAME, the Census component columns and one
            column per requested variable (named by the descriptor's variable
            mapping). A GeoDataFrame when geometry was requested.
        """
        logger.info(
            f"Fetching {descriptor.year} decennial {descriptor.geography.value} "
            f"data for {descriptor.scope}"
        )

        raw_data = self._make_request(descriptor)
        df = self._parse_api_response(raw_data, descriptor)
        df = self._create_geoid(df, descriptor.geography, descriptor.scope)

        if descriptor.geometry:
            df = self._join_geometries(df, descriptor)

        logger.info(f"Fetched {len(df)} records for {descriptor.scope}")
        return df

    def _make_request(self, descriptor: QueryDescriptor) -> List[List]:
        """
        Make API request with rate limiting and optional response caching.

        Args:
            descriptor: The query to run.

        Returns:
            Parsed JSON response.
        """
        url = f"{self.BASE_URL}/{descriptor.endpoint}"
        params = self._build_params(descriptor)

        cache_path = self._get_cache_path(descriptor.endpoint, params)
        if descriptor.cache_table:
            cached = self._read_cache(cache_path)
            if cached is not None:
                return cached

        key = descriptor.key or self.api_key
        if key:
            params["key"] = key

        self._apply_rate_limit()
        logger.debug(f"Requesting: {url}?{urlencode({k: v for k, v in params.items() if k != 'key'})}")

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                raise ExternalServiceError(
                    f"Census API returned no data for {descriptor.scope} "
                    f"(HTTP {response.status_code}); check the variables and geography",
                    scope=descriptor.scope,
                    status_code=response.status_code,
                )
            data = response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 400:
                logger.error(f"Bad request - check variable codes: {e.response.text}")
            elif status == 404:
                logger.error(f"Endpoint not found - check year/product: {descriptor.endpoint}")
            raise ExternalServiceError(
                f"Census API request for {descriptor.scope} failed: {e}",
                scope=descriptor.scope,
                status_code=status,
            ) from e
        except requests.exceptions.JSONDecodeError as e:
            # The API answers an invalid key with an HTML page
            raise ExternalServiceError(
                f"Census API returned a non-JSON response for {descriptor.scope}; "
                f"check the API key",
                scope=descriptor.scope,
                status_code=response.status_code,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {e}")
            raise ExternalServiceError(
                f"Census API request for {descriptor.scope} failed: {e}",
                scope=descriptor.scope,
            ) from e

        if not isinstance(data, list) or not data or not isinstance(data[0], list):
            raise ExternalServiceError(
                f"Unexpected response format from Census API for {descriptor.scope}",
                scope=descriptor.scope,
            )

        if descriptor.cache_table:
            self._write_cache(cache_path, data)

        return data

    def _read_cache(self, cache_path: Path) -> Optional[List[List]]:
        """Load a cached response; None when absent or unreadable."""
        if not cache_path.exists():
            return None

        logger.debug(f"Loading cached response: {cache_path}")
        try:
            return json.loads(cache_path.read_text())
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unreadable cached response: {cache_path}")
            return None

    def _write_cache(self, cache_path: Path, data: List[List]) -> None:
        """Write a response to a private temp file, then move it into place."""
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = cache_path.with_name(
            f"{cache_path.stem}.{os.getpid()}.{threading.get_ident()}.tmp"
        )
        tmp_path.write_text(json.dumps(data))
        os.replace(tmp_path, cache_path)

    def _build_params(self, descriptor: QueryDescriptor) -> Dict[str, Any]:
        """Build API request parameters (without the API key)."""
        params: Dict[str, Any] = {
            "get": ",".join(["NAME"] + list(descriptor.variables)),
        }
        params.update(self._build_geo_clause(descriptor))
        params.update(descriptor.extra)
        return params

    def _build_geo_clause(self, descriptor: QueryDescriptor) -> Dict[str, str]:
        """Build the 'for' and 'in' clauses for a query scope."""
        geography = descriptor.geography
        state = descriptor.state
        county = descriptor.county

        if geography is GeographyLevel.STATE:
            return {"for": f"state:{state}"}

        if geography is GeographyLevel.COUNTY:
            return {"for": f"county:{county or '*'}", "in": f"state:{state}"}

        if geography is GeographyLevel.TRACT:
            clause = f"state:{state}"
            if county:
                clause += f" county:{county}"
            return {"for": "tract:*", "in": clause}

        # Block groups and blocks must be requested within counties
        return {
            "for": f"{geography.value}:*",
            "in": f"state:{state} county:{county or '*'}",
        }

    def _parse_api_response(
        self,
        response: List[List],
        descriptor: QueryDescriptor
    ) -> pd.DataFrame:
        """Parse Census API JSON response into DataFrame."""
        headers = response[0]
        data = response[1:]

        df = pd.DataFrame(data, columns=headers)

        missing = [code for code in descriptor.variables if code not in df.columns]
        if missing or "NAME" not in df.columns:
            raise ExternalServiceError(
                f"Census API response for {descriptor.scope} is missing columns: "
                f"{missing or ['NAME']}",
                scope=descriptor.scope,
            )

        # Rename variables to friendly names
        df = df.rename(columns=dict(descriptor.variables))

        # Convert numeric columns
        for col in descriptor.variables.values():
            df[col] = pd.to_numeric(df[col], errors="coerce")

        return df

    def _create_geoid(
        self,
        df: pd.DataFrame,
        geography: GeographyLevel,
        scope: str
    ) -> pd.DataFrame:
        """Create standardized GEOID from component FIPS codes."""
        components = GEOID_COMPONENTS[geography]

        missing = [col for col in components if col not in df.columns]
        if missing:
            raise ExternalServiceError(
                f"Census API response for {scope} is missing GEOID components: {missing}",
                scope=scope,
            )

        geoid = df[components[0]].astype(str)
        for col in components[1:]:
            geoid = geoid + df[col].astype(str)
        df["GEOID"] = geoid

        return df

    def _join_geometries(
        self,
        df: pd.DataFrame,
        descriptor: QueryDescriptor
    ) -> gpd.GeoDataFrame:
        """Join TIGER/Line geometries to Census data on GEOID."""
        tiger_gdf = self.geography.get_tiger_boundaries(
            descriptor.geography, descriptor.year, descriptor.state
        )

        gdf = tiger_gdf[["GEOID", "geometry"]].merge(df, on="GEOID", how="right")
        return gpd.GeoDataFrame(gdf, geometry="geometry", crs=tiger_gdf.crs)

    def _get_cache_path(self, endpoint: str, params: Mapping[str, Any]) -> Path:
        """Cache file path for a response; the API key is never part of it."""
        request = json.dumps({"endpoint": endpoint, "params": params}, sort_keys=True, default=str)
        digest = hashlib.sha1(request.encode("utf-8")).hexdigest()
        return self.cache_dir / "api" / f"{digest}.json"

    def _apply_rate_limit(self) -> None:
        """Apply rate limiting between requests, across worker threads."""
        with self._rate_lock:
            elapsed = time.time() - self._last_request_time
            if elapsed < self.RATE_LIMIT_DELAY:
                time.sleep(self.RATE_LIMIT_DELAY - elapsed)
            self._last_request_time = time.time()
