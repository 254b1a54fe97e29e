"""
GEOID Pipeline - Resolve a reference area and fetch its GEOIDs and population.

Planning (argument validation, reference-area resolution and query building)
runs before any Census API call; execution runs the planned queries on a
bounded thread pool and combines their results.
"""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from .api_client import CensusAPIClient
from .config import (
    CENSUS_API_KEY_ENV,
    DEFAULT_PARALLEL_WORKERS,
    DEFAULT_YEAR,
    default_cache_dir,
)
from .exceptions import CensusGeoidError, ExternalServiceError, InvalidArgumentError
from .geography import TIGER_YEARS, FipsLookup, GeographyLevel, match_geography
from .query import PassThrough, QueryConfig, QueryDescriptor, build_queries
from .reference_area import LocationArg, ReferenceArea, resolve_reference_area
from .transformers import DataTransformer
from .variables import normalize_year, population_variables, validate_year_for_level

logger = logging.getLogger(__name__)


class GeoidPipeline:
    """
    Pipeline for listing the GEOIDs, names and decennial population of the
    areas inside a reference area.

    Example:
        >>> pipeline = GeoidPipeline(api_key="your_key")
        >>> tracts = pipeline.get_geoids(
        ...     geography="tract",
        ...     state="New York",
        ...     county="New York"
        ... )
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        cache_dir: Optional[str] = None,
        parallel_workers: int = DEFAULT_PARALLEL_WORKERS,
        allow_partial: bool = False,
        api_client: Optional[CensusAPIClient] = None,
        lookup: Optional[FipsLookup] = None
    ):
        """
        Initialize the pipeline.

        Args:
            api_key: Census API key. If None, reads from CENSUS_API_KEY env var.
            cache_dir: Directory for cached responses, county codes and boundaries.
            parallel_workers: Maximum number of concurrent Census API queries.
            allow_partial: Keep the results of successful queries when others
                fail, instead of failing the whole request.
            api_client: Client used to run queries (defaults to CensusAPIClient).
            lookup: State/county name lookup (defaults to FipsLookup).
        """
        if parallel_workers < 1:
            raise InvalidArgumentError(
                f"parallel_workers must be at least 1; got {parallel_workers}",
                argument="parallel_workers",
                value=parallel_workers,
            )

        self.api_key = api_key or os.environ.get(CENSUS_API_KEY_ENV)
        if not self.api_key:
            logger.warning("No API key provided. Some endpoints may be rate-limited.")

        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.parallel_workers = parallel_workers
        self.allow_partial = allow_partial

        # Initialize components
        self.api_client = api_client or CensusAPIClient(self.api_key, self.cache_dir)
        self.lookup = lookup or FipsLookup(self.cache_dir)
        self.transformer = DataTransformer()

    def get_geoids(
        self,
        geography: Union[str, GeographyLevel],
        state: LocationArg = None,
        county: LocationArg = None,
        geoid: LocationArg = None,
        year: int = DEFAULT_YEAR,
        geometry: bool = False,
        cache_tables: bool = True,
        key: Optional[str] = None,
        **kwargs: Any
    ) -> pd.DataFrame:
        """
        Get the GEOIDs, names and decennial population of a reference area.

        Args:
            geography: Level of the GEOIDs to return: "state", "county",
                "tract", "block group" or "block" (unambiguous abbreviations
                accepted). Block-level data are unavailable for 1990 and 2000.
            state: State name(s), abbreviation(s) or FIPS code(s).
            county: County name(s) or FIPS code(s); requires state.
            geoid: GEOID(s) of the reference area; excludes state/county.
            year: Any year; the census of its decade (1990, 2000 or 2010)
                is used.
            geometry: Attach TIGER/Line geometries (2000 and 2010 only).
            cache_tables: Cache API responses on disk.
            key: Census API key for this request.
            **kwargs: Additional Census API parameters. Not recommended.

        Returns:
            DataFrame with GEOID, NAME and census_<year>_pop columns
            (GeoDataFrame with geometry when requested).

        Example:
            >>> tracts = pipeline.get_geoids("tract", state="NY", county="New York")
            >>> blocks = pipeline.get_geoids("block", geoid=tracts["GEOID"][4])
        """
        ref_area, descriptors = self.plan(
            geography,
            state=state,
            county=county,
            geoid=geoid,
            year=year,
            geometry=geometry,
            cache_tables=cache_tables,
            key=key,
            extra=kwargs,
        )

        census_data = self.transformer.select_columns(self.execute(descriptors))

        # Filter the scoped query results down to the requested GEOIDs
        return self.transformer.filter_ref_area(
            census_data,
            pattern=ref_area.geoid_filter,
            geo_length=ref_area.geo_length,
        )

    def plan(
        self,
        geography: Union[str, GeographyLevel],
        state: LocationArg = None,
        county: LocationArg = None,
        geoid: LocationArg = None,
        year: int = DEFAULT_YEAR,
        geometry: bool = False,
        cache_tables: bool = True,
        key: Optional[str] = None,
        extra: PassThrough = None
    ) -> Tuple[ReferenceArea, List[QueryDescriptor]]:
        """
        Validate arguments and plan the Census API queries for a request.

        Only state and county name lookups may touch the network here.

        Returns:
            The resolved reference area and one query descriptor per scope.
        """
        level = match_geography(geography)
        year = normalize_year(year)
        validate_year_for_level(level, year)

        if geometry and year not in TIGER_YEARS:
            raise InvalidArgumentError(
                f"Geometry is only available for {TIGER_YEARS}; got {year}",
                argument="geometry",
                value=year,
                allowed=TIGER_YEARS,
            )

        # Since some variable has to be requested, it may as well be an
        # understandable one like total population
        config = QueryConfig(
            geography=level,
            year=year,
            variables=population_variables(year),
            geometry=bool(geometry),
            cache_table=bool(cache_tables),
            key=key or self.api_key,
            extra=extra,
        )

        ref_area = resolve_reference_area(
            level, state=state, county=county, geoid=geoid, lookup=self.lookup
        )

        descriptors = build_queries(config, ref_area.state_county)
        logger.info(
            f"Planned {len(descriptors)} {year} decennial {level.value} queries"
        )
        return ref_area, descriptors

    def execute(self, descriptors: List[QueryDescriptor]) -> pd.DataFrame:
        """
        Run query descriptors concurrently and combine their results.

        Results are combined in descriptor order. The first failure cancels
        queries that have not started and is raised, unless the pipeline was
        created with allow_partial=True.

        Args:
            descriptors: Planned queries.

        Returns:
            Combined table of every query's rows.
        """
        logger.info(
            f"Executing {len(descriptors)} queries with {self.parallel_workers} workers"
        )

        results: Dict[int, pd.DataFrame] = {}
        failures: List[ExternalServiceError] = []

        with ThreadPoolExecutor(max_workers=self.parallel_workers) as executor:
            futures: Dict[Future, int] = {
                executor.submit(self._fetch_single_scope, descriptor): index
                for index, descriptor in enumerate(descriptors)
            }

            for future in as_completed(futures):
                descriptor = descriptors[futures[future]]
                try:
                    results[futures[future]] = future.result()
                    logger.info(f"Completed {descriptor.scope}")
                except ExternalServiceError as e:
                    if not self.allow_partial:
                        self._cancel_pending(futures)
                        raise
                    logger.error(f"Error fetching {descriptor.scope}: {e}")
                    failures.append(e)
                except CensusGeoidError:
                    self._cancel_pending(futures)
                    raise

        if failures:
            if not results:
                raise failures[-1]
            logger.warning(
                f"Returning partial results: {len(failures)} of "
                f"{len(descriptors)} queries failed"
            )

        return self.transformer.combine([results[i] for i in sorted(results)])

    def _fetch_single_scope(self, descriptor: QueryDescriptor) -> pd.DataFrame:
        """Fetch one scope, reporting any client failure with its scope."""
        try:
            return self.api_client.get_decennial(descriptor)
        except CensusGeoidError:
            raise
        except Exception as e:
            raise ExternalServiceError(
                f"Query for {descriptor.scope} failed: {e}", scope=descriptor.scope
            ) from e

    @staticmethod
    def _cancel_pending(futures: Dict[Future, int]) -> None:
        """Cancel queries that have not started yet."""
        cancelled = sum(future.cancel() for future in futures)
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending queries")


def get_geoids(
    geography: Union[str, GeographyLevel],
    state: LocationArg = None,
    county: LocationArg = None,
    geoid: LocationArg = None,
    year: int = DEFAULT_YEAR,
    geometry: bool = False,
    cache_tables: bool = True,
    key: Optional[str] = None,
    **kwargs: Any
) -> pd.DataFrame:
    """
    Get the GEOIDs, names and decennial population of a reference area.

    Convenience wrapper around GeoidPipeline.get_geoids(); see there for the
    arguments.

    Example:
        >>> tracts = get_geoids("tract", state="New York", county="New York")
    """
    pipeline = GeoidPipeline(api_key=key)
    return pipeline.get_geoids(
        geography,
        state=state,
        county=county,
        geoid=geoid,
        year=year,
        geometry=geometry,
        cache_tables=cache_tables,
        **kwargs,
    )
