"""
Census GEOIDs

Resolve states, counties and GEOIDs into the census geographies inside them,
with their decennial census population.
"""

from .census_pipeline import GeoidPipeline, get_geoids
from .api_client import CensusAPIClient
from .exceptions import (
    CensusGeoidError,
    ExternalServiceError,
    InvalidArgumentError,
    NotFoundError
)
from .geography import (
    FIPS_CODES,
    STATE_NAME_TO_FIPS,
    FipsLookup,
    GeographyLevel,
    GeographyManager,
    match_geography,
    parse_geoid
)
from .query import QueryConfig, QueryDescriptor, build_queries
from .reference_area import ReferenceArea, resolve_reference_area
from .transformers import DataTransformer
from .variables import normalize_year, population_variables

__version__ = "1.0.0"

__all__ = [
    "GeoidPipeline",
    "get_geoids",
    "CensusAPIClient",
    "CensusGeoidError",
    "ExternalServiceError",
    "InvalidArgumentError",
    "NotFoundError",
    "FIPS_CODES",
    "STATE_NAME_TO_FIPS",
    "FipsLookup",
    "GeographyLevel",
    "GeographyManager",
    "match_geography",
    "parse_geoid",
    "QueryConfig",
    "QueryDescriptor",
    "build_queries",
    "ReferenceArea",
    "resolve_reference_area",
    "DataTransformer",
    "normalize_year",
    "population_variables"
]
