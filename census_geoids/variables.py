"""
Decennial census years and the population variables published for them.
"""

import logging
import numbers
from typing import Dict

from .config import SUPPORTED_YEARS
from .exceptions import InvalidArgumentError
from .geography import GeographyLevel

logger = logging.getLogger(__name__)

# Total population. The 1990 SF1 names its tables with four digits.
POPULATION_VARIABLES = {
    1990: "P0010001",
    2000: "P001001",
    2010: "P001001",
}

# Block-level SF1 tables are not published by the API for these years
NO_BLOCK_DATA_YEARS = (1990, 2000)


def normalize_year(year: int) -> int:
    """
    Snap a year down to its decennial census year.

    Any year within a decade maps to that decade's census, so 2012 becomes
    2010.

    Args:
        year: Requested year.

    Returns:
        1990, 2000 or 2010.
    """
    if isinstance(year, bool) or not isinstance(year, numbers.Integral):
        raise InvalidArgumentError(
            f"year must be a single integer; got {year!r}",
            argument="year",
            value=year,
            allowed=SUPPORTED_YEARS,
        )

    normalized = (int(year) // 10) * 10
    if normalized not in SUPPORTED_YEARS:
        raise InvalidArgumentError(
            f"year must be between 1990 and 2019; got {year}",
            argument="year",
            value=year,
            allowed=SUPPORTED_YEARS,
        )

    if normalized != year:
        logger.debug(f"Using {normalized} decennial census for year {year}")
    return normalized


def validate_year_for_level(geography: GeographyLevel, year: int) -> None:
    """Reject levels the decennial API does not publish for a census year."""
    if geography is GeographyLevel.BLOCK and year in NO_BLOCK_DATA_YEARS:
        raise InvalidArgumentError(
            f"Block-level data are not available for the {year} decennial census",
            argument="geography",
            value=geography.value,
        )


def population_variables(year: int) -> Dict[str, str]:
    """
    Map the total-population variable of a census year to its output column.

    Args:
        year: Normalized census year.

    Returns:
        Dict of {variable code: "census_<year>_pop"}.
    """
    return {POPULATION_VARIABLES[year]: f"census_{year}_pop"}
