"""
Reference Area - Resolve state, county and GEOID input into query scopes.

A reference area is what a user means by "this place": the (state, county)
scopes the Census API must be queried for, and, when the user named the place
by GEOID, the GEOID prefixes that the combined results are filtered down to.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from .exceptions import InvalidArgumentError, NotFoundError
from .geography import FIPS_CODES, FipsLookup, GeographyLevel, parse_geoid

logger = logging.getLogger(__name__)

Scope = Tuple[str, Optional[str]]
LocationArg = Union[None, str, Iterable[str]]


@dataclass(frozen=True)
class ReferenceArea:
    """
    Resolved reference area.

    Attributes:
        state_county: Distinct (state FIPS, county FIPS or None) scopes,
            in the order they were first seen. Never empty.
        geoid_filter: GEOIDs (or GEOID prefixes) to keep, or None when the
            scopes alone define the area.
        geo_length: GEOID length at the requested geography level.
    """

    state_county: Tuple[Scope, ...]
    geoid_filter: Optional[Tuple[str, ...]]
    geo_length: int


def resolve_reference_area(
    geography: GeographyLevel,
    state: LocationArg = None,
    county: LocationArg = None,
    geoid: LocationArg = None,
    lookup: Optional[FipsLookup] = None
) -> ReferenceArea:
    """
    Resolve location arguments into a reference area.

    Either GEOIDs or state (and optionally county) must be supplied, not both.

    Args:
        geography: Validated geography level of the requested GEOIDs.
        state: State name(s), abbreviation(s) or FIPS code(s).
        county: County name(s) or FIPS code(s) within the state(s).
        geoid: GEOID(s) of any level no finer than `geography`.
        lookup: Name to FIPS code lookup (only used for state/county).

    Returns:
        ReferenceArea for the request.
    """
    geoids = _as_list(geoid, "geoid")
    states = _as_list(state, "state")
    counties = _as_list(county, "county")

    if geoids and (states or counties):
        raise InvalidArgumentError(
            "Supply either geoid or state/county, not both",
            argument="geoid",
            value=geoids,
        )
    if not (geoids or states or counties):
        raise InvalidArgumentError(
            "A reference area requires at least one of state, county or geoid; "
            "the entire country is not supported",
            argument="state",
        )

    if geoids:
        area = _from_geoids(geography, geoids)
    else:
        area = _from_names(geography, states, counties, lookup or FipsLookup())

    logger.info(
        f"Resolved reference area: {len(area.state_county)} scope(s), "
        f"{'no' if area.geoid_filter is None else len(area.geoid_filter)} GEOID filter(s)"
    )
    return area


def _as_list(value: LocationArg, argument: str) -> List[str]:
    """Normalize a location argument to a list of strings."""
    if value is None:
        return []

    values = [value] if isinstance(value, str) else list(value)
    for item in values:
        if not isinstance(item, str):
            raise InvalidArgumentError(
                f"{argument} must be a string or a list of strings; got {item!r}",
                argument=argument,
                value=item,
            )
    return values


def _from_geoids(geography: GeographyLevel, geoids: List[str]) -> ReferenceArea:
    """Derive scopes from the state and county prefixes of each GEOID."""
    geo_length = geography.geo_length
    min_length = GeographyLevel.STATE.geo_length

    scopes = []
    for geoid in geoids:
        if not geoid.isdigit() or len(geoid) < min_length:
            raise InvalidArgumentError(
                f"GEOIDs must be strings of at least {min_length} digits; got {geoid!r}",
                argument="geoid",
                value=geoid,
            )
        if len(geoid) > geo_length:
            raise InvalidArgumentError(
                f"GEOID {geoid!r} is finer than geography '{geography.value}' "
                f"(GEOIDs of {geo_length} digits)",
                argument="geoid",
                value=geoid,
            )
        parts = parse_geoid(geoid)
        if parts["state"] not in FIPS_CODES:
            raise NotFoundError(
                f"GEOID {geoid!r} does not start with a known state code",
                kind="state",
                value=geoid,
            )

        scopes.append((parts["state"], parts.get("county")))

    return ReferenceArea(
        state_county=_distinct_scopes(scopes),
        geoid_filter=tuple(dict.fromkeys(geoids)),
        geo_length=geo_length,
    )


def _from_names(
    geography: GeographyLevel,
    states: List[str],
    counties: List[str],
    lookup: FipsLookup
) -> ReferenceArea:
    """Look up state and county codes and pair them into scopes."""
    if counties and not states:
        raise InvalidArgumentError(
            "county requires the state it is in", argument="county", value=counties
        )
    if counties and geography is GeographyLevel.STATE:
        raise InvalidArgumentError(
            "county cannot be combined with geography 'state'",
            argument="county",
            value=counties,
        )

    state_codes = [lookup.state_code(s) for s in states]

    if not counties:
        scopes = [(code, None) for code in state_codes]
    elif len(state_codes) == len(counties):
        scopes = [(s, lookup.county_code(s, c)) for s, c in zip(state_codes, counties)]
    else:
        # Every county in every state
        scopes = [(s, lookup.county_code(s, c)) for s in state_codes for c in counties]

    return ReferenceArea(
        state_county=_distinct_scopes(scopes),
        geoid_filter=None,
        geo_length=geography.geo_length,
    )


def _distinct_scopes(scopes: List[Scope]) -> Tuple[Scope, ...]:
    """
    Drop duplicate scopes, and county scopes inside a whole-state scope, so
    that no two scopes return the same rows.
    """
    whole_states = {state for state, county in scopes if county is None}
    kept = [
        (state, county)
        for state, county in scopes
        if county is None or state not in whole_states
    ]
    return tuple(dict.fromkeys(kept))
