"""
Query planning - immutable Census API query descriptors.

Planning is pure: a QueryConfig holds the parameters shared by every query,
and build_queries() stamps one QueryDescriptor per (state, county) scope.
Nothing here touches the network.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import SUMMARY_FILE
from .exceptions import InvalidArgumentError
from .geography import GeographyLevel

# Parameters set by the builder or the API client; pass-through parameters
# may not override them
RESERVED_PARAMS = frozenset({
    "geography", "variables", "year", "sumfile", "output", "geometry",
    "cache_table", "key", "state", "county", "get", "for", "in",
})

PassThrough = Union[None, Mapping[str, Any], Iterable[Tuple[str, Any]]]


def named_params(extra: PassThrough) -> Dict[str, Any]:
    """
    Collect pass-through parameters, requiring unique, non-empty names.

    Args:
        extra: Mapping or sequence of (name, value) pairs.

    Returns:
        Dict of parameters.
    """
    if extra is None:
        return {}

    items = list(extra.items()) if isinstance(extra, Mapping) else list(extra)
    params: Dict[str, Any] = {}
    for item in items:
        if not isinstance(item, tuple) or len(item) != 2:
            raise InvalidArgumentError(
                f"Additional arguments must all be named; got {item!r}",
                argument="extra",
                value=item,
            )
        name, value = item
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError(
                f"Additional arguments must all be named; got name {name!r}",
                argument="extra",
                value=name,
            )
        if name in params:
            raise InvalidArgumentError(
                f"Additional argument {name!r} supplied more than once",
                argument="extra",
                value=name,
            )
        params[name] = value
    return params


@dataclass(frozen=True)
class QueryConfig:
    """
    Parameters shared by every query of one request.

    The builder-controlled fields are explicit attributes; `extra` holds the
    caller's pass-through Census API parameters and may not reuse any name in
    RESERVED_PARAMS.
    """

    geography: GeographyLevel
    year: int
    variables: Mapping[str, str]
    geometry: bool = False
    cache_table: bool = True
    key: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        extra = named_params(self.extra)

        collisions = sorted(RESERVED_PARAMS.intersection(extra))
        if collisions:
            raise InvalidArgumentError(
                f"Additional arguments {collisions} collide with parameters "
                f"set by the query builder",
                argument="extra",
                value=collisions,
                allowed=sorted(RESERVED_PARAMS),
            )

        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))
        object.__setattr__(self, "extra", MappingProxyType(extra))


@dataclass(frozen=True)
class QueryDescriptor:
    """A single decennial Census API query, scoped to one state or county."""

    geography: GeographyLevel
    variables: Mapping[str, str]
    year: int
    sumfile: str
    geometry: bool
    cache_table: bool
    key: Optional[str]
    state: str
    county: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def scope(self) -> str:
        """Human-readable scope, e.g. "state=36, county=061"."""
        if self.county is None:
            return f"state={self.state}"
        return f"state={self.state}, county={self.county}"

    @property
    def endpoint(self) -> str:
        """API path of the dataset, relative to the API base URL."""
        return f"{self.year}/dec/{self.sumfile}"


def build_queries(
    config: QueryConfig,
    state_county: Iterable[Tuple[str, Optional[str]]]
) -> List[QueryDescriptor]:
    """
    Build one query descriptor per scope.

    Args:
        config: Shared query parameters.
        state_county: (state FIPS, county FIPS or None) scopes.

    Returns:
        List of QueryDescriptors in scope order.
    """
    return [
        QueryDescriptor(
            geography=config.geography,
            variables=config.variables,
            year=config.year,
            sumfile=SUMMARY_FILE,
            geometry=config.geometry,
            cache_table=config.cache_table,
            key=config.key,
            state=state,
            # A state query is never narrowed to a county
            county=None if config.geography is GeographyLevel.STATE else county,
            extra=config.extra,
        )
        for state, county in state_county
    ]
