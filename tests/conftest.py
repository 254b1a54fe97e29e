"""
Shared fixtures: an offline county table, a stand-in Census API client and a
TIGER/Line archive.
"""

import io
import threading
import time
import zipfile
from typing import Callable, Dict, List, Optional

import geopandas as gpd
import pandas as pd
import pytest

from census_geoids.exceptions import ExternalServiceError
from census_geoids.geography import COUNTY_TABLE_COLUMNS, FipsLookup
from census_geoids.query import QueryDescriptor

COUNTY_ROWS = [
    ["NY", "36", "005", "Bronx County", "H6"],
    ["NY", "36", "047", "Kings County", "H6"],
    ["NY", "36", "061", "New York County", "H6"],
    ["MD", "24", "005", "Baltimore County", "H1"],
    ["MD", "24", "510", "Baltimore city", "C7"],
    ["LA", "22", "071", "Orleans Parish", "H6"],
    ["AK", "02", "110", "Juneau City and Borough", "H6"],
]


@pytest.fixture
def county_table() -> pd.DataFrame:
    return pd.DataFrame(COUNTY_ROWS, columns=COUNTY_TABLE_COLUMNS)


@pytest.fixture
def lookup(county_table, tmp_path) -> FipsLookup:
    return FipsLookup(cache_dir=tmp_path, county_table=county_table)


def tract_rows(state: str, county: str, tracts: List[str], pop: int = 1000) -> pd.DataFrame:
    """A decennial tract response as CensusAPIClient would return it."""
    return pd.DataFrame(
        {
            "NAME": [f"Census Tract {t}" for t in tracts],
            "census_2010_pop": [pop + i for i in range(len(tracts))],
            "state": state,
            "county": county,
            "tract": tracts,
            "GEOID": [state + county + t for t in tracts],
        }
    )


class FakeClient:
    """
    Stands in for CensusAPIClient.

    Responses and failures are keyed by descriptor scope, e.g. "state=36".
    """

    def __init__(
        self,
        responses: Optional[Dict[str, pd.DataFrame]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        delays: Optional[Dict[str, float]] = None
    ):
        self.responses = responses or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: List[QueryDescriptor] = []
        self._lock = threading.Lock()

    def get_decennial(self, descriptor: QueryDescriptor) -> pd.DataFrame:
        with self._lock:
            self.calls.append(descriptor)
        if descriptor.scope in self.delays:
            time.sleep(self.delays[descriptor.scope])
        if descriptor.scope in self.failures:
            raise self.failures[descriptor.scope]
        return self.responses[descriptor.scope].copy()

    @property
    def scopes(self) -> List[str]:
        return [d.scope for d in self.calls]


@pytest.fixture
def make_client() -> Callable[..., FakeClient]:
    return FakeClient


@pytest.fixture
def service_error() -> Callable[[str], ExternalServiceError]:
    def _error(scope: str) -> ExternalServiceError:
        return ExternalServiceError(f"Census API request for {scope} failed", scope=scope)

    return _error


TIGER_TRACTS = ["36061000100", "36061000201", "36061000300"]


@pytest.fixture
def tiger_archive(tmp_path_factory) -> bytes:
    """A zipped 2010 tract shapefile for three New York County tracts."""
    shp_dir = tmp_path_factory.mktemp("tiger_src")
    gdf = gpd.GeoDataFrame(
        {"GEOID10": TIGER_TRACTS, "ALAND10": [1000, 2000, 3000]},
        geometry=gpd.points_from_xy([-74.01, -74.00, -73.99], [40.70, 40.71, 40.72]),
        crs="EPSG:4269",
    )
    gdf.to_file(shp_dir / "tl_2010_36_tract10.shp")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for path in sorted(shp_dir.iterdir()):
            zf.write(path, path.name)
    return buffer.getvalue()
