"""Tests for geography levels, FIPS lookups and GEOID helpers."""

import threading
import time

import pandas as pd
import pytest

from census_geoids import geography as geo
from census_geoids.exceptions import ExternalServiceError, InvalidArgumentError, NotFoundError
from census_geoids.geography import (
    FipsLookup,
    GeographyLevel,
    GeographyManager,
    match_geography,
    parse_geoid,
)
from tests.conftest import TIGER_TRACTS


@pytest.mark.parametrize(
    "name, expected",
    [
        ("state", GeographyLevel.STATE),
        ("County", GeographyLevel.COUNTY),
        ("TRACT", GeographyLevel.TRACT),
        ("block group", GeographyLevel.BLOCK_GROUP),
        ("Block_Group", GeographyLevel.BLOCK_GROUP),
        ("block", GeographyLevel.BLOCK),
        ("  block  ", GeographyLevel.BLOCK),
        ("st", GeographyLevel.STATE),
        ("c", GeographyLevel.COUNTY),
        ("tr", GeographyLevel.TRACT),
        ("block g", GeographyLevel.BLOCK_GROUP),
        (GeographyLevel.TRACT, GeographyLevel.TRACT),
    ],
)
def test_match_geography(name, expected):
    assert match_geography(name) is expected


@pytest.mark.parametrize("name", ["b", "bl", "blo", "bloc", "", "zcta", "tracts", "place"])
def test_match_geography_rejects_unknown_or_ambiguous(name):
    with pytest.raises(InvalidArgumentError) as exc_info:
        match_geography(name)
    assert exc_info.value.argument == "geography"
    assert exc_info.value.allowed == ("state", "county", "tract", "block group", "block")


def test_match_geography_rejects_non_string():
    with pytest.raises(InvalidArgumentError):
        match_geography(5)


def test_geo_lengths_follow_the_hierarchy():
    assert [level.geo_length for level in GeographyLevel] == [2, 5, 11, 12, 15]


@pytest.mark.parametrize("state", ["36", "ny", "NY", "New York", "new york ", 36])
def test_state_code(lookup, state):
    assert lookup.state_code(state) == "36"


def test_state_code_pads_single_digit(lookup):
    assert lookup.state_code("6") == "06"


@pytest.mark.parametrize("state", ["99", "Atlantis", "XX", ""])
def test_state_code_not_found(lookup, state):
    with pytest.raises(NotFoundError) as exc_info:
        lookup.state_code(state)
    assert exc_info.value.kind == "state"


@pytest.mark.parametrize(
    "state, county, expected",
    [
        ("36", "061", "061"),
        ("36", "36061", "061"),
        ("36", "New York", "061"),
        ("36", "new york county", "061"),
        ("36", "Kings", "047"),
        ("22", "Orleans", "071"),
        ("24", "Baltimore city", "510"),
        ("24", "baltimore county", "005"),
        ("02", "Juneau", "110"),
    ],
)
def test_county_code(lookup, state, county, expected):
    assert lookup.county_code(state, county) == expected


def test_county_code_ambiguous(lookup):
    with pytest.raises(InvalidArgumentError) as exc_info:
        lookup.county_code("24", "Baltimore")
    assert set(exc_info.value.allowed) == {"Baltimore County", "Baltimore city"}


def test_county_code_not_found(lookup):
    with pytest.raises(NotFoundError) as exc_info:
        lookup.county_code("36", "Queens")
    assert exc_info.value.kind == "county"


def test_county_code_only_searches_given_state(lookup):
    with pytest.raises(NotFoundError):
        lookup.county_code("24", "Kings")


@pytest.mark.parametrize("county", ["06", "0610", "37061"])
def test_county_code_rejects_bad_codes(lookup, county):
    with pytest.raises(InvalidArgumentError):
        lookup.county_code("36", county)


class FakeResponse:
    def __init__(self, content: bytes):
        self.content = content

    def raise_for_status(self):
        pass


def test_county_table_downloads_and_caches(tmp_path, monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse("NY,36,061,New York County,H6\nNM,35,013,Doña Ana County,H1\n".encode("latin-1"))

    monkeypatch.setattr(geo.requests, "get", fake_get)

    table = FipsLookup(cache_dir=tmp_path).county_table()
    assert calls == [geo.COUNTY_TABLE_URL]
    assert table["county_name"].tolist() == ["New York County", "Doña Ana County"]
    assert (tmp_path / "national_county.csv").exists()

    # A second lookup reads the cache
    cached = FipsLookup(cache_dir=tmp_path)
    assert cached.county_code("35", "Doña Ana") == "013"
    assert len(calls) == 1


def test_county_table_download_failure(tmp_path, monkeypatch):
    def fake_get(url, timeout):
        raise geo.requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(geo.requests, "get", fake_get)

    with pytest.raises(ExternalServiceError):
        FipsLookup(cache_dir=tmp_path).county_code("36", "New York")


def test_county_table_keeps_leading_zeros(tmp_path, county_table):
    county_table.to_csv(tmp_path / "national_county.csv", index=False)
    table = FipsLookup(cache_dir=tmp_path).county_table()
    assert table.loc[0, "county_code"] == "005"
    assert table.loc[0, "state_code"] == "36"


def test_parse_geoid_block():
    assert parse_geoid("360610001001000") == {
        "state": "36",
        "county": "061",
        "tract": "000100",
        "block_group": "1",
        "block": "1000",
    }


def test_parse_geoid_county():
    assert parse_geoid("36061") == {"state": "36", "county": "061"}


@pytest.mark.parametrize(
    "level, year, expected",
    [
        (GeographyLevel.TRACT, 2000, "TRACT/2000/tl_2010_36_tract00.zip"),
        (GeographyLevel.BLOCK_GROUP, 2010, "BG/2010/tl_2010_36_bg10.zip"),
        (GeographyLevel.BLOCK, 2010, "TABBLOCK/2010/tl_2010_36_tabblock10.zip"),
        (GeographyLevel.STATE, 2000, "STATE/2000/tl_2010_36_state00.zip"),
    ],
)
def test_tiger_url(tmp_path, level, year, expected):
    manager = GeographyManager(tmp_path)
    assert manager._build_tiger_url(level, year, "36") == f"{geo.TIGER_BASE_URL}/{expected}"


def test_tiger_boundaries_reject_1990(tmp_path):
    with pytest.raises(InvalidArgumentError):
        GeographyManager(tmp_path).get_tiger_boundaries(GeographyLevel.TRACT, 1990, "36")


def test_geoid_components_build_block_from_block_code():
    components = geo.GEOID_COMPONENTS[GeographyLevel.BLOCK]
    row = pd.Series({"state": "36", "county": "061", "tract": "000100", "block": "1000"})
    assert "".join(row[c] for c in components) == "360610001001000"


def test_tiger_boundaries_download_and_cache(tmp_path, monkeypatch, tiger_archive):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse(tiger_archive)

    monkeypatch.setattr(geo.requests, "get", fake_get)

    gdf = GeographyManager(tmp_path).get_tiger_boundaries(GeographyLevel.TRACT, 2010, "36")

    assert calls == [f"{geo.TIGER_BASE_URL}/TRACT/2010/tl_2010_36_tract10.zip"]
    assert list(gdf.columns) == ["GEOID", "geometry"]
    assert gdf["GEOID"].tolist() == TIGER_TRACTS
    assert gdf.crs.to_epsg() == 4269

    # Only the GeoPackage is left behind
    assert [p.name for p in (tmp_path / "tiger").iterdir()] == ["tract_2010_36.gpkg"]

    cached = GeographyManager(tmp_path).get_tiger_boundaries(GeographyLevel.TRACT, 2010, "36")
    assert len(calls) == 1
    assert cached["GEOID"].tolist() == TIGER_TRACTS
    assert cached.crs.to_epsg() == 4269


def test_concurrent_boundary_requests_share_one_download(tmp_path, monkeypatch, tiger_archive):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        time.sleep(0.2)
        return FakeResponse(tiger_archive)

    monkeypatch.setattr(geo.requests, "get", fake_get)

    manager = GeographyManager(tmp_path)
    barrier = threading.Barrier(2)
    results, errors = [], []

    def fetch():
        barrier.wait()
        try:
            results.append(manager.get_tiger_boundaries(GeographyLevel.TRACT, 2010, "36"))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=fetch) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(calls) == 1
    assert [r["GEOID"].tolist() for r in results] == [TIGER_TRACTS, TIGER_TRACTS]


def test_tiger_boundaries_bad_archive(tmp_path, monkeypatch):
    monkeypatch.setattr(geo.requests, "get", lambda url, timeout: FakeResponse(b"<html></html>"))

    with pytest.raises(ExternalServiceError):
        GeographyManager(tmp_path).get_tiger_boundaries(GeographyLevel.TRACT, 2010, "36")
    assert not (tmp_path / "tiger" / "tract_2010_36.gpkg").exists()
