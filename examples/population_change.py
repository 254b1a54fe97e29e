"""
Example: County Population Across Three Censuses

This example fetches county populations for two states from the 1990, 2000
and 2010 decennial censuses and compares them side by side.
"""

import logging
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from census_geoids import GeoidPipeline, InvalidArgumentError

logging.basicConfig(level=logging.INFO)


def main():
    """Compare county populations in Maryland and Delaware."""

    pipeline = GeoidPipeline(
        api_key=os.environ.get("CENSUS_API_KEY"),
        parallel_workers=2
    )

    states = ["MD", "DE"]
    combined = None

    for year in (1990, 2000, 2010):
        print(f"Fetching {year} county populations for {', '.join(states)}...")
        counties = pipeline.get_geoids(geography="county", state=states, year=year)

        if combined is None:
            combined = counties
        else:
            combined = combined.merge(
                counties.drop(columns="NAME"), on="GEOID", how="outer"
            )

    combined["change_1990_2010"] = (
        combined["census_2010_pop"] - combined["census_1990_pop"]
    )
    print(combined.sort_values("change_1990_2010", ascending=False).to_string(index=False))

    # Block-level data only exist for 2010
    try:
        pipeline.get_geoids(geography="block", geoid="24005", year=2000)
    except InvalidArgumentError as e:
        print(f"\nAs expected: {e}")


if __name__ == "__main__":
    main()
