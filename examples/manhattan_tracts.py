"""
Example: Tract and Block GEOIDs in Manhattan

This example lists every census tract in New York County (Manhattan) with its
2010 population, then drills down to the blocks of one tract by GEOID.
"""

import logging
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from census_geoids import GeoidPipeline

logging.basicConfig(level=logging.INFO)


def main():
    """List Manhattan tracts and the blocks of one of them."""

    # Get your API key from: https://api.census.gov/data/key_signup.html
    pipeline = GeoidPipeline(
        api_key=os.environ.get("CENSUS_API_KEY")
    )

    print("Fetching 2010 tracts for New York County, NY...")

    tracts = pipeline.get_geoids(
        geography="tract",
        state="New York",
        county="New York",
        year=2010
    )

    print(f"Retrieved {len(tracts)} tracts")
    print(tracts.head(10).to_string(index=False))

    # Blocks of the fifth tract on that list
    tract_geoid = tracts["GEOID"].iloc[4]
    print(f"\nFetching blocks in tract {tract_geoid}...")

    blocks = pipeline.get_geoids(geography="block", geoid=tract_geoid)

    print(f"Retrieved {len(blocks)} blocks")
    print(f"Total population: {blocks['census_2010_pop'].sum():,}")
    print(f"Tract population: {tracts['census_2010_pop'].iloc[4]:,}")


if __name__ == "__main__":
    main()
