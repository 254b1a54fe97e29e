"""
Data Transformers - Combining per-scope results and filtering them by GEOID.
"""

import logging
from typing import Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "census_"


class DataTransformer:
    """
    Transformer for decennial query results.

    Provides methods for:
    - Combining the tables returned for each query scope
    - Selecting the output columns
    - Filtering rows down to a reference area's GEOIDs
    """

    def combine(self, frames: List[pd.DataFrame]) -> pd.DataFrame:
        """
        Concatenate per-scope tables, keeping every row in order.

        Args:
            frames: Tables in query order.

        Returns:
            Combined table (GeoDataFrame if the inputs are).
        """
        if not frames:
            return pd.DataFrame(columns=["GEOID", "NAME"])

        combined = pd.concat(frames, ignore_index=True)
        logger.info(f"Combined {len(frames)} tables: {len(combined)} total records")
        return combined

    def select_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Keep GEOID, NAME, the census_* columns and geometry, if present."""
        columns = ["GEOID", "NAME"]
        columns += [c for c in df.columns if str(c).startswith(OUTPUT_PREFIX)]
        if "geometry" in df.columns:
            columns.append("geometry")
        return df[columns]

    def filter_ref_area(
        self,
        df: pd.DataFrame,
        pattern: Optional[Iterable[str]],
        geo_length: int,
        what: str = "GEOID"
    ) -> pd.DataFrame:
        """
        Keep only the rows inside a reference area.

        Each row's ID is truncated to `geo_length` characters and kept when it
        starts with one of the patterns. Patterns of exactly `geo_length`
        characters therefore match by equality, shorter ones (state or county
        GEOIDs) by prefix.

        Args:
            df: Combined query results.
            pattern: GEOIDs or GEOID prefixes to keep; None keeps every row.
            geo_length: GEOID length at the requested geography level.
            what: Column holding the IDs.

        Returns:
            Filtered table in the original row order.
        """
        if pattern is None:
            return df

        patterns = tuple(pattern)
        truncated = df[what].astype(str).str[:geo_length]
        mask = truncated.map(lambda geoid: geoid.startswith(patterns)).astype(bool)

        filtered = df[mask].reset_index(drop=True)
        logger.info(
            f"Filtered {len(df)} records to {len(filtered)} matching "
            f"{len(patterns)} GEOID pattern(s)"
        )
        return filtered
