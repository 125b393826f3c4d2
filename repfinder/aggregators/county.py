"""County officials from the curated county registry, keyed by county name."""

from repfinder.aggregators.base import CuratedLevelAggregator


class CountyAggregator(CuratedLevelAggregator):
    level = "county"
    source_name = "county_registry"

    def lookup_name(self, location, jurisdiction) -> str | None:
        return jurisdiction.county or location.county
