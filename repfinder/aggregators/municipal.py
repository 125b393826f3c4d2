"""City officials from the curated municipal registry.

Only incorporated cities have a municipal government; for every other
jurisdiction type this aggregator returns nothing without touching the
registry.
"""

import logging

from repfinder.aggregators.base import CuratedLevelAggregator

logger = logging.getLogger(__name__)


class MunicipalAggregator(CuratedLevelAggregator):
    level = "municipal"
    source_name = "municipal_registry"

    def lookup_name(self, location, jurisdiction) -> str | None:
        if jurisdiction.type != "incorporated_city" or not jurisdiction.name:
            logger.debug(
                "%s is %s; no municipal government",
                location.postal_code, jurisdiction.type,
            )
            return None
        return jurisdiction.name
