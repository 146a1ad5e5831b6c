# linkmeta/enrichers/chain.py
# Responsibility: Runs registered enrichers in order, isolating their failures.

import inspect
import logging
from typing import Iterable, List, Optional, Tuple

from linkmeta.crawler.errors import EnricherError
from linkmeta.crawler.models import LinkMetadata
from linkmeta.enrichers.base import Enricher, EnrichmentContext

logger = logging.getLogger(__name__)


class EnrichmentChain:
    """
    Ordered list of enrichers without short-circuiting.
    Every matching enricher runs, so a later one may overwrite fields
    written by an earlier one.
    """

    def __init__(self, enrichers: Optional[Iterable[Enricher]] = None):
        self._enrichers: List[Enricher] = list(enrichers or [])

    @property
    def enrichers(self) -> Tuple[Enricher, ...]:
        return tuple(self._enrichers)

    def register(self, enricher: Enricher) -> None:
        """Appends to the end of the chain. Runs already in progress are unaffected."""
        self._enrichers.append(enricher)

    async def run(self, context: EnrichmentContext) -> LinkMetadata:
        # Snapshot so registrations during a run only apply to later fetches
        for enricher in list(self._enrichers):
            name = getattr(enricher, "name", None) or type(enricher).__name__
            try:
                matched = enricher.matches(context)
                if inspect.isawaitable(matched):
                    matched = await matched
                if not matched:
                    continue

                outcome = enricher.enrich(context)
                if inspect.isawaitable(outcome):
                    await outcome
                logger.debug("[EnrichmentChain] %s enriched %s", name, context.original_url)
            except Exception as e:
                logger.warning("[EnrichmentChain] %s", EnricherError(name, e))
        return context.metadata
