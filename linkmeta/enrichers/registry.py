# linkmeta/enrichers/registry.py
# Responsibility: Builds the default, ordered set of built-in enrichers.

from typing import List

from linkmeta.enrichers.base import Enricher
from linkmeta.enrichers.google_search import GoogleSearchEnricher
from linkmeta.enrichers.linkedin import LinkedInEnricher
from linkmeta.enrichers.reddit import RedditEnricher
from linkmeta.enrichers.twitter import TwitterEnricher
from linkmeta.enrichers.wikipedia import WikipediaEnricher


def create_default_enrichers() -> List[Enricher]:
    return [
        WikipediaEnricher(),
        RedditEnricher(),
        GoogleSearchEnricher(),
        TwitterEnricher(),
        LinkedInEnricher(),
    ]
