# linkmeta/crawler/classifier.py
# Responsibility: Detecting success responses that actually describe a missing resource.

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple
from urllib.parse import urlparse

# Generic title tokens, matched strictly (equality or token + separator)
GENERIC_ERROR_TOKENS = ("404", "not found", "page not found", "404 error")
TOKEN_SEPARATORS = (" ", "|", "-", ":")


@dataclass(frozen=True)
class DomainRule:
    """Phrases that mark a soft failure on one content host."""

    host_pattern: Pattern
    title_phrases: Tuple[str, ...] = ()
    description_phrases: Tuple[str, ...] = ()
    content_phrases: Tuple[str, ...] = ()

    def applies_to(self, hostname: str) -> bool:
        return bool(self.host_pattern.search(hostname))

    def matches(self, content: str, title: str, description: str) -> bool:
        return (
            any(p in title for p in self.title_phrases)
            or any(p in description for p in self.description_phrases)
            or any(p in content for p in self.content_phrases)
        )


DEFAULT_RULES: List[DomainRule] = [
    DomainRule(
        host_pattern=re.compile(r"(^|\.)reddit\.com$"),
        title_phrases=("page not found", "this community doesn't exist"),
        description_phrases=("page not found",),
        content_phrases=("sorry, nobody on reddit goes by that name",),
    ),
    DomainRule(
        host_pattern=re.compile(r"(^|\.)(youtube\.com|youtu\.be)$"),
        title_phrases=("video unavailable",),
        description_phrases=("video isn't available", "video has been removed"),
        content_phrases=("this video isn't available",),
    ),
]


class ErrorClassifier:
    """
    Flags "soft" failures: pages served with a success status whose content
    says the resource does not exist.
    """

    def __init__(self, rules: Optional[List[DomainRule]] = None):
        self.rules = list(DEFAULT_RULES if rules is None else rules)

    def is_disguised_failure(
        self,
        content: Optional[str],
        title: Optional[str],
        description: Optional[str],
        url: str,
    ) -> bool:
        hostname = self._hostname(url)
        content_lc = (content or "").lower()
        title_lc = (title or "").strip().lower()
        description_lc = (description or "").strip().lower()

        # 1. Domain-specific phrases
        for rule in self.rules:
            if rule.applies_to(hostname) and rule.matches(content_lc, title_lc, description_lc):
                return True

        # 2. Generic title check, applied to every host
        return self.is_generic_error_title(title_lc)

    @staticmethod
    def is_generic_error_title(title: str) -> bool:
        title = title.strip().lower()
        if not title:
            return False
        for token in GENERIC_ERROR_TOKENS:
            if title == token:
                return True
            if any(title.startswith(token + sep) for sep in TOKEN_SEPARATORS):
                return True
        return False

    @staticmethod
    def _hostname(url: str) -> str:
        try:
            return (urlparse(url).hostname or "").lower()
        except ValueError:
            return ""
