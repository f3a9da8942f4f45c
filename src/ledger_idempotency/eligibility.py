"""Request eligibility for idempotency protection.

Only mutating financial operations are mediated. A request is protected when
its method is one of the configured mutating methods and its path matches one
of the configured patterns; everything else passes straight through to the
application, with or without an idempotency key.

Examples:
    >>> eligibility = EligibilityFilter.from_config(IdempotencyConfig())
    >>> eligibility.classify("POST", "/clients/42/withdraw")
    True
    >>> eligibility.classify("GET", "/clients/42")
    False
"""

import re
from collections.abc import Iterable

from ledger_idempotency.config import IdempotencyConfig


def classify(
    method: str,
    path: str,
    methods: Iterable[str],
    patterns: Iterable[re.Pattern[str]],
) -> bool:
    """Return True if a request with this method and path must be protected.

    Args:
        method: HTTP method, any case.
        path: Request path without query string.
        methods: Uppercase protected methods.
        patterns: Compiled path patterns; any match protects the path.
    """
    if method.upper() not in methods:
        return False
    return any(pattern.search(path) for pattern in patterns)


class EligibilityFilter:
    """Classifies requests as protected or passthrough."""

    def __init__(self, methods: Iterable[str], patterns: Iterable[str]) -> None:
        self.methods = frozenset(method.upper() for method in methods)
        self.patterns = tuple(re.compile(pattern) for pattern in patterns)

    @classmethod
    def from_config(cls, config: IdempotencyConfig) -> "EligibilityFilter":
        return cls(config.protected_methods, config.protected_paths)

    def classify(self, method: str, path: str) -> bool:
        return classify(method, path, self.methods, self.patterns)
