"""Model domain: artifact identities and wildcard patterns."""

from pomprune.model.gav import (
    MATCH_ALL_GA,
    Ga,
    Gav,
    GavPattern,
    GavSet,
    Gavtcs,
    UnionGavSet,
)

__all__ = [
    "MATCH_ALL_GA",
    "Ga",
    "Gav",
    "GavPattern",
    "GavSet",
    "Gavtcs",
    "UnionGavSet",
]
