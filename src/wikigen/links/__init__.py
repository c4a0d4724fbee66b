"""Entity extraction, link injection and the page link graph."""

from wikigen.links.candidates import LinkCandidate, LinkCandidateStore, candidate_tier
from wikigen.links.entities import EntityExtractor, EntityLink, ExtractionOutcome
from wikigen.links.graph import PageGraph, RelatedPage
from wikigen.links.injection import inject_links

__all__ = [
    "EntityExtractor",
    "EntityLink",
    "ExtractionOutcome",
    "LinkCandidate",
    "LinkCandidateStore",
    "PageGraph",
    "RelatedPage",
    "candidate_tier",
    "inject_links",
]
