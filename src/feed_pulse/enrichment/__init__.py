# ABOUTME: Enrichment module for Open Graph and share-count lookups.
# ABOUTME: Exports the EnrichmentClient and the Open Graph HTML parser.

from feed_pulse.enrichment.client import EnrichmentClient, guess_image_type, parse_open_graph

__all__ = ["EnrichmentClient", "guess_image_type", "parse_open_graph"]
