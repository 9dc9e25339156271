"""
Agent implementations for ReviewLens.

Contains the pipeline stages a project's reviews pass through:
- Ingestion Agent (providers + merge/fallback)
- Review Deduplicator
- Ingestion (quality) Filter
- Review Analysis Agent
- Progress Tracker
- Analytics Aggregator
"""
