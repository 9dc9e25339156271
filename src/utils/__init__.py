"""
Utility modules for ReviewLens.

Cross-cutting concerns:
- LLM: Chat-completion interface and the Gemini implementation
- Storage: Persistence gateway and the JSON-file store
"""
