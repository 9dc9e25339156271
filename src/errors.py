"""
Error taxonomy for ReviewLens.

Provider errors describe a single failed provider attempt and never abort the
pipeline on their own. PersistenceError wraps store failures.
"""


class ReviewLensError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(ReviewLensError):
    """A source provider could not produce reviews."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ConfigError(ProviderError):
    """Required credential or setting is missing."""


class ResolutionError(ProviderError):
    """Location reference could not be resolved to a place."""


class NoReviewsFoundError(ProviderError):
    """Provider ran but found no reviews."""


class UpstreamError(ProviderError):
    """Third-party service answered with an error."""


class ProviderTimeoutError(ProviderError, TimeoutError):
    """Asynchronous job did not finish within the polling budget."""


class PersistenceError(ReviewLensError):
    """Store read or write failed."""
