"""
Error taxonomy for the agent routing and resilience layer.

Only ConfigurationError is allowed to reach callers. Upstream and store
errors are absorbed at the component boundary and turned into a failed
GenerationResult or a FallbackRecord.
"""


class ConfigurationError(Exception):
    """Unknown model key or invalid registry/agent configuration."""
    pass


class UpstreamError(Exception):
    """Non-200, malformed or timed out response from the inference backend."""
    pass


class StoreError(Exception):
    pass


class StoreUnavailable(StoreError):
    """Record store unreachable or timed out. Retried with backoff."""
    pass


class StoreAuthError(StoreError):
    """Record store rejected our credentials. Never retried."""
    pass
