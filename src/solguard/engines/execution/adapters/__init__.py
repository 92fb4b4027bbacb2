from solguard.engines.execution.adapters.jupiter_adapter import (
    JupiterConfig,
    Quote,
    QuoteNegotiator,
    QuoteRequest,
    QuoteValidation,
    RetryPolicy,
    RouteHop,
    SwapBuild,
)

__all__ = [
    "JupiterConfig",
    "Quote",
    "QuoteNegotiator",
    "QuoteRequest",
    "QuoteValidation",
    "RetryPolicy",
    "RouteHop",
    "SwapBuild",
]
