"""Error taxonomy for the market data gateway."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from marketdata.models.market_data import InstrumentClass, ProviderId


class MarketDataError(Exception):
    """Base class for every error raised by the gateway."""


class InvalidInputError(MarketDataError, ValueError):
    """Raised for malformed caller input such as an unknown range token."""


class NoProviderError(MarketDataError):
    """Raised when no registered provider supports an instrument class."""

    def __init__(self, instrument_class: "InstrumentClass"):
        self.instrument_class = instrument_class
        super().__init__(f"No provider available for instrument class: {instrument_class.value}")


class ProviderError(MarketDataError):
    """
    Failure reported by a single provider.

    Covers unknown symbols, malformed payloads, transport errors and
    exhausted retries. The orchestrator recovers from it by trying the
    next provider.
    """

    def __init__(self, provider: "ProviderId", reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"[{provider.value}] {reason}")


class RateLimitedError(ProviderError):
    """A single "too many requests" response from a provider."""


class RateLimitExceededError(ProviderError):
    """Every retry attempt was rate limited."""

    def __init__(self, provider: "ProviderId", attempts: int, symbol: str):
        self.attempts = attempts
        super().__init__(
            provider,
            f"Rate limit exceeded after {attempts} attempts for {symbol}",
        )


class RetryInterruptedError(ProviderError):
    """The backoff wait was interrupted before the next attempt."""


class AllProvidersFailedError(ProviderError):
    """
    Every eligible provider failed for one request.

    Identity and message come from the last failure; earlier ones are kept
    in ``attempts`` for logging only.
    """

    def __init__(self, last_error: ProviderError, attempts: list[tuple[str, str]]):
        self.last_error = last_error
        self.attempts = tuple(attempts)
        super().__init__(last_error.provider, last_error.reason)
