from gateway.providers.cancellation import CancellationToken
from gateway.providers.execution_types import Failure, HealthResult, Outcome, RequestDescriptor, Success
from gateway.providers.models import Provider, ProviderStatus
from gateway.providers.rate_limit import InMemoryCounterStore, RateLimiter, RedisCounterStore
from gateway.providers.registry import ProviderRegistry, load_providers
from gateway.providers.transport import HttpxTransport, Transport, TransportResponse

__all__ = [
    "CancellationToken",
    "Failure",
    "HealthResult",
    "HttpxTransport",
    "InMemoryCounterStore",
    "Outcome",
    "Provider",
    "ProviderRegistry",
    "ProviderStatus",
    "RateLimiter",
    "RedisCounterStore",
    "RequestDescriptor",
    "Success",
    "Transport",
    "TransportResponse",
    "load_providers",
]
