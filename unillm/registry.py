"""
Provider registry -- holds adapters and routes each request to one of them.

The registry is the primary entry point for application code that needs a
model response.  It:

  1. Keeps at most one adapter per concrete adapter class.  Registering a
     second instance of the same class replaces the first in place
     (credential rotation) without changing dispatch order.
  2. Scans adapters in registration order and hands the request to the
     first whose ``can_handle`` predicate accepts it.  When two adapters
     could both claim a request the earlier-registered one wins, so keep
     their model patterns disjoint.
  3. Fails with ``UnhandledRequest`` when nothing matches -- raised directly
     from ``perform``, delivered as the stream's only item from ``stream``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, AsyncIterator, TypeVar

from unillm.contracts import Adapter
from unillm.errors import UnhandledRequest

logger = logging.getLogger(__name__)

A = TypeVar("A")


class ProviderRegistry:
    """Routes requests to the first registered adapter able to serve them."""

    def __init__(self) -> None:
        self._providers: dict[type, Adapter] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Adapter management
    # ------------------------------------------------------------------

    def register(self, provider: Adapter) -> None:
        """Register *provider*, replacing any instance of the same class."""
        key = type(provider)
        with self._lock:
            replaced = key in self._providers
            self._providers[key] = provider
        if replaced:
            logger.info("Replaced adapter %s (%s)", provider.name, key.__name__)
        else:
            logger.info("Registered adapter %s (%s)", provider.name, key.__name__)

    def lookup(self, cls: type[A]) -> A | None:
        """Return the adapter registered for *cls*, if any."""
        with self._lock:
            return self._providers.get(cls)

    def unregister(self, cls: type) -> Adapter | None:
        """Remove and return the adapter registered for *cls*."""
        with self._lock:
            return self._providers.pop(cls, None)

    @property
    def providers(self) -> list[Adapter]:
        """Registered adapters in dispatch order."""
        with self._lock:
            return list(self._providers.values())

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def resolve(self, request: Any) -> Adapter:
        """
        Return the adapter that will serve *request*.

        Raises ``UnhandledRequest`` if no registered adapter accepts it.
        """
        for provider in self.providers:
            if provider.can_handle(request):
                logger.info(
                    "Dispatching %s for model %r to %s",
                    type(request).__name__,
                    getattr(request, "model", None),
                    provider.name,
                )
                return provider
        logger.warning(
            "No adapter accepts %s for model %r (registered: %s)",
            type(request).__name__,
            getattr(request, "model", None),
            self.provider_names,
        )
        raise UnhandledRequest(request)

    async def perform(self, request: Any) -> Any:
        """Perform *request* on the matching adapter and return the response."""
        return await self.resolve(request).perform(request)

    def stream(self, request: Any) -> AsyncIterator[Any]:
        """
        Stream partial responses for *request* from the matching adapter.

        Never raises on dispatch: with no match the returned stream fails
        with ``UnhandledRequest`` on first iteration.
        """
        try:
            provider = self.resolve(request)
        except UnhandledRequest as exc:
            return _failed_stream(exc)
        return provider.stream(request)

    async def aclose(self) -> None:
        """Close every registered adapter's transport."""
        for provider in self.providers:
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()


async def _failed_stream(error: Exception) -> AsyncIterator[Any]:
    raise error
    yield  # pragma: no cover
