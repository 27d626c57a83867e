"""Abstract base class for vendor adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from fnmatch import fnmatchcase
from typing import Any, AsyncIterator, Callable, ClassVar, Sequence

from unillm.completion import next_round
from unillm.contracts import is_streaming
from unillm.streaming import StreamDecoder

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 8


class Provider(ABC):
    """
    An adapter for one vendor backend.

    Subclasses supply the vendor-specific pieces:
      - ``send`` -- one non-streaming call, returning a decoded response.
      - ``open_stream`` -- the raw units of one streaming call.
      - ``decode_partial`` / ``decode_error`` -- the streaming codec.

    The base class provides the unified contract on top of them:
      - ``perform`` -- call, then loop through tool-calling rounds until the
        exchange stabilizes.
      - ``stream`` -- decode and merge partials, and splice each follow-up
        round onto the same stream.

    Parameters
    ----------
    models:
        Glob patterns (``fnmatch``) of model ids this adapter serves.
    max_rounds:
        Upper bound on calls per exchange, tool-calling rounds included.
    """

    request_types: ClassVar[tuple[type, ...]] = ()

    def __init__(
        self,
        models: Sequence[str] = ("*",),
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1, got {max_rounds}")
        self._models = tuple(models)
        self.max_rounds = max_rounds

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable adapter name (e.g. ``"openai-compat"``)."""
        ...

    @abstractmethod
    async def send(self, request: Any) -> Any:
        """Perform a single non-streaming call and decode the response."""
        ...

    @abstractmethod
    def open_stream(self, request: Any) -> AsyncIterator[str]:
        """Open a streaming call and yield its raw text units."""
        ...

    @abstractmethod
    def decode_partial(self, buffer: str) -> Any | None:
        """Decode buffered stream text; raise ``ValueError`` if incomplete."""
        ...

    def decode_error(self, unit: str) -> Exception | None:
        """Return a ``VendorError`` when *unit* is a vendor error frame."""
        return None

    def partial_decoder(self) -> Callable[[str], Any | None]:
        """Decode function for one stream; override to keep per-stream state."""
        return self.decode_partial

    def postprocess(self, partial: Any) -> Any:
        return partial

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    async def aclose(self) -> None:
        """Release transport resources."""

    # ------------------------------------------------------------------
    # Capability predicate
    # ------------------------------------------------------------------

    def can_handle(self, request: Any) -> bool:
        if not isinstance(request, self.request_types):
            return False
        model = getattr(request, "model", None)
        if model is None:
            return True
        return any(fnmatchcase(model, pattern) for pattern in self._models)

    # ------------------------------------------------------------------
    # Unified contract
    # ------------------------------------------------------------------

    async def perform(self, request: Any) -> Any:
        """Return the final response after any tool-calling rounds."""
        current = request
        for round_no in range(1, self.max_rounds + 1):
            response = await self.send(current)
            follow_up = await next_round(current, response)
            if follow_up is None:
                return response
            if round_no == self.max_rounds:
                logger.warning(
                    "%s: stopping after %d rounds with tool calls still pending",
                    self.name, self.max_rounds,
                )
                return response
            current = follow_up
        raise RuntimeError("unreachable")  # pragma: no cover

    def stream(self, request: Any) -> AsyncIterator[Any]:
        """
        Stream partial responses for *request*.

        A request without its stream flag set is performed normally and its
        final response yielded as the only element.
        """
        if not is_streaming(request):
            return self._perform_as_stream(request)
        return self._stream_rounds(request)

    async def _perform_as_stream(self, request: Any) -> AsyncIterator[Any]:
        yield await self.perform(request)

    async def _stream_rounds(self, request: Any) -> AsyncIterator[Any]:
        current = request
        for round_no in range(1, self.max_rounds + 1):
            decoder = StreamDecoder(
                self.partial_decoder(),
                current.response_type.empty(),
                detect_error=self.decode_error,
                postprocess=self.postprocess,
            )
            async with aclosing(decoder.decode(self.open_stream(current))) as partials:
                async for partial in partials:
                    yield partial

            follow_up = await next_round(current, decoder.accumulated)
            if follow_up is None:
                return
            if round_no == self.max_rounds:
                logger.warning(
                    "%s: stream stopped after %d rounds with tool calls still pending",
                    self.name, self.max_rounds,
                )
                return
            logger.info("%s: continuing stream with tool results (round %d)", self.name, round_no + 1)
            current = follow_up
