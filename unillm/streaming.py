"""
Streaming decoder and merger.

Turns a live sequence of raw protocol units (bytes, lines, frames) into
typed partial responses, and folds them into one accumulated response.

A unit is not guaranteed to hold one complete payload, so the decoder keeps
a text buffer:

  - Each unit is first offered to the adapter's error detector; a vendor
    error frame aborts the stream immediately.
  - Otherwise the unit is appended to the buffer and the adapter's decode
    function is tried on the whole buffer.
  - A decode failure means "need more data": the buffer is kept and the
    failure remembered.  Success clears both.
  - Bytes units go through an incremental decoder, so a character split
    across units waits for its remaining bytes.
  - At end-of-stream, leftover data whose last decode attempt failed raises
    ``StreamDecodeFailed``.
"""

from __future__ import annotations

import codecs
import logging
from contextlib import aclosing
from typing import AsyncIterable, AsyncIterator, Callable, Generic, TypeVar

from unillm.errors import StreamDecodeFailed

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Exceptions an adapter's decode function raises for an incomplete payload.
DECODE_ERRORS: tuple[type[Exception], ...] = (ValueError, KeyError, TypeError)


class StreamDecoder(Generic[R]):
    """
    Buffers raw units, decodes partial responses and merges them.

    Parameters
    ----------
    decode_partial:
        Decodes the buffered text into a partial response.  Raises one of
        ``DECODE_ERRORS`` when more data is needed; may return ``None`` for
        keep-alive or sentinel units that carry no response.
    empty:
        The response type's empty value; seed of the fold.
    detect_error:
        Optional check run on each raw unit before buffering.  Returns the
        exception to raise for a vendor error frame, else ``None``.
    postprocess:
        Optional vendor-neutral transform applied to each emitted partial.
    """

    def __init__(
        self,
        decode_partial: Callable[[str], R | None],
        empty: R,
        *,
        detect_error: Callable[[str], Exception | None] | None = None,
        postprocess: Callable[[R], R] | None = None,
        encoding: str = "utf-8",
    ) -> None:
        self._decode = decode_partial
        self._detect_error = detect_error
        self._postprocess = postprocess
        self._encoding = encoding
        self._bytes = codecs.getincrementaldecoder(encoding)()
        self._buffer = ""
        self._last_error: Exception | None = None
        self.accumulated: R = empty
        self.partial_count = 0

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    # ------------------------------------------------------------------
    # Synchronous core
    # ------------------------------------------------------------------

    def feed(self, unit: str | bytes) -> R | None:
        """
        Offer one raw unit.

        Returns the post-processed partial response when the buffer decoded,
        ``None`` when more data is needed or the unit carried no response.
        """
        if isinstance(unit, bytes):
            # A multibyte character may straddle two units.
            try:
                text = self._bytes.decode(unit)
            except UnicodeDecodeError as exc:
                raise StreamDecodeFailed(self._buffer, exc) from exc
            if not text:
                return None
        else:
            text = unit

        if self._detect_error is not None:
            error = self._detect_error(text)
            if error is not None:
                raise error

        self._buffer += text
        try:
            partial = self._decode(self._buffer)
        except DECODE_ERRORS as exc:
            self._last_error = exc
            logger.debug("Buffering %d chars: %s", len(self._buffer), exc)
            return None

        self._buffer = ""
        self._last_error = None
        if partial is None:
            return None

        self.accumulated = self.accumulated.combine(partial)
        self.partial_count += 1
        if self._postprocess is not None:
            partial = self._postprocess(partial)
        return partial

    def finish(self) -> R:
        """Validate end-of-stream state and return the accumulated response."""
        try:
            self._bytes.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            raise StreamDecodeFailed(self._buffer, exc) from exc
        if self._buffer.strip() and self._last_error is not None:
            raise StreamDecodeFailed(self._buffer, self._last_error)
        return self.accumulated

    # ------------------------------------------------------------------
    # Async driver
    # ------------------------------------------------------------------

    async def decode(self, units: AsyncIterable[str | bytes]) -> AsyncIterator[R]:
        """
        Yield partial responses decoded from *units*.

        When the consumer stops early the unit iterator is closed, which
        tears down the underlying connection.
        """
        try:
            async for unit in units:
                partial = self.feed(unit)
                if partial is not None:
                    yield partial
            self.finish()
        finally:
            aclose = getattr(units, "aclose", None)
            if aclose is not None:
                await aclose()


async def decode_stream(
    units: AsyncIterable[str | bytes],
    decode_partial: Callable[[str], R | None],
    empty: R,
    **kwargs,
) -> AsyncIterator[R]:
    """Convenience wrapper: yield partials from a fresh ``StreamDecoder``."""
    decoder = StreamDecoder(decode_partial, empty, **kwargs)
    async with aclosing(decoder.decode(units)) as partials:
        async for partial in partials:
            yield partial
