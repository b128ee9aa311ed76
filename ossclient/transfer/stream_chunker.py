"""Regroup a stream of variable-sized byte pieces into upload-sized chunks."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ossclient.core.exceptions import InternalError


def chunk(source: Iterable[bytes], min_chunk_size: int) -> Iterator[bytes]:
    """Lazily regroup ``source`` into chunks of at least ``min_chunk_size``.

    Every chunk except possibly the last one is at least ``min_chunk_size``
    bytes long and the concatenation of all chunks equals the concatenation
    of the input. Input boundaries are not preserved. The source is consumed
    in a single pass, only as far as needed to produce the next chunk.

    Args:
        source: Byte pieces of arbitrary size, for example file reads.
        min_chunk_size: Minimum size of every chunk but the last.

    Yields:
        Chunks between ``min_chunk_size`` and ``2 * min_chunk_size - 1``
        bytes, followed by one shorter trailing chunk if bytes remain.

    Raises:
        ValueError: If ``min_chunk_size`` is less than 1.
        InternalError: If the working buffer ever exceeds its capacity.
    """
    if min_chunk_size < 1:
        raise ValueError(f"min_chunk_size must be at least 1, got {min_chunk_size}")

    capacity = 2 * min_chunk_size
    upload_buffer = bytearray()

    for piece in source:
        view = memoryview(piece)
        while len(view) > 0:
            # Never accept more than the buffer can hold before flushing
            take = min(len(view), capacity - len(upload_buffer))
            upload_buffer.extend(view[:take])
            view = view[take:]

            if len(upload_buffer) > capacity:
                raise InternalError(
                    f"Chunk buffer holds {len(upload_buffer)} bytes, "
                    f"capacity is {capacity}"
                )
            while len(upload_buffer) >= min_chunk_size:
                size = min(len(upload_buffer), capacity - 1)
                yield bytes(upload_buffer[:size])
                del upload_buffer[:size]

    if upload_buffer:
        yield bytes(upload_buffer)
