from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def chunkify(items: Sequence[T], chunk_size: int) -> list[list[T]]:
    """
    Split ``items`` into consecutive chunks of at most ``chunk_size`` elements.

    A new chunk starts whenever there is none yet or the last one holds exactly
    ``chunk_size`` items, so every chunk but the last is full.

    ``chunk_size`` must be positive; callers validate it beforehand
    (see ``UploadOptions.chunk``).
    """
    chunks: list[list[T]] = []
    for item in items:
        if not chunks or len(chunks[-1]) == chunk_size:
            chunks.append([])
        chunks[-1].append(item)
    return chunks
