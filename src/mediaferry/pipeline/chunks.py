"""Splitting payloads into contiguous byte ranges."""

from mediaferry.models import ChunkDescriptor


def plan_chunks(size: int, chunk_size: int) -> list[ChunkDescriptor]:
    """
    Split a payload of `size` bytes into fixed-size chunks.

    Every chunk is exactly `chunk_size` bytes except possibly the last. A
    zero-byte payload yields a single empty chunk; callers reject empty
    payloads before planning.

    Args:
        size: Total payload size in bytes
        chunk_size: Bytes per chunk

    Returns:
        Chunks in index order covering [0, size)
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if size < 0:
        raise ValueError(f"size must not be negative, got {size}")

    if size == 0:
        return [ChunkDescriptor(index=0, start=0, end=0)]

    return [
        ChunkDescriptor(index=i, start=start, end=min(start + chunk_size, size))
        for i, start in enumerate(range(0, size, chunk_size))
    ]
