"""Text splitting for parent/child chunking.

Parent chunks follow the markdown heading structure of a document and are the
unit of retrieval. Child chunks are small fixed-size windows cut from a parent
and are the unit of embedding.
"""

import re

HEADER_MARKERS: tuple[str, ...] = ("\n# ", "\n## ", "\n### ", "\n#### ")
PARENT_MAX_LENGTH = 4000  # characters per parent chunk
CHILD_CHUNK_SIZE = 201    # characters per child chunk
CHILD_CHUNK_OVERLAP = 0   # character overlap between consecutive child chunks


def _split_before(content: str, marker: str) -> list[str]:
    """Split content in front of every occurrence of marker, keeping the marker."""
    return [part for part in re.split(f"(?={re.escape(marker)})", content) if part]


def _split_by_header(content: str, max_length: int, level: int) -> list[str]:
    if len(content) <= max_length:
        return [content]
    # no finer structure left, keep the block whole
    if level >= len(HEADER_MARKERS):
        return [content]

    parts = _split_before(content, HEADER_MARKERS[level])
    if len(parts) == 1:
        return _split_by_header(content, max_length, level + 1)

    result: list[str] = []
    accumulated = ""
    for part in parts:
        if len(part) > max_length:
            if accumulated:
                result.append(accumulated)
                accumulated = ""
            result.extend(_split_by_header(part, max_length, level + 1))
        elif accumulated and len(accumulated) + len(part) > max_length:
            result.append(accumulated)
            accumulated = part
        else:
            accumulated += part
    if accumulated:
        result.append(accumulated)
    return result


def split_by_headers(text: str, max_length: int = PARENT_MAX_LENGTH) -> list[str]:
    """Split a markdown document into ordered parent chunks.

    Sections are split at heading markers from level 1 down to level 4 and
    greedily merged back together while they fit into max_length. A section
    without any finer heading is kept whole even if it exceeds max_length.
    Concatenating the result reproduces the input exactly.

    Args:
        text (str): The full document text.
        max_length (int): Maximum number of characters per chunk.

    Returns:
        list[str]: Ordered list of parent chunks. Empty for empty input.

    Raises:
        ValueError: If max_length is smaller than 1.
    """
    if max_length < 1:
        raise ValueError(f"max_length must be at least 1, got {max_length}.")
    if not text:
        return []
    return _split_by_header(text, max_length, 0)


def split_into_children(text: str, chunk_size: int = CHILD_CHUNK_SIZE, chunk_overlap: int = CHILD_CHUNK_OVERLAP) -> list[str]:
    """Split a parent chunk into fixed-size child chunks for embedding.

    Whitespace-only windows are dropped, embedding backends reject empty input.

    Args:
        text (str): The parent chunk text.
        chunk_size (int): Characters per child chunk.
        chunk_overlap (int): Characters shared by consecutive child chunks.

    Returns:
        list[str]: Ordered list of child chunks.

    Raises:
        ValueError: If chunk_overlap is not smaller than chunk_size.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size.")
    if not text:
        return []
    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if text[start:end].strip():
            chunks.append(text[start:end])
        if end >= len(text):
            break
        start = end - chunk_overlap
    return chunks
