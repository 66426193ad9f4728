"""
Partition a URL list into fixed-size batches.

Batches are a resource management device only: each batch gets its own
capture context, and concatenating the batches in index order gives back
the input URL list.
"""

import logging
from typing import List, Sequence

from pagebinder.models.capture import Batch

logger = logging.getLogger(__name__)


def schedule(urls: Sequence[str], batch_size: int) -> List[Batch]:
    """
    Split ``urls`` into consecutive batches of at most ``batch_size`` URLs.

    Batch ``i`` holds ``urls[i * batch_size:(i + 1) * batch_size]``; only
    the last batch may be shorter. No I/O.

    Args:
        urls: Ordered URL list
        batch_size: Maximum URLs per batch (> 0)

    Returns:
        Ordered list of batches
    """
    if batch_size < 1:
        raise ValueError("batch_size must be greater than 0")

    batches = [
        Batch(index=i, start=start, urls=list(urls[start:start + batch_size]))
        for i, start in enumerate(range(0, len(urls), batch_size))
    ]

    logger.debug(f"Scheduled {len(urls)} URLs into {len(batches)} batches of up to {batch_size}")
    return batches


def flatten(batches: Sequence[Batch]) -> List[str]:
    """Reconstruct the input URL order from a batch list."""
    return [url for batch in sorted(batches, key=lambda b: b.index) for url in batch.urls]
