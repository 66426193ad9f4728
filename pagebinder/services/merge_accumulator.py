"""
Fold captured single-page documents into one PDF in URL order.

Results may be handed to the accumulator in any order; they are buffered
and merged strictly by their index in the job's URL list. Failed captures
contribute nothing and are never replaced by blank pages.
"""

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from pypdf import PdfReader, PdfWriter

from pagebinder.models.capture import (
    CaptureResult,
    CaptureSuccess,
    CaptureFailure,
    FailedUrl,
    FailureReason,
)

logger = logging.getLogger(__name__)


class MergePrimitive(ABC):
    """Concatenates page-description documents."""

    @abstractmethod
    def create_empty(self):
        """Create an empty output document."""
        pass

    @abstractmethod
    def append_all_pages(self, doc, other_doc_bytes: bytes):
        """Append every page of ``other_doc_bytes`` to ``doc`` and return it."""
        pass

    @abstractmethod
    def page_count(self, doc) -> int:
        pass

    @abstractmethod
    def serialize(self, doc) -> bytes:
        pass


class PypdfMergePrimitive(MergePrimitive):
    """Merge primitive backed by pypdf."""

    def create_empty(self) -> PdfWriter:
        return PdfWriter()

    def append_all_pages(self, doc: PdfWriter, other_doc_bytes: bytes) -> PdfWriter:
        reader = PdfReader(io.BytesIO(other_doc_bytes))
        if len(reader.pages) == 0:
            raise ValueError("Document has no pages")
        for page in reader.pages:
            doc.add_page(page)
        return doc

    def page_count(self, doc: PdfWriter) -> int:
        return len(doc.pages)

    def serialize(self, doc: PdfWriter) -> bytes:
        buffer = io.BytesIO()
        doc.write(buffer)
        return buffer.getvalue()


@dataclass
class MergeOutcome:
    """What the accumulator produced. ``document`` is None when no page was merged."""
    document: Optional[bytes]
    succeeded: List[str] = field(default_factory=list)
    failed: List[FailedUrl] = field(default_factory=list)
    page_count: int = 0


class MergeAccumulator:
    """
    Ordered merge of capture results.

    ``add`` accepts results in any arrival order. A result is merged only
    once every result with a lower index has been merged, so the output
    page order is always the input URL order with failed URLs left out.
    """

    def __init__(self, merge_primitive: Optional[MergePrimitive] = None):
        self.merge_primitive = merge_primitive or PypdfMergePrimitive()
        self._doc = self.merge_primitive.create_empty()
        self._pending: Dict[int, CaptureResult] = {}
        self._next_index = 0
        self._page_count = 0
        self.succeeded: List[str] = []
        self.failed: List[FailedUrl] = []

    @property
    def next_index(self) -> int:
        return self._next_index

    def add(self, result: CaptureResult) -> None:
        """Buffer a result and merge every result that is now in sequence."""
        if result.index < self._next_index or result.index in self._pending:
            raise ValueError(f"Duplicate result for index {result.index} ({result.url})")

        self._pending[result.index] = result
        while self._next_index in self._pending:
            self._fold(self._pending.pop(self._next_index))
            self._next_index += 1

    def _fold(self, result: CaptureResult) -> None:
        outcome = result.outcome
        if isinstance(outcome, CaptureFailure):
            self.failed.append(FailedUrl(url=result.url, reason=outcome.reason, detail=outcome.detail))
            return

        assert isinstance(outcome, CaptureSuccess)
        pages_before = self.merge_primitive.page_count(self._doc)
        try:
            self._doc = self.merge_primitive.append_all_pages(self._doc, outcome.document_bytes)
        except Exception as e:
            logger.warning(f"Could not merge document for {result.url}: {e}")
            self.failed.append(FailedUrl(url=result.url, reason=FailureReason.MERGE, detail=str(e)))
            return

        self._page_count += self.merge_primitive.page_count(self._doc) - pages_before
        self.succeeded.append(result.url)

    def finalize(self) -> MergeOutcome:
        """
        Merge anything still buffered (in index order) and serialize.

        Returns:
            MergeOutcome; ``document`` is None if no URL succeeded
        """
        for index in sorted(self._pending):
            self._fold(self._pending.pop(index))
            self._next_index = index + 1

        if not self.succeeded:
            logger.warning("No pages were captured; returning empty result")
            return MergeOutcome(document=None, succeeded=[], failed=list(self.failed), page_count=0)

        document = self.merge_primitive.serialize(self._doc)
        logger.info(f"Merged {len(self.succeeded)} documents ({self._page_count} pages)")
        return MergeOutcome(
            document=document,
            succeeded=list(self.succeeded),
            failed=list(self.failed),
            page_count=self._page_count
        )


def accumulate(
    results: Iterable[CaptureResult],
    merge_primitive: Optional[MergePrimitive] = None
) -> MergeOutcome:
    """
    Merge a sequence of capture results into one document.

    Results are ordered by index; results sharing an index keep the order
    they were given in.

    Args:
        results: Capture results
        merge_primitive: Merge implementation (pypdf by default)

    Returns:
        MergeOutcome with the merged bytes, or no document if all failed
    """
    accumulator = MergeAccumulator(merge_primitive)
    for position, result in enumerate(sorted(results, key=lambda r: r.index)):
        accumulator.add(result.model_copy(update={"index": position}))
    return accumulator.finalize()
