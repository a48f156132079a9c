import logging
from typing import Iterator, List, Optional

from cvscan.models import CapturedPage
from cvscan.pipeline.exceptions import PageLimitError


class PageBuffer:
    """
    Ordered pages of the document being scanned.

    Insertion order is page order. Pages are addressed by id only, since
    positions shift after a retake. Not thread-safe: the controller
    serialises every mutation.
    """

    def __init__(self, max_pages: int = 20):
        self.max_pages = max_pages
        self._pages: List[CapturedPage] = []
        self.log = logging.getLogger("PageBuffer")

    def append(self, page: CapturedPage) -> None:
        if self.is_full:
            raise PageLimitError(f"Page limit of {self.max_pages} reached")
        self._pages.append(page)
        self.log.debug(f"Page {page.id} appended ({len(self._pages)} total)")

    def remove(self, page_id: str) -> Optional[CapturedPage]:
        """Remove and release the page with ``page_id``; no-op when absent."""
        for i, page in enumerate(self._pages):
            if page.id == page_id:
                del self._pages[i]
                page.release()
                self.log.debug(f"Page {page_id} removed ({len(self._pages)} left)")
                return page
        return None

    def clear(self) -> None:
        pages, self._pages = self._pages, []
        for page in pages:
            page.release()
        if pages:
            self.log.debug(f"Cleared {len(pages)} page(s)")

    def to_ordered_list(self) -> List[CapturedPage]:
        return list(self._pages)

    def __len__(self):
        return len(self._pages)

    def __iter__(self) -> Iterator[CapturedPage]:
        return iter(self.to_ordered_list())

    def __contains__(self, page_id) -> bool:
        return any(page.id == page_id for page in self._pages)

    @property
    def is_empty(self) -> bool:
        return not self._pages

    @property
    def is_full(self) -> bool:
        return self.max_pages > 0 and len(self._pages) >= self.max_pages
