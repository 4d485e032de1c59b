from __future__ import annotations

from ..filters import is_valid_job
from ..models import RawPosting


class SitePolicy:
    """
    Per-source behavior, selected by SiteDescriptor.site.

    Subclasses set `kind` and override only what differs:
      - scroll_to_load: run the bounded scroll loop before collecting cards
      - visible_location: read the location as rendered text rather than
        concatenating every descendant text node
      - is_valid(): accept/reject an extracted posting
    """

    kind: str = ""
    scroll_to_load: bool = False
    visible_location: bool = False

    def is_valid(self, posting: RawPosting) -> bool:
        return is_valid_job(posting.title)
