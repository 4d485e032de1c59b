from __future__ import annotations

from ..filters import is_valid_getonbrd_job
from ..models import RawPosting
from .base import SitePolicy
from .registry import register


@register
class GetOnBrdPolicy(SitePolicy):
    """
    GetOnBrd lists Latin-American roles with the modality in the location
    cell, e.g. "Buenos Aires (Híbrido)". The modality marker sits in nested
    markup, so the location is read as rendered text, and postings go through
    the Argentina/remote location policy.
    """

    kind = "getonbrd"
    visible_location = True

    def is_valid(self, posting: RawPosting) -> bool:
        return is_valid_getonbrd_job(posting.title, posting.location)
