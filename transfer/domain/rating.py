"""
Rating rules
============

* ``stars`` must be an integer in 1..5.
* Low ratings (``stars <= 3``) need at least one reason code from the
  whitelist in ``RATING_REASON_CODES``.
* Comments are stripped of markup and control characters, then capped.
* Tips are only accepted on customer -> driver ratings and are capped.

Aggregate update is a running mean::

    new_avg = (old_avg * old_count + stars) / (old_count + 1)
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from .enums import RATING_REASON_CODES, RatingType
from .errors import ValidationError

MAX_TIP_AMOUNT = 10_000.0  # THB
MAX_COMMENT_LENGTH = 500
LOW_RATING_THRESHOLD = 3

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(text: Optional[str], max_length: int = MAX_COMMENT_LENGTH) -> str:
    """Remove HTML tags, stray angle brackets and control characters."""
    if not text:
        return ""
    cleaned = _TAG_RE.sub("", text)
    cleaned = cleaned.replace("<", "").replace(">", "")
    cleaned = _CONTROL_RE.sub("", cleaned)
    return cleaned.strip()[:max_length]


def validate_rating(
    rating_type: RatingType,
    stars: int,
    reasons: Optional[Sequence[str]] = None,
    tip: Optional[float] = None,
) -> list[str]:
    """Validate rating input and return the normalised reason list."""
    if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
        raise ValidationError("Stars must be an integer between 1 and 5")

    reasons = list(reasons or [])
    invalid = [r for r in reasons if r not in RATING_REASON_CODES]
    if invalid:
        raise ValidationError(f"Invalid reason codes: {', '.join(sorted(invalid))}")
    if stars <= LOW_RATING_THRESHOLD and not reasons:
        raise ValidationError("Reasons are required for ratings of 3 stars or less")

    if tip is not None:
        if rating_type is not RatingType.CUSTOMER_TO_DRIVER and tip > 0:
            raise ValidationError("Tips can only be given by customers")
        if tip < 0 or tip > MAX_TIP_AMOUNT:
            raise ValidationError(f"Tip must be between 0 and {MAX_TIP_AMOUNT:,.0f}")

    return reasons


def running_average(old_avg: float, old_count: int, stars: int) -> float:
    return round((old_avg * old_count + stars) / (old_count + 1), 4)
