"""Infer a bill's lifecycle status from TLO action text.

Single actions are classified by substring match in a fixed priority order,
most advanced state first, so that an action such as "Signed by the Governor
after committee report" lands on ``Signed`` and not ``In Committee``.

A full stage history is folded by taking the most advanced status reached
anywhere in it.  Stage pages are not reliably chronological, so the last row
is not trusted to be the latest.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .models import BillStatus, Stage

LOGGER = logging.getLogger(__name__)

# (status, substrings); evaluated top to bottom.
_ACTION_RULES: tuple[tuple[BillStatus, tuple[str, ...]], ...] = (
    (BillStatus.EFFECTIVE, ("becomes law", "became law", "effective", "enacted")),
    (BillStatus.VETOED, ("vetoed",)),
    (
        BillStatus.SIGNED,
        ("signed by governor", "signed by the governor", "governor signed"),
    ),
    (
        BillStatus.PASSED,
        ("sent to governor", "sent to the governor", "enrolled", "passed"),
    ),
    (
        BillStatus.IN_COMMITTEE,
        ("committee", "referred", "reported", "engrossed", "amended", "read"),
    ),
    (BillStatus.FILED, ("filed", "introduced")),
)

# Effective outranks Vetoed: a veto override ends with the bill becoming law.
_RANK: dict[BillStatus, int] = {
    BillStatus.FILED: 0,
    BillStatus.IN_COMMITTEE: 1,
    BillStatus.PASSED: 2,
    BillStatus.SIGNED: 3,
    BillStatus.VETOED: 4,
    BillStatus.EFFECTIVE: 5,
}


def status_rank(status: BillStatus) -> int:
    return _RANK[status]


def most_advanced(*statuses: BillStatus) -> BillStatus:
    """Return the highest-ranked status, ``FILED`` when given none."""
    best = BillStatus.FILED
    for s in statuses:
        if _RANK[s] > _RANK[best]:
            best = s
    return best


def infer_status(action_text: str | None) -> BillStatus:
    """Classify one action string.

    Examples::

        >>> infer_status("Referred to State Affairs").value
        'In Committee'
        >>> infer_status("Bill becomes law without signature").value
        'Effective'
        >>> infer_status("Something unrecognized").value
        'Filed'
    """
    if not action_text:
        return BillStatus.FILED
    lowered = action_text.lower()
    for status, needles in _ACTION_RULES:
        if any(n in lowered for n in needles):
            return status
    LOGGER.debug("infer_status: no rule matched %r, defaulting to Filed", action_text)
    return BillStatus.FILED


def infer_status_from_stages(stages: Iterable[Stage | str]) -> BillStatus:
    """Fold a stage history into one status: the most advanced stage wins."""
    statuses = []
    for stage in stages:
        text = stage.action if isinstance(stage, Stage) else stage
        statuses.append(infer_status(text))
    return most_advanced(*statuses)
