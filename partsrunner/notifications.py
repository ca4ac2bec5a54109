"""
Driver-facing notices

Outcomes the runner should see (saved offline, sync complete, went offline)
are emitted as notices. The app shell renders them; headless runs log them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

import structlog

logger = structlog.get_logger()

NoticeVariant = Literal["default", "destructive"]


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: NoticeVariant = "default"


Notifier = Callable[[Notice], None]


def log_notifier(notice: Notice) -> None:
    if notice.variant == "destructive":
        logger.warning("Driver notice", title=notice.title, description=notice.description)
    else:
        logger.info("Driver notice", title=notice.title, description=notice.description)


class CollectingNotifier:
    """Keeps every notice in order."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    def __call__(self, notice: Notice) -> None:
        self.notices.append(notice)

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notices]
