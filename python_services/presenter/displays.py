"""Resolve configured display ids against the displays attached right now."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from shared.models import Display

logger = logging.getLogger(__name__)


class DisplayResolver:
    """Maps a stored display id onto a currently attached display.

    Display ids are re-resolved at every open; they are not assumed to be stable
    across reboots or hot-plug events.
    """

    def __init__(self, list_displays: Callable[[], List[Display]]) -> None:
        self._list_displays = list_displays

    def list_displays(self) -> List[Display]:
        return list(self._list_displays())

    def resolve(self, configured_id: Any) -> Display:
        """Return the display with `configured_id`, or the first available one."""
        displays = self.list_displays()
        if not displays:
            raise RuntimeError("No displays are attached")

        wanted = _coerce_id(configured_id)
        if wanted is not None:
            for display in displays:
                if display.id == wanted:
                    return display
            logger.warning(f"[Displays] Configured display {configured_id} not attached, falling back to {displays[0].id}")
        return displays[0]


def _coerce_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
