"""Security groups applied to pod network interfaces."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

log = logging.getLogger(__name__)


class SecurityGroupManager:
    """Holds the current list of security groups used by pods."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._groups: list[str] = []

    @property
    def security_groups(self) -> list[str]:
        """The security groups currently in use."""
        with self._lock:
            return list(self._groups)

    def update(self, groups: Iterable[str]) -> None:
        """Replace the security groups; an empty list is rejected."""
        new_groups = list(groups)
        if not new_groups:
            raise ValueError("security groups is empty")
        with self._lock:
            self._groups = new_groups
            log.info("SecurityGroups update to %s", self._groups)