"""
Append-only diagnostic log returned alongside every import result
"""

import logging
from typing import Iterator, List

logger = logging.getLogger("tradebook.diagnostics")


class DiagnosticLog:
    """
    Ordered sequence of human-readable lines explaining why rows were
    accepted, merged or dropped.

    Every entry is also forwarded to the ``tradebook.diagnostics`` logger so
    the same lines reach the structured log when one is configured.
    """

    WARNING_PREFIX = "Warning: "

    def __init__(self):
        self._entries: List[str] = []

    def append(self, message: str) -> None:
        self._entries.append(message)
        logger.debug(message)

    def warning(self, message: str) -> None:
        line = message if message.startswith(self.WARNING_PREFIX) else self.WARNING_PREFIX + message
        self._entries.append(line)
        logger.warning(line)

    def section(self, title: str) -> None:
        self.append(f"=== {title} ===")

    @property
    def entries(self) -> List[str]:
        """Copy of the entries; the log itself cannot be edited"""
        return list(self._entries)

    @property
    def warnings(self) -> List[str]:
        return [e for e in self._entries if e.startswith(self.WARNING_PREFIX)]

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return any(text in entry for entry in self._entries)
