from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from tqdm import tqdm


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    index: int
    total: int
    message: str

    @property
    def percent(self) -> int:
        return self.index * 100 // self.total if self.total else 100


class ProgressReporter(Protocol):
    def step(self, event: ProgressEvent) -> None:
        ...

    def close(self) -> None:
        ...


class LoggingProgressReporter:
    """Writes one log line per step, e.g. `[ 40%] Creating S3 bucket...`."""

    def step(self, event: ProgressEvent) -> None:
        logger.info("[%3d%%] %s", event.percent, event.message)

    def close(self) -> None:
        return None


class TqdmProgressReporter:
    """Step progress bar for interactive terminals."""

    def __init__(self) -> None:
        self._bar: Optional[tqdm] = None

    def step(self, event: ProgressEvent) -> None:
        if self._bar is None:
            self._bar = tqdm(total=event.total, unit="step", desc="Setup", leave=True)
        self._bar.set_postfix_str(event.message, refresh=False)
        self._bar.update(event.index - self._bar.n)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
