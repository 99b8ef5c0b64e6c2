"""RU: События прогресса и приёмники (sink), передаваемые на каждый вызов.

EN: Progress events and per-call sinks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from tqdm import tqdm

LOGGER = logging.getLogger("call_qc")


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update: stage name, percent in 0..100 and a short message."""

    stage: str
    percent: int
    message: str
    job_id: str = ""
    attempt: int = 0


ProgressSink = Callable[[ProgressEvent], None]


class ProgressTracker:
    """RU: Гарантирует, что процент не уменьшается в пределах одной попытки.

    EN: Keeps reported percent monotonic within one job attempt.
    """

    def __init__(self, sink: Optional[ProgressSink], *, job_id: str = "", attempt: int = 0) -> None:
        self._sink = sink
        self.job_id = job_id
        self.attempt = attempt
        self.percent = 0

    def emit(self, stage: str, percent: int, message: str) -> None:
        self.percent = max(self.percent, min(100, max(0, int(percent))))
        LOGGER.debug("[%s] %s (%d%%): %s", self.job_id or "-", stage, self.percent, message)
        if self._sink is None:
            return
        event = ProgressEvent(
            stage=stage,
            percent=self.percent,
            message=message,
            job_id=self.job_id,
            attempt=self.attempt,
        )
        try:
            self._sink(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Progress callback error")


class TqdmProgressSink:
    """Render progress events on a tqdm bar (0..100)."""

    def __init__(self, desc: str = "transcribe", *, disable: bool = False) -> None:
        self.bar = tqdm(total=100, desc=desc, disable=disable, unit="%")

    def __call__(self, event: ProgressEvent) -> None:
        delta = event.percent - self.bar.n
        if delta > 0:
            self.bar.update(delta)
        self.bar.set_postfix_str(f"{event.stage}: {event.message}", refresh=False)

    def close(self) -> None:
        self.bar.close()
