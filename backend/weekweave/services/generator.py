from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOutcome:
    status: Literal["success", "failure"]
    message: str


class ScheduleGenerator(Protocol):
    """Produces base timetable entries from scratch; owned by an external solver."""

    def generate(self, class_id: str | None) -> GenerationOutcome: ...


class UnconfiguredGenerator:
    def generate(self, class_id: str | None) -> GenerationOutcome:
        logger.warning("Base schedule generation requested for %s but no generator is configured", class_id or "all classes")
        return GenerationOutcome(status="failure", message="No base schedule generator is configured")
