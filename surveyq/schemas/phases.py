"""Regeneration loop phase definitions shared across graph nodes."""

from __future__ import annotations

from enum import StrEnum


class Phase(StrEnum):
    """Canonical phase values for the regeneration loop."""

    GENERATE = "generate"
    EVALUATE = "evaluate"
    REGENERATE = "regenerate"
    DONE = "done"
