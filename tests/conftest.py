from __future__ import annotations

from typing import Optional

import pytest

from pianophysics.clock import ManualClock
from pianophysics.errors import ResourceUnavailableError, StaleVoiceError


class RecordingBackend:
    """VoiceBackend double that logs every call in order."""

    def __init__(self, max_partials: Optional[int] = None, stale: bool = False) -> None:
        self.max_partials = max_partials
        self.stale = stale
        self.calls: list[tuple[str, str]] = []
        self.attacks: list = []
        self.transients: list = []
        self.release_times: dict[str, float] = {}

    def trigger_attack(self, note_name, params) -> None:
        self.calls.append(("attack", note_name))
        self.attacks.append(params)
        if self.max_partials is not None and len(params.partial_frequencies) > self.max_partials:
            raise ResourceUnavailableError(f"{note_name}: too many partials")

    def trigger_release(self, note_name) -> None:
        self.calls.append(("release", note_name))
        if self.stale:
            raise StaleVoiceError(note_name)

    def set_release_time(self, note_name, seconds) -> None:
        self.calls.append(("release_time", note_name))
        self.release_times[note_name] = seconds

    def dispose_resources(self, note_name) -> None:
        self.calls.append(("dispose", note_name))
        if self.stale:
            raise StaleVoiceError(note_name)

    def play_transient(self, note_name, spec) -> None:
        self.calls.append(("transient", note_name))
        self.transients.append(spec)

    def count(self, kind: str, note_name: Optional[str] = None) -> int:
        return sum(1 for k, n in self.calls if k == kind and (note_name is None or n == note_name))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()
