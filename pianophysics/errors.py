from __future__ import annotations


class PianoPhysicsError(Exception):
    """Base error for the pianophysics package."""


class ResourceUnavailableError(PianoPhysicsError):
    """Raised by a voice backend when a synthesis primitive cannot be built."""


class StaleVoiceError(PianoPhysicsError):
    """Raised by a voice backend for an action against a detached voice."""
