# pianophysics/__init__.py
from .clock import AsyncioClock, ManualClock, ScheduleHandle
from .engine import EnvelopeSpec, NoteParameters, PianoEngine, ReleaseParameters
from .errors import PianoPhysicsError, ResourceUnavailableError, StaleVoiceError
from .frequency_envelope import FrequencyEnvelope
from .render import GainTimeline, OfflineRenderer
from .scheduler import ActiveNote, ActiveNoteRegistry, NoteState, ScheduledRelease, SustainScheduler
from .settings import Settings, read_setting
from .timbre import TimbreClass
from .transients import FilterSpec, TransientSpec
from .utils import midi2freq, freq2midi, db_to_lin, lin_to_db, note_name
from .voice import NullVoiceBackend, VoiceBackend

__all__ = [
    "PianoEngine", "NoteParameters", "ReleaseParameters", "EnvelopeSpec",
    "ManualClock", "AsyncioClock", "ScheduleHandle",
    "SustainScheduler", "ActiveNote", "ActiveNoteRegistry", "NoteState", "ScheduledRelease",
    "Settings", "read_setting",
    "TimbreClass", "FilterSpec", "TransientSpec", "FrequencyEnvelope",
    "OfflineRenderer", "GainTimeline", "NullVoiceBackend", "VoiceBackend",
    "PianoPhysicsError", "ResourceUnavailableError", "StaleVoiceError",
    "midi2freq", "freq2midi", "db_to_lin", "lin_to_db", "note_name",
]
