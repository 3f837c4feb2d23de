# io.py — lightweight audio I/O helpers
# --------------------------------------
# Writes rendered previews to disk and plays them back when sounddevice
# is installed. Paths are left to the caller.
# --------------------------------------
from __future__ import annotations

import logging
import pathlib
from typing import Optional

import numpy as np
import soundfile as sf

try:
    import sounddevice as sd  # optional runtime dependency
except ImportError:  # pragma: no cover
    sd = None  # type: ignore

__all__ = ["save_wav", "load_wav", "play_audio"]

_LOGGER = logging.getLogger("pianophysics.io")


def save_wav(data: np.ndarray, path: str | pathlib.Path, fs: int = 44_100) -> pathlib.Path:
    """Save *data* to 16-bit PCM WAV and return the resolved path.

    Parameters
    ----------
    data : np.ndarray
        Audio in [-1, 1]; anything outside is hard-clipped.
    path : str | Path
        Output file; missing parent folders are created.
    fs : int, default 44100
        Sample rate.
    """
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data16 = np.clip(np.asarray(data) * 32767, -32768, 32767).astype(np.int16)
    sf.write(path, data16, fs, subtype="PCM_16")
    _LOGGER.info("saved %s (%.2fs @ %d Hz)", path, len(data16) / fs, fs)
    return path


def load_wav(path: str | pathlib.Path) -> tuple[np.ndarray, int]:
    """Read a WAV back as float32 in [-1, 1]."""
    data, fs = sf.read(pathlib.Path(path), dtype="float32")
    return data, fs


def play_audio(data: np.ndarray, fs: int = 44_100, block: bool = True) -> Optional[int]:
    """Play *data* via sounddevice if available."""
    if sd is None:
        _LOGGER.warning("sounddevice not installed; playback skipped")
        return None
    return sd.play(np.asarray(data, dtype=np.float32), samplerate=fs, blocking=block)
