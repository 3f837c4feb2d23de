# filters.py — RBJ biquads as second-order sections
# ---------------------------------------------------------
# Coefficients follow the Audio EQ Cookbook and come back as a (1, 6)
# SOS row so they run through scipy.signal.sosfilt. `Biquad` keeps the
# filter state between blocks, so a block-wise render with a changing
# gain stays continuous.
# ---------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Final, Literal

import numpy as np
from scipy.signal import sosfilt, sosfilt_zi

from .transients import FilterSpec

__all__ = ["design_lowpass", "design_bandpass", "design_highshelf", "design", "Biquad"]

_FS: Final = 44_100


def _guard(fc: float, fs: int) -> float:
    # keep the centre strictly inside (0, Nyquist)
    return min(max(fc, 1.0), 0.49 * fs)


def _sos(b0, b1, b2, a0, a1, a2) -> np.ndarray:
    return np.array([[b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0]], dtype=np.float64)


def design_lowpass(fc: float, q: float = 1 / math.sqrt(2), fs: int = _FS) -> np.ndarray:
    w0 = 2 * math.pi * _guard(fc, fs) / fs
    alpha = math.sin(w0) / (2 * q)
    cos_w0 = math.cos(w0)
    return _sos((1 - cos_w0) / 2, 1 - cos_w0, (1 - cos_w0) / 2,
                1 + alpha, -2 * cos_w0, 1 - alpha)


def design_bandpass(fc: float, q: float, fs: int = _FS) -> np.ndarray:
    """Constant 0 dB peak gain band-pass."""
    w0 = 2 * math.pi * _guard(fc, fs) / fs
    alpha = math.sin(w0) / (2 * q)
    cos_w0 = math.cos(w0)
    return _sos(alpha, 0.0, -alpha, 1 + alpha, -2 * cos_w0, 1 - alpha)


def design_highshelf(fc: float, gain_db: float, q: float = 0.7, fs: int = _FS) -> np.ndarray:
    A = 10 ** (gain_db / 40)
    w0 = 2 * math.pi * _guard(fc, fs) / fs
    alpha = math.sin(w0) / (2 * q)
    cos_w0 = math.cos(w0)
    sq = 2 * math.sqrt(A) * alpha
    return _sos(
        A * ((A + 1) + (A - 1) * cos_w0 + sq),
        -2 * A * ((A - 1) + (A + 1) * cos_w0),
        A * ((A + 1) + (A - 1) * cos_w0 - sq),
        (A + 1) - (A - 1) * cos_w0 + sq,
        2 * ((A - 1) - (A + 1) * cos_w0),
        (A + 1) - (A - 1) * cos_w0 - sq,
    )


def design(spec: FilterSpec, fs: int = _FS) -> np.ndarray:
    """SOS for a transient's FilterSpec."""
    if spec.type == "bandpass":
        return design_bandpass(spec.frequency, spec.q, fs)
    return design_lowpass(spec.frequency, spec.q, fs)


@dataclass(slots=True)
class Biquad:
    """Stateful single-section filter; `process` may be called per block."""

    kind: Literal["lowpass", "bandpass", "highshelf"]
    fc: float
    q: float = 0.7
    gain_db: float = 0.0
    fs: int = _FS
    sos: np.ndarray = field(init=False, repr=False)
    zi: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self.sos = self._design()
        self.zi = np.zeros((1, 2))

    def _design(self) -> np.ndarray:
        if self.kind == "lowpass":
            return design_lowpass(self.fc, self.q, self.fs)
        if self.kind == "bandpass":
            return design_bandpass(self.fc, self.q, self.fs)
        return design_highshelf(self.fc, self.gain_db, self.q, self.fs)

    def set_gain(self, gain_db: float) -> None:
        """Redesign with a new gain, keeping the running state."""
        if gain_db != self.gain_db:
            self.gain_db = gain_db
            self.sos = self._design()

    def reset(self, x0: float = 0.0) -> None:
        self.zi = sosfilt_zi(self.sos) * x0

    def process(self, x: np.ndarray) -> np.ndarray:
        y, self.zi = sosfilt(self.sos, np.asarray(x, dtype=np.float64), zi=self.zi)
        return y.astype(np.float32)
