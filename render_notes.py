#!/usr/bin/env python3
"""
Render engine output to WAV for listening checks:
    python render_notes.py 60 100 0.5            # one note, 0.5 s gate
    python render_notes.py 60 100 0.5 --pedal    # same, pedal held through
    python render_notes.py                       # demo set (chord + pedal scenario)
"""
from __future__ import annotations

import argparse
import itertools
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from pianophysics import GainTimeline, ManualClock, OfflineRenderer, PianoEngine, Settings
from pianophysics.io import play_audio, save_wav

_LOGGER = logging.getLogger("pianophysics.render_notes")

# (time, kind, a, b): kind "on" (note, vel), "off" (note, -), "cc" (controller, value)
Event = tuple[float, str, int, int]

PEDAL_SCENARIO: list[Event] = [
    (0.00, "on", 60, 100),
    (0.25, "on", 64, 80),
    (0.50, "cc", 64, 127),
    (1.00, "off", 60, 0),
    (1.20, "off", 64, 0),
]


def note_events(note: int, vel: int, gate: float, pedal: bool) -> list[Event]:
    events: list[Event] = [(0.0, "on", note, vel), (gate, "off", note, 0)]
    if pedal:
        events.insert(0, (0.0, "cc", 64, 127))
    return events


def play_events(events: Iterable[Event], *, fs: int, settings: Optional[Settings] = None,
                trace: Optional[Path] = None, max_wait: float = 60.0):
    """Drive a fresh engine through *events* on virtual time and render it."""
    settings = settings or Settings()
    clock = ManualClock()
    renderer = OfflineRenderer(clock, fs=fs, physics=settings.physics)
    timeline = GainTimeline(settings.spectral_balance.gain)
    engine = PianoEngine(settings, clock, renderer, gain_param=timeline, trace_path=trace)

    for when, kind, a, b in sorted(events, key=lambda e: e[0]):
        clock.advance_to(when)
        if kind == "on":
            engine.note_on(a, b)
        elif kind == "off":
            engine.note_off(a)
        elif kind == "cc":
            engine.control_change(a, b)
        else:
            raise ValueError(f"unknown event kind {kind!r}")

    # let pedalled notes run out their scheduled releases
    deadline = clock.now() + max_wait
    while engine.scheduler.pending_releases and clock.now() < deadline:
        clock.advance(0.1)
    if engine.active_notes:
        _LOGGER.info("%d notes still held after the script; releasing", len(engine.active_notes))
        engine.release_all()

    return renderer.render(gain_db=timeline if settings.physics.spectral_balance else None,
                           shelf_frequency=settings.spectral_balance.frequency,
                           shelf_q=settings.spectral_balance.q)


def render(events: list[Event], fname: Path, args: argparse.Namespace) -> None:
    y = play_events(events, fs=args.fs, trace=args.trace)
    save_wav(y, fname, args.fs)
    print(f"✔ saved {fname}  ({len(y) / args.fs:.2f}s)")
    if args.play:
        play_audio(y, args.fs)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("note", nargs="?", type=int)
    p.add_argument("velocity", nargs="?", type=int)
    p.add_argument("gate", nargs="?", type=float)
    p.add_argument("--pedal", action="store_true", help="hold the sustain pedal from t=0")
    p.add_argument("--out", type=Path, default=Path("preview_wav"))
    p.add_argument("--fs", type=int, default=44_100)
    p.add_argument("--trace", type=Path, default=None, help="append parameter rows to this CSV")
    p.add_argument("--play", action="store_true")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    given = [args.note, args.velocity, args.gate]
    if any(x is not None for x in given):
        if any(x is None for x in given):
            p.error("note, velocity and gate go together")
        suffix = "_ped" if args.pedal else ""
        fname = args.out / f"n{args.note}_v{args.velocity}_g{int(args.gate * 1000)}{suffix}.wav"
        render(note_events(args.note, args.velocity, args.gate, args.pedal), fname, args)
        return 0

    render(PEDAL_SCENARIO, args.out / "pedal_scenario.wav", args)
    for n, v, g in itertools.product([100, 60, 25], [120, 40], [1.0]):
        render(note_events(n, v, g, pedal=False), args.out / f"n{n}_v{v}_g{int(g * 1000)}.wav", args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
