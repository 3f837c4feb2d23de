import csv

import pytest

from conftest import RecordingBackend
from pianophysics.compensation import apply_compensation
from pianophysics.decay import release_time
from pianophysics.engine import PianoEngine
from pianophysics.inharmonicity import coefficient
from pianophysics.scheduler import NoteState, pedal_sustain_time, sustain_release_time
from pianophysics.settings import PhysicsSettings, Settings
from pianophysics.timbre import TimbreClass, brightness_index
from pianophysics.utils import midi2freq


@pytest.fixture
def engine(clock, backend) -> PianoEngine:
    return PianoEngine(Settings(), clock, backend)


def test_note_on_bundle(engine: PianoEngine, backend: RecordingBackend) -> None:
    p = engine.note_on(60, 100)
    assert p.midi_note == 60
    assert p.frequency == pytest.approx(midi2freq(60))
    assert p.fundamental > p.frequency
    assert p.amplitude == pytest.approx(apply_compensation((100 / 127) ** 2, midi2freq(60)))
    assert p.partial_frequencies[0] == p.fundamental
    assert p.partial_frequencies[1] > 2 * p.frequency
    assert p.brightness == pytest.approx(brightness_index(100))
    assert p.timbre is TimbreClass.MODERATE_HARMONICS
    assert p.envelope.release == pytest.approx(release_time(60))
    assert p.unison.string_count == 3
    assert p.filter_q == 1.0
    assert p.pitch is not None and p.pitch.attack_time == p.attack_time
    assert p.transient is not None and p.transient.kind == "attack_noise"

    assert backend.calls[:2] == [("attack", "C4"), ("transient", "C4")]
    assert engine.active_notes[60].state is NoteState.HELD


def test_end_to_end_pedal_scenario(clock, backend) -> None:
    released: list[int] = []
    engine = PianoEngine(Settings(), clock, backend, on_scheduled_release=released.append)
    engine.note_on(60, 100)
    engine.note_on(64, 80)
    assert engine.control_change(64, 127)
    assert engine.pedal_down

    r60 = engine.note_off(60)
    r64 = engine.note_off(64)
    assert r60.state is NoteState.SUSTAIN_PENDING
    assert r64.state is NoteState.SUSTAIN_PENDING
    assert r60.transient is not None and r60.transient.kind == "release"
    assert r64.transient is not None
    assert backend.count("transient", "C4") == 2
    assert r60.release_time == pytest.approx(sustain_release_time(pedal_sustain_time(60)))
    assert len(engine.scheduler.pending_releases) == 2

    clock.advance(max(pedal_sustain_time(60), pedal_sustain_time(64)) + 0.5)
    assert sorted(released) == [60, 64]
    assert len(engine.active_notes) == 0
    assert not engine.scheduler.pending_releases


def test_note_off_without_pedal_plays_release_transient(engine: PianoEngine, backend) -> None:
    engine.note_on(60, 100)
    rel = engine.note_off(60, release_velocity=127)
    assert rel.state is NoteState.RELEASED_IMMEDIATE
    assert rel.release_time == pytest.approx(release_time(60))
    assert rel.transient is not None
    assert rel.transient.amplitude == pytest.approx(0.1 * apply_compensation((100 / 127) ** 2, midi2freq(60)))
    assert backend.count("transient") == 2
    assert 60 not in engine.active_notes


def test_note_off_for_silent_or_released_note(engine: PianoEngine) -> None:
    assert engine.note_off(61) is None
    engine.note_on(60, 100)
    engine.control_change(64, 127)
    engine.note_off(60)
    assert engine.note_off(60) is None


def test_struck_note_does_not_couple_with_itself(engine: PianoEngine) -> None:
    engine.control_change(64, 127)
    alone = engine.note_on(60, 100)
    again = engine.note_on(60, 100)
    assert again.amplitude == pytest.approx(alone.amplitude)


def test_pedal_coupling_adds_level_and_caps(engine: PianoEngine) -> None:
    plain = engine.note_on(67, 100).amplitude
    engine.note_off(67)

    engine.note_on(55, 100)
    engine.note_on(60, 100)
    engine.note_on(64, 100)
    engine.control_change(64, 127)
    coupled = engine.note_on(67, 100).amplitude
    assert coupled > plain
    assert engine.note_on(72, 127).amplitude == 1.0


def test_half_pedal_position_is_used(engine: PianoEngine) -> None:
    engine.note_on(60, 100)
    engine.control_change(64, 64)
    assert engine.pedal_down
    assert engine.pedal_position == pytest.approx(64 / 127)
    assert engine.control_change(64, 100) is False
    assert engine.pedal_position == pytest.approx(100 / 127)


def test_other_controllers_are_ignored(engine: PianoEngine) -> None:
    assert engine.control_change(1, 127) is False
    assert not engine.pedal_down


def test_pedal_drives_spectral_gain(engine: PianoEngine, clock) -> None:
    assert engine.spectral_gain() == -6.0
    engine.control_change(64, 127)
    clock.advance(8.0)
    assert engine.spectral_gain() == pytest.approx(-3.0)
    engine.control_change(64, 0)
    clock.advance(1.0)
    assert engine.spectral_gain() == pytest.approx(-6.0)


def test_everything_disabled_gives_neutral_values(clock, backend) -> None:
    flags = {name: False for name in PhysicsSettings.__dataclass_fields__}
    engine = PianoEngine(Settings(physics=PhysicsSettings(**flags)), clock, backend)
    p = engine.note_on(60, 127)
    assert p.fundamental == p.frequency
    assert p.brightness == 1.0
    assert p.timbre is TimbreClass.PURE
    assert p.partial_frequencies == (p.frequency,)
    assert p.filter_cutoff == 20000.0
    assert p.unison.string_count == 1
    assert p.transient is None
    assert p.attack_time == pytest.approx(0.01)
    assert engine.brightness_at(60) == 1.0
    assert engine.spectral_gain() == 0.0

    rel = engine.note_off(60)
    assert rel.transient is None


def test_settings_changes_apply_to_the_next_note(engine: PianoEngine) -> None:
    before = engine.note_on(100, 100)
    engine.settings.inharmonicity.b_max = 0.04
    after = engine.note_on(100, 100)
    assert after.partial_frequencies[1] > before.partial_frequencies[1]

    engine.settings.physics = PhysicsSettings(inharmonicity=False)
    plain = engine.note_on(100, 100)
    assert plain.fundamental == plain.frequency


def test_inharmonicity_endpoints_through_engine(engine: PianoEngine) -> None:
    low = engine.note_on(21, 100)
    high = engine.note_on(108, 100)
    assert low.fundamental == pytest.approx(low.frequency * (1 + 0.1 * coefficient(21)))
    assert coefficient(21) == pytest.approx(0.0001)
    assert high.fundamental == pytest.approx(high.frequency * (1 + 0.1 * 0.02))


def test_resource_fallback_retries_with_fundamental(clock) -> None:
    backend = RecordingBackend(max_partials=1)
    engine = PianoEngine(Settings(), clock, backend)
    engine.note_on(40, 120)
    assert backend.count("attack") == 2
    first, second = backend.attacks
    assert len(first.partial_frequencies) > 1
    assert second.partial_frequencies == (first.fundamental,)
    assert 40 in engine.active_notes


def test_brightness_at_follows_the_note(engine: PianoEngine, clock) -> None:
    assert engine.brightness_at(60) == 1.0
    p = engine.note_on(60, 127)
    clock.advance(p.attack_time / 2)
    assert engine.brightness_at(60) == pytest.approx(1.5 * 1.3)
    clock.advance(10.0)
    assert engine.brightness_at(60) == pytest.approx(1.5)


def test_filter_cutoff_closes_over_time(engine: PianoEngine, clock) -> None:
    p = engine.note_on(69, 127)
    assert engine.filter_cutoff_at(69) == pytest.approx(p.filter_cutoff)
    clock.advance(30.0)
    assert engine.filter_cutoff_at(69) == pytest.approx(880.0)
    assert engine.filter_cutoff_at(70) == 20000.0


def test_release_all(engine: PianoEngine) -> None:
    engine.note_on(60, 100)
    engine.note_on(64, 100)
    engine.control_change(64, 127)
    engine.note_off(60)
    engine.release_all()
    assert len(engine.active_notes) == 0
    assert not engine.scheduler.pending_releases
    assert engine.parameters(64) is None


def test_out_of_range_input_is_clamped(engine: PianoEngine) -> None:
    p = engine.note_on(300, 500)
    assert p.midi_note == 127
    assert p.velocity == 127
    assert p.amplitude == 1.0


def test_trace_writes_one_header(tmp_path, clock, backend) -> None:
    path = tmp_path / "trace" / "params.csv"
    engine = PianoEngine(Settings(), clock, backend, trace_path=path)
    engine.note_on(60, 100)
    engine.note_off(60)
    engine.control_change(64, 127)

    with open(path, newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["stage"] for r in rows] == ["note_on", "note_off", "pedal"]
    assert rows[0]["note"] == "60"
    assert float(rows[0]["frequency"]) == pytest.approx(midi2freq(60))
    assert engine.trace.rows == 3


def test_pedalled_key_up_still_thumps(engine: PianoEngine, backend) -> None:
    engine.note_on(48, 90)
    engine.control_change(64, 127)
    rel = engine.note_off(48, release_velocity=64)
    assert rel.state is NoteState.SUSTAIN_PENDING
    assert rel.transient is not None and rel.transient.kind == "release"
    assert backend.transients[-1] is rel.transient
    assert backend.count("release", "C3") == 0


def test_frequency_at_tracks_drift_vibrato_and_release(engine: PianoEngine, clock) -> None:
    assert engine.frequency_at(60) is None
    p = engine.note_on(60, 100)
    assert engine.frequency_at(60) == pytest.approx(p.fundamental + 2.0)

    clock.advance(1.0)
    held = engine.frequency_at(60)
    assert abs(held - p.fundamental) <= 5.0 + 1e-9

    engine.control_change(64, 127)
    engine.note_off(60)
    assert engine.frequency_at(60, clock.now() + 1.0) == pytest.approx(p.fundamental - 3.0, abs=1e-3)

    clock.advance(pedal_sustain_time(60) + 1.0)
    assert engine.frequency_at(60) is None


def test_frequency_envelope_can_be_switched_off(clock, backend) -> None:
    engine = PianoEngine(Settings(physics=PhysicsSettings(frequency_envelope=False)), clock, backend)
    p = engine.note_on(60, 100)
    assert p.pitch is None
    assert engine.frequency_at(60) == p.fundamental


def test_filter_q_comes_from_settings(engine: PianoEngine) -> None:
    engine.settings.dynamic_filter.q = 4.0
    assert engine.note_on(60, 100).filter_q == 4.0


def test_advanced_timbre_shapes_the_plain_oscillator(clock, backend) -> None:
    s = Settings(physics=PhysicsSettings(inharmonicity=False))
    engine = PianoEngine(s, clock, backend)
    rich = engine.note_on(60, 127)
    assert len(rich.partial_frequencies) == 21
    assert rich.partial_frequencies[2] == pytest.approx(3 * rich.fundamental)

    s.physics = PhysicsSettings(inharmonicity=False, advanced_timbre=False)
    plain = engine.note_on(60, 127)
    assert len(plain.partial_frequencies) == 8


def test_frequency_compensation_lifts_the_bass(engine: PianoEngine) -> None:
    loud = engine.note_on(36, 60).amplitude
    assert loud > (60 / 127) ** 2
    engine.settings.velocity_mapping.target_spl = 50.0
    quiet = engine.note_on(36, 60).amplitude
    assert quiet > loud

    engine.settings.physics = PhysicsSettings(frequency_compensation=False)
    assert engine.note_on(36, 60).amplitude == pytest.approx((60 / 127) ** 2)
