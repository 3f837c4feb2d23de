from pianophysics.settings import PhysicsSettings, Settings, SustainDecaySettings, read_setting


class _Partial:
    base_time = 8.0


def test_read_setting_falls_back_to_default() -> None:
    assert read_setting(None, "base_time", 12.0) == 12.0
    assert read_setting({}, "base_time", 12.0) == 12.0
    assert read_setting({"base_time": None}, "base_time", 12.0) == 12.0
    assert read_setting(_Partial(), "decay_factor", 2.5) == 2.5


def test_read_setting_reads_mappings_and_objects() -> None:
    assert read_setting({"base_time": 3.0}, "base_time", 12.0) == 3.0
    assert read_setting(_Partial(), "base_time", 12.0) == 8.0
    assert read_setting(SustainDecaySettings(base_time=4.0), "base_time", 12.0) == 4.0
    assert read_setting(PhysicsSettings(inharmonicity=False), "inharmonicity", True) is False


def test_defaults() -> None:
    s = Settings()
    assert s.physics.odd_even_harmonic_balance is False
    assert s.physics.spectral_balance is True
    assert s.inharmonicity.b_min == 0.0001
    assert s.inharmonicity.b_max == 0.02
    assert s.sustain_decay.pedal_multiplier == 2.5
    assert s.spectral_balance.gain == -6.0
    assert s.pedal.controller == 64
    assert s.physics.frequency_compensation is True
    assert s.physics.frequency_envelope is True
    assert s.physics.pitch_harmonic_rolloff is True
    assert s.velocity_mapping.target_spl == 85.0
    assert s.frequency_envelope.vibrato_rate == 6.0
    assert s.frequency_envelope.release_drift_amount == -3.0
    assert s.pitch_rolloff.rates == (0.10, 0.12, 0.18, 0.25, 0.30)
    assert s.dynamic_filter.q == 1.0
    assert not hasattr(s.envelope, "release")


def test_from_mapping_ignores_unknown_keys() -> None:
    s = Settings.from_mapping({
        "physics": {"inharmonicity": False, "no_such_flag": True},
        "sustain_decay": {"base_time": 6.0},
        "unknown_section": {"x": 1},
    })
    assert s.physics.inharmonicity is False
    assert s.physics.velocity_timbre is True
    assert s.sustain_decay.base_time == 6.0
    assert s.sustain_decay.decay_factor == 2.5
    assert Settings.from_mapping(None) == Settings()
