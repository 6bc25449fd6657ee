"""Tests for cohort_ecology.config — configuration loading and validation."""

import dataclasses
from pathlib import Path

import pytest
import yaml

from cohort_ecology.config import (
    DispersalSection,
    EcologyConfig,
    MortalitySection,
    PredationSection,
    SimulationSection,
    _yaml_to_config,
    config_to_dict,
    deep_merge,
    default_config,
    load_config,
    validate_config,
)


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        assert deep_merge({'a': 1, 'b': 2}, {'b': 3}) == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_override_dict_with_scalar(self):
        assert deep_merge({'a': {'nested': 1}}, {'a': 'replaced'}) == {'a': 'replaced'}

    def test_modifies_base_in_place(self):
        base = {'a': 1}
        deep_merge(base, {'b': 2})
        assert base == {'a': 1, 'b': 2}


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        config = default_config()
        assert isinstance(config, EcologyConfig)
        validate_config(config)

    def test_default_values(self):
        config = default_config()
        assert config.simulation.seed == 42
        assert config.simulation.time_step_unit == 'month'
        assert config.simulation.parallel_workers == 1
        assert config.simulation.strict_preconditions is True
        assert config.mortality.background_rate == 0.001
        assert config.predation.n_mass_bins == 12
        assert config.reproduction.offspring_trophic_index['carnivore'] == 3.0

    def test_every_process_has_time_unit(self):
        config = default_config()
        for section in (config.herbivory, config.predation, config.metabolism,
                        config.mortality, config.reproduction):
            assert section.time_unit == 'day'

    def test_overrides(self):
        config = default_config({'simulation': {'parallel_workers': 4},
                                 'mortality': {'background_rate': 0.0}})
        assert config.simulation.parallel_workers == 4
        assert config.mortality.background_rate == 0.0
        assert config.mortality.senescence_rate == 0.003

    def test_invalid_override_rejected(self):
        with pytest.raises(ValueError, match="parallel_workers"):
            default_config({'simulation': {'parallel_workers': 0}})

    def test_sections_are_frozen(self):
        config = default_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.simulation.seed = 1

    def test_replace_gives_modified_copy(self):
        config = default_config()
        changed = dataclasses.replace(
            config, mortality=dataclasses.replace(config.mortality, background_rate=0.01))
        assert changed.mortality.background_rate == 0.01
        assert config.mortality.background_rate == 0.001


# ── validate_config tests ────────────────────────────────────────────

def _config_with(**sections):
    return dataclasses.replace(EcologyConfig(), **sections)


class TestValidateConfig:
    def test_unknown_time_unit(self):
        config = _config_with(simulation=SimulationSection(time_step_unit='fortnight'))
        with pytest.raises(ValueError, match="time_step_unit"):
            validate_config(config)

    def test_odd_mass_bins(self):
        config = _config_with(predation=PredationSection(n_mass_bins=7))
        with pytest.raises(ValueError, match="n_mass_bins"):
            validate_config(config)

    def test_negative_rate(self):
        config = _config_with(mortality=MortalitySection(background_rate=-1.0))
        with pytest.raises(ValueError, match="non-negative"):
            validate_config(config)

    def test_starvation_dispersal_threshold_range(self):
        config = _config_with(
            dispersal=DispersalSection(starvation_dispersal_mass_threshold=1.0))
        with pytest.raises(ValueError, match="starvation_dispersal_mass_threshold"):
            validate_config(config)

    def test_nonpositive_advective_substep(self):
        config = _config_with(dispersal=DispersalSection(advective_timestep_hours=0.0))
        with pytest.raises(ValueError, match="advective_timestep_hours"):
            validate_config(config)


# ── YAML loading tests ───────────────────────────────────────────────

class TestLoadConfig:
    def _write(self, path, data):
        path.write_text(yaml.safe_dump(data))
        return path

    def test_load_base(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml',
                           {'simulation': {'seed': 7}, 'mortality': {'senescence_rate': 0.01}})
        config = load_config(base)
        assert config.simulation.seed == 7
        assert config.mortality.senescence_rate == 0.01
        assert config.mortality.background_rate == 0.001

    def test_scenario_then_sweep(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml', {'simulation': {'seed': 7}})
        scenario = self._write(tmp_path / 'scenario.yaml',
                               {'simulation': {'seed': 8, 'parallel_workers': 2}})
        config = load_config(base, scenario,
                             sweep_overrides={'simulation': {'seed': 9}})
        assert config.simulation.seed == 9
        assert config.simulation.parallel_workers == 2

    def test_missing_scenario_skipped(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml', {'simulation': {'seed': 7}})
        config = load_config(base, tmp_path / 'absent.yaml')
        assert config.simulation.seed == 7

    def test_empty_file_gives_defaults(self, tmp_path):
        base = tmp_path / 'empty.yaml'
        base.write_text('')
        assert load_config(base) == default_config()

    def test_unknown_keys_ignored(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml',
                           {'simulation': {'seed': 3, 'not_a_field': 1},
                            'unknown_section': {'x': 1}})
        assert load_config(base).simulation.seed == 3

    def test_missing_base_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'nope.yaml')

    def test_invalid_values_raise(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml', {'predation': {'n_mass_bins': 3}})
        with pytest.raises(ValueError):
            load_config(base)

    def test_sweep_overrides_not_mutated(self, tmp_path):
        base = self._write(tmp_path / 'base.yaml', {})
        overrides = {'simulation': {'seed': 5}}
        load_config(base, sweep_overrides=overrides)
        assert overrides == {'simulation': {'seed': 5}}


class TestConfigToDict:
    def test_round_trip(self):
        config = default_config({'dispersal': {'horizontal_diffusivity': 50.0}})
        assert _yaml_to_config(config_to_dict(config)) == config


class TestShippedConfig:
    def test_base_yaml_matches_defaults(self):
        base = Path(__file__).resolve().parent.parent / 'configs' / 'base.yaml'
        assert load_config(base) == default_config()
