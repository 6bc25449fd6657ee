"""Tests for cohort_ecology.traits — functional-group trait table."""

from pathlib import Path

import pytest
import yaml

from cohort_ecology.traits import (
    CARNIVORY_ASSIMILATION,
    MOBILITY,
    NUTRITION_SOURCE,
    FunctionalGroupTable,
    load_functional_groups_yaml,
)
from cohort_ecology.types import (
    ModelPreconditionError,
    NutritionSource,
    ReproductiveStrategy,
    Thermoregulation,
    TrophicMode,
)


RECORDS = [
    {'definitions': {'Nutrition Source': 'Carnivore', 'endo/ectotherm': 'endotherm',
                     'heterotroph/autotroph': 'heterotroph',
                     'reproductive strategy': 'semelparity', 'mobility': 'mobile'},
     'properties': {'carnivory assimilation': 0.64, 'Minimum Mass': 1.0,
                    'maximum mass': 1000.0}},
    {'definitions': {'nutrition source': 'herbivore', 'endo/ectotherm': 'ectotherm',
                     'heterotroph/autotroph': 'heterotroph',
                     'reproductive strategy': 'iteroparity', 'mobility': 'planktonic',
                     'diet': 'allspecial'},
     'properties': {'herbivory assimilation': 0.5}},
    {'definitions': {'heterotroph/autotroph': 'autotroph'}},
]


class TestFunctionalGroupTable:
    def test_length(self):
        assert len(FunctionalGroupTable(RECORDS)) == 3

    def test_case_insensitive_lookup(self):
        table = FunctionalGroupTable(RECORDS)
        assert table.trait_of(0, NUTRITION_SOURCE) == 'carnivore'
        assert table.trait_of(0, 'NUTRITION SOURCE') == 'carnivore'
        assert table.property_of(0, 'minimum mass') == 1.0

    def test_typed_accessors(self):
        table = FunctionalGroupTable(RECORDS)
        assert table.nutrition_source(0) is NutritionSource.CARNIVORE
        assert table.thermoregulation(1) is Thermoregulation.ECTOTHERM
        assert table.trophic_mode(2) is TrophicMode.AUTOTROPH
        assert table.reproductive_strategy(0) is ReproductiveStrategy.SEMELPARITY

    def test_unrecognised_value_raises(self):
        table = FunctionalGroupTable([
            {'definitions': {'nutrition source': 'detritivore'}},
        ])
        with pytest.raises(ModelPreconditionError, match="detritivore"):
            table.nutrition_source(0)

    def test_missing_trait_and_property(self):
        table = FunctionalGroupTable(RECORDS)
        with pytest.raises(KeyError, match=MOBILITY):
            table.trait_of(2, MOBILITY)
        with pytest.raises(KeyError, match=CARNIVORY_ASSIMILATION):
            table.property_of(1, CARNIVORY_ASSIMILATION)

    def test_non_positive_minimum_mass_rejected(self):
        records = [{'properties': {'Minimum Mass': 0.0, 'maximum mass': 10.0}}]
        with pytest.raises(ValueError, match="minimum mass"):
            FunctionalGroupTable(records)

    def test_index_out_of_range(self):
        table = FunctionalGroupTable(RECORDS)
        with pytest.raises(IndexError):
            table.trait_of(3, NUTRITION_SOURCE)

    def test_group_selection(self):
        table = FunctionalGroupTable(RECORDS)
        assert table.heterotroph_indices() == [0, 1]
        assert table.autotroph_indices() == [2]
        assert table.indices_with('Nutrition Source', 'HERBIVORE') == [1]

    def test_special_groups(self):
        table = FunctionalGroupTable(RECORDS)
        assert table.is_planktonic(1)
        assert not table.is_planktonic(0)
        assert not table.is_planktonic(2)
        assert table.is_filter_feeder(1)
        assert not table.is_filter_feeder(0)


class TestLoadFunctionalGroupsYaml:
    def test_mapping_layout(self, tmp_path):
        path = tmp_path / 'groups.yaml'
        path.write_text(yaml.safe_dump({'functional_groups': RECORDS}))
        table = load_functional_groups_yaml(path)
        assert len(table) == 3
        assert table.property_of(0, CARNIVORY_ASSIMILATION) == 0.64

    def test_list_layout(self, tmp_path):
        path = tmp_path / 'groups.yaml'
        path.write_text(yaml.safe_dump(RECORDS))
        assert len(load_functional_groups_yaml(path)) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_functional_groups_yaml(tmp_path / 'absent.yaml')

    def test_bad_document(self, tmp_path):
        path = tmp_path / 'groups.yaml'
        path.write_text(yaml.safe_dump({'groups': RECORDS}))
        with pytest.raises(ValueError):
            load_functional_groups_yaml(path)

    def test_shipped_groups(self):
        path = Path(__file__).resolve().parent.parent / 'configs' / 'functional_groups.yaml'
        table = load_functional_groups_yaml(path)
        assert len(table.heterotroph_indices()) == 7
        assert table.autotroph_indices() == [7, 8]
        for fg in table.heterotroph_indices():
            table.nutrition_source(fg)
            table.thermoregulation(fg)
            table.reproductive_strategy(fg)
            assert table.property_of(fg, 'minimum mass') < table.property_of(fg, 'maximum mass')
        assert table.is_filter_feeder(6)
        assert table.is_planktonic(5)
