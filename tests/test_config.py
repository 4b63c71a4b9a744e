"""
Tests for the configuration system.
"""

import json

import pytest

from src.config import (TEMPLATES, Config, InversionConfig, OutputConfig,
                        create_default_config, get_config, get_template)


def test_defaults():
    config = InversionConfig()
    assert config.maxit == 150
    assert config.initialization == 'backpropagation'
    assert config.step_method == 'closed_form'
    assert config.potential == 'geman_mcclure'
    config.validate()


def test_save_and_load(tmp_path):
    path = tmp_path / "config.json"
    config = Config(inversion=InversionConfig(maxit=7, lambda_r=0.5, step_method='golden'),
                    output=OutputConfig(save_figures=False))
    config.save(str(path))

    with open(path) as f:
        raw = json.load(f)
    assert raw['inversion']['maxit'] == 7

    loaded = Config.load(str(path))
    assert loaded.inversion == config.inversion
    assert loaded.output == config.output


def test_partial_dict_uses_defaults():
    config = Config.from_dict({'inversion': {'maxit': 3}})
    assert config.inversion.maxit == 3
    assert config.inversion.delta_r == 1e-4
    assert config.output == OutputConfig()


def test_get_config_missing_file(tmp_path):
    config = get_config(str(tmp_path / "missing.json"))
    assert config.inversion == InversionConfig()


def test_create_default_config(tmp_path):
    path = tmp_path / "default.json"
    create_default_config(str(path))
    assert path.exists()
    assert get_config(str(path)).inversion.maxit == 150


def test_templates():
    assert get_template('fast').inversion.maxit == 20
    assert get_template('golden').inversion.step_method == 'golden'
    assert get_template('unregularized').inversion.lambda_r == 0.0
    for template in TEMPLATES.values():
        template.inversion.validate()
    with pytest.raises(ValueError):
        get_template('nonexistent')


def test_replace_leaves_original_untouched():
    config = InversionConfig()
    changed = config.replace(maxit=5)
    assert changed.maxit == 5
    assert config.maxit == 150


@pytest.mark.parametrize("changes", [
    {'maxit': -1},
    {'delta_r': 0.0},
    {'initialization': 'random'},
    {'initialization': 'warm'},
    {'step_method': 'armijo'},
])
def test_validate_rejects(changes):
    with pytest.raises(ValueError):
        InversionConfig(**changes).validate()
