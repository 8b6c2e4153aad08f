"""
tests/test_config.py

EngineConfig loading: defaults, YAML, environment and validation.
"""

import pytest

from credence.core.config import EngineConfig
from credence.core.exceptions import ConfigError


class TestDefaults:

    def test_defaults(self):
        config = EngineConfig()
        assert config.required_sources == 3
        assert config.confidence_threshold == 0.8
        assert config.algorithm == "median"
        assert config.evaluation_timeout == 30.0
        assert config.max_evaluation_time == 300.0
        assert config.default_deadline_minutes == 60

    @pytest.mark.parametrize("kwargs", [
        {"required_sources": 0},
        {"confidence_threshold": 1.2},
        {"algorithm": "mode"},
        {"evaluation_timeout": 0},
        {"default_deadline_minutes": 0},
        {"min_stake": -5},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            EngineConfig(**kwargs)


class TestLoaders:

    def test_from_dict_accepts_camel_case(self):
        config = EngineConfig.from_dict({
            "requiredSources": 5,
            "confidenceThreshold": "0.7",
            "algorithm": "Majority_Vote",
            "evaluationTimeout": 10,
            "maxEvaluationTime": 60,
        })
        assert config.required_sources == 5
        assert config.confidence_threshold == 0.7
        assert config.algorithm == "majority_vote"
        assert config.evaluation_timeout == 10.0
        assert config.max_evaluation_time == 60.0

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"requiredSorces": 5})

    def test_uncoercible_value_rejected(self):
        with pytest.raises(ConfigError):
            EngineConfig.from_dict({"required_sources": "many"})

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "credence.yaml"
        path.write_text("engine:\n  requiredSources: 4\n  algorithm: weighted_average\n")
        config = EngineConfig.from_yaml(path)
        assert config.required_sources == 4
        assert config.algorithm == "weighted_average"
        assert config.confidence_threshold == 0.8, "Unset keys keep their defaults"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            EngineConfig.from_yaml(tmp_path / "absent.yaml")

    def test_from_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            EngineConfig.from_yaml(path)

    def test_from_env(self):
        config = EngineConfig.from_env({
            "CREDENCE_REQUIRED_SOURCES": "6",
            "CREDENCE_CONFIDENCE_THRESHOLD": "0.9",
            "CREDENCE_MIN_STAKE": "",
            "UNRELATED": "x",
        })
        assert config.required_sources == 6
        assert config.confidence_threshold == 0.9
        assert config.min_stake == 0

    def test_load_env_overrides_yaml(self, tmp_path):
        path = tmp_path / "credence.yaml"
        path.write_text("requiredSources: 4\nconfidenceThreshold: 0.6\n")
        config = EngineConfig.load(environ={
            "CREDENCE_CONFIG": str(path),
            "CREDENCE_REQUIRED_SOURCES": "7",
        })
        assert config.required_sources == 7
        assert config.confidence_threshold == 0.6

    def test_to_dict_round_trip(self):
        config = EngineConfig(required_sources=4, algorithm="majority_vote")
        assert EngineConfig.from_dict(config.to_dict()) == config
