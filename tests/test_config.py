"""
Unit tests for robust estimator configurations.
"""

import json

import pytest

from radiosource.config import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_STOP_THRESHOLD,
    RobustEstimatorConfig,
)


class TestRobustEstimatorConfig:
    """Test validation and (de)serialization of configurations."""

    def test_defaults(self):
        config = RobustEstimatorConfig()

        assert config.stop_threshold == DEFAULT_STOP_THRESHOLD
        assert config.confidence == DEFAULT_CONFIDENCE
        assert config.max_iterations == DEFAULT_MAX_ITERATIONS
        assert config.progress_delta == 0.05
        assert config.inlier_factor == 2.5
        assert config.preliminary_subset_size is None
        assert config.position_estimation_enabled
        assert config.transmitted_power_estimation_enabled
        assert not config.path_loss_estimation_enabled
        assert config.refine_result
        assert config.keep_covariance
        assert config.initial_path_loss_exponent == 2.0
        assert config.seed is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"stop_threshold": 0.0},
            {"confidence": 0.0},
            {"confidence": 1.0},
            {"max_iterations": 0},
            {"progress_delta": 2.0},
            {"inlier_factor": -1.0},
            {"preliminary_subset_size": 0},
            {"initial_path_loss_exponent": 0.0},
            {"initial_position": [[0.0, 1.0]]},
            {"initial_position": [0.0, float("nan")]},
            {
                "position_estimation_enabled": False,
                "transmitted_power_estimation_enabled": False,
                "path_loss_estimation_enabled": False,
            },
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            RobustEstimatorConfig(**kwargs)

    def test_non_integer_iterations(self):
        with pytest.raises(TypeError):
            RobustEstimatorConfig(max_iterations=10.5)

    def test_unusual_path_loss_warns(self):
        with pytest.warns(UserWarning, match="unusual"):
            RobustEstimatorConfig(initial_path_loss_exponent=8.0)

    def test_initial_position_normalized(self):
        config = RobustEstimatorConfig(initial_position=(1, 2, 3))

        assert config.initial_position == [1.0, 2.0, 3.0]
        assert all(isinstance(v, float) for v in config.initial_position)

    def test_frozen(self):
        config = RobustEstimatorConfig()
        with pytest.raises(AttributeError):
            config.confidence = 0.5

    def test_dict_round_trip(self):
        config = RobustEstimatorConfig(
            confidence=0.95, path_loss_estimation_enabled=True, seed=3
        )

        data = config.to_dict()

        assert data["confidence"] == 0.95
        assert data["seed"] == 3
        assert RobustEstimatorConfig.from_dict(data) == config

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="threshold"):
            RobustEstimatorConfig.from_dict({"threshold": 1.0})

    def test_partial_dict_uses_defaults(self):
        config = RobustEstimatorConfig.from_dict({"max_iterations": 100})

        assert config.max_iterations == 100
        assert config.confidence == DEFAULT_CONFIDENCE

    def test_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        config = RobustEstimatorConfig(
            stop_threshold=1e-3,
            initial_transmitted_power_dbm=-20.0,
            initial_position=[1.0, 2.0, 3.0],
            seed=42,
        )

        config.save_json(path)

        with open(path, "r", encoding="utf-8") as f:
            assert json.load(f)["seed"] == 42
        assert RobustEstimatorConfig.from_json(path) == config
