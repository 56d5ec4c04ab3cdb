"""Tests for YAML config loading and environment overrides."""

import pydantic
import pytest

from sagekit.config import SagekitConfig, load_config


def test_defaults_without_file() -> None:
    """Missing default config files yield the built-in defaults."""
    config = load_config()
    assert config == SagekitConfig()
    assert config.poll_interval == 5.0
    assert config.log_level == "INFO"


def test_load_yaml_file(tmp_path) -> None:
    """Settings are read from the file, optionally nested under 'sagekit'."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "sagekit:\n"
        "  region: eu-west-1\n"
        "  default_bucket: my-bucket\n"
        "  poll_interval: 1.5\n"
        "  log_level: debug\n"
    )
    config = load_config(path)
    assert config.region == "eu-west-1"
    assert config.default_bucket == "my-bucket"
    assert config.poll_interval == 1.5
    assert config.log_level == "DEBUG"


def test_env_var_points_at_file(tmp_path, monkeypatch) -> None:
    """SAGEKIT_CONFIG is used when no explicit path is given."""
    path = tmp_path / "other.yaml"
    path.write_text("region: ap-south-1\n")
    monkeypatch.setenv("SAGEKIT_CONFIG", str(path))
    assert load_config().region == "ap-south-1"


def test_env_overrides_file(tmp_path, monkeypatch) -> None:
    """Environment variables win over file values."""
    path = tmp_path / "config.yaml"
    path.write_text("region: eu-west-1\n")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("SAGEMAKER_EXECUTION_ROLE_ARN", "arn:aws:iam::123456789012:role/Exec")
    config = load_config(path)
    assert config.region == "us-east-1"
    assert config.role == "arn:aws:iam::123456789012:role/Exec"


def test_missing_explicit_file(tmp_path) -> None:
    """An explicitly requested file must exist."""
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_non_mapping_file(tmp_path) -> None:
    """A YAML list is not a valid config."""
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="must contain a mapping"):
        load_config(path)


@pytest.mark.parametrize(
    "field, value",
    [
        ("role", "not-an-arn"),
        ("default_bucket", "Bad_Bucket"),
        ("default_bucket", "ab"),
        ("log_level", "LOUD"),
        ("poll_interval", 0),
        ("max_attempts", 50),
    ],
)
def test_invalid_values(field, value) -> None:
    """Bad values fail validation before any AWS call."""
    with pytest.raises(pydantic.ValidationError):
        SagekitConfig(**{field: value})


def test_unknown_keys_rejected() -> None:
    """Typos in config keys are reported."""
    with pytest.raises(pydantic.ValidationError):
        SagekitConfig(regoin="us-west-2")


def test_config_is_frozen() -> None:
    """Loaded configs cannot be mutated."""
    config = SagekitConfig()
    with pytest.raises(pydantic.ValidationError):
        config.region = "us-west-2"
