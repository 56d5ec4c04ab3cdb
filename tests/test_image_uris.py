"""Tests for ECR image URI resolution."""

import pytest

from sagekit import image_uris
from sagekit.errors import ValidationError


def test_algorithm_uri() -> None:
    """Built-in algorithms resolve to their regional registry."""
    uri = image_uris.retrieve("kmeans", "us-west-2", version="1")
    assert uri == "174872318107.dkr.ecr.us-west-2.amazonaws.com/kmeans:1"


def test_single_version_needs_no_version() -> None:
    """A framework with one version resolves without an explicit version."""
    uri = image_uris.retrieve("model-monitor", "us-east-1")
    assert uri == "156813124566.dkr.ecr.us-east-1.amazonaws.com/sagemaker-model-monitor-analyzer:latest"


def test_framework_uri_uses_processor_and_alias() -> None:
    """Version aliases resolve and the instance type picks the processor."""
    uri = image_uris.retrieve(
        "xgboost", "us-west-2", version="1.7", instance_type="ml.m5.xlarge", image_scope="training"
    )
    assert uri == "246618743249.dkr.ecr.us-west-2.amazonaws.com/sagemaker-xgboost:1.7-1-cpu-py3"
    gpu_uri = image_uris.retrieve("xgboost", "us-west-2", version="1.7-1", instance_type="ml.p3.2xlarge")
    assert gpu_uri.endswith(":1.7-1-gpu-py3")


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"framework": "nope", "region": "us-west-2"}, "Unsupported framework"),
        ({"framework": "kmeans", "region": "mars-1"}, "Unsupported region"),
        ({"framework": "kmeans", "region": None}, "Unsupported region"),
        ({"framework": "xgboost", "region": "us-west-2", "instance_type": "ml.m5.xlarge"}, "Unspecified version"),
        ({"framework": "kmeans", "region": "us-west-2", "version": "9"}, "Unsupported kmeans version"),
        ({"framework": "kmeans", "region": "us-west-2", "image_scope": "monitoring"}, "Unsupported image scope"),
        (
            {"framework": "xgboost", "region": "us-west-2", "version": "1.7-1", "instance_type": "m5"},
            "Invalid SageMaker instance type",
        ),
        (
            {"framework": "xgboost", "region": "us-west-2", "version": "1.7-1", "instance_type": "ml.m5.xlarge", "py_version": "py2"},
            "Unsupported Python version",
        ),
    ],
)
def test_invalid_arguments(kwargs, message) -> None:
    """Unsupported arguments raise ValidationError naming the problem."""
    with pytest.raises(ValidationError, match=message):
        image_uris.retrieve(**kwargs)


def test_available_frameworks() -> None:
    """Every JSON config is listed."""
    frameworks = image_uris.available_frameworks()
    assert "kmeans" in frameworks
    assert "sklearn" in frameworks
