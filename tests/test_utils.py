"""Tests for naming helpers, VpcConfig handling and the error hierarchy."""

import datetime

import pytest

from sagekit import vpc_utils
from sagekit.errors import CapacityError, SagekitError, UnexpectedStatusError, ValidationError
from sagekit.utils import (
    base_name_from_image,
    build_dict,
    get_config_value,
    name_from_base,
    parse_s3_url,
    secondary_training_status_changed,
    secondary_training_status_message,
    unique_name_from_base,
)


def test_name_from_base_fits_max_length() -> None:
    """Long bases are trimmed so the timestamped name respects max_length."""
    name = name_from_base("a" * 100, max_length=32)
    assert len(name) <= 32
    assert name.startswith("aaaa")


def test_name_from_base_short_timestamp() -> None:
    """The short form appends a yymmdd-HHMM timestamp."""
    name = name_from_base("job", short=True)
    assert name.startswith("job-")
    assert len(name) == len("job-") + len("240101-1200")


def test_unique_name_from_base_is_bounded() -> None:
    """Unique names keep the base and respect max_length."""
    first = unique_name_from_base("base", max_length=20)
    assert len(first) <= 20
    assert first.startswith("base")


@pytest.mark.parametrize(
    "image, expected",
    [
        ("123.dkr.ecr.us-west-2.amazonaws.com/kmeans:1", "kmeans"),
        ("my-image:latest", "my-image"),
        ("repo/image", "image"),
    ],
)
def test_base_name_from_image(image, expected) -> None:
    """The repository name is extracted from an image URI."""
    assert base_name_from_image(image) == expected


def test_parse_s3_url() -> None:
    """Bucket and key are split from an S3 URL."""
    assert parse_s3_url("s3://bucket/some/key") == ("bucket", "some/key")


def test_parse_s3_url_rejects_other_schemes() -> None:
    """Non-S3 URLs raise a ValidationError that is also a ValueError."""
    with pytest.raises(ValueError):
        parse_s3_url("https://bucket/key")
    with pytest.raises(ValidationError):
        parse_s3_url("file:///tmp/data")


def test_build_dict_and_config_value() -> None:
    """None values are dropped and dotted paths walk nested dicts."""
    assert build_dict("Key", None) == {}
    assert build_dict("Key", 1) == {"Key": 1}
    config = {"a": {"b": {"c": 3}}}
    assert get_config_value("a.b.c", config) == 3
    assert get_config_value("a.x", config) is None
    assert get_config_value("a", None) is None


def test_secondary_status_message() -> None:
    """Only new transitions are printed, prefixed with the modification time."""
    prev = {"SecondaryStatusTransitions": [{"Status": "Starting", "StatusMessage": "Preparing"}]}
    current = {
        "LastModifiedTime": datetime.datetime(2024, 1, 2, 3, 4, 5),
        "SecondaryStatusTransitions": [
            {"Status": "Starting", "StatusMessage": "Preparing"},
            {"Status": "Training", "StatusMessage": "Training image download completed."},
        ],
    }
    assert secondary_training_status_changed(current, prev)
    message = secondary_training_status_message(current, prev)
    assert message == "2024-01-02 03:04:05 Training - Training image download completed."
    assert not secondary_training_status_changed(prev, prev)
    assert secondary_training_status_message(None, prev) == ""


def test_vpc_sanitize() -> None:
    """Unknown keys are stripped and missing or empty keys are rejected."""
    config = {"Subnets": ["subnet-1"], "SecurityGroupIds": ["sg-1"], "Extra": True}
    assert vpc_utils.sanitize(config) == {"Subnets": ["subnet-1"], "SecurityGroupIds": ["sg-1"]}
    assert vpc_utils.sanitize(None) is None
    with pytest.raises(ValidationError):
        vpc_utils.sanitize({"Subnets": ["subnet-1"]})
    with pytest.raises(ValidationError):
        vpc_utils.sanitize({"Subnets": [], "SecurityGroupIds": ["sg-1"]})
    with pytest.raises(TypeError):
        vpc_utils.sanitize({"Subnets": "subnet-1", "SecurityGroupIds": ["sg-1"]})


def test_vpc_to_dict_requires_both_lists() -> None:
    """A VpcConfig is only produced when subnets and security groups are present."""
    assert vpc_utils.to_dict(["subnet-1"], None) is None
    assert vpc_utils.from_dict(None) == (None, None)


def test_error_hierarchy() -> None:
    """Status errors keep the allowed and actual statuses."""
    err = CapacityError("no capacity", allowed_statuses=("Completed",), actual_status="Failed")
    assert isinstance(err, UnexpectedStatusError)
    assert isinstance(err, SagekitError)
    assert err.allowed_statuses == ["Completed"]
    assert err.actual_status == "Failed"
