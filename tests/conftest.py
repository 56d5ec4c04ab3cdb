"""Shared fixtures: a mocked session that never reaches AWS."""

from unittest.mock import Mock

import pytest

from sagekit.config import SagekitConfig

REGION = "us-west-2"
BUCKET = "my-bucket"
ROLE = "arn:aws:iam::123456789012:role/SageMakerRole"


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Keep tests away from the user's config file and AWS environment."""
    monkeypatch.setattr("sagekit.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    for var in (
        "SAGEKIT_CONFIG",
        "AWS_DEFAULT_REGION",
        "SAGEMAKER_EXECUTION_ROLE_ARN",
        "SAGEKIT_DEFAULT_BUCKET",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def sagemaker_session():
    session = Mock(name="sagemaker_session")
    session.boto_region_name = REGION
    session.default_bucket.return_value = BUCKET
    session.expand_role.side_effect = lambda role: role
    session.poll_interval = 0
    session.config = SagekitConfig(region=REGION)
    session.list_tags.return_value = []
    return session
