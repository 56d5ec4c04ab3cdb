"""Tests for Session request shaping and status polling."""

from unittest.mock import Mock

from botocore.exceptions import ClientError
import pytest

from sagekit import session as session_module
from sagekit.config import SagekitConfig
from sagekit.errors import CapacityError, UnexpectedStatusError, ValidationError
from sagekit.session import (
    Session,
    _check_job_status,
    _wait_until,
    _wait_until_training_done,
    container_def,
)

from .conftest import REGION, ROLE


def _client_error(code, message="error", operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def session(monkeypatch):
    monkeypatch.setattr(session_module.time, "sleep", lambda _: None)
    boto_session = Mock(region_name=REGION)
    return Session(
        boto_session=boto_session,
        sagemaker_client=Mock(),
        sagemaker_runtime_client=Mock(),
        s3_client=Mock(),
        config=SagekitConfig(region=REGION, poll_interval=0.1),
    )


def test_session_requires_region() -> None:
    """A boto session without a region is refused."""
    with pytest.raises(ValidationError, match="region"):
        Session(boto_session=Mock(region_name=None), config=SagekitConfig())


def test_check_job_status() -> None:
    """Completed passes, Stopped warns and failures raise with the reason."""
    _check_job_status("job", {"TrainingJobStatus": "Completed"}, "TrainingJobStatus")
    _check_job_status("job", {"TrainingJobStatus": "Stopped"}, "TrainingJobStatus")

    with pytest.raises(UnexpectedStatusError, match="Error for Training job job: Failed. Reason: OOM") as err:
        _check_job_status("job", {"TrainingJobStatus": "Failed", "FailureReason": "OOM"}, "TrainingJobStatus")
    assert not isinstance(err.value, CapacityError)
    assert err.value.actual_status == "Failed"

    with pytest.raises(CapacityError):
        _check_job_status(
            "job",
            {"ProcessingJobStatus": "Failed", "FailureReason": "CapacityError: no ml.p3 capacity"},
            "ProcessingJobStatus",
        )


def test_wait_for_transform_job_polls_until_done(session) -> None:
    """In-progress statuses keep polling and the final description is returned."""
    session.sagemaker_client.describe_transform_job.side_effect = [
        {"TransformJobStatus": "InProgress"},
        {"TransformJobStatus": "Completed", "TransformJobName": "t"},
    ]
    desc = session.wait_for_transform_job("t")
    assert desc["TransformJobName"] == "t"
    assert session.sagemaker_client.describe_transform_job.call_count == 2


def test_wait_retries_access_denied(session) -> None:
    """AccessDenied right after creation is treated as tag propagation delay."""
    session.sagemaker_client.describe_processing_job.side_effect = [
        _client_error("AccessDeniedException"),
        {"ProcessingJobStatus": "Completed"},
    ]
    assert session.wait_for_processing_job("p")["ProcessingJobStatus"] == "Completed"


def test_wait_raises_access_denied_after_grace(session) -> None:
    """AccessDenied is only retried for the first 300 seconds."""
    describe = Mock(side_effect=_client_error("AccessDeniedException"))
    with pytest.raises(ClientError):
        _wait_until(describe, poll=100)
    assert describe.call_count == 4

    with pytest.raises(ClientError):
        _wait_until(Mock(side_effect=_client_error("AccessDeniedException")), poll=301)

    training = Mock(side_effect=_client_error("AccessDeniedException"))
    with pytest.raises(ClientError):
        _wait_until_training_done(training, {}, poll=100)
    assert training.call_count == 4


def test_wait_for_job_raises_on_failure(session) -> None:
    """A failed training job raises after polling."""
    session.sagemaker_client.describe_training_job.return_value = {
        "TrainingJobStatus": "Failed",
        "FailureReason": "bad input",
    }
    with pytest.raises(UnexpectedStatusError, match="bad input"):
        session.wait_for_job("train-job")


def test_wait_for_endpoint_requires_in_service(session) -> None:
    """Endpoints that settle outside InService raise."""
    session.sagemaker_client.describe_endpoint.side_effect = [
        {"EndpointStatus": "Creating"},
        {"EndpointStatus": "Failed", "FailureReason": "image not found"},
    ]
    with pytest.raises(UnexpectedStatusError, match="Error hosting endpoint ep: Failed"):
        session.wait_for_endpoint("ep", poll=0)


def test_default_bucket_is_created(session) -> None:
    """A missing bucket is created with a location constraint outside us-east-1."""
    session._client = Mock()
    session._client.return_value.get_caller_identity.return_value = {"Account": "123456789012"}
    session.s3_client.head_bucket.side_effect = _client_error("404")

    assert session.default_bucket() == "sagemaker-us-west-2-123456789012"
    session.s3_client.create_bucket.assert_called_once_with(
        Bucket="sagemaker-us-west-2-123456789012",
        CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
    )
    # cached after the first call
    assert session.default_bucket() == "sagemaker-us-west-2-123456789012"
    assert session.s3_client.head_bucket.call_count == 1


def test_default_bucket_already_owned(session) -> None:
    """A concurrent create of our own bucket is not an error."""
    session._default_bucket_name_override = "my-bucket"
    session.s3_client.head_bucket.side_effect = _client_error("NoSuchBucket")
    session.s3_client.create_bucket.side_effect = _client_error("BucketAlreadyOwnedByYou")
    assert session.default_bucket() == "my-bucket"


def test_default_bucket_forbidden(session) -> None:
    """A bucket owned by someone else propagates the error."""
    session._default_bucket_name_override = "taken-bucket"
    session.s3_client.head_bucket.side_effect = _client_error("403")
    with pytest.raises(ClientError):
        session.default_bucket()


def test_train_request_needs_exactly_one_image_source(session) -> None:
    """Either an image URI or an algorithm ARN, never both or neither."""
    common = dict(
        input_mode="File",
        input_config=None,
        role=ROLE,
        job_name="job",
        output_config={"S3OutputPath": "s3://b/o"},
        resource_config={},
        vpc_config=None,
        hyperparameters={},
        stop_condition={"MaxRuntimeInSeconds": 60},
        tags=None,
        metric_definitions=None,
    )
    with pytest.raises(ValidationError, match="Exactly one"):
        session._get_train_request(**common)
    with pytest.raises(ValidationError, match="Exactly one"):
        session._get_train_request(image_uri="img", algorithm_arn="arn", **common)

    request = session._get_train_request(
        image_uri="img", use_spot_instances=True, checkpoint_s3_uri="s3://b/ckpt", **common
    )
    assert request["AlgorithmSpecification"] == {"TrainingInputMode": "File", "TrainingImage": "img"}
    assert request["EnableManagedSpotTraining"] is True
    assert request["CheckpointConfig"] == {"S3Uri": "s3://b/ckpt"}
    assert "HyperParameters" not in request
    assert "InputDataConfig" not in request


def test_update_endpoint_requires_existing_endpoint(session) -> None:
    """Updating a missing endpoint raises ValidationError."""
    session.sagemaker_client.describe_endpoint.side_effect = _client_error(
        "ValidationException", "Could not find endpoint"
    )
    with pytest.raises(ValidationError, match="does not exist"):
        session.update_endpoint("ep", "cfg", wait=False)
    session.sagemaker_client.update_endpoint.assert_not_called()


def test_list_tags_paginates_and_drops_system_tags(session) -> None:
    """aws: tags are filtered out across every page."""
    session.sagemaker_client.list_tags.side_effect = [
        {"Tags": [{"Key": "aws:cloudformation", "Value": "x"}, {"Key": "team", "Value": "ml"}], "NextToken": "t"},
        {"Tags": [{"Key": "env", "Value": "dev"}]},
    ]
    assert session.list_tags("arn") == [{"Key": "team", "Value": "ml"}, {"Key": "env", "Value": "dev"}]
    assert session.sagemaker_client.list_tags.call_args.kwargs["NextToken"] == "t"


def test_stop_transform_job_ignores_stopped_jobs(session) -> None:
    """A ValidationException means the job already stopped."""
    session.sagemaker_client.stop_transform_job.side_effect = _client_error("ValidationException")
    session.stop_transform_job("t")

    session.sagemaker_client.stop_transform_job.side_effect = _client_error("ThrottlingException")
    with pytest.raises(ClientError):
        session.stop_transform_job("t")


def test_upload_data_single_file(session, tmp_path) -> None:
    """A single file is uploaded under the prefix and its full URI returned."""
    data = tmp_path / "train.csv"
    data.write_text("1,2\n")
    uri = session.upload_data(str(data), bucket="bucket", key_prefix="/prefix/")
    assert uri == "s3://bucket/prefix/train.csv"
    session.s3_client.upload_file.assert_called_once_with(
        str(data), "bucket", "prefix/train.csv", ExtraArgs=None
    )


def test_upload_data_directory(session, tmp_path) -> None:
    """Directories keep their relative layout."""
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "sub" / "b.txt").write_text("b")
    uri = session.upload_data(str(tmp_path), bucket="bucket", key_prefix="data")
    assert uri == "s3://bucket/data"
    keys = sorted(call.args[2] for call in session.s3_client.upload_file.call_args_list)
    assert keys == ["data/a.txt", "data/sub/b.txt"]


def test_container_def() -> None:
    """Optional container fields are only set when given."""
    assert container_def("img") == {"Image": "img", "Environment": {}}
    definition = container_def("img", "s3://b/model.tar.gz", {"A": "1"})
    assert definition["ModelDataUrl"] == "s3://b/model.tar.gz"
    assert definition["Environment"] == {"A": "1"}


def test_wait_for_model_package(session) -> None:
    """Pending packages keep polling; anything but Completed raises."""
    session.sagemaker_client.describe_model_package.side_effect = [
        {"ModelPackageStatus": "Pending"},
        {"ModelPackageStatus": "Completed"},
    ]
    assert session.wait_for_model_package("pkg", poll=0)["ModelPackageStatus"] == "Completed"

    session.sagemaker_client.describe_model_package.side_effect = None
    session.sagemaker_client.describe_model_package.return_value = {
        "ModelPackageStatus": "Failed",
        "FailureReason": "bad artifacts",
    }
    with pytest.raises(UnexpectedStatusError, match="bad artifacts"):
        session.wait_for_model_package("pkg", poll=0)
