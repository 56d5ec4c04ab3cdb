"""Tests for generic, framework and algorithm-specific estimators."""

import json

import pytest

from sagekit.errors import ValidationError
from sagekit.estimator import Estimator
from sagekit.inputs import FileSystemInput, TrainingInput
from sagekit.model import Model
from sagekit.sklearn import SKLearn, framework_version_from_tag
from sagekit.xgboost import XGBoost, XGBoostModel

from .conftest import BUCKET, REGION, ROLE

IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/my-algo:latest"


def _estimator(session, **kwargs):
    return Estimator(IMAGE, ROLE, 1, "ml.m5.xlarge", sagemaker_session=session, **kwargs)


def test_fit_builds_train_request(sagemaker_session) -> None:
    """Channels, resources and hyperparameters reach Session.train."""
    estimator = _estimator(sagemaker_session, hyperparameters={"epochs": 3})
    estimator.fit(
        {"train": "s3://data/train", "test": TrainingInput("s3://data/test", content_type="text/csv")},
        wait=False,
        job_name="job-1",
    )

    args = sagemaker_session.train.call_args.kwargs
    assert args["job_name"] == "job-1"
    assert args["image_uri"] == IMAGE
    assert args["hyperparameters"] == {"epochs": "3"}
    assert args["output_config"] == {"S3OutputPath": f"s3://{BUCKET}/"}
    assert args["resource_config"] == {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge", "VolumeSizeInGB": 30}
    assert args["stop_condition"] == {"MaxRuntimeInSeconds": 24 * 60 * 60}
    channels = {c["ChannelName"]: c for c in args["input_config"]}
    assert channels["train"]["DataSource"]["S3DataSource"]["S3Uri"] == "s3://data/train"
    assert channels["test"]["ContentType"] == "text/csv"
    assert estimator.latest_training_job.name == "job-1"


def test_fit_generates_job_name_from_image(sagemaker_session) -> None:
    """Without a job name the base name comes from the image repository."""
    estimator = _estimator(sagemaker_session)
    estimator.fit("s3://data/train", wait=False)
    job_name = sagemaker_session.train.call_args.kwargs["job_name"]
    assert job_name.startswith("my-algo-")
    channel = sagemaker_session.train.call_args.kwargs["input_config"][0]
    assert channel["ChannelName"] == "training"


def test_fit_rejects_local_inputs(sagemaker_session) -> None:
    """Only S3 URIs are accepted as string inputs."""
    with pytest.raises(ValidationError, match="must start with"):
        _estimator(sagemaker_session).fit("/tmp/data", wait=False)


def test_model_uri_becomes_a_channel(sagemaker_session) -> None:
    """A starting model is fed through its own channel."""
    estimator = _estimator(sagemaker_session, model_uri="s3://models/model.tar.gz")
    estimator.fit("s3://data/train", wait=False, job_name="job")
    channels = sagemaker_session.train.call_args.kwargs["input_config"]
    assert channels[-1]["ChannelName"] == "model"
    assert channels[-1]["ContentType"] == "application/x-sagemaker-model"


def test_file_system_input() -> None:
    """File system channels validate their type and access mode."""
    channel = FileSystemInput("fs-1", "EFS", "/data")
    assert channel.config["DataSource"]["FileSystemDataSource"]["FileSystemAccessMode"] == "ro"
    with pytest.raises(ValidationError):
        FileSystemInput("fs-1", "NFS", "/data")
    with pytest.raises(ValidationError):
        FileSystemInput("fs-1", "EFS", "/data", file_system_access_mode="wx")


def test_spot_training_requires_max_wait(sagemaker_session) -> None:
    """Spot training needs max_wait of at least max_run."""
    with pytest.raises(ValidationError, match="max_wait must be set"):
        _estimator(sagemaker_session, use_spot_instances=True)
    with pytest.raises(ValidationError, match="greater than or equal"):
        _estimator(sagemaker_session, use_spot_instances=True, max_run=3600, max_wait=60)
    estimator = _estimator(sagemaker_session, use_spot_instances=True, max_run=60, max_wait=120)
    estimator.fit("s3://data/train", wait=False, job_name="spot")
    assert sagemaker_session.train.call_args.kwargs["stop_condition"] == {
        "MaxRuntimeInSeconds": 60,
        "MaxWaitTimeInSeconds": 120,
    }


def test_spot_training_accepts_max_wait_equal_to_max_run(sagemaker_session) -> None:
    """Waiting exactly as long as the run may take is allowed."""
    estimator = _estimator(sagemaker_session, use_spot_instances=True, max_run=600, max_wait=600)
    estimator.fit("s3://data/train", wait=False, job_name="spot-equal")
    assert sagemaker_session.train.call_args.kwargs["stop_condition"] == {
        "MaxRuntimeInSeconds": 600,
        "MaxWaitTimeInSeconds": 600,
    }


def test_fit_waits_with_logs(sagemaker_session) -> None:
    """Waiting tails the logs unless asked not to."""
    estimator = _estimator(sagemaker_session)
    estimator.fit("s3://data/train", job_name="job")
    sagemaker_session.logs_for_job.assert_called_once_with("job", wait=True)
    estimator.fit("s3://data/train", job_name="job2", logs=False)
    sagemaker_session.wait_for_job.assert_called_once_with("job2")


def test_deploy_requires_training_job(sagemaker_session) -> None:
    """Nothing can be deployed before fit()."""
    with pytest.raises(ValidationError, match="not associated"):
        _estimator(sagemaker_session).deploy(1, "ml.m5.large")


def test_create_model_uses_artifacts(sagemaker_session) -> None:
    """The model reuses the training image and the job's artifacts."""
    sagemaker_session.describe_training_job.return_value = {
        "ModelArtifacts": {"S3ModelArtifacts": "s3://out/job/output/model.tar.gz"}
    }
    estimator = _estimator(sagemaker_session)
    estimator.fit("s3://data/train", wait=False, job_name="job")
    model = estimator.create_model()
    assert isinstance(model, Model)
    assert model.image_uri == IMAGE
    assert model.model_data == "s3://out/job/output/model.tar.gz"


def _job_description(image=IMAGE, hyperparameters=None):
    return {
        "TrainingJobName": "old-job",
        "TrainingJobArn": "arn:aws:sagemaker:us-west-2:123456789012:training-job/old-job",
        "RoleArn": ROLE,
        "ResourceConfig": {"InstanceCount": 2, "InstanceType": "ml.c5.xlarge", "VolumeSizeInGB": 50},
        "StoppingCondition": {"MaxRuntimeInSeconds": 600},
        "AlgorithmSpecification": {"TrainingInputMode": "File", "TrainingImage": image},
        "OutputDataConfig": {"S3OutputPath": "s3://out/"},
        "HyperParameters": hyperparameters or {"epochs": "3"},
        "VpcConfig": {"Subnets": ["subnet-1"], "SecurityGroupIds": ["sg-1"]},
    }


def test_attach_restores_estimator(sagemaker_session) -> None:
    """attach() rebuilds the estimator from the job description."""
    sagemaker_session.describe_training_job.return_value = _job_description()
    estimator = Estimator.attach("old-job", sagemaker_session=sagemaker_session)
    assert estimator.instance_count == 2
    assert estimator.volume_size == 50
    assert estimator.hyperparameters() == {"epochs": "3"}
    assert estimator.subnets == ["subnet-1"]
    assert estimator.base_job_name == "my-algo"
    assert estimator.latest_training_job.name == "old-job"
    sagemaker_session.wait_for_job.assert_called_once_with("old-job")


def test_framework_hyperparameters_are_json(sagemaker_session, tmp_path) -> None:
    """Framework estimators stage their code and JSON-encode hyperparameters."""
    (tmp_path / "train.py").write_text("print('hi')\n")
    estimator = XGBoost(
        entry_point="train.py",
        source_dir=str(tmp_path),
        framework_version="1.7-1",
        hyperparameters={"max_depth": 5, "objective": "reg:squarederror"},
        role=ROLE,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        sagemaker_session=sagemaker_session,
    )
    estimator.fit("s3://data/train", wait=False, job_name="xgb-job")

    args = sagemaker_session.train.call_args.kwargs
    assert args["image_uri"] == "246618743249.dkr.ecr.us-west-2.amazonaws.com/sagemaker-xgboost:1.7-1-cpu-py3"
    hps = args["hyperparameters"]
    assert hps["max_depth"] == "5"
    assert json.loads(hps["objective"]) == "reg:squarederror"
    assert json.loads(hps["sagemaker_program"]) == "train.py"
    assert json.loads(hps["sagemaker_region"]) == REGION
    assert json.loads(hps["sagemaker_submit_directory"]).endswith("xgb-job/source/sourcedir.tar.gz")
    sagemaker_session.s3_client.upload_file.assert_called_once()


def test_framework_rejects_s3_entry_point(sagemaker_session) -> None:
    """The entry point must be a local file."""
    with pytest.raises(ValidationError, match="Invalid entry point"):
        XGBoost("s3://code/train.py", "1.7-1", role=ROLE, instance_count=1, instance_type="ml.m5.xlarge",
                sagemaker_session=sagemaker_session)


def test_framework_checks_source_dir(sagemaker_session, tmp_path) -> None:
    """The entry point must exist inside a local source_dir."""
    estimator = XGBoost("missing.py", "1.7-1", source_dir=str(tmp_path), role=ROLE, instance_count=1,
                        instance_type="ml.m5.xlarge", sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError, match="No file named"):
        estimator.fit("s3://data/train", wait=False)


def test_xgboost_attach_reads_version_from_image(sagemaker_session) -> None:
    """The framework version is recovered from the training image tag."""
    hyperparameters = {
        "sagemaker_program": json.dumps("train.py"),
        "sagemaker_submit_directory": json.dumps("s3://code/sourcedir.tar.gz"),
        "sagemaker_container_log_level": "20",
        "sagemaker_job_name": json.dumps("old-job"),
        "sagemaker_region": json.dumps(REGION),
        "max_depth": "5",
    }
    image = "246618743249.dkr.ecr.us-west-2.amazonaws.com/sagemaker-xgboost:1.7-1-cpu-py3"
    sagemaker_session.describe_training_job.return_value = _job_description(image, hyperparameters)
    estimator = XGBoost.attach("old-job", sagemaker_session=sagemaker_session)
    assert estimator.framework_version == "1.7-1"
    assert estimator.entry_point == "train.py"
    assert estimator.source_dir == "s3://code/sourcedir.tar.gz"
    assert estimator._hyperparameters == {"max_depth": 5}


def test_xgboost_model_serving_image() -> None:
    """The inference image follows the framework version and instance type."""
    model = XGBoostModel("s3://m/model.tar.gz", ROLE, "serve.py", framework_version="1.7-1")
    assert model.serving_image_uri(REGION, "ml.m5.large").endswith("sagemaker-xgboost:1.7-1-cpu-py3")


def test_sklearn_single_instance(sagemaker_session) -> None:
    """Scikit-learn training is not distributed."""
    with pytest.raises(ValidationError, match="distributed"):
        SKLearn("train.py", "1.2-1", role=ROLE, instance_count=2, instance_type="ml.m5.xlarge",
                sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError, match="framework_version or image_uri"):
        SKLearn("train.py", role=ROLE, instance_type="ml.m5.xlarge", sagemaker_session=sagemaker_session)


@pytest.mark.parametrize(
    "tag, expected",
    [("1.2-1-cpu-py3", ("1.2-1", "py3")), ("1.7-1", ("1.7-1", None)), ("latest", ("latest", None))],
)
def test_framework_version_from_tag(tag, expected) -> None:
    """Image tags split into framework and Python versions."""
    assert framework_version_from_tag(tag) == expected
