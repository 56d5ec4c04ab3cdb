"""Tests for AutoML jobs, their candidates and inference pipelines."""

import pytest

from sagekit.automl import AutoML, AutoMLInput, CandidateEstimator
from sagekit.automl.automl import AutoMLJob
from sagekit.errors import ValidationError
from sagekit.pipeline import PipelineModel

from .conftest import BUCKET, ROLE


def _containers():
    return [
        {
            "Image": "img-preprocess",
            "ModelDataUrl": "s3://b/pre.tar.gz",
            "Environment": {"SAGEMAKER_INFERENCE_SUPPORTED": ""},
        },
        {
            "Image": "img-algo",
            "ModelDataUrl": "s3://b/algo.tar.gz",
            "Environment": {"SAGEMAKER_INFERENCE_SUPPORTED": "predicted_label, probability"},
        },
        {
            "Image": "img-postprocess",
            "ModelDataUrl": "s3://b/post.tar.gz",
            "Environment": {"SAGEMAKER_INFERENCE_SUPPORTED": "predicted_label, probability, labels"},
        },
    ]


def _candidate():
    return {
        "CandidateName": "best",
        "InferenceContainers": _containers(),
        "CandidateSteps": [
            {"CandidateStepName": "train-step", "CandidateStepType": "AWS::SageMaker::TrainingJob"},
            {"CandidateStepName": "transform-step", "CandidateStepType": "AWS::SageMaker::TransformJob"},
        ],
    }


def test_problem_type_needs_objective(sagemaker_session) -> None:
    """problem_type and job_objective come together or not at all."""
    with pytest.raises(ValidationError, match="Either both"):
        AutoML(ROLE, "y", problem_type="Regression", sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError):
        AutoML(ROLE, "y", job_objective={"MetricName": "MSE"}, sagemaker_session=sagemaker_session)
    AutoML(ROLE, "y", problem_type="Regression", job_objective={"MetricName": "MSE"},
           sagemaker_session=sagemaker_session)


def test_fit_creates_job(sagemaker_session) -> None:
    """The AutoML request carries the channel, stop condition and security config."""
    automl = AutoML(
        ROLE,
        "label",
        max_candidates=5,
        total_job_runtime_in_seconds=3600,
        volume_kms_key="kms",
        sagemaker_session=sagemaker_session,
    )
    automl.fit("s3://data/train.csv", wait=False, job_name="automl-job")

    args = sagemaker_session.auto_ml.call_args.kwargs
    assert args["job_name"] == "automl-job"
    assert args["input_config"] == [
        {
            "DataSource": {"S3DataSource": {"S3DataType": "S3Prefix", "S3Uri": "s3://data/train.csv"}},
            "TargetAttributeName": "label",
        }
    ]
    assert args["output_config"] == {"S3OutputPath": f"s3://{BUCKET}/"}
    assert args["auto_ml_job_config"] == {
        "CompletionCriteria": {"MaxCandidates": 5, "MaxAutoMLJobRuntimeInSeconds": 3600},
        "SecurityConfig": {"EnableInterContainerTrafficEncryption": False, "VolumeKmsKeyId": "kms"},
    }
    assert args["problem_type"] is None
    assert args["generate_candidate_definitions_only"] is False


def test_fit_uploads_local_data(sagemaker_session, tmp_path) -> None:
    """Local datasets are uploaded first, and generated names fit 32 characters."""
    data = tmp_path / "train.csv"
    data.write_text("a,label\n1,0\n")
    sagemaker_session.upload_data.return_value = "s3://my-bucket/auto-ml-input-data/train.csv"
    automl = AutoML(ROLE, "label", base_job_name="a-rather-long-automl-base-name", sagemaker_session=sagemaker_session)
    automl.fit(str(data), wait=False)

    sagemaker_session.upload_data.assert_called_once_with(str(data), key_prefix="auto-ml-input-data")
    args = sagemaker_session.auto_ml.call_args.kwargs
    assert args["input_config"][0]["DataSource"]["S3DataSource"]["S3Uri"] == (
        "s3://my-bucket/auto-ml-input-data/train.csv"
    )
    assert len(automl.current_job_name) <= 32


def test_fit_waits_with_progress(sagemaker_session) -> None:
    """Waiting prints progress through the secondary status."""
    automl = AutoML(ROLE, "label", sagemaker_session=sagemaker_session)
    automl.fit("s3://data/train.csv", job_name="job")
    sagemaker_session.logs_for_auto_ml_job.assert_called_once_with("job", wait=True)


def test_automl_input_request() -> None:
    """Each S3 URI becomes one channel with the target and compression."""
    request = AutoMLInput(["s3://a", "s3://b"], "y", compression="Gzip").to_request_dict()
    assert [c["DataSource"]["S3DataSource"]["S3Uri"] for c in request] == ["s3://a", "s3://b"]
    assert all(c["CompressionType"] == "Gzip" and c["TargetAttributeName"] == "y" for c in request)


def test_input_channels_are_validated() -> None:
    """Inputs must be S3 URIs with a target attribute."""
    with pytest.raises(ValidationError, match="must start with"):
        AutoMLJob._format_inputs_to_input_config("/tmp/data", target_attribute_name="y")
    with pytest.raises(ValidationError, match="TargetAttributeName"):
        AutoMLJob._format_inputs_to_input_config("s3://data")
    with pytest.raises(ValidationError):
        AutoMLJob._format_inputs_to_input_config(42, target_attribute_name="y")
    channels = AutoMLJob._format_inputs_to_input_config(["s3://a", "s3://b"], target_attribute_name="y")
    assert len(channels) == 2
    assert "S3DataDistributionType" not in channels[0]["DataSource"]["S3DataSource"]


def test_stop_condition() -> None:
    """Only the limits that were set appear."""
    assert AutoMLJob._prepare_auto_ml_stop_condition(None) == {}
    assert AutoMLJob._prepare_auto_ml_stop_condition(3, 60) == {
        "MaxCandidates": 3,
        "MaxRuntimePerTrainingJobInSeconds": 60,
    }


def test_inference_response_keys_are_wired(sagemaker_session) -> None:
    """Containers output the supported keys and read the previous container's."""
    automl = AutoML(ROLE, "y", sagemaker_session=sagemaker_session)
    containers = automl.validate_and_update_inference_response(_containers(), ["predicted_label", "probability"])
    assert "SAGEMAKER_INFERENCE_OUTPUT" not in containers[0]["Environment"]
    assert containers[1]["Environment"]["SAGEMAKER_INFERENCE_OUTPUT"] == "predicted_label,probability"
    assert "SAGEMAKER_INFERENCE_INPUT" not in containers[1]["Environment"]
    assert containers[2]["Environment"]["SAGEMAKER_INFERENCE_INPUT"] == "predicted_label,probability"
    assert containers[2]["Environment"]["SAGEMAKER_INFERENCE_OUTPUT"] == "predicted_label,probability"


def test_unsupported_inference_keys(sagemaker_session) -> None:
    """Keys the last container cannot return are refused."""
    automl = AutoML(ROLE, "y", sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError, match=r"\[score\] are unsupported"):
        automl.validate_and_update_inference_response(_containers(), ["score"])
    bare = [{"Image": "img", "Environment": {}}]
    with pytest.raises(ValidationError, match="does not support selection"):
        automl.validate_and_update_inference_response(bare, ["predicted_label"])


def test_create_model_from_best_candidate(sagemaker_session) -> None:
    """The best candidate becomes a pipeline of its inference containers."""
    sagemaker_session.describe_auto_ml_job.return_value = {"AutoMLJobName": "job", "BestCandidate": _candidate()}
    automl = AutoML(ROLE, "y", sagemaker_session=sagemaker_session)
    automl.current_job_name = "job"
    model = automl.create_model("pipeline", inference_response_keys=["predicted_label"])

    assert isinstance(model, PipelineModel)
    assert [m.image_uri for m in model.models] == ["img-preprocess", "img-algo", "img-postprocess"]
    assert model.models[2].env["SAGEMAKER_INFERENCE_OUTPUT"] == "predicted_label"
    assert automl.best_candidate()["CandidateName"] == "best"
    sagemaker_session.describe_auto_ml_job.assert_called_once_with("job")


def test_pipeline_model_deploy(sagemaker_session) -> None:
    """Pipeline models are created with every container and hosted on one variant."""
    automl = AutoML(ROLE, "y", sagemaker_session=sagemaker_session)
    automl.deploy(1, "ml.m5.large", candidate=_candidate(), name="pipeline", endpoint_name="ep", wait=False)

    create_args = sagemaker_session.create_model.call_args
    assert create_args.args[0] == "pipeline"
    assert [c["Image"] for c in create_args.args[2]] == ["img-preprocess", "img-algo", "img-postprocess"]
    endpoint_args = sagemaker_session.endpoint_from_production_variants.call_args.kwargs
    assert endpoint_args["name"] == "ep"
    assert endpoint_args["production_variants"][0]["ModelName"] == "pipeline"


def test_attach_restores_settings(sagemaker_session) -> None:
    """attach() rebuilds the AutoML object from the job description."""
    sagemaker_session.describe_auto_ml_job.return_value = {
        "AutoMLJobName": "job",
        "AutoMLJobArn": "arn",
        "RoleArn": ROLE,
        "InputDataConfig": [{"TargetAttributeName": "y", "CompressionType": "Gzip"}],
        "OutputDataConfig": {"S3OutputPath": "s3://out/"},
        "AutoMLJobConfig": {"CompletionCriteria": {"MaxCandidates": 7}, "SecurityConfig": {"VolumeKmsKeyId": "k"}},
        "ProblemType": "Regression",
        "AutoMLJobObjective": {"MetricName": "MSE"},
    }
    automl = AutoML.attach("job", sagemaker_session=sagemaker_session)
    assert automl.target_attribute_name == "y"
    assert automl.max_candidates == 7
    assert automl.volume_kms_key == "k"
    assert automl.compression_type == "Gzip"
    assert automl.latest_auto_ml_job.name == "job"


def test_candidate_steps(sagemaker_session) -> None:
    """Step types are reduced to their short names."""
    candidate = CandidateEstimator(_candidate(), sagemaker_session=sagemaker_session)
    assert candidate.steps == [
        {"name": "train-step", "type": "TrainingJob"},
        {"name": "transform-step", "type": "TransformJob"},
    ]
    sagemaker_session.describe_training_job.return_value = {"InputDataConfig": ["train"]}
    sagemaker_session.describe_transform_job.return_value = {"TransformInput": {"ContentType": "text/csv"}}
    steps = candidate.get_steps()
    assert [s.type for s in steps] == ["TrainingJob", "TransformJob"]
    assert steps[0].inputs == ["train"]


def test_candidate_fit_replays_steps(sagemaker_session) -> None:
    """Each step is re-run against the new data."""
    sagemaker_session.describe_training_job.return_value = {
        "AlgorithmSpecification": {"TrainingInputMode": "File", "TrainingImage": "img"},
        "RoleArn": ROLE,
        "OutputDataConfig": {"S3OutputPath": "s3://out/"},
        "ResourceConfig": {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge", "VolumeSizeInGB": 30},
        "StoppingCondition": {"MaxRuntimeInSeconds": 60},
    }
    sagemaker_session.describe_transform_job.return_value = {
        "ModelName": "model",
        "TransformInput": {"DataSource": {"S3DataSource": {"S3DataType": "S3Prefix", "S3Uri": "s3://old"}}},
        "TransformOutput": {"S3OutputPath": "s3://out/transform"},
        "TransformResources": {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge"},
    }
    candidate = CandidateEstimator(_candidate(), sagemaker_session=sagemaker_session)
    candidate.fit("s3://new/data.csv", volume_kms_key="kms", wait=False, logs=False)

    train_args = sagemaker_session.train.call_args.kwargs
    assert train_args["job_name"].startswith("sagemaker-automl-training-rerun")
    assert train_args["input_config"][0]["ChannelName"] == "train"
    assert train_args["resource_config"]["VolumeKmsKeyId"] == "kms"
    transform_args = sagemaker_session.transform.call_args.kwargs
    assert transform_args["input_config"]["DataSource"]["S3DataSource"]["S3Uri"] == "s3://new/data.csv"
    assert transform_args["resource_config"]["VolumeKmsKeyId"] == "kms"


def test_candidate_fit_rejects_non_string_inputs(sagemaker_session) -> None:
    """Candidates re-run on one dataset given as a path or URI."""
    candidate = CandidateEstimator(_candidate(), sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError, match="Expecting a string"):
        candidate.fit(["s3://a"], wait=False, logs=False)
    with pytest.raises(ValidationError, match="Logs can only be shown"):
        candidate.fit("s3://a", wait=False, logs=True)


def test_list_candidates(sagemaker_session) -> None:
    """Candidates of the current job are listed with the given filters."""
    sagemaker_session.list_candidates.return_value = {"Candidates": [{"CandidateName": "c1"}]}
    automl = AutoML(ROLE, "y", sagemaker_session=sagemaker_session)
    automl.current_job_name = "job"
    assert automl.list_candidates(status_equals="Completed", max_results=5) == [{"CandidateName": "c1"}]
    args = sagemaker_session.list_candidates.call_args.kwargs
    assert args["job_name"] == "job"
    assert args["status_equals"] == "Completed"
    assert args["max_results"] == 5
