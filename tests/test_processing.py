"""Tests for processors, processing jobs and S3 path helpers."""

from botocore.exceptions import ClientError
import pytest

from sagekit.errors import ValidationError
from sagekit.processing import (
    NetworkConfig,
    ProcessingInput,
    ProcessingJob,
    ProcessingOutput,
    Processor,
    ScriptProcessor,
    SKLearnProcessor,
)
from sagekit.s3 import S3Downloader, download_folder, is_s3_uri, local_or_s3, s3_path_join

from .conftest import BUCKET, ROLE

IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/preprocess:latest"


def _processor(session, **kwargs):
    return Processor(ROLE, IMAGE, 1, "ml.m5.xlarge", sagemaker_session=session, **kwargs)


def test_s3_path_join() -> None:
    """Parts are joined with single slashes and the scheme survives."""
    assert s3_path_join("s3://", "bucket", "/job/", "input") == "s3://bucket/job/input"
    assert s3_path_join("a", None, "", "b/") == "a/b"
    assert s3_path_join() == ""


def test_local_or_s3(tmp_path) -> None:
    """Paths are classified, and unknown local paths are refused."""
    assert is_s3_uri("s3://bucket/key")
    assert not is_s3_uri("bucket/key")
    assert local_or_s3("s3://bucket/key") == "s3"
    assert local_or_s3(str(tmp_path)) == "local"
    with pytest.raises(ValidationError):
        local_or_s3(str(tmp_path / "missing"))


def test_s3_downloader_list(sagemaker_session) -> None:
    """Listed keys come back as full URIs."""
    sagemaker_session.list_s3_files.return_value = ["prefix/a.csv", "prefix/b.csv"]
    uris = S3Downloader.list("s3://bucket/prefix", sagemaker_session=sagemaker_session)
    assert uris == ["s3://bucket/prefix/a.csv", "s3://bucket/prefix/b.csv"]


def test_download_folder_single_object(sagemaker_session, tmp_path) -> None:
    """A prefix naming an object downloads only that object."""
    paths = download_folder("bucket", "/models/model.tar.gz", str(tmp_path), sagemaker_session)
    assert paths == [str(tmp_path / "model.tar.gz")]
    sagemaker_session.s3_client.download_file.assert_called_once_with(
        Bucket="bucket", Key="models/model.tar.gz", Filename=str(tmp_path / "model.tar.gz")
    )


def test_download_folder_prefix(sagemaker_session, tmp_path) -> None:
    """A missing object means the prefix is a folder."""
    sagemaker_session.s3_client.head_object.side_effect = ClientError(
        {"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject"
    )
    sagemaker_session.download_data.return_value = ["a"]
    assert download_folder("bucket", "models", str(tmp_path), sagemaker_session) == ["a"]
    sagemaker_session.download_data.assert_called_once_with(
        path=str(tmp_path), bucket="bucket", key_prefix="models"
    )


def test_run_requires_wait_for_logs(sagemaker_session) -> None:
    """Logs cannot be tailed without waiting."""
    with pytest.raises(ValidationError, match="Logs can only be shown"):
        _processor(sagemaker_session).run(wait=False, logs=True)


def test_run_builds_process_request(sagemaker_session) -> None:
    """Inputs and outputs are named and the request carries the cluster settings."""
    processor = _processor(
        sagemaker_session,
        max_runtime_in_seconds=600,
        env={"MODE": "full"},
        network_config=NetworkConfig(enable_network_isolation=True, subnets=["subnet-1"], security_group_ids=["sg-1"]),
    )
    processor.run(
        inputs=[ProcessingInput("s3://data/raw", "/opt/ml/processing/input")],
        outputs=[ProcessingOutput("/opt/ml/processing/output")],
        arguments=["--split", "0.2"],
        wait=False,
        logs=False,
        job_name="prep-job",
    )

    args = sagemaker_session.process.call_args.kwargs
    assert args["job_name"] == "prep-job"
    assert args["inputs"][0]["InputName"] == "input-1"
    assert args["inputs"][0]["S3Input"]["S3Uri"] == "s3://data/raw"
    output = args["output_config"]["Outputs"][0]
    assert output["OutputName"] == "output-1"
    assert output["S3Output"]["S3Uri"] == f"s3://{BUCKET}/prep-job/output/output-1"
    assert args["resources"]["ClusterConfig"] == {
        "InstanceType": "ml.m5.xlarge",
        "InstanceCount": 1,
        "VolumeSizeInGB": 30,
    }
    assert args["stopping_condition"] == {"MaxRuntimeInSeconds": 600}
    assert args["app_specification"] == {"ImageUri": IMAGE, "ContainerArguments": ["--split", "0.2"]}
    assert args["environment"] == {"MODE": "full"}
    assert args["network_config"]["VpcConfig"] == {"SecurityGroupIds": ["sg-1"], "Subnets": ["subnet-1"]}
    assert processor.latest_job.name == "prep-job"
    assert processor.jobs == [processor.latest_job]


def test_local_inputs_are_uploaded(sagemaker_session, tmp_path) -> None:
    """Local sources are uploaded under the job's input prefix."""
    sagemaker_session.upload_data.return_value = f"s3://{BUCKET}/job/input/data"
    processor = _processor(sagemaker_session)
    processor.run(
        inputs=[ProcessingInput(str(tmp_path), "/opt/ml/processing/input", input_name="data")],
        wait=False,
        logs=False,
        job_name="job",
    )
    sagemaker_session.upload_data.assert_called_once_with(
        path=str(tmp_path), bucket=BUCKET, key_prefix="job/input/data", extra_args=None
    )
    assert sagemaker_session.process.call_args.kwargs["inputs"][0]["S3Input"]["S3Uri"] == (
        f"s3://{BUCKET}/job/input/data"
    )


def test_inputs_must_be_processing_inputs(sagemaker_session) -> None:
    """Plain strings are not accepted as inputs."""
    with pytest.raises(TypeError):
        _processor(sagemaker_session).run(inputs=["s3://data/raw"], wait=False, logs=False)


def test_run_waits_for_job(sagemaker_session) -> None:
    """Waiting without logs polls the job status."""
    _processor(sagemaker_session).run(wait=True, logs=False, job_name="job")
    sagemaker_session.wait_for_processing_job.assert_called_once_with("job")


def test_script_processor_adds_code_input(sagemaker_session) -> None:
    """The script becomes a code input and the entrypoint runs it."""
    processor = ScriptProcessor(ROLE, IMAGE, ["python3"], 1, "ml.m5.xlarge", sagemaker_session=sagemaker_session)
    processor.run("s3://code/preprocess.py", wait=False, logs=False, job_name="job")

    args = sagemaker_session.process.call_args.kwargs
    code_input = args["inputs"][-1]
    assert code_input["InputName"] == "code"
    assert code_input["S3Input"]["LocalPath"] == "/opt/ml/processing/input/code"
    assert args["app_specification"]["ContainerEntrypoint"] == [
        "python3",
        "/opt/ml/processing/input/code/preprocess.py",
    ]


def test_script_processor_rejects_missing_code(sagemaker_session, tmp_path) -> None:
    """Local code must exist and be a file."""
    processor = ScriptProcessor(ROLE, IMAGE, ["python3"], 1, "ml.m5.xlarge", sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError, match="wasn't found"):
        processor.run(str(tmp_path / "missing.py"), wait=False, logs=False)
    with pytest.raises(ValidationError, match="must be a file"):
        processor.run(str(tmp_path), wait=False, logs=False)
    with pytest.raises(ValidationError, match="not recognized"):
        processor.run("https://example.com/script.py", wait=False, logs=False)


def test_code_only_for_script_processor(sagemaker_session) -> None:
    """Plain processors take no code argument."""
    with pytest.raises(ValidationError, match="only supported by ScriptProcessor"):
        _processor(sagemaker_session)._normalize_args(code="s3://code/a.py")


def test_sklearn_processor_image(sagemaker_session) -> None:
    """The scikit-learn processor resolves its own image and runs python3."""
    processor = SKLearnProcessor("1.2-1", ROLE, "ml.m5.xlarge", 1, sagemaker_session=sagemaker_session)
    assert processor.image_uri.endswith("sagemaker-scikit-learn:1.2-1-cpu-py3")
    assert processor.command == ["python3"]


def test_processing_job_from_arn(sagemaker_session) -> None:
    """An existing job is rebuilt from its description."""
    sagemaker_session.describe_processing_job.return_value = {
        "ProcessingInputs": [
            {
                "InputName": "data",
                "S3Input": {"S3Uri": "s3://data/raw", "LocalPath": "/opt/ml/processing/input"},
            }
        ],
        "ProcessingOutputConfig": {
            "Outputs": [
                {
                    "OutputName": "result",
                    "S3Output": {"S3Uri": "s3://out/result", "LocalPath": "/opt/ml/processing/output"},
                }
            ],
            "KmsKeyId": "key",
        },
    }
    job = ProcessingJob.from_processing_arn(
        sagemaker_session, "arn:aws:sagemaker:us-west-2:123456789012:processing-job/my-job"
    )
    sagemaker_session.describe_processing_job.assert_called_once_with(job_name="my-job")
    assert job.name == "my-job"
    assert job.inputs[0].source == "s3://data/raw"
    assert job.outputs[0].destination == "s3://out/result"
    assert job.output_kms_key == "key"


def test_network_config_request() -> None:
    """VpcConfig is only included when subnets or security groups are set."""
    assert NetworkConfig()._to_request_dict() == {"EnableNetworkIsolation": False}
    config = NetworkConfig(encrypt_inter_container_traffic=True)._to_request_dict()
    assert config["EnableInterContainerTrafficEncryption"] is True
