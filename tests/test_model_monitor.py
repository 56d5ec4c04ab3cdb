"""Tests for monitoring schedules, baselining jobs and monitoring files."""

import json

from botocore.exceptions import ClientError
import pytest

from sagekit.errors import NotFoundError, ValidationError
from sagekit.model_monitor import (
    Constraints,
    CronExpressionGenerator,
    DatasetFormat,
    DefaultModelMonitor,
    EndpointInput,
    ModelMonitor,
    MonitoringOutput,
    Statistics,
)
from sagekit.processing import NetworkConfig

from .conftest import BUCKET, ROLE

MONITOR_IMAGE = "159807026194.dkr.ecr.us-west-2.amazonaws.com/sagemaker-model-monitor-analyzer:latest"


def _no_such_key():
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")


def test_cron_expressions() -> None:
    """Schedules are expressed in the monitoring cron dialect."""
    assert CronExpressionGenerator.hourly() == "cron(0 * ? * * *)"
    assert CronExpressionGenerator.daily(5) == "cron(0 5 ? * * *)"
    assert CronExpressionGenerator.daily_every_x_hours(6, starting_hour=2) == "cron(0 2/6 ? * * *)"


def test_dataset_format() -> None:
    """Dataset formats build the analyzer's format dicts."""
    assert DatasetFormat.csv(header=False) == {"csv": {"header": False, "output_columns_position": "START"}}
    assert DatasetFormat.json() == {"json": {"lines": True}}
    assert DatasetFormat.sagemaker_capture_json() == {"sagemakerCaptureJson": {}}
    with pytest.raises(ValidationError):
        DatasetFormat.csv(output_columns_position="MIDDLE")


def test_endpoint_input_request() -> None:
    """Unset attributes are left out of the request."""
    endpoint_input = EndpointInput("ep", "/opt/ml/processing/input/endpoint", start_time_offset="-PT1H")
    assert endpoint_input._to_request_dict() == {
        "EndpointInput": {
            "EndpointName": "ep",
            "LocalPath": "/opt/ml/processing/input/endpoint",
            "S3InputMode": "File",
            "S3DataDistributionType": "FullyReplicated",
            "StartTimeOffset": "-PT1H",
        }
    }
    with pytest.raises(ValidationError):
        EndpointInput("ep", "/data", s3_input_mode="Stream")
    with pytest.raises(ValidationError):
        EndpointInput("ep", "/data", s3_data_distribution_type="Random")


def test_monitoring_output_request() -> None:
    """Monitoring outputs upload continuously by default."""
    assert MonitoringOutput("/opt/ml/processing/output", "s3://b/out")._to_request_dict() == {
        "S3Output": {"S3Uri": "s3://b/out", "LocalPath": "/opt/ml/processing/output", "S3UploadMode": "Continuous"}
    }


def test_monitoring_file_from_s3(sagemaker_session) -> None:
    """Files are parsed from S3, and a missing key raises NotFoundError."""
    sagemaker_session.read_s3_file.return_value = '{"version": 0.0}'
    statistics = Statistics.from_s3_uri("s3://b/statistics.json", sagemaker_session=sagemaker_session)
    assert statistics.body_dict == {"version": 0.0}
    sagemaker_session.read_s3_file.assert_called_once_with(bucket="b", key_prefix="statistics.json")

    sagemaker_session.read_s3_file.side_effect = _no_such_key()
    with pytest.raises(NotFoundError, match="Could not retrieve Statistics"):
        Statistics.from_s3_uri("s3://b/statistics.json", sagemaker_session=sagemaker_session)


def test_constraints_set_monitoring(sagemaker_session) -> None:
    """Evaluation can be switched off globally or per feature."""
    constraints = Constraints({"features": [{"name": "age"}, {"name": "zip"}]}, "s3://b/constraints.json",
                              sagemaker_session=sagemaker_session)
    constraints.set_monitoring(False)
    constraints.set_monitoring(True, feature_name="age")
    assert constraints.body_dict["monitoring_config"] == {"evaluate_constraints": "Disabled"}
    age = constraints.body_dict["features"][0]
    assert age["string_constraints"]["monitoring_config_overrides"] == {"evaluate_constraints": "Enabled"}
    assert "string_constraints" not in constraints.body_dict["features"][1]

    constraints.save()
    sagemaker_session.upload_string_as_file_body.assert_called_once()
    body = sagemaker_session.upload_string_as_file_body.call_args.kwargs["body"]
    assert json.loads(body)["monitoring_config"] == {"evaluate_constraints": "Disabled"}


def test_default_monitor_uses_analyzer_image(sagemaker_session) -> None:
    """The managed analyzer image is resolved for the session's region."""
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    assert monitor.image_uri == MONITOR_IMAGE
    with pytest.raises(NotImplementedError):
        monitor.run_baseline()


def test_suggest_baseline_runs_processing_job(sagemaker_session) -> None:
    """The baselining job gets the dataset, the output and the analyzer settings."""
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    monitor.suggest_baseline(
        "s3://data/train.csv",
        DatasetFormat.csv(header=True),
        wait=False,
        logs=False,
        job_name="baseline-job",
    )

    args = sagemaker_session.process.call_args.kwargs
    assert args["job_name"] == "baseline-job"
    assert args["inputs"][0]["S3Input"]["S3Uri"] == "s3://data/train.csv"
    assert args["output_config"]["Outputs"][0]["S3Output"]["S3Uri"] == (
        f"s3://{BUCKET}/model-monitor/baselining/baseline-job/results"
    )
    env = args["environment"]
    assert json.loads(env["dataset_format"]) == {"csv": {"header": True, "output_columns_position": "START"}}
    assert env["dataset_source"] == "/opt/ml/processing/input/baseline_dataset_input"
    assert env["output_path"] == "/opt/ml/processing/output"
    assert env["publish_cloudwatch_metrics"] == "Disabled"
    assert monitor.latest_baselining_job.name == "baseline-job"


def test_baseline_files_need_completed_job(sagemaker_session) -> None:
    """Missing baseline files are explained by the job status."""
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    monitor.suggest_baseline("s3://data/train.csv", DatasetFormat.csv(), wait=False, logs=False, job_name="job")

    sagemaker_session.read_s3_file.return_value = '{"features": []}'
    constraints = monitor.suggested_constraints()
    assert constraints.file_s3_uri == f"s3://{BUCKET}/model-monitor/baselining/job/results/constraints.json"

    sagemaker_session.read_s3_file.side_effect = _no_such_key()
    sagemaker_session.describe_processing_job.return_value = {"ProcessingJobStatus": "InProgress"}
    with pytest.raises(NotFoundError, match="not in 'Completed' state"):
        monitor.baseline_statistics()


def test_create_schedule_with_job_definition(sagemaker_session) -> None:
    """A data-quality job definition is created first, then the schedule."""
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    monitor.create_monitoring_schedule(
        "my-endpoint",
        monitor_schedule_name="schedule",
        schedule_cron_expression=CronExpressionGenerator.hourly(),
    )

    client = sagemaker_session.sagemaker_client
    request = client.create_data_quality_job_definition.call_args.kwargs
    assert request["JobDefinitionName"].startswith("data-quality-job-definition-")
    assert request["DataQualityAppSpecification"] == {
        "ImageUri": MONITOR_IMAGE,
        "Environment": {"publish_cloudwatch_metrics": "Enabled"},
    }
    assert request["DataQualityJobInput"]["EndpointInput"]["EndpointName"] == "my-endpoint"
    assert request["DataQualityJobOutputConfig"]["MonitoringOutputs"][0]["S3Output"]["S3Uri"] == (
        f"s3://{BUCKET}/model-monitor/monitoring/schedule/results"
    )
    assert request["JobResources"] == {"ClusterConfig": {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge", "VolumeSizeInGB": 30}}

    schedule = client.create_monitoring_schedule.call_args.kwargs
    assert schedule["MonitoringScheduleName"] == "schedule"
    assert schedule["MonitoringScheduleConfig"] == {
        "MonitoringJobDefinitionName": request["JobDefinitionName"],
        "MonitoringType": "DataQuality",
        "ScheduleConfig": {"ScheduleExpression": "cron(0 * ? * * *)"},
    }
    assert monitor.job_definition_name == request["JobDefinitionName"]

    with pytest.raises(ValidationError, match="already used"):
        monitor.create_monitoring_schedule("my-endpoint")


def test_failed_schedule_removes_job_definition(sagemaker_session) -> None:
    """A schedule that cannot be created leaves no job definition behind."""
    client = sagemaker_session.sagemaker_client
    client.create_monitoring_schedule.side_effect = ClientError(
        {"Error": {"Code": "ResourceInUse", "Message": "exists"}}, "CreateMonitoringSchedule"
    )
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    with pytest.raises(ClientError):
        monitor.create_monitoring_schedule("my-endpoint", monitor_schedule_name="schedule")

    created = client.create_data_quality_job_definition.call_args.kwargs["JobDefinitionName"]
    client.delete_data_quality_job_definition.assert_called_once_with(JobDefinitionName=created)
    assert monitor.job_definition_name is None
    assert monitor.monitoring_schedule_name is None


def test_monitor_rejects_traffic_encryption(sagemaker_session) -> None:
    """Inter-container traffic encryption is not available for monitoring jobs."""
    monitor = DefaultModelMonitor(
        ROLE,
        sagemaker_session=sagemaker_session,
        network_config=NetworkConfig(encrypt_inter_container_traffic=True),
    )
    with pytest.raises(ValidationError, match="EnableInterContainerTrafficEncryption"):
        monitor.create_monitoring_schedule("my-endpoint")


def test_delete_schedule_and_job_definition(sagemaker_session) -> None:
    """Deleting waits for the schedule, then removes the job definition."""
    sagemaker_session.describe_monitoring_schedule.return_value = {"MonitoringScheduleStatus": "Scheduled"}
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    monitor.create_monitoring_schedule("my-endpoint", monitor_schedule_name="schedule")
    job_definition_name = monitor.job_definition_name

    monitor.delete_monitoring_schedule()
    sagemaker_session.delete_monitoring_schedule.assert_called_once_with(monitoring_schedule_name="schedule")
    sagemaker_session.sagemaker_client.delete_data_quality_job_definition.assert_called_once_with(
        JobDefinitionName=job_definition_name
    )
    assert monitor.monitoring_schedule_name is None
    assert monitor.job_definition_name is None


def test_custom_monitor_schedule(sagemaker_session) -> None:
    """A custom analyzer image is scheduled with an embedded job definition."""
    monitor = ModelMonitor(ROLE, image_uri="my-analyzer:1", sagemaker_session=sagemaker_session)
    monitor.create_monitoring_schedule(
        "my-endpoint",
        MonitoringOutput("/opt/ml/processing/output"),
        statistics=Statistics({}, "s3://b/statistics.json"),
        monitor_schedule_name="custom",
    )
    args = sagemaker_session.create_monitoring_schedule.call_args.kwargs
    assert args["monitoring_schedule_name"] == "custom"
    assert args["image_uri"] == "my-analyzer:1"
    assert args["statistics_s3_uri"] == "s3://b/statistics.json"
    assert args["constraints_s3_uri"] is None
    assert args["monitoring_output_config"]["MonitoringOutputs"][0]["S3Output"]["S3Uri"] == (
        f"s3://{BUCKET}/custom/output"
    )


def test_failed_create_leaves_monitor_unscheduled(sagemaker_session) -> None:
    """A rejected schedule is not remembered, so the monitor can try again."""
    sagemaker_session.create_monitoring_schedule.side_effect = ClientError(
        {"Error": {"Code": "ResourceInUse", "Message": "exists"}}, "CreateMonitoringSchedule"
    )
    monitor = ModelMonitor(ROLE, image_uri="my-analyzer:1", sagemaker_session=sagemaker_session)
    with pytest.raises(ClientError):
        monitor.create_monitoring_schedule(
            "my-endpoint", MonitoringOutput("/opt/ml/processing/output"), monitor_schedule_name="taken"
        )
    assert monitor.monitoring_schedule_name is None

    sagemaker_session.create_monitoring_schedule.side_effect = None
    monitor.create_monitoring_schedule(
        "my-endpoint", MonitoringOutput("/opt/ml/processing/output"), monitor_schedule_name="retry"
    )
    assert monitor.monitoring_schedule_name == "retry"


def test_attach_requires_embedded_definition(sagemaker_session) -> None:
    """Only schedules with an embedded job definition attach to a plain ModelMonitor."""
    sagemaker_session.describe_monitoring_schedule.return_value = {
        "MonitoringScheduleArn": "arn",
        "MonitoringScheduleConfig": {"MonitoringJobDefinitionName": "dq", "MonitoringType": "DataQuality"},
    }
    with pytest.raises(ValidationError, match="separate job definition"):
        ModelMonitor.attach("schedule", sagemaker_session=sagemaker_session)


def test_default_monitor_attach_with_job_definition(sagemaker_session) -> None:
    """Attaching reads the cluster settings from the job definition."""
    sagemaker_session.describe_monitoring_schedule.return_value = {
        "MonitoringScheduleArn": "arn",
        "MonitoringScheduleConfig": {"MonitoringJobDefinitionName": "dq", "MonitoringType": "DataQuality"},
    }
    sagemaker_session.sagemaker_client.describe_data_quality_job_definition.return_value = {
        "RoleArn": ROLE,
        "JobResources": {"ClusterConfig": {"InstanceCount": 2, "InstanceType": "ml.c5.xlarge", "VolumeSizeInGB": 20}},
        "DataQualityJobOutputConfig": {"MonitoringOutputs": []},
        "DataQualityAppSpecification": {"ImageUri": MONITOR_IMAGE},
    }
    monitor = DefaultModelMonitor.attach("schedule", sagemaker_session=sagemaker_session)
    assert monitor.instance_count == 2
    assert monitor.volume_size_in_gb == 20
    assert monitor.job_definition_name == "dq"
    assert monitor.monitoring_schedule_name == "schedule"


def test_latest_statistics_from_executions(sagemaker_session) -> None:
    """The newest execution's statistics are read; none without executions."""
    monitor = DefaultModelMonitor(ROLE, sagemaker_session=sagemaker_session)
    monitor.monitoring_schedule_name = "schedule"
    sagemaker_session.list_monitoring_executions.return_value = {"MonitoringExecutionSummaries": []}
    assert monitor.latest_monitoring_statistics() is None

    arn = "arn:aws:sagemaker:us-west-2:123456789012:processing-job/execution-1"
    sagemaker_session.list_monitoring_executions.return_value = {
        "MonitoringExecutionSummaries": [{"ProcessingJobArn": arn}]
    }
    sagemaker_session.describe_processing_job.return_value = {
        "ProcessingJobStatus": "Completed",
        "ProcessingOutputConfig": {
            "Outputs": [
                {
                    "OutputName": "monitoring_output",
                    "S3Output": {"S3Uri": "s3://b/results", "LocalPath": "/opt/ml/processing/output"},
                }
            ]
        },
    }
    sagemaker_session.read_s3_file.return_value = '{"dataset": {"item_count": 3}}'
    statistics = monitor.latest_monitoring_statistics()
    assert statistics.body_dict == {"dataset": {"item_count": 3}}
    assert statistics.file_s3_uri == "s3://b/results/statistics.json"
