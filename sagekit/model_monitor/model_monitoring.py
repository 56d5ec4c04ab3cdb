"""Monitoring schedules and baselining jobs for SageMaker endpoints.

A :class:`ModelMonitor` runs a user-supplied analyzer image on a schedule
against the data captured from an endpoint. :class:`DefaultModelMonitor`
uses the managed data-quality analyzer: it can suggest a baseline from a
training dataset and then compare live traffic against it.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import time
import uuid
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from .. import image_uris
from ..errors import NotFoundError, UnexpectedStatusError, ValidationError
from ..processing import NetworkConfig, ProcessingInput, ProcessingJob, ProcessingOutput, Processor
from ..s3 import S3Uploader, s3_path_join
from ..session import Session
from ..utils import name_from_base
from .monitoring_files import Constraints, ConstraintViolations, Statistics

logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY_NAME = "sagemaker-model-monitor-analyzer"

STATISTICS_JSON_DEFAULT_FILE_NAME = "statistics.json"
CONSTRAINTS_JSON_DEFAULT_FILE_NAME = "constraints.json"
CONSTRAINT_VIOLATIONS_JSON_DEFAULT_FILE_NAME = "constraint_violations.json"

_CONTAINER_BASE_PATH = "/opt/ml/processing"
_CONTAINER_INPUT_PATH = "input"
_CONTAINER_ENDPOINT_INPUT_PATH = "endpoint"
_BASELINE_DATASET_INPUT_NAME = "baseline_dataset_input"
_RECORD_PREPROCESSOR_SCRIPT_INPUT_NAME = "record_preprocessor_script_input"
_POST_ANALYTICS_PROCESSOR_SCRIPT_INPUT_NAME = "post_analytics_processor_script_input"
_CONTAINER_OUTPUT_PATH = "output"
_DEFAULT_OUTPUT_NAME = "monitoring_output"
_MODEL_MONITOR_S3_PATH = "model-monitor"
_BASELINING_S3_PATH = "baselining"
_MONITORING_S3_PATH = "monitoring"
_RESULTS_S3_PATH = "results"
_INPUT_S3_PATH = "input"

_SUGGESTION_JOB_BASE_NAME = "baseline-suggestion-job"
_MONITORING_SCHEDULE_BASE_NAME = "monitoring-schedule"

_DATASET_SOURCE_PATH_ENV_NAME = "dataset_source"
_DATASET_FORMAT_ENV_NAME = "dataset_format"
_OUTPUT_PATH_ENV_NAME = "output_path"
_RECORD_PREPROCESSOR_SCRIPT_ENV_NAME = "record_preprocessor_script"
_POST_ANALYTICS_PROCESSOR_SCRIPT_ENV_NAME = "post_analytics_processor_script"
_PUBLISH_CLOUDWATCH_METRICS_ENV_NAME = "publish_cloudwatch_metrics"

# 36 polls, 5 seconds apart
_SCHEDULE_WAIT_ATTEMPTS = 36
_SCHEDULE_WAIT_SECONDS = 5


class ModelMonitor:
    """Set up monitoring schedules for an endpoint with a custom analyzer image."""

    def __init__(
        self,
        role=None,
        image_uri=None,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        entrypoint=None,
        volume_size_in_gb=30,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        base_job_name=None,
        sagemaker_session=None,
        env=None,
        tags=None,
        network_config=None,
    ):
        """Initialize a ModelMonitor.

        Args:
            role (str): Execution role for the baselining and monitoring jobs.
            image_uri (str): Analyzer image.
            instance_count (int): Instances per job.
            instance_type (str): Instance type for the jobs.
            entrypoint (list[str]): Container entrypoint.
            volume_size_in_gb (int): Storage volume per instance.
            volume_kms_key (str): KMS key for the volumes.
            output_kms_key (str): KMS key for the job outputs.
            max_runtime_in_seconds (int): Time limit of each job.
            base_job_name (str): Prefix for generated job and schedule names.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            env (dict): Environment variables for the container.
            tags (list[dict]): Tags for the jobs and the schedule.
            network_config (sagekit.processing.NetworkConfig): Isolation and VPC
                settings. Inter-container traffic encryption is not supported.
        """
        self.role = role
        self.image_uri = image_uri
        self.instance_count = instance_count
        self.instance_type = instance_type
        self.entrypoint = entrypoint
        self.volume_size_in_gb = volume_size_in_gb
        self.volume_kms_key = volume_kms_key
        self.output_kms_key = output_kms_key
        self.max_runtime_in_seconds = max_runtime_in_seconds
        self.base_job_name = base_job_name
        self.sagemaker_session = sagemaker_session or Session()
        self.env = env
        self.tags = tags
        self.network_config = network_config

        self.baselining_jobs = []
        self.latest_baselining_job = None
        self.arguments = None
        self.latest_baselining_job_name = None
        self.monitoring_schedule_name = None
        self.job_definition_name = None

    @classmethod
    def monitoring_type(cls):
        raise TypeError(f"Subclass of {cls.__name__} shall define this property")

    def run_baseline(
        self, baseline_inputs, output, arguments=None, wait=True, logs=True, job_name=None
    ):
        """Run a processing job that computes the baseline for this monitor.

        Args:
            baseline_inputs (list[ProcessingInput]): Datasets to baseline. Local
                sources are uploaded to S3.
            output (ProcessingOutput or str): Where the baseline files go. A string
                is taken as the container path of a default output.
            arguments (list[str]): Arguments for the container.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs. Only meaningful with ``wait``.
            job_name (str): Job name. Generated if omitted.
        """
        self.latest_baselining_job_name = self._generate_baselining_job_name(job_name=job_name)
        self.arguments = arguments
        normalized_baseline_inputs = self._normalize_baseline_inputs(baseline_inputs)
        normalized_output = self._normalize_processing_output(output)

        baselining_processor = Processor(
            role=self.role,
            image_uri=self.image_uri,
            instance_count=self.instance_count,
            instance_type=self.instance_type,
            entrypoint=self.entrypoint,
            volume_size_in_gb=self.volume_size_in_gb,
            volume_kms_key=self.volume_kms_key,
            output_kms_key=self.output_kms_key,
            max_runtime_in_seconds=self.max_runtime_in_seconds,
            base_job_name=self.base_job_name,
            sagemaker_session=self.sagemaker_session,
            env=self.env,
            tags=self.tags,
            network_config=self.network_config,
        )

        baselining_processor.run(
            inputs=normalized_baseline_inputs,
            outputs=[normalized_output],
            arguments=self.arguments,
            wait=wait,
            logs=logs,
            job_name=self.latest_baselining_job_name,
        )

        self.latest_baselining_job = BaseliningJob.from_processing_job(
            baselining_processor.latest_job
        )
        self.baselining_jobs.append(self.latest_baselining_job)

    def create_monitoring_schedule(
        self,
        endpoint_input,
        output,
        statistics=None,
        constraints=None,
        monitor_schedule_name=None,
        schedule_cron_expression=None,
    ):
        """Create a monitoring schedule for the endpoint.

        Args:
            endpoint_input (EndpointInput or str): The endpoint to monitor.
            output (MonitoringOutput): Where the monitoring results go.
            statistics (Statistics or str): Baseline statistics, or their S3 URI.
            constraints (Constraints or str): Baseline constraints, or their S3 URI.
            monitor_schedule_name (str): Schedule name. Generated if omitted.
            schedule_cron_expression (str): How often to run. See
                :class:`CronExpressionGenerator`.

        Raises:
            ValidationError: If this monitor already has a schedule.
        """
        if self.monitoring_schedule_name is not None:
            message = (
                "It seems that this object was already used to create an Amazon Model "
                "Monitoring Schedule. To create another, first delete the existing one "
                "using my_monitor.delete_monitoring_schedule()."
            )
            logger.error(message)
            raise ValidationError(message)

        monitoring_schedule_name = self._generate_monitoring_schedule_name(
            schedule_name=monitor_schedule_name
        )

        normalized_endpoint_input = self._normalize_endpoint_input(endpoint_input)
        normalized_monitoring_output = self._normalize_monitoring_output_fields(
            monitoring_schedule_name, output
        )

        statistics_object, constraints_object = self._get_baseline_files(
            statistics=statistics, constraints=constraints
        )
        statistics_s3_uri = statistics_object.file_s3_uri if statistics_object else None
        constraints_s3_uri = constraints_object.file_s3_uri if constraints_object else None

        monitoring_output_config = {
            "MonitoringOutputs": [normalized_monitoring_output._to_request_dict()]
        }
        if self.output_kms_key is not None:
            monitoring_output_config["KmsKeyId"] = self.output_kms_key

        network_config_dict = None
        if self.network_config is not None:
            network_config_dict = self.network_config._to_request_dict()
            self._validate_network_config(network_config_dict)

        self.sagemaker_session.create_monitoring_schedule(
            monitoring_schedule_name=monitoring_schedule_name,
            schedule_expression=schedule_cron_expression,
            statistics_s3_uri=statistics_s3_uri,
            constraints_s3_uri=constraints_s3_uri,
            monitoring_inputs=[normalized_endpoint_input._to_request_dict()],
            monitoring_output_config=monitoring_output_config,
            instance_count=self.instance_count,
            instance_type=self.instance_type,
            volume_size_in_gb=self.volume_size_in_gb,
            volume_kms_key=self.volume_kms_key,
            image_uri=self.image_uri,
            entrypoint=self.entrypoint,
            arguments=self.arguments,
            max_runtime_in_seconds=self.max_runtime_in_seconds,
            environment=self.env,
            network_config=network_config_dict,
            role_arn=self.sagemaker_session.expand_role(self.role),
            tags=self.tags,
        )
        self.monitoring_schedule_name = monitoring_schedule_name

    def update_monitoring_schedule(
        self,
        endpoint_input=None,
        output=None,
        statistics=None,
        constraints=None,
        schedule_cron_expression=None,
        instance_count=None,
        instance_type=None,
        entrypoint=None,
        volume_size_in_gb=None,
        volume_kms_key=None,
        output_kms_key=None,
        arguments=None,
        max_runtime_in_seconds=None,
        env=None,
        network_config=None,
        role=None,
        image_uri=None,
    ):
        """Update the schedule. Values left as None keep their current setting."""
        monitoring_inputs = None
        if endpoint_input is not None:
            monitoring_inputs = [self._normalize_endpoint_input(endpoint_input)._to_request_dict()]

        monitoring_output_config = None
        if output is not None:
            normalized_monitoring_output = self._normalize_monitoring_output_fields(
                self.monitoring_schedule_name, output
            )
            monitoring_output_config = {
                "MonitoringOutputs": [normalized_monitoring_output._to_request_dict()]
            }

        statistics_object, constraints_object = self._get_baseline_files(
            statistics=statistics, constraints=constraints
        )
        statistics_s3_uri = statistics_object.file_s3_uri if statistics_object else None
        constraints_s3_uri = constraints_object.file_s3_uri if constraints_object else None

        if instance_count is not None:
            self.instance_count = instance_count
        if instance_type is not None:
            self.instance_type = instance_type
        if entrypoint is not None:
            self.entrypoint = entrypoint
        if volume_size_in_gb is not None:
            self.volume_size_in_gb = volume_size_in_gb
        if volume_kms_key is not None:
            self.volume_kms_key = volume_kms_key
        if output_kms_key is not None:
            self.output_kms_key = output_kms_key
            if monitoring_output_config is not None:
                monitoring_output_config["KmsKeyId"] = self.output_kms_key
        if arguments is not None:
            self.arguments = arguments
        if max_runtime_in_seconds is not None:
            self.max_runtime_in_seconds = max_runtime_in_seconds
        if env is not None:
            self.env = env
        if network_config is not None:
            self.network_config = network_config
        if role is not None:
            self.role = role
        if image_uri is not None:
            self.image_uri = image_uri

        network_config_dict = None
        if self.network_config is not None:
            network_config_dict = self.network_config._to_request_dict()
            self._validate_network_config(network_config_dict)

        self.sagemaker_session.update_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name,
            schedule_expression=schedule_cron_expression,
            statistics_s3_uri=statistics_s3_uri,
            constraints_s3_uri=constraints_s3_uri,
            monitoring_inputs=monitoring_inputs,
            monitoring_output_config=monitoring_output_config,
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            image_uri=image_uri,
            entrypoint=entrypoint,
            arguments=arguments,
            max_runtime_in_seconds=max_runtime_in_seconds,
            environment=env,
            network_config=network_config_dict,
            role_arn=self.sagemaker_session.expand_role(self.role),
        )

        self._wait_for_schedule_changes_to_apply()

    def start_monitoring_schedule(self):
        self.sagemaker_session.start_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name
        )
        self._wait_for_schedule_changes_to_apply()

    def stop_monitoring_schedule(self):
        self.sagemaker_session.stop_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name
        )
        self._wait_for_schedule_changes_to_apply()

    def delete_monitoring_schedule(self):
        """Delete the schedule. With a job definition, wait until the schedule is gone."""
        self.sagemaker_session.delete_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name
        )
        if self.job_definition_name is not None:
            # the job definition stays locked until its schedule is deleted
            try:
                self._wait_for_schedule_changes_to_apply()
            except ClientError as err:
                if err.response["Error"]["Code"] != "ResourceNotFound":
                    raise
        self.monitoring_schedule_name = None

    def baseline_statistics(self, file_name=STATISTICS_JSON_DEFAULT_FILE_NAME):
        """Statistics produced by the latest baselining job."""
        return self.latest_baselining_job.baseline_statistics(
            file_name=file_name, kms_key=self.output_kms_key
        )

    def suggested_constraints(self, file_name=CONSTRAINTS_JSON_DEFAULT_FILE_NAME):
        """Constraints suggested by the latest baselining job."""
        return self.latest_baselining_job.suggested_constraints(
            file_name=file_name, kms_key=self.output_kms_key
        )

    def latest_monitoring_statistics(self, file_name=STATISTICS_JSON_DEFAULT_FILE_NAME):
        """Statistics of the most recent execution, or None without executions."""
        executions = self.list_executions()
        if not executions:
            logger.info(
                "No executions found for schedule. monitoring_schedule_name: %s",
                self.monitoring_schedule_name,
            )
            return None
        return executions[-1].statistics(file_name=file_name)

    def latest_monitoring_constraint_violations(
        self, file_name=CONSTRAINT_VIOLATIONS_JSON_DEFAULT_FILE_NAME
    ):
        """Violations of the most recent execution, or None without executions."""
        executions = self.list_executions()
        if not executions:
            logger.info(
                "No executions found for schedule. monitoring_schedule_name: %s",
                self.monitoring_schedule_name,
            )
            return None
        return executions[-1].constraint_violations(file_name=file_name)

    def describe_latest_baselining_job(self):
        if self.latest_baselining_job is None:
            raise ValidationError("No suggestion jobs were kicked off.")
        return self.latest_baselining_job.describe()

    def describe_schedule(self):
        return self.sagemaker_session.describe_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name
        )

    def list_executions(self):
        """List the executions of the schedule, oldest first.

        Returns:
            list[MonitoringExecution]: One per execution that started a processing job.
        """
        monitoring_executions_dict = self.sagemaker_session.list_monitoring_executions(
            monitoring_schedule_name=self.monitoring_schedule_name
        )

        summaries = monitoring_executions_dict["MonitoringExecutionSummaries"]
        if not summaries:
            logger.info(
                "No executions found for schedule. monitoring_schedule_name: %s",
                self.monitoring_schedule_name,
            )
            return []

        processing_job_arns = [
            execution["ProcessingJobArn"]
            for execution in summaries
            if execution.get("ProcessingJobArn") is not None
        ]
        monitoring_executions = [
            MonitoringExecution.from_processing_arn(
                sagemaker_session=self.sagemaker_session, processing_job_arn=processing_job_arn
            )
            for processing_job_arn in processing_job_arns
        ]
        monitoring_executions.reverse()
        return monitoring_executions

    @classmethod
    def attach(cls, monitor_schedule_name, sagemaker_session=None):
        """Build a monitor bound to an existing schedule with an embedded job definition."""
        sagemaker_session = sagemaker_session or Session()
        schedule_desc = sagemaker_session.describe_monitoring_schedule(
            monitoring_schedule_name=monitor_schedule_name
        )
        job_definition = schedule_desc["MonitoringScheduleConfig"].get("MonitoringJobDefinition")
        if job_definition is None:
            raise ValidationError(
                f"Monitoring schedule {monitor_schedule_name} uses a separate job definition; "
                "attach it with the monitor class of its monitoring type."
            )
        cluster_config = job_definition["MonitoringResources"]["ClusterConfig"]
        app_specification = job_definition["MonitoringAppSpecification"]

        max_runtime_in_seconds = None
        if job_definition.get("StoppingCondition"):
            max_runtime_in_seconds = job_definition["StoppingCondition"].get("MaxRuntimeInSeconds")

        tags = sagemaker_session.list_tags(resource_arn=schedule_desc["MonitoringScheduleArn"])

        attached_monitor = cls(
            role=job_definition["RoleArn"],
            image_uri=app_specification["ImageUri"],
            instance_count=cluster_config["InstanceCount"],
            instance_type=cluster_config["InstanceType"],
            entrypoint=app_specification.get("ContainerEntrypoint"),
            volume_size_in_gb=cluster_config["VolumeSizeInGB"],
            volume_kms_key=cluster_config.get("VolumeKmsKeyId"),
            output_kms_key=job_definition.get("MonitoringOutputConfig", {}).get("KmsKeyId"),
            max_runtime_in_seconds=max_runtime_in_seconds,
            sagemaker_session=sagemaker_session,
            env=job_definition.get("Environment"),
            tags=tags,
            network_config=_network_config_from_dict(job_definition.get("NetworkConfig")),
        )
        attached_monitor.monitoring_schedule_name = monitor_schedule_name
        return attached_monitor

    def _generate_baselining_job_name(self, job_name=None):
        if job_name is not None:
            return job_name
        return name_from_base(self.base_job_name or _SUGGESTION_JOB_BASE_NAME)

    def _generate_monitoring_schedule_name(self, schedule_name=None):
        if schedule_name is not None:
            return schedule_name
        return name_from_base(self.base_job_name or _MONITORING_SCHEDULE_BASE_NAME)

    @staticmethod
    def _generate_env_map(
        env,
        output_path=None,
        enable_cloudwatch_metrics=None,
        record_preprocessor_script_container_path=None,
        post_processor_script_container_path=None,
        dataset_format=None,
        dataset_source_container_path=None,
    ):
        """Merge the analyzer's first-class settings into ``env``, skipping unset ones."""
        cloudwatch_env_map = {True: "Enabled", False: "Disabled"}

        normalized_env = dict(env) if env else {}
        if output_path is not None:
            normalized_env[_OUTPUT_PATH_ENV_NAME] = output_path
        if enable_cloudwatch_metrics is not None:
            normalized_env[_PUBLISH_CLOUDWATCH_METRICS_ENV_NAME] = cloudwatch_env_map[
                enable_cloudwatch_metrics
            ]
        if dataset_format is not None:
            normalized_env[_DATASET_FORMAT_ENV_NAME] = json.dumps(dataset_format)
        if record_preprocessor_script_container_path is not None:
            normalized_env[
                _RECORD_PREPROCESSOR_SCRIPT_ENV_NAME
            ] = record_preprocessor_script_container_path
        if post_processor_script_container_path is not None:
            normalized_env[
                _POST_ANALYTICS_PROCESSOR_SCRIPT_ENV_NAME
            ] = post_processor_script_container_path
        if dataset_source_container_path is not None:
            normalized_env[_DATASET_SOURCE_PATH_ENV_NAME] = dataset_source_container_path
        return normalized_env

    def _get_baseline_files(self, statistics, constraints):
        """Load statistics and constraints given as S3 URIs; pass objects through."""
        if isinstance(statistics, str):
            statistics = Statistics.from_s3_uri(
                statistics, sagemaker_session=self.sagemaker_session
            )
        if isinstance(constraints, str):
            constraints = Constraints.from_s3_uri(
                constraints, sagemaker_session=self.sagemaker_session
            )
        return statistics, constraints

    @staticmethod
    def _normalize_endpoint_input(endpoint_input):
        if isinstance(endpoint_input, str):
            endpoint_input = EndpointInput(
                endpoint_name=endpoint_input,
                destination=os.path.join(
                    _CONTAINER_BASE_PATH, _CONTAINER_INPUT_PATH, _CONTAINER_ENDPOINT_INPUT_PATH
                ),
            )
        return endpoint_input

    def _normalize_baseline_inputs(self, baseline_inputs=None):
        normalized_inputs = []
        for count, file_input in enumerate(baseline_inputs or [], 1):
            if not isinstance(file_input, ProcessingInput):
                raise TypeError("Your inputs must be provided as ProcessingInput objects.")
            if file_input.input_name is None:
                file_input.input_name = f"input-{count}"
            if urlparse(file_input.source).scheme != "s3":
                s3_uri = s3_path_join(
                    "s3://",
                    self.sagemaker_session.default_bucket(),
                    self.latest_baselining_job_name,
                    file_input.input_name,
                )
                S3Uploader.upload(
                    local_path=file_input.source,
                    desired_s3_uri=s3_uri,
                    sagemaker_session=self.sagemaker_session,
                )
                file_input.source = s3_uri
            normalized_inputs.append(file_input)
        return normalized_inputs

    def _normalize_baseline_output(self, output_s3_uri=None):
        s3_uri = output_s3_uri or s3_path_join(
            "s3://",
            self.sagemaker_session.default_bucket(),
            _MODEL_MONITOR_S3_PATH,
            _BASELINING_S3_PATH,
            self.latest_baselining_job_name,
            _RESULTS_S3_PATH,
        )
        return ProcessingOutput(
            source=os.path.join(_CONTAINER_BASE_PATH, _CONTAINER_OUTPUT_PATH),
            destination=s3_uri,
            output_name=_DEFAULT_OUTPUT_NAME,
        )

    def _normalize_processing_output(self, output=None):
        if isinstance(output, str):
            s3_uri = s3_path_join(
                "s3://",
                self.sagemaker_session.default_bucket(),
                self.latest_baselining_job_name,
                "output",
            )
            output = ProcessingOutput(
                source=output, destination=s3_uri, output_name=_DEFAULT_OUTPUT_NAME
            )
        return output

    def _normalize_monitoring_output(self, monitoring_schedule_name, output_s3_uri=None):
        s3_uri = output_s3_uri or s3_path_join(
            "s3://",
            self.sagemaker_session.default_bucket(),
            _MODEL_MONITOR_S3_PATH,
            _MONITORING_S3_PATH,
            monitoring_schedule_name,
            _RESULTS_S3_PATH,
        )
        return MonitoringOutput(
            source=os.path.join(_CONTAINER_BASE_PATH, _CONTAINER_OUTPUT_PATH),
            destination=s3_uri,
        )

    def _normalize_monitoring_output_fields(self, monitoring_schedule_name, output=None):
        if output.destination is None:
            output.destination = s3_path_join(
                "s3://",
                self.sagemaker_session.default_bucket(),
                monitoring_schedule_name,
                "output",
            )
        return output

    def _s3_uri_from_local_path(self, path):
        """Upload a local file next to the schedule's inputs and return its S3 URI."""
        if urlparse(path).scheme == "s3":
            return path
        s3_uri = s3_path_join(
            "s3://",
            self.sagemaker_session.default_bucket(),
            _MODEL_MONITOR_S3_PATH,
            _MONITORING_S3_PATH,
            self.monitoring_schedule_name,
            _INPUT_S3_PATH,
            str(uuid.uuid4()),
        )
        return S3Uploader.upload(
            local_path=path, desired_s3_uri=s3_uri, sagemaker_session=self.sagemaker_session
        )

    def _upload_and_convert_to_processing_input(self, source, destination, name):
        """Turn a local path or S3 URI into a ProcessingInput; None stays None."""
        if source is None:
            return None

        if urlparse(source).scheme != "s3":
            s3_uri = s3_path_join(
                "s3://",
                self.sagemaker_session.default_bucket(),
                _MODEL_MONITOR_S3_PATH,
                _BASELINING_S3_PATH,
                self.latest_baselining_job_name,
                _INPUT_S3_PATH,
                name,
            )
            S3Uploader.upload(
                local_path=source, desired_s3_uri=s3_uri, sagemaker_session=self.sagemaker_session
            )
            source = s3_uri

        return ProcessingInput(source=source, destination=destination, input_name=name)

    def _wait_for_schedule_changes_to_apply(self):
        """Poll until the schedule leaves ``Pending``."""
        status = None
        for _ in range(_SCHEDULE_WAIT_ATTEMPTS):
            status = self.describe_schedule()["MonitoringScheduleStatus"]
            if status != "Pending":
                return
            time.sleep(_SCHEDULE_WAIT_SECONDS)
        raise UnexpectedStatusError(
            f"Monitoring schedule {self.monitoring_schedule_name} did not leave 'Pending' status",
            allowed_statuses=["Scheduled", "Stopped", "Failed"],
            actual_status=status,
        )

    def _validate_network_config(self, network_config_dict):
        if "EnableInterContainerTrafficEncryption" in network_config_dict:
            message = (
                "EnableInterContainerTrafficEncryption is not supported in Model Monitor. "
                "Please ensure that encrypt_inter_container_traffic=None when creating your "
                "NetworkConfig object. Current encrypt_inter_container_traffic value: "
                f"{self.network_config.encrypt_inter_container_traffic}"
            )
            logger.info(message)
            raise ValidationError(message)

    def _create_monitoring_schedule_from_job_definition(
        self, monitor_schedule_name, job_definition_name, schedule_cron_expression=None
    ):
        logger.info("Creating Monitoring Schedule with name: %s", monitor_schedule_name)

        monitoring_schedule_config = {
            "MonitoringJobDefinitionName": job_definition_name,
            "MonitoringType": self.monitoring_type(),
        }
        if schedule_cron_expression is not None:
            monitoring_schedule_config["ScheduleConfig"] = {
                "ScheduleExpression": schedule_cron_expression
            }
        self.sagemaker_session.sagemaker_client.create_monitoring_schedule(
            MonitoringScheduleName=monitor_schedule_name,
            MonitoringScheduleConfig=monitoring_schedule_config,
            Tags=self.tags or [],
        )

    def _update_monitoring_schedule(self, job_definition_name, schedule_cron_expression=None):
        if self.job_definition_name is None or self.monitoring_schedule_name is None:
            message = "Nothing to update, please create a schedule first."
            logger.error(message)
            raise ValidationError(message)

        monitoring_schedule_config = {
            "MonitoringJobDefinitionName": job_definition_name,
            "MonitoringType": self.monitoring_type(),
        }
        if schedule_cron_expression is not None:
            monitoring_schedule_config["ScheduleConfig"] = {
                "ScheduleExpression": schedule_cron_expression
            }
        self.sagemaker_session.sagemaker_client.update_monitoring_schedule(
            MonitoringScheduleName=self.monitoring_schedule_name,
            MonitoringScheduleConfig=monitoring_schedule_config,
        )
        self._wait_for_schedule_changes_to_apply()


class DefaultModelMonitor(ModelMonitor):
    """Monitor data quality with the managed model monitor analyzer image."""

    JOB_DEFINITION_BASE_NAME = "data-quality-job-definition"

    def __init__(
        self,
        role,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        volume_size_in_gb=30,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        base_job_name=None,
        sagemaker_session=None,
        env=None,
        tags=None,
        network_config=None,
    ):
        session = sagemaker_session or Session()
        super().__init__(
            role=role,
            image_uri=DefaultModelMonitor._get_default_image_uri(session.boto_region_name),
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            output_kms_key=output_kms_key,
            max_runtime_in_seconds=max_runtime_in_seconds,
            base_job_name=base_job_name,
            sagemaker_session=session,
            env=env,
            tags=tags,
            network_config=network_config,
        )

    @classmethod
    def monitoring_type(cls):
        return "DataQuality"

    @staticmethod
    def _get_default_image_uri(region):
        return image_uris.retrieve("model-monitor", region)

    def suggest_baseline(
        self,
        baseline_dataset,
        dataset_format,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
        output_s3_uri=None,
        wait=True,
        logs=True,
        job_name=None,
    ):
        """Compute statistics and suggest constraints from a baseline dataset.

        Args:
            baseline_dataset (str): Local path or S3 URI of the dataset.
            dataset_format (dict): One of the :class:`DatasetFormat` dicts.
            record_preprocessor_script (str): Local path or S3 URI of a record
                preprocessor script.
            post_analytics_processor_script (str): Local path or S3 URI of a
                post-analytics processor script.
            output_s3_uri (str): Where the baseline files go. Defaults to
                ``s3://{bucket}/model-monitor/baselining/{job}/results``.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs. Only meaningful with ``wait``.
            job_name (str): Job name. Generated if omitted.

        Returns:
            sagekit.processing.ProcessingJob: The baselining job.
        """
        self.latest_baselining_job_name = self._generate_baselining_job_name(job_name=job_name)

        normalized_baseline_dataset_input = self._upload_and_convert_to_processing_input(
            source=baseline_dataset,
            destination=os.path.join(
                _CONTAINER_BASE_PATH, _CONTAINER_INPUT_PATH, _BASELINE_DATASET_INPUT_NAME
            ),
            name=_BASELINE_DATASET_INPUT_NAME,
        )
        # the analyzer reads the dataset from a directory
        baseline_dataset_container_path = normalized_baseline_dataset_input.destination

        normalized_record_preprocessor_script_input = self._upload_and_convert_to_processing_input(
            source=record_preprocessor_script,
            destination=os.path.join(
                _CONTAINER_BASE_PATH, _CONTAINER_INPUT_PATH, _RECORD_PREPROCESSOR_SCRIPT_INPUT_NAME
            ),
            name=_RECORD_PREPROCESSOR_SCRIPT_INPUT_NAME,
        )
        record_preprocessor_script_container_path = None
        if normalized_record_preprocessor_script_input is not None:
            record_preprocessor_script_container_path = os.path.join(
                normalized_record_preprocessor_script_input.destination,
                os.path.basename(record_preprocessor_script),
            )

        normalized_post_processor_script_input = self._upload_and_convert_to_processing_input(
            source=post_analytics_processor_script,
            destination=os.path.join(
                _CONTAINER_BASE_PATH,
                _CONTAINER_INPUT_PATH,
                _POST_ANALYTICS_PROCESSOR_SCRIPT_INPUT_NAME,
            ),
            name=_POST_ANALYTICS_PROCESSOR_SCRIPT_INPUT_NAME,
        )
        post_processor_script_container_path = None
        if normalized_post_processor_script_input is not None:
            post_processor_script_container_path = os.path.join(
                normalized_post_processor_script_input.destination,
                os.path.basename(post_analytics_processor_script),
            )

        normalized_baseline_output = self._normalize_baseline_output(output_s3_uri=output_s3_uri)

        normalized_env = self._generate_env_map(
            env=self.env,
            dataset_format=dataset_format,
            output_path=normalized_baseline_output.source,
            enable_cloudwatch_metrics=False,  # only supported for monitoring schedules
            dataset_source_container_path=baseline_dataset_container_path,
            record_preprocessor_script_container_path=record_preprocessor_script_container_path,
            post_processor_script_container_path=post_processor_script_container_path,
        )

        baselining_processor = Processor(
            role=self.role,
            image_uri=self.image_uri,
            instance_count=self.instance_count,
            instance_type=self.instance_type,
            entrypoint=self.entrypoint,
            volume_size_in_gb=self.volume_size_in_gb,
            volume_kms_key=self.volume_kms_key,
            output_kms_key=self.output_kms_key,
            max_runtime_in_seconds=self.max_runtime_in_seconds,
            base_job_name=self.base_job_name,
            sagemaker_session=self.sagemaker_session,
            env=normalized_env,
            tags=self.tags,
            network_config=self.network_config,
        )

        baseline_job_inputs = [
            job_input
            for job_input in (
                normalized_baseline_dataset_input,
                normalized_record_preprocessor_script_input,
                normalized_post_processor_script_input,
            )
            if job_input is not None
        ]

        baselining_processor.run(
            inputs=baseline_job_inputs,
            outputs=[normalized_baseline_output],
            arguments=self.arguments,
            wait=wait,
            logs=logs,
            job_name=self.latest_baselining_job_name,
        )

        self.latest_baselining_job = BaseliningJob.from_processing_job(
            baselining_processor.latest_job
        )
        self.baselining_jobs.append(self.latest_baselining_job)
        return baselining_processor.latest_job

    def create_monitoring_schedule(
        self,
        endpoint_input,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
        output_s3_uri=None,
        constraints=None,
        statistics=None,
        monitor_schedule_name=None,
        schedule_cron_expression=None,
        enable_cloudwatch_metrics=True,
    ):
        """Create a data-quality job definition, then a schedule that runs it.

        If the schedule cannot be created the new job definition is deleted
        and the original error is raised.
        """
        if self.job_definition_name is not None or self.monitoring_schedule_name is not None:
            message = (
                "It seems that this object was already used to create an Amazon Model "
                "Monitoring Schedule. To create another, first delete the existing one "
                "using my_monitor.delete_monitoring_schedule()."
            )
            logger.error(message)
            raise ValidationError(message)

        monitor_schedule_name = self._generate_monitoring_schedule_name(
            schedule_name=monitor_schedule_name
        )
        new_job_definition_name = name_from_base(self.JOB_DEFINITION_BASE_NAME)
        request_dict = self._build_create_data_quality_job_definition_request(
            monitoring_schedule_name=monitor_schedule_name,
            job_definition_name=new_job_definition_name,
            image_uri=self.image_uri,
            latest_baselining_job_name=self.latest_baselining_job_name,
            endpoint_input=endpoint_input,
            record_preprocessor_script=record_preprocessor_script,
            post_analytics_processor_script=post_analytics_processor_script,
            output_s3_uri=self._normalize_monitoring_output(
                monitor_schedule_name, output_s3_uri
            ).destination,
            constraints=constraints,
            statistics=statistics,
            enable_cloudwatch_metrics=enable_cloudwatch_metrics,
            role=self.role,
            instance_count=self.instance_count,
            instance_type=self.instance_type,
            volume_size_in_gb=self.volume_size_in_gb,
            volume_kms_key=self.volume_kms_key,
            output_kms_key=self.output_kms_key,
            max_runtime_in_seconds=self.max_runtime_in_seconds,
            env=self.env,
            tags=self.tags,
            network_config=self.network_config,
        )
        self.sagemaker_session.sagemaker_client.create_data_quality_job_definition(**request_dict)

        try:
            self._create_monitoring_schedule_from_job_definition(
                monitor_schedule_name=monitor_schedule_name,
                job_definition_name=new_job_definition_name,
                schedule_cron_expression=schedule_cron_expression,
            )
        except ClientError:
            logger.exception("Failed to create monitoring schedule.")
            self._delete_new_job_definition(new_job_definition_name)
            raise

        self.job_definition_name = new_job_definition_name
        self.monitoring_schedule_name = monitor_schedule_name

    def update_monitoring_schedule(
        self,
        endpoint_input=None,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
        output_s3_uri=None,
        statistics=None,
        constraints=None,
        schedule_cron_expression=None,
        instance_count=None,
        instance_type=None,
        volume_size_in_gb=None,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        env=None,
        network_config=None,
        enable_cloudwatch_metrics=None,
        role=None,
    ):
        """Point the schedule at a new job definition built from the current one.

        Values left as None keep their current setting. The previous job
        definition is deleted once the schedule uses the new one.
        """
        valid_args = {
            arg: value for arg, value in locals().items() if arg != "self" and value is not None
        }
        if not valid_args:
            raise ValidationError("Nothing to update.")

        if self.job_definition_name is None:
            self._update_embedded_monitoring_schedule(
                endpoint_input=endpoint_input,
                record_preprocessor_script=record_preprocessor_script,
                post_analytics_processor_script=post_analytics_processor_script,
                output_s3_uri=output_s3_uri,
                statistics=statistics,
                constraints=constraints,
                schedule_cron_expression=schedule_cron_expression,
                instance_count=instance_count,
                instance_type=instance_type,
                volume_size_in_gb=volume_size_in_gb,
                volume_kms_key=volume_kms_key,
                output_kms_key=output_kms_key,
                max_runtime_in_seconds=max_runtime_in_seconds,
                env=env,
                network_config=network_config,
                enable_cloudwatch_metrics=enable_cloudwatch_metrics,
                role=role,
            )
            return

        existing_desc = self.sagemaker_session.sagemaker_client.describe_data_quality_job_definition(
            JobDefinitionName=self.job_definition_name
        )
        new_job_definition_name = name_from_base(self.JOB_DEFINITION_BASE_NAME)
        request_dict = self._build_create_data_quality_job_definition_request(
            monitoring_schedule_name=self.monitoring_schedule_name,
            job_definition_name=new_job_definition_name,
            image_uri=self.image_uri,
            existing_job_desc=existing_desc,
            endpoint_input=endpoint_input,
            record_preprocessor_script=record_preprocessor_script,
            post_analytics_processor_script=post_analytics_processor_script,
            output_s3_uri=output_s3_uri,
            statistics=statistics,
            constraints=constraints,
            enable_cloudwatch_metrics=enable_cloudwatch_metrics,
            role=role,
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            output_kms_key=output_kms_key,
            max_runtime_in_seconds=max_runtime_in_seconds,
            env=env,
            tags=self.tags,
            network_config=network_config,
        )
        self.sagemaker_session.sagemaker_client.create_data_quality_job_definition(**request_dict)

        try:
            self._update_monitoring_schedule(new_job_definition_name, schedule_cron_expression)
        except ClientError:
            logger.exception("Failed to update monitoring schedule.")
            self._delete_new_job_definition(new_job_definition_name)
            raise

        old_job_definition_name = self.job_definition_name
        self.job_definition_name = new_job_definition_name
        for arg, value in (
            ("role", role),
            ("instance_count", instance_count),
            ("instance_type", instance_type),
            ("volume_size_in_gb", volume_size_in_gb),
            ("volume_kms_key", volume_kms_key),
            ("output_kms_key", output_kms_key),
            ("max_runtime_in_seconds", max_runtime_in_seconds),
            ("env", env),
            ("network_config", network_config),
        ):
            if value is not None:
                setattr(self, arg, value)

        logger.info("Deleting Data Quality Job Definition with name: %s", old_job_definition_name)
        self.sagemaker_session.sagemaker_client.delete_data_quality_job_definition(
            JobDefinitionName=old_job_definition_name
        )

    def delete_monitoring_schedule(self):
        """Delete the schedule and its data-quality job definition."""
        super().delete_monitoring_schedule()
        if self.job_definition_name is not None:
            logger.info(
                "Deleting Data Quality Job Definition with name: %s", self.job_definition_name
            )
            self.sagemaker_session.sagemaker_client.delete_data_quality_job_definition(
                JobDefinitionName=self.job_definition_name
            )
            self.job_definition_name = None

    def run_baseline(self, *args, **kwargs):
        raise NotImplementedError(
            "'run_baseline()' is only allowed for ModelMonitor objects. "
            "Please use suggest_baseline for DefaultModelMonitor objects, instead."
        )

    @classmethod
    def attach(cls, monitor_schedule_name, sagemaker_session=None):
        """Build a DefaultModelMonitor bound to an existing data-quality schedule."""
        sagemaker_session = sagemaker_session or Session()
        schedule_desc = sagemaker_session.describe_monitoring_schedule(
            monitoring_schedule_name=monitor_schedule_name
        )
        schedule_config = schedule_desc["MonitoringScheduleConfig"]
        tags = sagemaker_session.list_tags(resource_arn=schedule_desc["MonitoringScheduleArn"])

        job_definition_name = schedule_config.get("MonitoringJobDefinitionName")
        if job_definition_name:
            monitoring_type = schedule_config.get("MonitoringType")
            if monitoring_type != cls.monitoring_type():
                raise TypeError(
                    f"{cls.__name__} can only attach to Data quality monitoring schedule."
                )
            job_desc = sagemaker_session.sagemaker_client.describe_data_quality_job_definition(
                JobDefinitionName=job_definition_name
            )
            cluster_config = job_desc["JobResources"]["ClusterConfig"]
            stopping_condition = job_desc.get("StoppingCondition") or {}
            attached_monitor = cls(
                role=job_desc["RoleArn"],
                instance_count=cluster_config["InstanceCount"],
                instance_type=cluster_config["InstanceType"],
                volume_size_in_gb=cluster_config["VolumeSizeInGB"],
                volume_kms_key=cluster_config.get("VolumeKmsKeyId"),
                output_kms_key=job_desc["DataQualityJobOutputConfig"].get("KmsKeyId"),
                max_runtime_in_seconds=stopping_condition.get("MaxRuntimeInSeconds"),
                sagemaker_session=sagemaker_session,
                env=job_desc["DataQualityAppSpecification"].get("Environment"),
                tags=tags,
                network_config=_network_config_from_dict(job_desc.get("NetworkConfig")),
            )
            attached_monitor.monitoring_schedule_name = monitor_schedule_name
            attached_monitor.job_definition_name = job_definition_name
            return attached_monitor

        job_definition = schedule_config["MonitoringJobDefinition"]
        cluster_config = job_definition["MonitoringResources"]["ClusterConfig"]
        stopping_condition = job_definition.get("StoppingCondition") or {}
        attached_monitor = cls(
            role=job_definition["RoleArn"],
            instance_count=cluster_config["InstanceCount"],
            instance_type=cluster_config["InstanceType"],
            volume_size_in_gb=cluster_config["VolumeSizeInGB"],
            volume_kms_key=cluster_config.get("VolumeKmsKeyId"),
            output_kms_key=job_definition.get("MonitoringOutputConfig", {}).get("KmsKeyId"),
            max_runtime_in_seconds=stopping_condition.get("MaxRuntimeInSeconds"),
            sagemaker_session=sagemaker_session,
            env=job_definition.get("Environment"),
            tags=tags,
            network_config=_network_config_from_dict(job_definition.get("NetworkConfig")),
        )
        attached_monitor.monitoring_schedule_name = monitor_schedule_name
        return attached_monitor

    def latest_monitoring_statistics(self, file_name=STATISTICS_JSON_DEFAULT_FILE_NAME):
        """Statistics of the most recent execution.

        Returns None when there are no executions or the latest one has no
        statistics yet.
        """
        executions = self.list_executions()
        if not executions:
            logger.info(
                "No executions found for schedule. monitoring_schedule_name: %s",
                self.monitoring_schedule_name,
            )
            return None

        latest_monitoring_execution = executions[-1]
        try:
            return latest_monitoring_execution.statistics(file_name=file_name)
        except NotFoundError:
            status = latest_monitoring_execution.describe()["ProcessingJobStatus"]
            logger.warning(
                "Unable to retrieve statistics as job is in status '%s'. Latest statistics only "
                "available for completed executions.",
                status,
            )
            return None

    def latest_monitoring_constraint_violations(
        self, file_name=CONSTRAINT_VIOLATIONS_JSON_DEFAULT_FILE_NAME
    ):
        """Violations of the most recent execution, or None when unavailable."""
        executions = self.list_executions()
        if not executions:
            logger.info(
                "No executions found for schedule. monitoring_schedule_name: %s",
                self.monitoring_schedule_name,
            )
            return None

        latest_monitoring_execution = executions[-1]
        try:
            return latest_monitoring_execution.constraint_violations(file_name=file_name)
        except NotFoundError:
            status = latest_monitoring_execution.describe()["ProcessingJobStatus"]
            logger.warning(
                "Unable to retrieve constraint violations as job is in status '%s'. Latest "
                "violations only available for completed executions.",
                status,
            )
            return None

    def _delete_new_job_definition(self, job_definition_name):
        try:
            self.sagemaker_session.sagemaker_client.delete_data_quality_job_definition(
                JobDefinitionName=job_definition_name
            )
        except ClientError:
            logger.exception("Failed to delete job definition %s.", job_definition_name)
            raise

    def _update_embedded_monitoring_schedule(
        self,
        endpoint_input=None,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
        output_s3_uri=None,
        statistics=None,
        constraints=None,
        schedule_cron_expression=None,
        instance_count=None,
        instance_type=None,
        volume_size_in_gb=None,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        env=None,
        network_config=None,
        enable_cloudwatch_metrics=None,
        role=None,
    ):
        """Update a schedule whose job definition is embedded in the schedule itself."""
        monitoring_inputs = None
        if endpoint_input is not None:
            monitoring_inputs = [self._normalize_endpoint_input(endpoint_input)._to_request_dict()]

        record_preprocessor_script_s3_uri = None
        if record_preprocessor_script is not None:
            record_preprocessor_script_s3_uri = self._s3_uri_from_local_path(
                record_preprocessor_script
            )

        post_analytics_processor_script_s3_uri = None
        if post_analytics_processor_script is not None:
            post_analytics_processor_script_s3_uri = self._s3_uri_from_local_path(
                post_analytics_processor_script
            )

        monitoring_output_config = None
        output_path = None
        if output_s3_uri is not None:
            normalized_monitoring_output = self._normalize_monitoring_output(
                self.monitoring_schedule_name, output_s3_uri
            )
            monitoring_output_config = {
                "MonitoringOutputs": [normalized_monitoring_output._to_request_dict()]
            }
            output_path = normalized_monitoring_output.source

        if env is not None:
            self.env = env
        normalized_env = self._generate_env_map(
            env=env, output_path=output_path, enable_cloudwatch_metrics=enable_cloudwatch_metrics
        )

        statistics_object, constraints_object = self._get_baseline_files(
            statistics=statistics, constraints=constraints
        )

        if output_kms_key is not None:
            self.output_kms_key = output_kms_key
            if monitoring_output_config is not None:
                monitoring_output_config["KmsKeyId"] = output_kms_key
        if instance_count is not None:
            self.instance_count = instance_count
        if instance_type is not None:
            self.instance_type = instance_type
        if volume_size_in_gb is not None:
            self.volume_size_in_gb = volume_size_in_gb
        if volume_kms_key is not None:
            self.volume_kms_key = volume_kms_key
        if max_runtime_in_seconds is not None:
            self.max_runtime_in_seconds = max_runtime_in_seconds
        if network_config is not None:
            self.network_config = network_config
        if role is not None:
            self.role = role

        network_config_dict = None
        if self.network_config is not None:
            network_config_dict = self.network_config._to_request_dict()
            self._validate_network_config(network_config_dict)

        self.sagemaker_session.update_monitoring_schedule(
            monitoring_schedule_name=self.monitoring_schedule_name,
            schedule_expression=schedule_cron_expression,
            statistics_s3_uri=statistics_object.file_s3_uri if statistics_object else None,
            constraints_s3_uri=constraints_object.file_s3_uri if constraints_object else None,
            monitoring_inputs=monitoring_inputs,
            monitoring_output_config=monitoring_output_config,
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            record_preprocessor_source_uri=record_preprocessor_script_s3_uri,
            post_analytics_processor_source_uri=post_analytics_processor_script_s3_uri,
            max_runtime_in_seconds=max_runtime_in_seconds,
            environment=normalized_env or None,
            network_config=network_config_dict,
            role_arn=self.sagemaker_session.expand_role(self.role),
        )
        self._wait_for_schedule_changes_to_apply()

    def _build_create_data_quality_job_definition_request(
        self,
        monitoring_schedule_name,
        job_definition_name,
        image_uri,
        latest_baselining_job_name=None,
        existing_job_desc=None,
        endpoint_input=None,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
        output_s3_uri=None,
        statistics=None,
        constraints=None,
        enable_cloudwatch_metrics=None,
        role=None,
        instance_count=None,
        instance_type=None,
        volume_size_in_gb=None,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        env=None,
        tags=None,
        network_config=None,
    ):
        """Build a CreateDataQualityJobDefinition request, starting from an existing one if given."""
        if existing_job_desc is not None:
            existing_job_desc = copy.deepcopy(existing_job_desc)
            app_specification = existing_job_desc["DataQualityAppSpecification"]
            baseline_config = existing_job_desc.get("DataQualityBaselineConfig", {})
            job_input = existing_job_desc["DataQualityJobInput"]
            job_output = existing_job_desc["DataQualityJobOutputConfig"]
            cluster_config = existing_job_desc["JobResources"]["ClusterConfig"]
            if role is None:
                role = existing_job_desc["RoleArn"]
            existing_network_config = existing_job_desc.get("NetworkConfig")
            stop_condition = existing_job_desc.get("StoppingCondition", {})
        else:
            app_specification = {}
            baseline_config = {}
            job_input = {}
            job_output = {}
            cluster_config = {}
            existing_network_config = None
            stop_condition = {}

        if record_preprocessor_script is not None:
            app_specification["RecordPreprocessorSourceUri"] = self._s3_uri_from_local_path(
                record_preprocessor_script
            )
        if post_analytics_processor_script is not None:
            app_specification["PostAnalyticsProcessorSourceUri"] = self._s3_uri_from_local_path(
                post_analytics_processor_script
            )
        app_specification["ImageUri"] = image_uri

        normalized_env = self._generate_env_map(
            env=env, enable_cloudwatch_metrics=enable_cloudwatch_metrics
        )
        if normalized_env:
            app_specification["Environment"] = normalized_env

        statistics_object, constraints_object = self._get_baseline_files(
            statistics=statistics, constraints=constraints
        )
        if constraints_object is not None:
            baseline_config["ConstraintsResource"] = {"S3Uri": constraints_object.file_s3_uri}
        if statistics_object is not None:
            baseline_config["StatisticsResource"] = {"S3Uri": statistics_object.file_s3_uri}
        if latest_baselining_job_name is not None:
            baseline_config["BaseliningJobName"] = latest_baselining_job_name

        if endpoint_input is not None:
            job_input = self._normalize_endpoint_input(endpoint_input)._to_request_dict()

        if output_s3_uri is not None:
            normalized_monitoring_output = self._normalize_monitoring_output(
                monitoring_schedule_name, output_s3_uri
            )
            job_output["MonitoringOutputs"] = [normalized_monitoring_output._to_request_dict()]
        if output_kms_key is not None:
            job_output["KmsKeyId"] = output_kms_key

        if instance_count is not None:
            cluster_config["InstanceCount"] = instance_count
        if instance_type is not None:
            cluster_config["InstanceType"] = instance_type
        if volume_size_in_gb is not None:
            cluster_config["VolumeSizeInGB"] = volume_size_in_gb
        if volume_kms_key is not None:
            cluster_config["VolumeKmsKeyId"] = volume_kms_key

        if max_runtime_in_seconds is not None:
            stop_condition["MaxRuntimeInSeconds"] = max_runtime_in_seconds

        request_dict = {
            "JobDefinitionName": job_definition_name,
            "DataQualityAppSpecification": app_specification,
            "DataQualityJobInput": job_input,
            "DataQualityJobOutputConfig": job_output,
            "JobResources": {"ClusterConfig": cluster_config},
            "RoleArn": self.sagemaker_session.expand_role(role),
        }

        if baseline_config:
            request_dict["DataQualityBaselineConfig"] = baseline_config

        if network_config is not None:
            network_config_dict = network_config._to_request_dict()
            self._validate_network_config(network_config_dict)
            request_dict["NetworkConfig"] = network_config_dict
        elif existing_network_config is not None:
            request_dict["NetworkConfig"] = existing_network_config

        if stop_condition:
            request_dict["StoppingCondition"] = stop_condition

        if tags is not None:
            request_dict["Tags"] = tags

        return request_dict


class BaseliningJob(ProcessingJob):
    """The processing job that produced a monitor's baseline files."""

    @classmethod
    def from_processing_job(cls, processing_job):
        return cls(
            sagemaker_session=processing_job.sagemaker_session,
            job_name=processing_job.job_name,
            inputs=processing_job.inputs,
            outputs=processing_job.outputs,
            output_kms_key=processing_job.output_kms_key,
        )

    def baseline_statistics(self, file_name=STATISTICS_JSON_DEFAULT_FILE_NAME, kms_key=None):
        """Statistics written by the job.

        Raises:
            NotFoundError: If the file is missing, e.g. because the job has not completed.
        """
        return _load_output_file(self, self.outputs[0].destination, Statistics, file_name, kms_key)

    def suggested_constraints(self, file_name=CONSTRAINTS_JSON_DEFAULT_FILE_NAME, kms_key=None):
        """Constraints suggested by the job.

        Raises:
            NotFoundError: If the file is missing, e.g. because the job has not completed.
        """
        return _load_output_file(self, self.outputs[0].destination, Constraints, file_name, kms_key)


class MonitoringExecution(ProcessingJob):
    """One scheduled run of a monitoring schedule."""

    def __init__(self, sagemaker_session, job_name, inputs, output, output_kms_key=None):
        self.output = output
        super().__init__(
            sagemaker_session=sagemaker_session,
            job_name=job_name,
            inputs=inputs,
            outputs=[output],
            output_kms_key=output_kms_key,
        )

    @classmethod
    def from_processing_arn(cls, sagemaker_session, processing_job_arn):
        job = ProcessingJob.from_processing_arn(
            sagemaker_session=sagemaker_session, processing_job_arn=processing_job_arn
        )
        return cls(
            sagemaker_session=sagemaker_session,
            job_name=job.job_name,
            inputs=job.inputs,
            output=job.outputs[0] if job.outputs else None,
            output_kms_key=job.output_kms_key,
        )

    def statistics(self, file_name=STATISTICS_JSON_DEFAULT_FILE_NAME, kms_key=None):
        return _load_output_file(self, self.output.destination, Statistics, file_name, kms_key)

    def constraint_violations(
        self, file_name=CONSTRAINT_VIOLATIONS_JSON_DEFAULT_FILE_NAME, kms_key=None
    ):
        return _load_output_file(
            self, self.output.destination, ConstraintViolations, file_name, kms_key
        )


class EndpointInput:
    """Captured data of an endpoint, as the input of a monitoring job."""

    def __init__(
        self,
        endpoint_name,
        destination,
        s3_input_mode="File",
        s3_data_distribution_type="FullyReplicated",
        start_time_offset=None,
        end_time_offset=None,
        features_attribute=None,
        inference_attribute=None,
        probability_attribute=None,
        probability_threshold_attribute=None,
    ):
        """Initialize an EndpointInput.

        Args:
            endpoint_name (str): Endpoint to monitor.
            destination (str): Path inside the container.
            s3_input_mode (str): ``File`` or ``Pipe``.
            s3_data_distribution_type (str): ``FullyReplicated`` or ``ShardedByS3Key``.
            start_time_offset (str): ISO 8601 duration before the execution to start from.
            end_time_offset (str): ISO 8601 duration before the execution to stop at.
            features_attribute (str): JSONpath of the features in captured requests.
            inference_attribute (str): Index or JSONpath of the prediction.
            probability_attribute (str): Index or JSONpath of the probabilities.
            probability_threshold_attribute (float): Threshold for binary labels.
        """
        if s3_input_mode not in ("File", "Pipe"):
            raise ValidationError(f"s3_input_mode must be File or Pipe, got {s3_input_mode}")
        if s3_data_distribution_type not in ("FullyReplicated", "ShardedByS3Key"):
            raise ValidationError(
                "s3_data_distribution_type must be FullyReplicated or ShardedByS3Key, "
                f"got {s3_data_distribution_type}"
            )
        self.endpoint_name = endpoint_name
        self.destination = destination
        self.s3_input_mode = s3_input_mode
        self.s3_data_distribution_type = s3_data_distribution_type
        self.start_time_offset = start_time_offset
        self.end_time_offset = end_time_offset
        self.features_attribute = features_attribute
        self.inference_attribute = inference_attribute
        self.probability_attribute = probability_attribute
        self.probability_threshold_attribute = probability_threshold_attribute

    def _to_request_dict(self):
        endpoint_input = {
            "EndpointName": self.endpoint_name,
            "LocalPath": self.destination,
            "S3InputMode": self.s3_input_mode,
            "S3DataDistributionType": self.s3_data_distribution_type,
        }
        optional = {
            "StartTimeOffset": self.start_time_offset,
            "EndTimeOffset": self.end_time_offset,
            "FeaturesAttribute": self.features_attribute,
            "InferenceAttribute": self.inference_attribute,
            "ProbabilityAttribute": self.probability_attribute,
            "ProbabilityThresholdAttribute": self.probability_threshold_attribute,
        }
        endpoint_input.update({k: v for k, v in optional.items() if v is not None})
        return {"EndpointInput": endpoint_input}


class MonitoringOutput:
    """A container path continuously uploaded to S3 during a monitoring job."""

    def __init__(self, source, destination=None, s3_upload_mode="Continuous"):
        self.source = source
        self.destination = destination
        self.s3_upload_mode = s3_upload_mode

    def _to_request_dict(self):
        return {
            "S3Output": {
                "S3Uri": self.destination,
                "LocalPath": self.source,
                "S3UploadMode": self.s3_upload_mode,
            }
        }


def _network_config_from_dict(network_config_dict):
    if not network_config_dict:
        return None
    vpc_config = network_config_dict.get("VpcConfig") or {}
    return NetworkConfig(
        enable_network_isolation=network_config_dict.get("EnableNetworkIsolation", False),
        security_group_ids=vpc_config.get("SecurityGroupIds"),
        subnets=vpc_config.get("Subnets"),
    )


def _load_output_file(job, output_s3_path, file_cls, file_name, kms_key):
    """Load a monitoring file from a job's output, explaining a miss by the job status."""
    try:
        return file_cls.from_s3_uri(
            s3_path_join(output_s3_path, file_name),
            kms_key=kms_key,
            sagemaker_session=job.sagemaker_session,
        )
    except NotFoundError as err:
        status = job.sagemaker_session.describe_processing_job(job.job_name)[
            "ProcessingJobStatus"
        ]
        if status != "Completed":
            raise NotFoundError(
                f"The underlying job is not in 'Completed' state (current status: {status}). "
                "You may only retrieve files for a job that has completed successfully; "
                "wait for the job to finish and try again."
            ) from err
        raise
