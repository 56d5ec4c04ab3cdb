"""SageMaker session: boto3 clients plus request shaping for every job type.

A :class:`Session` owns the boto3 clients used by estimators, models,
processors and monitors. Each ``create``-style method builds the request
dictionary for one SageMaker API call; each ``wait_for_*`` method polls the
matching describe call with a fixed sleep until the resource settles.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any, Callable

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from . import logs as sm_logs
from .config import SagekitConfig, load_config
from .errors import CapacityError, UnexpectedStatusError, ValidationError
from .utils import (
    name_from_image,
    secondary_training_status_changed,
    secondary_training_status_message,
)

logger = logging.getLogger(__name__)

# seconds during which AccessDenied is treated as tag propagation delay
ACCESS_DENIED_GRACE = 300

_STATUS_CODES = {
    "Completed": "!",
    "InProgress": ".",
    "Failed": "*",
    "Stopped": "s",
    "Stopping": "_",
}


class Session:
    """Manage interactions with the SageMaker APIs and S3.

    Attributes:
        boto_session: The underlying boto3 session.
        sagemaker_client: Client for the ``sagemaker`` service.
        sagemaker_runtime_client: Client for ``sagemaker-runtime`` (endpoint invocation).
        s3_client: Client for S3.
        config: The loaded :class:`~sagekit.config.SagekitConfig`.
    """

    def __init__(
        self,
        boto_session=None,
        sagemaker_client=None,
        sagemaker_runtime_client=None,
        s3_client=None,
        default_bucket: str | None = None,
        config: SagekitConfig | None = None,
    ) -> None:
        """Initialize a session.

        Args:
            boto_session: boto3 session. One is created from the config region if omitted.
            sagemaker_client: Optional prebuilt client, mostly useful in tests.
            sagemaker_runtime_client: Optional prebuilt runtime client.
            s3_client: Optional prebuilt S3 client.
            default_bucket: Bucket name overriding ``sagemaker-{region}-{account}``.
            config: Defaults. Loaded with :func:`~sagekit.config.load_config` if omitted.
        """
        self.config = config or load_config()
        self.boto_session = boto_session or boto3.Session(region_name=self.config.region)
        if self.boto_session.region_name is None:
            raise ValidationError(
                "Must setup local AWS configuration with a region supported by SageMaker."
            )

        self._boto_config = BotoConfig(
            retries={"max_attempts": self.config.max_attempts, "mode": "adaptive"}
        )
        self.sagemaker_client = sagemaker_client or self._client("sagemaker")
        self.sagemaker_runtime_client = sagemaker_runtime_client or self._client(
            "sagemaker-runtime", BotoConfig(read_timeout=80, retries={"max_attempts": 0})
        )
        self.s3_client = s3_client or self._client("s3")

        self._default_bucket = None
        self._default_bucket_name_override = default_bucket or self.config.default_bucket

    def _client(self, service: str, config: BotoConfig | None = None):
        return self.boto_session.client(
            service, region_name=self.boto_session.region_name, config=config or self._boto_config
        )

    @property
    def boto_region_name(self) -> str:
        return self.boto_session.region_name

    @property
    def poll_interval(self) -> float:
        return self.config.poll_interval

    # ------------------------------------------------------------------ S3

    def upload_data(self, path, bucket=None, key_prefix="data", extra_args=None):
        """Upload a local file or directory to S3.

        A single file lands at ``{key_prefix}/{filename}``; a directory is
        uploaded recursively, keeping its relative structure.

        Returns:
            str: ``s3://{bucket}/{key_prefix}`` for a directory, or the full
            object URI for a single file.
        """
        bucket = bucket or self.default_bucket()
        key_prefix = key_prefix.strip("/")
        files = []
        key_suffix = None
        if os.path.isdir(path):
            for dirpath, _, filenames in os.walk(path):
                for name in filenames:
                    local_path = os.path.join(dirpath, name)
                    relative = "" if path == dirpath else os.path.relpath(dirpath, start=path) + "/"
                    files.append((local_path, f"{key_prefix}/{relative}{name}"))
        else:
            _, name = os.path.split(path)
            files.append((path, f"{key_prefix}/{name}"))
            key_suffix = name

        for local_path, s3_key in files:
            self.s3_client.upload_file(local_path, bucket, s3_key, ExtraArgs=extra_args)

        s3_uri = f"s3://{bucket}/{key_prefix}"
        if key_suffix:
            s3_uri = f"{s3_uri}/{key_suffix}"
        return s3_uri

    def upload_string_as_file_body(self, body, bucket, key, kms_key=None):
        """Put ``body`` at ``s3://{bucket}/{key}`` and return that URI."""
        kwargs = {"Bucket": bucket, "Key": key, "Body": body}
        if kms_key is not None:
            kwargs.update(SSEKMSKeyId=kms_key, ServerSideEncryption="aws:kms")
        self.s3_client.put_object(**kwargs)
        return f"s3://{bucket}/{key}"

    def download_data(self, path, bucket, key_prefix="", extra_args=None):
        """Download every object under ``key_prefix`` into ``path``.

        Returns:
            list[str]: Local paths of the downloaded files.
        """
        keys = self.list_s3_files(bucket, key_prefix)
        if not keys:
            logger.info("Nothing to download from bucket: %s, key_prefix: %s.", bucket, key_prefix)
            return []

        downloaded_paths = []
        for key in keys:
            tail = os.path.basename(key)
            if not os.path.splitext(key_prefix)[1]:
                tail = os.path.relpath(key, key_prefix)
            destination_path = os.path.join(path, tail)
            os.makedirs(os.path.dirname(destination_path) or ".", exist_ok=True)
            self.s3_client.download_file(
                Bucket=bucket, Key=key, Filename=destination_path, ExtraArgs=extra_args
            )
            downloaded_paths.append(destination_path)
        return downloaded_paths

    def read_s3_file(self, bucket, key_prefix):
        """Return the body of one S3 object decoded as UTF-8."""
        s3_object = self.s3_client.get_object(Bucket=bucket, Key=key_prefix)
        return s3_object["Body"].read().decode("utf-8")

    def list_s3_files(self, bucket, key_prefix):
        """List the keys of every object under ``key_prefix``."""
        keys = []
        paginator = self.s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=key_prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    def default_bucket(self):
        """Return the default bucket, creating it on first use.

        The name is ``sagemaker-{region}-{account}`` unless one was configured.
        """
        if self._default_bucket:
            return self._default_bucket

        region = self.boto_region_name
        bucket_name = self._default_bucket_name_override
        if not bucket_name:
            account = self._client("sts").get_caller_identity()["Account"]
            bucket_name = f"sagemaker-{region}-{account}"

        self._create_s3_bucket_if_it_does_not_exist(bucket_name, region)
        self._default_bucket = bucket_name
        return bucket_name

    def _create_s3_bucket_if_it_does_not_exist(self, bucket_name, region):
        try:
            self.s3_client.head_bucket(Bucket=bucket_name)
            return
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("403", "Forbidden"):
                logger.error(
                    "Bucket %s exists, but access is forbidden. Please try again after "
                    "adding appropriate access.",
                    bucket_name,
                )
                raise
            if error_code not in ("404", "NoSuchBucket", "NotFound"):
                raise

        try:
            if region == "us-east-1":
                # us-east-1 must not be passed as a location constraint
                self.s3_client.create_bucket(Bucket=bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": region},
                )
            logger.info("Created S3 bucket: %s", bucket_name)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            message = e.response["Error"]["Message"]
            if error_code == "BucketAlreadyOwnedByYou":
                return
            if error_code == "OperationAborted" and "conflicting conditional operation" in message:
                # being created concurrently
                return
            raise

    # ------------------------------------------------------------ identity

    def expand_role(self, role):
        """Expand a bare role name into a full IAM role ARN."""
        if "/" in role:
            return role
        return self._client("iam").get_role(RoleName=role)["Role"]["Arn"]

    def get_caller_identity_arn(self):
        """Return the ARN of the caller, mapping an assumed-role ARN to its role ARN."""
        assumed_role = self._client("sts").get_caller_identity()["Arn"]
        if ":assumed-role/" not in assumed_role:
            return assumed_role

        role_name = assumed_role.split("/")[-2]
        role_arn = assumed_role.replace(":sts::", ":iam::").replace(":assumed-role/", ":role/")
        role_arn = role_arn.rsplit("/", 1)[0]
        try:
            return self._client("iam").get_role(RoleName=role_name)["Role"]["Arn"]
        except ClientError:
            logger.warning(
                "Couldn't call 'get_role' to get Role ARN from role name %s to get Role path.",
                role_name,
            )
        return role_arn

    def list_tags(self, resource_arn, max_results=50):
        """Return every tag on a resource, excluding ``aws:`` system tags."""
        tags = []
        kwargs = {"ResourceArn": resource_arn, "MaxResults": max_results}
        while True:
            response = self.sagemaker_client.list_tags(**kwargs)
            tags.extend(t for t in response.get("Tags", []) if not t["Key"].startswith("aws:"))
            if not response.get("NextToken"):
                return tags
            kwargs["NextToken"] = response["NextToken"]

    # ------------------------------------------------------------ training

    def train(
        self,
        input_mode,
        input_config,
        role,
        job_name,
        output_config,
        resource_config,
        vpc_config,
        hyperparameters,
        stop_condition,
        tags=None,
        metric_definitions=None,
        enable_network_isolation=False,
        image_uri=None,
        algorithm_arn=None,
        encrypt_inter_container_traffic=False,
        use_spot_instances=False,
        checkpoint_s3_uri=None,
        checkpoint_local_path=None,
        environment=None,
    ):
        """Create a training job.

        Exactly one of ``image_uri`` and ``algorithm_arn`` must be given.

        Returns:
            str: ARN of the training job.
        """
        train_request = self._get_train_request(
            input_mode=input_mode,
            input_config=input_config,
            role=role,
            job_name=job_name,
            output_config=output_config,
            resource_config=resource_config,
            vpc_config=vpc_config,
            hyperparameters=hyperparameters,
            stop_condition=stop_condition,
            tags=tags,
            metric_definitions=metric_definitions,
            enable_network_isolation=enable_network_isolation,
            image_uri=image_uri,
            algorithm_arn=algorithm_arn,
            encrypt_inter_container_traffic=encrypt_inter_container_traffic,
            use_spot_instances=use_spot_instances,
            checkpoint_s3_uri=checkpoint_s3_uri,
            checkpoint_local_path=checkpoint_local_path,
            environment=environment,
        )
        logger.info("Creating training-job with name: %s", job_name)
        logger.debug("train request: %s", json.dumps(train_request, indent=4, default=str))
        return self.sagemaker_client.create_training_job(**train_request)["TrainingJobArn"]

    def _get_train_request(
        self,
        input_mode,
        input_config,
        role,
        job_name,
        output_config,
        resource_config,
        vpc_config,
        hyperparameters,
        stop_condition,
        tags,
        metric_definitions,
        enable_network_isolation=False,
        image_uri=None,
        algorithm_arn=None,
        encrypt_inter_container_traffic=False,
        use_spot_instances=False,
        checkpoint_s3_uri=None,
        checkpoint_local_path=None,
        environment=None,
    ):
        if (image_uri is None) == (algorithm_arn is None):
            raise ValidationError("Exactly one of image_uri or algorithm_arn can be provided.")

        train_request = {
            "AlgorithmSpecification": {"TrainingInputMode": input_mode},
            "OutputDataConfig": output_config,
            "TrainingJobName": job_name,
            "StoppingCondition": stop_condition,
            "ResourceConfig": resource_config,
            "RoleArn": role,
        }

        if image_uri is not None:
            train_request["AlgorithmSpecification"]["TrainingImage"] = image_uri
        else:
            train_request["AlgorithmSpecification"]["AlgorithmName"] = algorithm_arn

        if metric_definitions is not None:
            train_request["AlgorithmSpecification"]["MetricDefinitions"] = metric_definitions
        if input_config is not None:
            train_request["InputDataConfig"] = input_config
        if hyperparameters:
            train_request["HyperParameters"] = hyperparameters
        if environment is not None:
            train_request["Environment"] = environment
        if tags is not None:
            train_request["Tags"] = tags
        if vpc_config is not None:
            train_request["VpcConfig"] = vpc_config
        if enable_network_isolation:
            train_request["EnableNetworkIsolation"] = True
        if encrypt_inter_container_traffic:
            train_request["EnableInterContainerTrafficEncryption"] = True
        if use_spot_instances:
            train_request["EnableManagedSpotTraining"] = True
        if checkpoint_s3_uri:
            checkpoint_config = {"S3Uri": checkpoint_s3_uri}
            if checkpoint_local_path:
                checkpoint_config["LocalPath"] = checkpoint_local_path
            train_request["CheckpointConfig"] = checkpoint_config
        return train_request

    def describe_training_job(self, job_name):
        return self.sagemaker_client.describe_training_job(TrainingJobName=job_name)

    def stop_training_job(self, job_name):
        logger.info("Stopping training job: %s", job_name)
        self.sagemaker_client.stop_training_job(TrainingJobName=job_name)

    def wait_for_job(self, job, poll=None):
        """Wait for a training job to finish.

        Raises:
            UnexpectedStatusError: If the job did not complete.
        """
        desc = _wait_until_training_done(
            lambda last_desc: _train_done(self.sagemaker_client, job, last_desc),
            None,
            poll or self.poll_interval,
        )
        _check_job_status(job, desc, "TrainingJobStatus")
        return desc

    def logs_for_job(self, job_name, wait=False, poll=10, timeout=None):
        """Print training job logs, tailing until completion if ``wait``."""
        return sm_logs.logs_for_job(self.boto_session, job_name, "Training", wait, poll, timeout)

    # ---------------------------------------------------------- processing

    def process(
        self,
        inputs,
        output_config,
        job_name,
        resources,
        stopping_condition,
        app_specification,
        environment=None,
        network_config=None,
        role_arn=None,
        tags=None,
        experiment_config=None,
    ):
        """Create a processing job.

        Args:
            inputs (list[dict]): ``ProcessingInput`` request dicts.
            output_config (dict): ``ProcessingOutputConfig`` request dict.
            job_name (str): Name of the processing job.
            resources (dict): ``ProcessingResources`` request dict.
            stopping_condition (dict): ``StoppingCondition``, may be None.
            app_specification (dict): Image, entrypoint and arguments.
            environment (dict): Environment variables for the container.
            network_config (dict): Isolation, encryption and VPC settings.
            role_arn (str): Execution role.
            tags (list[dict]): Resource tags.
            experiment_config (dict): Experiment association.
        """
        process_request = {
            "ProcessingJobName": job_name,
            "ProcessingResources": resources,
            "AppSpecification": app_specification,
            "RoleArn": role_arn,
        }
        if inputs:
            process_request["ProcessingInputs"] = inputs
        if output_config and output_config.get("Outputs"):
            process_request["ProcessingOutputConfig"] = output_config
        if environment is not None:
            process_request["Environment"] = environment
        if network_config is not None:
            process_request["NetworkConfig"] = network_config
        if stopping_condition is not None:
            process_request["StoppingCondition"] = stopping_condition
        if tags is not None:
            process_request["Tags"] = tags
        if experiment_config:
            process_request["ExperimentConfig"] = experiment_config

        logger.info("Creating processing-job with name %s", job_name)
        logger.debug("process request: %s", json.dumps(process_request, indent=4, default=str))
        return self.sagemaker_client.create_processing_job(**process_request)

    def describe_processing_job(self, job_name):
        return self.sagemaker_client.describe_processing_job(ProcessingJobName=job_name)

    def stop_processing_job(self, job_name):
        logger.info("Stopping processing job: %s", job_name)
        self.sagemaker_client.stop_processing_job(ProcessingJobName=job_name)

    def wait_for_processing_job(self, job, poll=None):
        desc = _wait_until(
            lambda: _processing_job_status(self.sagemaker_client, job), poll or self.poll_interval
        )
        _check_job_status(job, desc, "ProcessingJobStatus")
        return desc

    def logs_for_processing_job(self, job_name, wait=False, poll=10):
        return sm_logs.logs_for_job(self.boto_session, job_name, "Processing", wait, poll)

    # ----------------------------------------------------------- transform

    def transform(
        self,
        job_name,
        model_name,
        strategy,
        max_concurrent_transforms,
        max_payload,
        env,
        input_config,
        output_config,
        resource_config,
        tags=None,
        data_processing=None,
    ):
        """Create a batch transform job."""
        transform_request = {
            "TransformJobName": job_name,
            "ModelName": model_name,
            "TransformInput": input_config,
            "TransformOutput": output_config,
            "TransformResources": resource_config,
        }
        if strategy is not None:
            transform_request["BatchStrategy"] = strategy
        if max_concurrent_transforms is not None:
            transform_request["MaxConcurrentTransforms"] = max_concurrent_transforms
        if max_payload is not None:
            transform_request["MaxPayloadInMB"] = max_payload
        if env is not None:
            transform_request["Environment"] = env
        if tags is not None:
            transform_request["Tags"] = tags
        if data_processing is not None:
            transform_request["DataProcessing"] = data_processing

        logger.info("Creating transform job with name: %s", job_name)
        logger.debug("Transform request: %s", json.dumps(transform_request, indent=4, default=str))
        self.sagemaker_client.create_transform_job(**transform_request)

    def describe_transform_job(self, job_name):
        return self.sagemaker_client.describe_transform_job(TransformJobName=job_name)

    def stop_transform_job(self, name):
        logger.info("Stopping transform job: %s", name)
        try:
            self.sagemaker_client.stop_transform_job(TransformJobName=name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ValidationException":
                logger.info("Transform job: %s is already stopped or not running.", name)
            else:
                logger.error("Error occurred while attempting to stop transform job: %s.", name)
                raise

    def wait_for_transform_job(self, job, poll=None):
        desc = _wait_until(
            lambda: _transform_job_status(self.sagemaker_client, job), poll or self.poll_interval
        )
        _check_job_status(job, desc, "TransformJobStatus")
        return desc

    def logs_for_transform_job(self, job_name, wait=False, poll=10):
        return sm_logs.logs_for_job(self.boto_session, job_name, "Transform", wait, poll)

    # ------------------------------------------------------------- hosting

    def create_model(
        self,
        name,
        role,
        container_defs,
        vpc_config=None,
        enable_network_isolation=False,
        primary_container=None,
        tags=None,
    ):
        """Create a SageMaker model.

        ``container_defs`` is either one container definition or a list of
        them; a list becomes an inference pipeline.

        Returns:
            str: Name of the model.
        """
        if container_defs and primary_container:
            raise ValidationError("Both container_defs and primary_container can not be passed as input")

        if primary_container:
            container_defs = primary_container

        create_model_request = {"ModelName": name, "ExecutionRoleArn": self.expand_role(role)}
        if isinstance(container_defs, list):
            create_model_request["Containers"] = container_defs
        else:
            create_model_request["PrimaryContainer"] = container_defs
        if tags is not None:
            create_model_request["Tags"] = tags
        if vpc_config:
            create_model_request["VpcConfig"] = vpc_config
        if enable_network_isolation:
            create_model_request["EnableNetworkIsolation"] = True

        logger.info("Creating model with name: %s", name)
        logger.debug("CreateModel request: %s", json.dumps(create_model_request, indent=4, default=str))
        try:
            self.sagemaker_client.create_model(**create_model_request)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            message = e.response["Error"]["Message"]
            if error_code == "ValidationException" and "Cannot create already existing model" in message:
                logger.warning("Using already existing model: %s", name)
            else:
                raise
        return name

    def create_model_from_job(
        self,
        training_job_name,
        name=None,
        role=None,
        image_uri=None,
        model_data_url=None,
        env=None,
        enable_network_isolation=False,
        vpc_config_override=None,
        tags=None,
    ):
        """Create a model from the artifacts and image of a finished training job."""
        training_job = self.describe_training_job(training_job_name)
        name = name or training_job_name
        role = role or training_job["RoleArn"]
        primary_container = container_def(
            image_uri or training_job["AlgorithmSpecification"]["TrainingImage"],
            model_data_url=model_data_url or training_job["ModelArtifacts"]["S3ModelArtifacts"],
            env=env,
        )
        vpc_config = (
            training_job.get("VpcConfig") if vpc_config_override is None else vpc_config_override
        )
        return self.create_model(
            name,
            role,
            primary_container,
            vpc_config=vpc_config,
            enable_network_isolation=enable_network_isolation,
            tags=tags,
        )

    def describe_model(self, name):
        return self.sagemaker_client.describe_model(ModelName=name)

    def create_endpoint_config(
        self,
        name,
        model_name,
        initial_instance_count,
        instance_type,
        accelerator_type=None,
        tags=None,
        kms_key=None,
        data_capture_config_dict=None,
    ):
        """Create an endpoint configuration with a single ``AllTraffic`` variant."""
        logger.info("Creating endpoint-config with name %s", name)
        request = {
            "EndpointConfigName": name,
            "ProductionVariants": [
                production_variant(
                    model_name,
                    instance_type,
                    initial_instance_count,
                    accelerator_type=accelerator_type,
                )
            ],
        }
        if tags is not None:
            request["Tags"] = tags
        if kms_key is not None:
            request["KmsKeyId"] = kms_key
        if data_capture_config_dict is not None:
            request["DataCaptureConfig"] = data_capture_config_dict

        self.sagemaker_client.create_endpoint_config(**request)
        return name

    def create_endpoint_config_from_existing(
        self, existing_config_name, new_config_name, new_tags=None, new_data_capture_config_dict=None
    ):
        """Copy an endpoint config under a new name, replacing tags or data capture."""
        logger.info("Creating endpoint-config with name %s", new_config_name)
        existing = self.sagemaker_client.describe_endpoint_config(
            EndpointConfigName=existing_config_name
        )
        request = {
            "EndpointConfigName": new_config_name,
            "ProductionVariants": existing["ProductionVariants"],
        }
        tags = new_tags or self.list_tags(existing["EndpointConfigArn"])
        if tags:
            request["Tags"] = tags
        if existing.get("KmsKeyId") is not None:
            request["KmsKeyId"] = existing["KmsKeyId"]
        data_capture = new_data_capture_config_dict or existing.get("DataCaptureConfig")
        if data_capture is not None:
            request["DataCaptureConfig"] = data_capture
        self.sagemaker_client.create_endpoint_config(**request)

    def create_endpoint(self, endpoint_name, config_name, tags=None, wait=True):
        logger.info("Creating endpoint with name %s", endpoint_name)
        self.sagemaker_client.create_endpoint(
            EndpointName=endpoint_name, EndpointConfigName=config_name, Tags=tags or []
        )
        if wait:
            self.wait_for_endpoint(endpoint_name)
        return endpoint_name

    def update_endpoint(self, endpoint_name, endpoint_config_name, wait=True):
        """Point an existing endpoint at a new endpoint config.

        Raises:
            ValidationError: If the endpoint does not exist.
        """
        if not _deployment_entity_exists(
            lambda: self.sagemaker_client.describe_endpoint(EndpointName=endpoint_name)
        ):
            raise ValidationError(
                f"Endpoint with name '{endpoint_name}' does not exist; please use an "
                "existing endpoint name"
            )
        self.sagemaker_client.update_endpoint(
            EndpointName=endpoint_name, EndpointConfigName=endpoint_config_name
        )
        if wait:
            self.wait_for_endpoint(endpoint_name)
        return endpoint_name

    def delete_endpoint(self, endpoint_name):
        logger.info("Deleting endpoint with name: %s", endpoint_name)
        self.sagemaker_client.delete_endpoint(EndpointName=endpoint_name)

    def delete_endpoint_config(self, endpoint_config_name):
        logger.info("Deleting endpoint configuration with name: %s", endpoint_config_name)
        self.sagemaker_client.delete_endpoint_config(EndpointConfigName=endpoint_config_name)

    def delete_model(self, model_name):
        logger.info("Deleting model with name: %s", model_name)
        self.sagemaker_client.delete_model(ModelName=model_name)

    def wait_for_endpoint(self, endpoint, poll=30):
        """Wait until an endpoint leaves Creating/Updating.

        Raises:
            UnexpectedStatusError: If the endpoint is not InService afterwards.
        """
        desc = _wait_until(lambda: _deploy_done(self.sagemaker_client, endpoint), poll)
        status = desc["EndpointStatus"]
        if status != "InService":
            reason = desc.get("FailureReason", "(No reason provided)")
            message = f"Error hosting endpoint {endpoint}: {status}. Reason: {reason}."
            if "CapacityError" in str(reason):
                raise CapacityError(message, allowed_statuses=["InService"], actual_status=status)
            raise UnexpectedStatusError(message, allowed_statuses=["InService"], actual_status=status)
        return desc

    def wait_for_model_package(self, model_package_name, poll=5):
        """Wait until a model package leaves InProgress/Pending.

        Raises:
            UnexpectedStatusError: If the package did not complete.
        """
        desc = _wait_until(
            lambda: _create_model_package_status(self.sagemaker_client, model_package_name), poll
        )
        status = desc["ModelPackageStatus"]
        if status != "Completed":
            reason = desc.get("FailureReason")
            raise UnexpectedStatusError(
                f"Error creating model package {model_package_name}: {status} Reason: {reason}",
                allowed_statuses=["Completed"],
                actual_status=status,
            )
        return desc

    def endpoint_from_production_variants(
        self,
        name,
        production_variants,
        tags=None,
        kms_key=None,
        wait=True,
        data_capture_config_dict=None,
    ):
        """Create an endpoint config and endpoint from explicit production variants."""
        config_options = {"EndpointConfigName": name, "ProductionVariants": production_variants}
        if tags:
            config_options["Tags"] = tags
        if kms_key:
            config_options["KmsKeyId"] = kms_key
        if data_capture_config_dict is not None:
            config_options["DataCaptureConfig"] = data_capture_config_dict

        logger.info("Creating endpoint-config with name %s", name)
        self.sagemaker_client.create_endpoint_config(**config_options)
        return self.create_endpoint(endpoint_name=name, config_name=name, tags=tags, wait=wait)

    def endpoint_from_job(
        self,
        job_name,
        initial_instance_count,
        instance_type,
        image_uri=None,
        name=None,
        role=None,
        wait=True,
        model_environment_vars=None,
        vpc_config_override=None,
        accelerator_type=None,
        data_capture_config=None,
    ):
        """Create model, endpoint config and endpoint from a finished training job."""
        job_desc = self.describe_training_job(job_name)
        output_url = job_desc["ModelArtifacts"]["S3ModelArtifacts"]
        image_uri = image_uri or job_desc["AlgorithmSpecification"]["TrainingImage"]
        role = role or job_desc["RoleArn"]
        name = name or job_name
        vpc_config = (
            job_desc.get("VpcConfig") if vpc_config_override is None else vpc_config_override
        )
        return self.endpoint_from_model_data(
            model_s3_location=output_url,
            image_uri=image_uri,
            initial_instance_count=initial_instance_count,
            instance_type=instance_type,
            name=name,
            role=role,
            wait=wait,
            model_environment_vars=model_environment_vars,
            model_vpc_config=vpc_config,
            accelerator_type=accelerator_type,
            data_capture_config=data_capture_config,
        )

    def endpoint_from_model_data(
        self,
        model_s3_location,
        image_uri,
        initial_instance_count,
        instance_type,
        name=None,
        role=None,
        wait=True,
        model_environment_vars=None,
        model_vpc_config=None,
        accelerator_type=None,
        data_capture_config=None,
    ):
        """Create model, endpoint config and endpoint, reusing any that already exist."""
        model_environment_vars = model_environment_vars or {}
        name = name or name_from_image(image_uri)
        data_capture_config_dict = None
        if data_capture_config is not None:
            data_capture_config_dict = data_capture_config._to_request_dict()

        if not _deployment_entity_exists(
            lambda: self.sagemaker_client.describe_endpoint(EndpointName=name)
        ):
            primary_container = container_def(
                image_uri=image_uri, model_data_url=model_s3_location, env=model_environment_vars
            )
            if not _deployment_entity_exists(
                lambda: self.sagemaker_client.describe_model(ModelName=name)
            ):
                self.create_model(
                    name=name,
                    role=role,
                    container_defs=primary_container,
                    vpc_config=model_vpc_config,
                )
            if not _deployment_entity_exists(
                lambda: self.sagemaker_client.describe_endpoint_config(EndpointConfigName=name)
            ):
                self.create_endpoint_config(
                    name=name,
                    model_name=name,
                    initial_instance_count=initial_instance_count,
                    instance_type=instance_type,
                    accelerator_type=accelerator_type,
                    data_capture_config_dict=data_capture_config_dict,
                )
            self.create_endpoint(endpoint_name=name, config_name=name, wait=wait)
        return name

    # ---------------------------------------------------------- monitoring

    def create_monitoring_schedule(
        self,
        monitoring_schedule_name,
        schedule_expression,
        statistics_s3_uri,
        constraints_s3_uri,
        monitoring_inputs,
        monitoring_output_config,
        instance_count,
        instance_type,
        volume_size_in_gb,
        volume_kms_key=None,
        image_uri=None,
        entrypoint=None,
        arguments=None,
        record_preprocessor_source_uri=None,
        post_analytics_processor_source_uri=None,
        max_runtime_in_seconds=None,
        environment=None,
        network_config=None,
        role_arn=None,
        tags=None,
    ):
        """Create a monitoring schedule with an embedded job definition."""
        job_definition = _monitoring_job_definition(
            monitoring_inputs=monitoring_inputs,
            monitoring_output_config=monitoring_output_config,
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            image_uri=image_uri,
            entrypoint=entrypoint,
            arguments=arguments,
            record_preprocessor_source_uri=record_preprocessor_source_uri,
            post_analytics_processor_source_uri=post_analytics_processor_source_uri,
            statistics_s3_uri=statistics_s3_uri,
            constraints_s3_uri=constraints_s3_uri,
            max_runtime_in_seconds=max_runtime_in_seconds,
            environment=environment,
            network_config=network_config,
            role_arn=role_arn,
        )
        request = {
            "MonitoringScheduleName": monitoring_schedule_name,
            "MonitoringScheduleConfig": {"MonitoringJobDefinition": job_definition},
        }
        if schedule_expression is not None:
            request["MonitoringScheduleConfig"]["ScheduleConfig"] = {
                "ScheduleExpression": schedule_expression
            }
        if tags is not None:
            request["Tags"] = tags

        logger.info("Creating monitoring schedule name %s.", monitoring_schedule_name)
        logger.debug("monitoring_schedule_request= %s", json.dumps(request, indent=4, default=str))
        self.sagemaker_client.create_monitoring_schedule(**request)

    def update_monitoring_schedule(
        self,
        monitoring_schedule_name,
        schedule_expression=None,
        statistics_s3_uri=None,
        constraints_s3_uri=None,
        monitoring_inputs=None,
        monitoring_output_config=None,
        instance_count=None,
        instance_type=None,
        volume_size_in_gb=None,
        volume_kms_key=None,
        image_uri=None,
        entrypoint=None,
        arguments=None,
        record_preprocessor_source_uri=None,
        post_analytics_processor_source_uri=None,
        max_runtime_in_seconds=None,
        environment=None,
        network_config=None,
        role_arn=None,
    ):
        """Update a monitoring schedule, keeping every value that is not passed."""
        existing_desc = self.describe_monitoring_schedule(monitoring_schedule_name)
        existing_config = existing_desc["MonitoringScheduleConfig"]
        existing_definition = existing_config["MonitoringJobDefinition"]
        existing_cluster = existing_definition["MonitoringResources"]["ClusterConfig"]
        existing_app = existing_definition["MonitoringAppSpecification"]
        existing_baseline = existing_definition.get("BaselineConfig", {})

        def _pick(new, old):
            return new if new is not None else old

        job_definition = _monitoring_job_definition(
            monitoring_inputs=_pick(monitoring_inputs, existing_definition["MonitoringInputs"]),
            monitoring_output_config=_pick(
                monitoring_output_config, existing_definition.get("MonitoringOutputConfig")
            ),
            instance_count=_pick(instance_count, existing_cluster["InstanceCount"]),
            instance_type=_pick(instance_type, existing_cluster["InstanceType"]),
            volume_size_in_gb=_pick(volume_size_in_gb, existing_cluster["VolumeSizeInGB"]),
            volume_kms_key=_pick(volume_kms_key, existing_cluster.get("VolumeKmsKeyId")),
            image_uri=_pick(image_uri, existing_app["ImageUri"]),
            entrypoint=_pick(entrypoint, existing_app.get("ContainerEntrypoint")),
            arguments=_pick(arguments, existing_app.get("ContainerArguments")),
            record_preprocessor_source_uri=_pick(
                record_preprocessor_source_uri, existing_app.get("RecordPreprocessorSourceUri")
            ),
            post_analytics_processor_source_uri=_pick(
                post_analytics_processor_source_uri,
                existing_app.get("PostAnalyticsProcessorSourceUri"),
            ),
            statistics_s3_uri=_pick(
                statistics_s3_uri, existing_baseline.get("StatisticsResource", {}).get("S3Uri")
            ),
            constraints_s3_uri=_pick(
                constraints_s3_uri, existing_baseline.get("ConstraintsResource", {}).get("S3Uri")
            ),
            max_runtime_in_seconds=_pick(
                max_runtime_in_seconds,
                existing_definition.get("StoppingCondition", {}).get("MaxRuntimeInSeconds"),
            ),
            environment=_pick(environment, existing_definition.get("Environment")),
            network_config=_pick(network_config, existing_definition.get("NetworkConfig")),
            role_arn=_pick(role_arn, existing_definition["RoleArn"]),
        )
        schedule_config = {"MonitoringJobDefinition": job_definition}
        schedule_expression = _pick(
            schedule_expression,
            existing_config.get("ScheduleConfig", {}).get("ScheduleExpression"),
        )
        if schedule_expression is not None:
            schedule_config["ScheduleConfig"] = {"ScheduleExpression": schedule_expression}

        logger.info("Updating monitoring schedule with name: %s .", monitoring_schedule_name)
        self.sagemaker_client.update_monitoring_schedule(
            MonitoringScheduleName=monitoring_schedule_name,
            MonitoringScheduleConfig=schedule_config,
        )

    def start_monitoring_schedule(self, monitoring_schedule_name):
        print(f"Starting Monitoring Schedule with name: {monitoring_schedule_name}")
        self.sagemaker_client.start_monitoring_schedule(
            MonitoringScheduleName=monitoring_schedule_name
        )

    def stop_monitoring_schedule(self, monitoring_schedule_name):
        print(f"Stopping Monitoring Schedule with name: {monitoring_schedule_name}")
        self.sagemaker_client.stop_monitoring_schedule(
            MonitoringScheduleName=monitoring_schedule_name
        )

    def delete_monitoring_schedule(self, monitoring_schedule_name):
        print(f"Deleting Monitoring Schedule with name: {monitoring_schedule_name}")
        self.sagemaker_client.delete_monitoring_schedule(
            MonitoringScheduleName=monitoring_schedule_name
        )

    def describe_monitoring_schedule(self, monitoring_schedule_name):
        return self.sagemaker_client.describe_monitoring_schedule(
            MonitoringScheduleName=monitoring_schedule_name
        )

    def list_monitoring_executions(
        self,
        monitoring_schedule_name,
        sort_by="ScheduledTime",
        sort_order="Descending",
        max_results=100,
    ):
        return self.sagemaker_client.list_monitoring_executions(
            MonitoringScheduleName=monitoring_schedule_name,
            SortBy=sort_by,
            SortOrder=sort_order,
            MaxResults=max_results,
        )

    def list_monitoring_schedules(
        self, endpoint_name=None, sort_by="CreationTime", sort_order="Descending", max_results=100
    ):
        kwargs = {"SortBy": sort_by, "SortOrder": sort_order, "MaxResults": max_results}
        if endpoint_name is not None:
            kwargs["EndpointName"] = endpoint_name
        return self.sagemaker_client.list_monitoring_schedules(**kwargs)

    # --------------------------------------------------------------- automl

    def auto_ml(
        self,
        input_config,
        output_config,
        auto_ml_job_config,
        role,
        job_name,
        problem_type=None,
        job_objective=None,
        generate_candidate_definitions_only=False,
        tags=None,
    ):
        """Create an AutoML job."""
        auto_ml_job_request = {
            "AutoMLJobName": job_name,
            "InputDataConfig": input_config,
            "OutputDataConfig": output_config,
            "AutoMLJobConfig": auto_ml_job_config,
            "RoleArn": role,
            "GenerateCandidateDefinitionsOnly": generate_candidate_definitions_only,
        }
        if job_objective is not None:
            auto_ml_job_request["AutoMLJobObjective"] = job_objective
        if problem_type is not None:
            auto_ml_job_request["ProblemType"] = problem_type
        if tags is not None:
            auto_ml_job_request["Tags"] = tags

        logger.info("Creating auto-ml-job with name: %s", job_name)
        logger.debug("auto ml request: %s", json.dumps(auto_ml_job_request, indent=4, default=str))
        self.sagemaker_client.create_auto_ml_job(**auto_ml_job_request)

    def describe_auto_ml_job(self, job_name):
        return self.sagemaker_client.describe_auto_ml_job(AutoMLJobName=job_name)

    def list_candidates(
        self,
        job_name,
        status_equals=None,
        candidate_name=None,
        candidate_arn=None,
        sort_order=None,
        sort_by=None,
        max_results=None,
    ):
        """List candidates of an AutoML job, as returned by ``ListCandidatesForAutoMLJob``."""
        list_candidates_args = {"AutoMLJobName": job_name}
        if status_equals:
            list_candidates_args["StatusEquals"] = status_equals
        if candidate_name:
            list_candidates_args["CandidateNameEquals"] = candidate_name
        if candidate_arn:
            list_candidates_args["CandidateArnEquals"] = candidate_arn
        if sort_order:
            list_candidates_args["SortOrder"] = sort_order
        if sort_by:
            list_candidates_args["SortBy"] = sort_by
        if max_results:
            list_candidates_args["MaxResults"] = max_results
        return self.sagemaker_client.list_candidates_for_auto_ml_job(**list_candidates_args)

    def wait_for_auto_ml_job(self, job, poll=None):
        desc = _wait_until(
            lambda: _auto_ml_job_status(self.sagemaker_client, job), poll or self.poll_interval
        )
        _check_job_status(job, desc, "AutoMLJobStatus")
        return desc

    def logs_for_auto_ml_job(self, job_name, wait=False, poll=10):
        """Print the secondary status of an AutoML job until it completes.

        AutoML jobs have no CloudWatch streams of their own; progress is
        reported through ``AutoMLJobSecondaryStatus``.
        """
        description = self.describe_auto_ml_job(job_name)
        last_secondary = None
        while True:
            secondary = description.get("AutoMLJobSecondaryStatus")
            if secondary != last_secondary:
                print()
                print(f"{description.get('LastModifiedTime', '')} {secondary}", end="")
                last_secondary = secondary
            else:
                print(".", end="")
            sys.stdout.flush()
            if not wait or description["AutoMLJobStatus"] in sm_logs.TERMINAL_STATUSES:
                break
            time.sleep(poll)
            description = self.describe_auto_ml_job(job_name)
        print()
        if wait:
            _check_job_status(job_name, description, "AutoMLJobStatus")
        return description


# ---------------------------------------------------------------- helpers


def get_execution_role(sagemaker_session=None):
    """Resolve the IAM role SageMaker jobs should run as.

    Order: ``$SAGEMAKER_EXECUTION_ROLE_ARN``, the caller's own identity if it
    is a role, then the first ``AmazonSageMaker-ExecutionRole*`` role in IAM.

    Raises:
        ValidationError: If none of these yields a role.
    """
    env_role = os.environ.get("SAGEMAKER_EXECUTION_ROLE_ARN")
    if env_role:
        logger.info("Using IAM role from env: %s", env_role)
        return env_role

    sagemaker_session = sagemaker_session or Session()
    if sagemaker_session.config.role:
        return sagemaker_session.config.role

    arn = sagemaker_session.get_caller_identity_arn()
    if ":role/" in arn:
        return arn

    iam = sagemaker_session.boto_session.client("iam")
    paginator = iam.get_paginator("list_roles")
    for page in paginator.paginate():
        for role in page.get("Roles", []):
            if role.get("RoleName", "").startswith("AmazonSageMaker-ExecutionRole"):
                logger.info("Using discovered IAM role: %s", role["Arn"])
                return role["Arn"]

    raise ValidationError(
        f"The current AWS identity is not a role: {arn}, therefore it cannot be used as a "
        "SageMaker execution role"
    )


def container_def(image_uri, model_data_url=None, env=None, container_mode=None, image_config=None):
    """Build a container definition for the CreateModel API."""
    c_def = {"Image": image_uri, "Environment": env or {}}
    if model_data_url:
        c_def["ModelDataUrl"] = model_data_url
    if container_mode:
        c_def["Mode"] = container_mode
    if image_config:
        c_def["ImageConfig"] = image_config
    return c_def


def pipeline_container_def(models, instance_type=None):
    """Container definitions for an inference pipeline, in invocation order."""
    return [model.prepare_container_def(instance_type) for model in models]


def production_variant(
    model_name,
    instance_type,
    initial_instance_count=1,
    variant_name="AllTraffic",
    initial_weight=1,
    accelerator_type=None,
):
    """Build one entry of the ``ProductionVariants`` list of CreateEndpointConfig."""
    variant = {
        "ModelName": model_name,
        "InstanceType": instance_type,
        "InitialInstanceCount": initial_instance_count,
        "VariantName": variant_name,
        "InitialVariantWeight": initial_weight,
    }
    if accelerator_type:
        variant["AcceleratorType"] = accelerator_type
    return variant


def _monitoring_job_definition(
    monitoring_inputs,
    monitoring_output_config,
    instance_count,
    instance_type,
    volume_size_in_gb,
    volume_kms_key,
    image_uri,
    entrypoint,
    arguments,
    record_preprocessor_source_uri,
    post_analytics_processor_source_uri,
    statistics_s3_uri,
    constraints_s3_uri,
    max_runtime_in_seconds,
    environment,
    network_config,
    role_arn,
):
    cluster_config = {
        "InstanceCount": instance_count,
        "InstanceType": instance_type,
        "VolumeSizeInGB": volume_size_in_gb,
    }
    if volume_kms_key is not None:
        cluster_config["VolumeKmsKeyId"] = volume_kms_key

    app_spec: dict[str, Any] = {"ImageUri": image_uri}
    if entrypoint is not None:
        app_spec["ContainerEntrypoint"] = entrypoint
    if arguments is not None:
        app_spec["ContainerArguments"] = arguments
    if record_preprocessor_source_uri is not None:
        app_spec["RecordPreprocessorSourceUri"] = record_preprocessor_source_uri
    if post_analytics_processor_source_uri is not None:
        app_spec["PostAnalyticsProcessorSourceUri"] = post_analytics_processor_source_uri

    definition: dict[str, Any] = {
        "MonitoringInputs": monitoring_inputs,
        "MonitoringResources": {"ClusterConfig": cluster_config},
        "MonitoringAppSpecification": app_spec,
        "RoleArn": role_arn,
    }
    if monitoring_output_config is not None:
        definition["MonitoringOutputConfig"] = monitoring_output_config
    if statistics_s3_uri is not None or constraints_s3_uri is not None:
        baseline: dict[str, Any] = {}
        if statistics_s3_uri is not None:
            baseline["StatisticsResource"] = {"S3Uri": statistics_s3_uri}
        if constraints_s3_uri is not None:
            baseline["ConstraintsResource"] = {"S3Uri": constraints_s3_uri}
        definition["BaselineConfig"] = baseline
    if max_runtime_in_seconds is not None:
        definition["StoppingCondition"] = {"MaxRuntimeInSeconds": max_runtime_in_seconds}
    if environment is not None:
        definition["Environment"] = environment
    if network_config is not None:
        definition["NetworkConfig"] = network_config
    return definition


def _deployment_entity_exists(describe_fn: Callable[[], Any]) -> bool:
    """Whether ``describe_fn`` finds the entity; a 'Could not find' ValidationException means no."""
    try:
        describe_fn()
        return True
    except ClientError as ce:
        error = ce.response["Error"]
        if not (error["Code"] == "ValidationException" and "Could not find" in error["Message"]):
            raise
        return False


def _train_done(sagemaker_client, job_name, last_desc):
    in_progress_statuses = ["InProgress", "Created"]

    desc = sagemaker_client.describe_training_job(TrainingJobName=job_name)
    status = desc["TrainingJobStatus"]

    if secondary_training_status_changed(desc, last_desc):
        print()
        print(secondary_training_status_message(desc, last_desc), end="")
    else:
        print(".", end="")
    sys.stdout.flush()

    if status in in_progress_statuses:
        return desc, False

    print()
    return desc, True


def _job_status(describe, status_key, in_progress_statuses=("InProgress", "Stopping")):
    desc = describe()
    status = desc[status_key]
    print(_STATUS_CODES.get(status, "?"), end="")
    sys.stdout.flush()
    if status in in_progress_statuses:
        return None
    print("")
    return desc


def _processing_job_status(sagemaker_client, job_name):
    return _job_status(
        lambda: sagemaker_client.describe_processing_job(ProcessingJobName=job_name),
        "ProcessingJobStatus",
        ("InProgress", "Stopping", "Starting"),
    )


def _transform_job_status(sagemaker_client, job_name):
    return _job_status(
        lambda: sagemaker_client.describe_transform_job(TransformJobName=job_name),
        "TransformJobStatus",
    )


def _auto_ml_job_status(sagemaker_client, job_name):
    return _job_status(
        lambda: sagemaker_client.describe_auto_ml_job(AutoMLJobName=job_name),
        "AutoMLJobStatus",
    )


def _create_model_package_status(sagemaker_client, model_package_name):
    return _job_status(
        lambda: sagemaker_client.describe_model_package(ModelPackageName=model_package_name),
        "ModelPackageStatus",
        ("InProgress", "Pending"),
    )


def _deploy_done(sagemaker_client, endpoint_name):
    hosting_status_codes = {
        "OutOfService": "x",
        "Creating": "-",
        "Updating": "-",
        "InService": "!",
        "RollingBack": "<",
        "Deleting": "o",
        "Failed": "*",
    }
    in_progress_statuses = ["Creating", "Updating"]

    desc = sagemaker_client.describe_endpoint(EndpointName=endpoint_name)
    status = desc["EndpointStatus"]

    print(hosting_status_codes.get(status, "?"), end="")
    sys.stdout.flush()

    return None if status in in_progress_statuses else desc


def _is_access_denied_during_grace(err: ClientError, elapsed_time: float) -> bool:
    if err.response["Error"]["Code"] == "AccessDeniedException" and elapsed_time <= ACCESS_DENIED_GRACE:
        logger.warning(
            "Received AccessDeniedException. This could mean the IAM role does not "
            "have the resource permissions, in which case please add resource access "
            "and retry. For cases where the role has tag based resource policy, "
            "continuing to wait for tag propagation.."
        )
        return True
    return False


def _wait_until_training_done(callable_fn, desc, poll=5):
    """Call ``callable_fn(last_desc)`` every ``poll`` seconds until it reports done."""
    elapsed_time = 0
    finished = False
    job_desc = desc
    while not finished:
        try:
            elapsed_time += poll
            time.sleep(poll)
            job_desc, finished = callable_fn(job_desc)
        except ClientError as err:
            if _is_access_denied_during_grace(err, elapsed_time):
                continue
            raise
    return job_desc


def _wait_until(callable_fn, poll=5):
    """Call ``callable_fn`` every ``poll`` seconds until it returns something other than None."""
    elapsed_time = 0
    result = None
    while result is None:
        try:
            elapsed_time += poll
            time.sleep(poll)
            result = callable_fn()
        except ClientError as err:
            if _is_access_denied_during_grace(err, elapsed_time):
                continue
            raise
    return result


def _check_job_status(job, desc, status_key_name):
    """Raise unless the job ended Completed; a Stopped job only warns.

    Raises:
        CapacityError: If the job failed for lack of capacity.
        UnexpectedStatusError: If the job failed for any other reason.
    """
    status = desc[status_key_name]
    if status == "Stopped":
        logger.warning(
            "Job ended with status 'Stopped' rather than 'Completed'. "
            "This could mean the job timed out or stopped early for some other reason: "
            "Consider checking whether it completed as you expect."
        )
        return
    if status == "Completed":
        return

    reason = desc.get("FailureReason", "(No reason provided)")
    job_type = status_key_name.replace("JobStatus", " job")
    message = f"Error for {job_type} {job}: {status}. Reason: {reason}"
    if "CapacityError" in str(reason):
        raise CapacityError(message, allowed_statuses=["Completed", "Stopped"], actual_status=status)
    raise UnexpectedStatusError(message, allowed_statuses=["Completed", "Stopped"], actual_status=status)
