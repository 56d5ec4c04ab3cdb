"""Processing jobs: run a container over S3 inputs and collect its outputs."""

from __future__ import annotations

import logging
import os
from urllib.parse import urlparse

from . import image_uris
from .errors import ValidationError
from .job import _Job
from .s3 import S3Uploader, s3_path_join
from .session import Session
from .utils import base_name_from_image, name_from_base

logger = logging.getLogger(__name__)

_CODE_CONTAINER_BASE_PATH = "/opt/ml/processing/input/"
_CODE_CONTAINER_INPUT_NAME = "code"


class Processor:
    """Handle Amazon SageMaker processing tasks."""

    def __init__(
        self,
        role,
        image_uri,
        instance_count,
        instance_type,
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
        """Initialize a Processor.

        Args:
            role (str): Execution role.
            image_uri (str): URI of the processing image.
            instance_count (int): Number of processing instances.
            instance_type (str): Processing instance type.
            entrypoint (list[str]): Container entrypoint.
            volume_size_in_gb (int): Storage volume per instance.
            volume_kms_key (str): KMS key for the volumes.
            output_kms_key (str): KMS key for the outputs.
            max_runtime_in_seconds (int): Job time limit.
            base_job_name (str): Prefix for generated job names.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            env (dict): Environment variables for the container.
            tags (list[dict]): Tags for the job.
            network_config (NetworkConfig): Isolation, encryption and VPC settings.
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

        self.jobs = []
        self.latest_job = None
        self._current_job_name = None
        self.arguments = None

    def run(
        self,
        inputs=None,
        outputs=None,
        arguments=None,
        wait=True,
        logs=True,
        job_name=None,
        experiment_config=None,
    ):
        """Run a processing job.

        Args:
            inputs (list[ProcessingInput]): Data sources for the job.
            outputs (list[ProcessingOutput]): Where the job's outputs go.
            arguments (list[str]): Arguments for the container.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs. Only meaningful with ``wait``.
            job_name (str): Job name. Generated if omitted.
            experiment_config (dict): Experiment association.

        Raises:
            ValidationError: If ``logs`` is set without ``wait``.
        """
        if logs and not wait:
            raise ValidationError(
                "Logs can only be shown if wait is set to True. "
                "Please either set wait to True or set logs to False."
            )

        normalized_inputs, normalized_outputs = self._normalize_args(
            job_name=job_name, arguments=arguments, inputs=inputs, outputs=outputs
        )

        self.latest_job = ProcessingJob.start_new(
            processor=self,
            inputs=normalized_inputs,
            outputs=normalized_outputs,
            experiment_config=experiment_config,
        )
        self.jobs.append(self.latest_job)
        if wait:
            self.latest_job.wait(logs=logs)

    def _extend_processing_args(self, inputs, outputs, **kwargs):
        """Hook for subclasses that add inputs or outputs of their own."""
        return inputs, outputs

    def _normalize_args(self, job_name=None, arguments=None, inputs=None, outputs=None, code=None):
        if code and not isinstance(self, ScriptProcessor):
            raise ValidationError("code argument is only supported by ScriptProcessor")

        self._current_job_name = self._generate_current_job_name(job_name=job_name)

        inputs_with_source_dir, outputs = self._extend_processing_args(
            inputs, outputs, code=code
        )
        normalized_inputs = self._normalize_inputs(inputs_with_source_dir)
        normalized_outputs = self._normalize_outputs(outputs)
        self.arguments = arguments
        return normalized_inputs, normalized_outputs

    def _generate_current_job_name(self, job_name=None):
        if job_name is not None:
            return job_name
        base_name = self.base_job_name or base_name_from_image(self.image_uri)
        return name_from_base(base_name)

    def _normalize_inputs(self, inputs=None):
        """Name unnamed inputs and upload local sources to S3."""
        normalized_inputs = []
        for count, file_input in enumerate(inputs or [], 1):
            if not isinstance(file_input, ProcessingInput):
                raise TypeError("Your inputs must be provided as ProcessingInput objects.")
            if file_input.input_name is None:
                file_input.input_name = f"input-{count}"

            parse_result = urlparse(file_input.source)
            if parse_result.scheme != "s3":
                desired_s3_uri = s3_path_join(
                    "s3://",
                    self.sagemaker_session.default_bucket(),
                    self._current_job_name,
                    "input",
                    file_input.input_name,
                )
                s3_uri = S3Uploader.upload(
                    local_path=file_input.source,
                    desired_s3_uri=desired_s3_uri,
                    sagemaker_session=self.sagemaker_session,
                )
                file_input.source = s3_uri
            normalized_inputs.append(file_input)
        return normalized_inputs

    def _normalize_outputs(self, outputs=None):
        """Name unnamed outputs and give them a default S3 destination."""
        normalized_outputs = []
        for count, output in enumerate(outputs or [], 1):
            if not isinstance(output, ProcessingOutput):
                raise TypeError("Your outputs must be provided as ProcessingOutput objects.")
            if output.output_name is None:
                output.output_name = f"output-{count}"

            if output.destination is None or urlparse(output.destination).scheme != "s3":
                output.destination = s3_path_join(
                    "s3://",
                    self.sagemaker_session.default_bucket(),
                    self._current_job_name,
                    "output",
                    output.output_name,
                )
            normalized_outputs.append(output)
        return normalized_outputs


class ScriptProcessor(Processor):
    """A Processor that runs a user script with a given command."""

    def __init__(
        self,
        role,
        image_uri,
        command,
        instance_count,
        instance_type,
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
        """Initialize a ScriptProcessor.

        Args:
            command (list[str]): Command that runs the script, e.g. ``["python3"]``.
            Other arguments are as for :class:`Processor`.
        """
        self._CODE_CONTAINER_BASE_PATH = _CODE_CONTAINER_BASE_PATH
        self._CODE_CONTAINER_INPUT_NAME = _CODE_CONTAINER_INPUT_NAME
        self.command = command

        super().__init__(
            role=role,
            image_uri=image_uri,
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            output_kms_key=output_kms_key,
            max_runtime_in_seconds=max_runtime_in_seconds,
            base_job_name=base_job_name,
            sagemaker_session=sagemaker_session,
            env=env,
            tags=tags,
            network_config=network_config,
        )

    def run(
        self,
        code,
        inputs=None,
        outputs=None,
        arguments=None,
        wait=True,
        logs=True,
        job_name=None,
        experiment_config=None,
    ):
        """Run a processing job that executes ``code``.

        Args:
            code (str): Local path or S3 URI of the script.
            Other arguments are as for :meth:`Processor.run`.
        """
        if logs and not wait:
            raise ValidationError(
                "Logs can only be shown if wait is set to True. "
                "Please either set wait to True or set logs to False."
            )

        normalized_inputs, normalized_outputs = self._normalize_args(
            job_name=job_name, arguments=arguments, inputs=inputs, outputs=outputs, code=code
        )

        self.latest_job = ProcessingJob.start_new(
            processor=self,
            inputs=normalized_inputs,
            outputs=normalized_outputs,
            experiment_config=experiment_config,
        )
        self.jobs.append(self.latest_job)
        if wait:
            self.latest_job.wait(logs=logs)

    def _extend_processing_args(self, inputs, outputs, **kwargs):
        code = kwargs.get("code")
        if code is None:
            return inputs, outputs
        customer_code_s3_uri = self._handle_user_code_url(code)
        customer_script_name = os.path.basename(urlparse(code).path)
        self._set_entrypoint(self.command, customer_script_name)

        code_input = ProcessingInput(
            source=customer_code_s3_uri,
            destination=f"{self._CODE_CONTAINER_BASE_PATH}{self._CODE_CONTAINER_INPUT_NAME}",
            input_name=self._CODE_CONTAINER_INPUT_NAME,
        )
        return (inputs or []) + [code_input], outputs

    def _handle_user_code_url(self, code):
        """Return an S3 URI for ``code``, uploading it when it is a local file."""
        code_url = urlparse(code)
        if code_url.scheme == "s3":
            return code
        if code_url.scheme not in ("", "file"):
            raise ValidationError(
                f"code {code} url scheme {code_url.scheme} is not recognized. "
                "Please pass a file path or S3 url"
            )
        if not os.path.exists(code_url.path):
            raise ValidationError(f"code {code} wasn't found. Please make sure that the file exists.")
        if not os.path.isfile(code_url.path):
            raise ValidationError(f"code {code} must be a file, not a directory.")

        desired_s3_uri = s3_path_join(
            "s3://",
            self.sagemaker_session.default_bucket(),
            self._current_job_name,
            "input",
            self._CODE_CONTAINER_INPUT_NAME,
        )
        return S3Uploader.upload(
            local_path=code_url.path,
            desired_s3_uri=desired_s3_uri,
            sagemaker_session=self.sagemaker_session,
        )

    def _set_entrypoint(self, command, user_script_name):
        user_script_location = (
            f"{self._CODE_CONTAINER_BASE_PATH}{self._CODE_CONTAINER_INPUT_NAME}/{user_script_name}"
        )
        self.entrypoint = command + [user_script_location]


class SKLearnProcessor(ScriptProcessor):
    """A ScriptProcessor running on the SageMaker scikit-learn image."""

    def __init__(
        self,
        framework_version,
        role,
        instance_type,
        instance_count,
        command=None,
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
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            "sklearn",
            sagemaker_session.boto_region_name,
            version=framework_version,
            py_version="py3",
            instance_type=instance_type,
        )
        super().__init__(
            role=role,
            image_uri=image_uri,
            command=command or ["python3"],
            instance_count=instance_count,
            instance_type=instance_type,
            volume_size_in_gb=volume_size_in_gb,
            volume_kms_key=volume_kms_key,
            output_kms_key=output_kms_key,
            max_runtime_in_seconds=max_runtime_in_seconds,
            base_job_name=base_job_name,
            sagemaker_session=sagemaker_session,
            env=env,
            tags=tags,
            network_config=network_config,
        )


class ProcessingJob(_Job):
    """A processing job started by a Processor, or looked up by name."""

    def __init__(self, sagemaker_session, job_name, inputs, outputs, output_kms_key=None):
        self.inputs = inputs
        self.outputs = outputs
        self.output_kms_key = output_kms_key
        super().__init__(sagemaker_session=sagemaker_session, job_name=job_name)

    @classmethod
    def start_new(cls, processor, inputs, outputs, experiment_config=None):
        """Create a processing job from the processor's settings."""
        process_args = cls._get_process_args(processor, inputs, outputs, experiment_config)
        processor.sagemaker_session.process(**process_args)
        return cls(
            processor.sagemaker_session,
            processor._current_job_name,
            inputs,
            outputs,
            processor.output_kms_key,
        )

    @classmethod
    def _get_process_args(cls, processor, inputs, outputs, experiment_config):
        process_request_args = {}

        process_request_args["inputs"] = [i._to_request_dict() for i in inputs]

        output_config = {"Outputs": [o._to_request_dict() for o in outputs]}
        if processor.output_kms_key is not None:
            output_config["KmsKeyId"] = processor.output_kms_key
        process_request_args["output_config"] = output_config

        process_request_args["experiment_config"] = experiment_config
        process_request_args["job_name"] = processor._current_job_name

        process_request_args["resources"] = {
            "ClusterConfig": {
                "InstanceType": processor.instance_type,
                "InstanceCount": processor.instance_count,
                "VolumeSizeInGB": processor.volume_size_in_gb,
            }
        }
        if processor.volume_kms_key is not None:
            process_request_args["resources"]["ClusterConfig"][
                "VolumeKmsKeyId"
            ] = processor.volume_kms_key

        if processor.max_runtime_in_seconds is not None:
            process_request_args["stopping_condition"] = {
                "MaxRuntimeInSeconds": processor.max_runtime_in_seconds
            }
        else:
            process_request_args["stopping_condition"] = None

        process_request_args["app_specification"] = {"ImageUri": processor.image_uri}
        if processor.arguments is not None:
            process_request_args["app_specification"]["ContainerArguments"] = processor.arguments
        if processor.entrypoint is not None:
            process_request_args["app_specification"]["ContainerEntrypoint"] = processor.entrypoint

        process_request_args["environment"] = processor.env

        if processor.network_config is not None:
            process_request_args["network_config"] = processor.network_config._to_request_dict()
        else:
            process_request_args["network_config"] = None

        process_request_args["role_arn"] = processor.sagemaker_session.expand_role(processor.role)
        process_request_args["tags"] = processor.tags
        return process_request_args

    @classmethod
    def from_processing_name(cls, sagemaker_session, processing_job_name):
        """Build a ProcessingJob from the description of an existing job."""
        job_desc = sagemaker_session.describe_processing_job(job_name=processing_job_name)

        inputs = None
        if job_desc.get("ProcessingInputs"):
            inputs = [
                ProcessingInput(
                    source=processing_input["S3Input"]["S3Uri"],
                    destination=processing_input["S3Input"]["LocalPath"],
                    input_name=processing_input["InputName"],
                    s3_data_type=processing_input["S3Input"].get("S3DataType"),
                    s3_input_mode=processing_input["S3Input"].get("S3InputMode"),
                    s3_data_distribution_type=processing_input["S3Input"].get(
                        "S3DataDistributionType"
                    ),
                    s3_compression_type=processing_input["S3Input"].get("S3CompressionType"),
                )
                for processing_input in job_desc["ProcessingInputs"]
            ]

        outputs = None
        output_kms_key = None
        output_config = job_desc.get("ProcessingOutputConfig")
        if output_config:
            outputs = [
                ProcessingOutput(
                    source=processing_output["S3Output"]["LocalPath"],
                    destination=processing_output["S3Output"]["S3Uri"],
                    output_name=processing_output["OutputName"],
                    s3_upload_mode=processing_output["S3Output"].get("S3UploadMode", "EndOfJob"),
                )
                for processing_output in output_config["Outputs"]
            ]
            output_kms_key = output_config.get("KmsKeyId")

        return cls(
            sagemaker_session=sagemaker_session,
            job_name=processing_job_name,
            inputs=inputs,
            outputs=outputs,
            output_kms_key=output_kms_key,
        )

    @classmethod
    def from_processing_arn(cls, sagemaker_session, processing_job_arn):
        """Build a ProcessingJob from a job ARN, ``arn:...:processing-job/<name>``."""
        processing_job_name = processing_job_arn.split(":")[5][
            len("processing-job/") :
        ]
        return cls.from_processing_name(
            sagemaker_session=sagemaker_session, processing_job_name=processing_job_name
        )

    def wait(self, logs=True):
        if logs:
            self.sagemaker_session.logs_for_processing_job(self.job_name, wait=True)
        else:
            self.sagemaker_session.wait_for_processing_job(self.job_name)

    def describe(self):
        return self.sagemaker_session.describe_processing_job(self.job_name)

    def stop(self):
        self.sagemaker_session.stop_processing_job(self.name)


class ProcessingInput:
    """An S3 input mounted into the processing container."""

    def __init__(
        self,
        source,
        destination,
        input_name=None,
        s3_data_type="S3Prefix",
        s3_input_mode="File",
        s3_data_distribution_type="FullyReplicated",
        s3_compression_type="None",
    ):
        """Initialize a ProcessingInput.

        Args:
            source (str): S3 URI or local path of the data.
            destination (str): Path inside the container.
            input_name (str): Channel name. ``input-{i}`` if omitted.
            s3_data_type (str): ``S3Prefix`` or ``ManifestFile``.
            s3_input_mode (str): ``File`` or ``Pipe``.
            s3_data_distribution_type (str): ``FullyReplicated`` or ``ShardedByS3Key``.
            s3_compression_type (str): ``None`` or ``Gzip``.
        """
        self.source = source
        self.destination = destination
        self.input_name = input_name
        self.s3_data_type = s3_data_type
        self.s3_input_mode = s3_input_mode
        self.s3_data_distribution_type = s3_data_distribution_type
        self.s3_compression_type = s3_compression_type

    def _to_request_dict(self):
        s3_input_request = {
            "InputName": self.input_name,
            "S3Input": {
                "S3Uri": self.source,
                "LocalPath": self.destination,
                "S3DataType": self.s3_data_type,
                "S3InputMode": self.s3_input_mode,
                "S3DataDistributionType": self.s3_data_distribution_type,
            },
        }
        if self.s3_compression_type is not None:
            s3_input_request["S3Input"]["S3CompressionType"] = self.s3_compression_type
        return s3_input_request


class ProcessingOutput:
    """A container path whose contents are uploaded to S3."""

    def __init__(self, source, destination=None, output_name=None, s3_upload_mode="EndOfJob"):
        self.source = source
        self.destination = destination
        self.output_name = output_name
        self.s3_upload_mode = s3_upload_mode

    def _to_request_dict(self):
        return {
            "OutputName": self.output_name,
            "S3Output": {
                "S3Uri": self.destination,
                "LocalPath": self.source,
                "S3UploadMode": self.s3_upload_mode,
            },
        }


class NetworkConfig:
    """Network isolation, traffic encryption and VPC settings for a job."""

    def __init__(
        self,
        enable_network_isolation=False,
        security_group_ids=None,
        subnets=None,
        encrypt_inter_container_traffic=None,
    ):
        self.enable_network_isolation = enable_network_isolation
        self.security_group_ids = security_group_ids
        self.subnets = subnets
        self.encrypt_inter_container_traffic = encrypt_inter_container_traffic

    def _to_request_dict(self):
        network_config_request = {"EnableNetworkIsolation": self.enable_network_isolation}

        if self.encrypt_inter_container_traffic is not None:
            network_config_request[
                "EnableInterContainerTrafficEncryption"
            ] = self.encrypt_inter_container_traffic

        if self.security_group_ids is not None or self.subnets is not None:
            network_config_request["VpcConfig"] = {
                "SecurityGroupIds": self.security_group_ids,
                "Subnets": self.subnets,
            }
        return network_config_request
