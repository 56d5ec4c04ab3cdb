"""Batch transform jobs over a created SageMaker model."""

from __future__ import annotations

import logging

from .errors import ValidationError
from .inputs import TransformInput
from .job import _Job
from .session import Session
from .utils import base_name_from_image, name_from_base

logger = logging.getLogger(__name__)


class Transformer:
    """Run batch transform jobs with an existing model."""

    def __init__(
        self,
        model_name,
        instance_count,
        instance_type,
        strategy=None,
        assemble_with=None,
        output_path=None,
        output_kms_key=None,
        accept=None,
        max_concurrent_transforms=None,
        max_payload=None,
        tags=None,
        env=None,
        base_transform_job_name=None,
        sagemaker_session=None,
        volume_kms_key=None,
    ):
        """Initialize a Transformer.

        Args:
            model_name (str): Name of the SageMaker model.
            instance_count (int): Number of instances.
            instance_type (str): Instance type, e.g. ``ml.m5.xlarge``.
            strategy (str): ``MultiRecord`` or ``SingleRecord``.
            assemble_with (str): How output records are joined, ``Line`` or ``None``.
            output_path (str): S3 prefix for results. Defaults to
                ``s3://{default_bucket}/{job_name}``.
            output_kms_key (str): KMS key for the results.
            accept (str): MIME type of the output.
            max_concurrent_transforms (int): Parallel requests per instance.
            max_payload (int): Maximum request payload, in MB.
            tags (list[dict]): Tags for the job.
            env (dict): Environment variables for the container.
            base_transform_job_name (str): Prefix for generated job names.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            volume_kms_key (str): KMS key for the instance volumes.
        """
        self.model_name = model_name
        self.strategy = strategy
        self.env = env

        self.output_path = output_path
        self.output_kms_key = output_kms_key
        self.accept = accept
        self.assemble_with = assemble_with

        self.instance_count = instance_count
        self.instance_type = instance_type
        self.volume_kms_key = volume_kms_key

        self.max_concurrent_transforms = max_concurrent_transforms
        self.max_payload = max_payload
        self.tags = tags

        self.base_transform_job_name = base_transform_job_name
        self._current_job_name = None
        self.latest_transform_job = None
        self._reset_output_path = False

        self.sagemaker_session = sagemaker_session or Session()

    def transform(
        self,
        data,
        data_type="S3Prefix",
        content_type=None,
        compression_type=None,
        split_type=None,
        job_name=None,
        input_filter=None,
        output_filter=None,
        join_source=None,
        wait=True,
        logs=True,
    ):
        """Start a transform job over ``data``.

        Args:
            data (str): S3 URI of the input.
            data_type (str): ``S3Prefix`` or ``ManifestFile``.
            content_type (str): MIME type of the input.
            compression_type (str): ``Gzip`` or None.
            split_type (str): ``Line``, ``RecordIO``, ``TFRecord`` or None.
            job_name (str): Job name. Generated if omitted.
            input_filter (str): JSONPath selecting the input sent to the model.
            output_filter (str): JSONPath selecting the output that is kept.
            join_source (str): ``Input`` to join input records to the results.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs while waiting.

        Raises:
            ValidationError: If ``data`` is not an S3 URI.
        """
        if not data.startswith("s3://"):
            raise ValidationError(f"Invalid S3 URI: {data}")

        if job_name is not None:
            self._current_job_name = job_name
        else:
            base_name = self.base_transform_job_name
            if base_name is None:
                base_name = self._retrieve_base_name()
            self._current_job_name = name_from_base(base_name)

        if self.output_path is None or self._reset_output_path:
            self.output_path = "s3://{}/{}".format(
                self.sagemaker_session.default_bucket(), self._current_job_name
            )
            self._reset_output_path = True

        self.latest_transform_job = _TransformJob.start_new(
            self,
            data,
            data_type,
            content_type,
            compression_type,
            split_type,
            input_filter,
            output_filter,
            join_source,
        )

        if wait:
            self.latest_transform_job.wait(logs=logs)

    def wait(self, logs=True):
        self._ensure_last_transform_job()
        self.latest_transform_job.wait(logs=logs)

    def stop_transform_job(self, wait=True):
        """Stop the latest transform job."""
        self._ensure_last_transform_job()
        self.latest_transform_job.stop()
        if wait:
            self.latest_transform_job.wait()

    def _ensure_last_transform_job(self):
        if self.latest_transform_job is None:
            raise ValidationError("No transform job available")

    def _retrieve_base_name(self):
        image_uri = self._retrieve_image_uri()
        if image_uri:
            return base_name_from_image(image_uri)
        return self.model_name

    def _retrieve_image_uri(self):
        model_desc = self.sagemaker_session.describe_model(self.model_name)
        primary_container = model_desc.get("PrimaryContainer")
        if primary_container:
            return primary_container.get("Image")
        containers = model_desc.get("Containers")
        if containers:
            return containers[0].get("Image")
        return None

    @classmethod
    def attach(cls, transform_job_name, sagemaker_session=None):
        """Build a Transformer from an existing transform job."""
        sagemaker_session = sagemaker_session or Session()
        job_details = sagemaker_session.describe_transform_job(transform_job_name)
        init_params = cls._prepare_init_params_from_job_description(job_details)
        transformer = cls(sagemaker_session=sagemaker_session, **init_params)
        transformer.latest_transform_job = _TransformJob(
            sagemaker_session=sagemaker_session, job_name=init_params["base_transform_job_name"]
        )
        return transformer

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details):
        init_params = {
            "model_name": job_details["ModelName"],
            "instance_count": job_details["TransformResources"]["InstanceCount"],
            "instance_type": job_details["TransformResources"]["InstanceType"],
            "volume_kms_key": job_details["TransformResources"].get("VolumeKmsKeyId"),
            "strategy": job_details.get("BatchStrategy"),
            "assemble_with": job_details["TransformOutput"].get("AssembleWith"),
            "output_path": job_details["TransformOutput"]["S3OutputPath"],
            "output_kms_key": job_details["TransformOutput"].get("KmsKeyId"),
            "accept": job_details["TransformOutput"].get("Accept"),
            "max_concurrent_transforms": job_details.get("MaxConcurrentTransforms"),
            "max_payload": job_details.get("MaxPayloadInMB"),
            "base_transform_job_name": job_details["TransformJobName"],
        }
        return init_params


class _TransformJob(_Job):
    @classmethod
    def start_new(
        cls,
        transformer,
        data,
        data_type,
        content_type,
        compression_type,
        split_type,
        input_filter,
        output_filter,
        join_source,
    ):
        config = _TransformJob._load_config(
            data, data_type, content_type, compression_type, split_type, transformer
        )
        data_processing = _TransformJob._prepare_data_processing(
            input_filter, output_filter, join_source
        )
        transformer.sagemaker_session.transform(
            job_name=transformer._current_job_name,
            model_name=transformer.model_name,
            strategy=transformer.strategy,
            max_concurrent_transforms=transformer.max_concurrent_transforms,
            max_payload=transformer.max_payload,
            env=transformer.env,
            input_config=config["input_config"],
            output_config=config["output_config"],
            resource_config=config["resource_config"],
            tags=transformer.tags,
            data_processing=data_processing,
        )
        return cls(transformer.sagemaker_session, transformer._current_job_name)

    def wait(self, logs=True):
        if logs:
            self.sagemaker_session.logs_for_transform_job(self.job_name, wait=True)
        else:
            self.sagemaker_session.wait_for_transform_job(self.job_name)

    def describe(self):
        return self.sagemaker_session.describe_transform_job(self.job_name)

    def stop(self):
        self.sagemaker_session.stop_transform_job(name=self.job_name)

    @staticmethod
    def _load_config(data, data_type, content_type, compression_type, split_type, transformer):
        input_config = TransformInput(
            data, data_type, content_type, compression_type, split_type
        ).to_request_dict()

        output_config = {"S3OutputPath": transformer.output_path}
        if transformer.accept is not None:
            output_config["Accept"] = transformer.accept
        if transformer.assemble_with is not None:
            output_config["AssembleWith"] = transformer.assemble_with
        if transformer.output_kms_key is not None:
            output_config["KmsKeyId"] = transformer.output_kms_key

        resource_config = {
            "InstanceCount": transformer.instance_count,
            "InstanceType": transformer.instance_type,
        }
        if transformer.volume_kms_key is not None:
            resource_config["VolumeKmsKeyId"] = transformer.volume_kms_key

        return {
            "input_config": input_config,
            "output_config": output_config,
            "resource_config": resource_config,
        }

    @staticmethod
    def _prepare_data_processing(input_filter, output_filter, join_source):
        config = {}
        if input_filter is not None:
            config["InputFilter"] = input_filter
        if output_filter is not None:
            config["OutputFilter"] = output_filter
        if join_source is not None:
            config["JoinSource"] = join_source
        return config or None
