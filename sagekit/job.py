"""Shared request building for training, processing and transform jobs."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .errors import ValidationError
from .inputs import FileSystemInput, TrainingInput


class _Job(ABC):
    """A job started by an estimator, processor or transformer.

    Subclasses hold a session and a job name and know how to start, wait
    for, describe and stop their job kind.
    """

    def __init__(self, sagemaker_session, job_name):
        self.sagemaker_session = sagemaker_session
        self.job_name = job_name

    @abstractmethod
    def wait(self, logs=True):
        """Block until the job finishes."""

    @abstractmethod
    def describe(self):
        """Return the service's description of the job."""

    @abstractmethod
    def stop(self):
        """Stop the job."""

    @property
    def name(self):
        return self.job_name

    @staticmethod
    def _load_config(inputs, estimator, expand_role=True, validate_uri=True):
        """Collect the request parts common to every training job."""
        input_config = _Job._format_inputs_to_input_config(inputs, validate_uri)
        role = (
            estimator.sagemaker_session.expand_role(estimator.role)
            if expand_role
            else estimator.role
        )
        output_config = _Job._prepare_output_config(estimator.output_path, estimator.output_kms_key)
        resource_config = _Job._prepare_resource_config(
            estimator.instance_count,
            estimator.instance_type,
            estimator.volume_size,
            estimator.volume_kms_key,
        )
        stop_condition = _Job._prepare_stop_condition(estimator.max_run, estimator.max_wait)
        vpc_config = estimator.get_vpc_config()

        model_channel = _Job._prepare_channel(
            input_config,
            estimator.model_uri,
            estimator.model_channel_name,
            validate_uri,
            content_type="application/x-sagemaker-model",
            input_mode="File",
        )
        if model_channel:
            input_config = [] if input_config is None else input_config
            input_config.append(model_channel)

        if estimator.checkpoint_s3_uri and validate_uri and not estimator.checkpoint_s3_uri.startswith("s3://"):
            raise ValidationError(
                f"checkpoint_s3_uri must be an S3 URI, got: {estimator.checkpoint_s3_uri}"
            )

        return {
            "input_config": input_config,
            "role": role,
            "output_config": output_config,
            "resource_config": resource_config,
            "stop_condition": stop_condition,
            "vpc_config": vpc_config,
        }

    @staticmethod
    def _format_inputs_to_input_config(inputs, validate_uri=True):
        """Turn the ``inputs`` argument of ``fit`` into an ``InputDataConfig`` list.

        ``inputs`` may be an S3 URI string (channel ``training``), a
        TrainingInput or FileSystemInput, or a dict mapping channel names to
        any of those.
        """
        if inputs is None:
            return None

        # RecordSet and FileSystemRecordSet
        if hasattr(inputs, "data_channel"):
            inputs = inputs.data_channel()

        input_dict = {}
        if isinstance(inputs, str):
            input_dict["training"] = _Job._format_string_uri_input(inputs, validate_uri)
        elif isinstance(inputs, (TrainingInput, FileSystemInput)):
            input_dict["training"] = inputs
        elif isinstance(inputs, dict):
            for k, v in inputs.items():
                input_dict[k] = _Job._format_string_uri_input(v, validate_uri)
        elif isinstance(inputs, list):
            input_dict = _Job._format_record_set_list_input(inputs)
        else:
            raise ValidationError(
                "Cannot format input {}. Expecting one of str, dict, TrainingInput or "
                "FileSystemInput".format(inputs)
            )

        channels = [_Job._convert_input_to_channel(name, data) for name, data in input_dict.items()]
        return channels

    @staticmethod
    def _convert_input_to_channel(channel_name, channel_s3_input):
        channel_config = dict(channel_s3_input.config)
        channel_config["ChannelName"] = channel_name
        return channel_config

    @staticmethod
    def _format_string_uri_input(uri_input, validate_uri=True, content_type=None, input_mode=None):
        if isinstance(uri_input, str) and validate_uri:
            if uri_input.startswith("s3://"):
                return TrainingInput(uri_input, content_type=content_type, input_mode=input_mode)
            if uri_input.startswith("file://"):
                raise ValidationError(
                    f"Local inputs are not supported: {uri_input}. Upload the data to S3 first."
                )
            raise ValidationError(
                f'URI input {uri_input} must be a valid S3 URI and must start with "s3://"'
            )
        if isinstance(uri_input, str):
            return TrainingInput(uri_input, content_type=content_type, input_mode=input_mode)
        if isinstance(uri_input, (TrainingInput, FileSystemInput)):
            return uri_input
        # record sets expose their channel through records_s3_input / file_system_input
        if hasattr(uri_input, "data_channel"):
            return next(iter(uri_input.data_channel().values()))
        raise ValidationError(
            "Cannot format input {}. Expecting one of str, TrainingInput or FileSystemInput".format(
                uri_input
            )
        )

    @staticmethod
    def _format_record_set_list_input(inputs):
        input_dict = {}
        for record in inputs:
            if not hasattr(record, "channel"):
                raise ValidationError(f"List compatible only with RecordSets, got {type(record)}")
            if record.channel in input_dict:
                raise ValidationError("Duplicate channels not allowed.")
            input_dict.update(record.data_channel())
        return input_dict

    @staticmethod
    def _prepare_channel(
        input_config,
        channel_uri=None,
        channel_name=None,
        validate_uri=True,
        content_type=None,
        input_mode=None,
    ):
        if not channel_uri:
            return None
        if not channel_name:
            raise ValidationError(
                f"Expected a channel name if a channel URI {channel_uri} is specified"
            )
        if input_config:
            for existing_channel in input_config:
                if existing_channel["ChannelName"] == channel_name:
                    raise ValidationError(f"Duplicate channel {channel_name} not allowed.")

        channel_input = _Job._format_string_uri_input(
            channel_uri, validate_uri, content_type, input_mode
        )
        return _Job._convert_input_to_channel(channel_name, channel_input)

    @staticmethod
    def _prepare_output_config(s3_path, kms_key_id):
        config = {"S3OutputPath": s3_path}
        if kms_key_id is not None:
            config["KmsKeyId"] = kms_key_id
        return config

    @staticmethod
    def _prepare_resource_config(instance_count, instance_type, volume_size, volume_kms_key):
        resource_config = {
            "InstanceCount": instance_count,
            "InstanceType": instance_type,
            "VolumeSizeInGB": volume_size,
        }
        if volume_kms_key is not None:
            resource_config["VolumeKmsKeyId"] = volume_kms_key
        return resource_config

    @staticmethod
    def _prepare_stop_condition(max_run, max_wait):
        if max_wait:
            return {"MaxRuntimeInSeconds": max_run, "MaxWaitTimeInSeconds": max_wait}
        return {"MaxRuntimeInSeconds": max_run}
