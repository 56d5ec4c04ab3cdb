"""Export SageMaker request configs for Airflow operators.

Nothing here calls a SageMaker create API. Each function returns the
request dictionary an Airflow SageMaker operator submits. Code that still
has to reach S3 is listed under ``S3Operations`` for the operator to upload.
"""

from __future__ import annotations

import logging
import os

from ..amazon.amazon_estimator import AmazonAlgorithmEstimatorBase
from ..errors import ValidationError
from ..estimator import EstimatorBase, Framework
from ..fw_utils import UploadedCode
from ..job import _Job
from ..model import (
    CONTAINER_LOG_LEVEL_PARAM_NAME,
    DIR_PARAM_NAME,
    JOB_NAME_PARAM_NAME,
    SAGEMAKER_REGION_PARAM_NAME,
    SCRIPT_PARAM_NAME,
    FrameworkModel,
)
from ..session import container_def, production_variant
from ..transformer import _TransformJob
from ..utils import base_name_from_image, name_from_base, parse_s3_url

logger = logging.getLogger(__name__)

_SOURCE_TARBALL = "sourcedir.tar.gz"


def prepare_framework(estimator, s3_operations):
    """Point a framework estimator at its code in S3 and record the upload.

    Sets the reserved hyperparameters the framework container reads. When
    ``source_dir`` is already in S3 no upload is recorded.
    """
    if estimator.code_location is not None:
        bucket, key = parse_s3_url(estimator.code_location)
        key = "/".join(
            filter(None, [key.strip("/"), estimator._current_job_name, "source", _SOURCE_TARBALL])
        )
    elif estimator.uploaded_code is not None:
        bucket, key = parse_s3_url(estimator.uploaded_code.s3_prefix)
    else:
        bucket = estimator.sagemaker_session.default_bucket()
        key = "/".join([estimator._current_job_name, "source", _SOURCE_TARBALL])

    script = os.path.basename(estimator.entry_point)

    if estimator.source_dir and estimator.source_dir.lower().startswith("s3://"):
        code_dir = estimator.source_dir
    else:
        code_dir = f"s3://{bucket}/{key}"
        s3_operations["S3Upload"] = [
            {
                "Path": estimator.source_dir or estimator.entry_point,
                "Bucket": bucket,
                "Key": key,
                "Tar": True,
            }
        ]
    estimator.uploaded_code = UploadedCode(s3_prefix=code_dir, script_name=script)

    estimator._hyperparameters[DIR_PARAM_NAME] = code_dir
    estimator._hyperparameters[SCRIPT_PARAM_NAME] = script
    estimator._hyperparameters[CONTAINER_LOG_LEVEL_PARAM_NAME] = estimator.container_log_level
    estimator._hyperparameters[JOB_NAME_PARAM_NAME] = estimator._current_job_name
    estimator._hyperparameters[
        SAGEMAKER_REGION_PARAM_NAME
    ] = estimator.sagemaker_session.boto_region_name


def training_base_config(estimator, inputs=None, job_name=None, mini_batch_size=None):
    """Export the training config shared by training and tuning operators.

    Args:
        estimator (sagekit.estimator.EstimatorBase): The estimator to export.
        inputs: Training data, as accepted by the estimator's ``fit``.
        job_name (str): Training job name. Generated if omitted.
        mini_batch_size (int): Only for first-party algorithm estimators.

    Returns:
        dict: A CreateTrainingJob request without the job name, plus
        ``S3Operations`` when code has to be uploaded.
    """
    s3_operations = {}

    if isinstance(estimator, AmazonAlgorithmEstimatorBase):
        # sets the job name, feature_dim and mini_batch_size
        estimator._prepare_for_training(inputs, mini_batch_size=mini_batch_size, job_name=job_name)
    else:
        EstimatorBase._prepare_for_training(estimator, job_name=job_name)

    if isinstance(estimator, Framework):
        prepare_framework(estimator, s3_operations)

    job_config = _Job._load_config(inputs, estimator, expand_role=False, validate_uri=False)

    train_config = {
        "AlgorithmSpecification": {
            "TrainingImage": estimator.training_image_uri(),
            "TrainingInputMode": estimator.input_mode,
        },
        "OutputDataConfig": job_config["output_config"],
        "StoppingCondition": job_config["stop_condition"],
        "ResourceConfig": job_config["resource_config"],
        "RoleArn": job_config["role"],
    }

    if job_config["input_config"] is not None:
        train_config["InputDataConfig"] = job_config["input_config"]
    if job_config["vpc_config"] is not None:
        train_config["VpcConfig"] = job_config["vpc_config"]
    if estimator.use_spot_instances:
        train_config["EnableManagedSpotTraining"] = True

    hyperparameters = estimator.hyperparameters()
    if hyperparameters:
        train_config["HyperParameters"] = {str(k): str(v) for k, v in hyperparameters.items()}

    if s3_operations:
        train_config["S3Operations"] = s3_operations

    if estimator.checkpoint_s3_uri is not None and estimator.checkpoint_local_path is not None:
        train_config["CheckpointConfig"] = {
            "LocalPath": estimator.checkpoint_local_path,
            "S3Uri": estimator.checkpoint_s3_uri,
        }
    return train_config


def training_config(estimator, inputs=None, job_name=None, mini_batch_size=None):
    """Export a full CreateTrainingJob config for the Airflow training operator."""
    train_config = training_base_config(estimator, inputs, job_name, mini_batch_size)

    train_config["TrainingJobName"] = estimator._current_job_name

    if estimator.tags is not None:
        train_config["Tags"] = estimator.tags

    if estimator.metric_definitions is not None:
        train_config["AlgorithmSpecification"]["MetricDefinitions"] = estimator.metric_definitions

    return train_config


def prepare_framework_container_def(model, instance_type, s3_operations):
    """Container definition of a framework model, recording its code upload."""
    deploy_image = model.image_uri
    if not deploy_image:
        if not hasattr(model, "serving_image_uri"):
            raise ValidationError(f"{type(model).__name__} requires image_uri to be set")
        deploy_image = model.serving_image_uri(
            model.sagemaker_session.boto_region_name, instance_type
        )
        model.image_uri = deploy_image

    model.name = model.name or name_from_base(base_name_from_image(deploy_image))

    bucket = model.bucket or model.sagemaker_session.default_bucket()
    if model.entry_point is not None:
        script = os.path.basename(model.entry_point)
        key = f"{model.name}/source/{_SOURCE_TARBALL}"

        if model.source_dir and model.source_dir.lower().startswith("s3://"):
            code_dir = model.source_dir
        else:
            code_dir = f"s3://{bucket}/{key}"
            s3_operations["S3Upload"] = [
                {"Path": model.source_dir or script, "Bucket": bucket, "Key": key, "Tar": True}
            ]
        model.uploaded_code = UploadedCode(s3_prefix=code_dir, script_name=script)

    deploy_env = dict(model.env)
    deploy_env.update(model._framework_env_vars())
    return container_def(deploy_image, model.model_data, deploy_env)


def model_config(model, instance_type=None, role=None, image_uri=None):
    """Export a CreateModel config for the Airflow model operator.

    Args:
        model (sagekit.model.Model): The model to export.
        instance_type (str): Used to pick a CPU or GPU framework image.
        role (str): Overrides the model's role.
        image_uri (str): Overrides the model's image.
    """
    s3_operations = {}
    model.image_uri = image_uri or model.image_uri

    if isinstance(model, FrameworkModel):
        model._init_sagemaker_session_if_does_not_exist()
        c_def = prepare_framework_container_def(model, instance_type, s3_operations)
    else:
        c_def = model.prepare_container_def()
        model.name = model.name or name_from_base(base_name_from_image(c_def["Image"]))

    config = {
        "ModelName": model.name,
        "PrimaryContainer": c_def,
        "ExecutionRoleArn": role or model.role,
    }

    if model.vpc_config:
        config["VpcConfig"] = model.vpc_config

    if s3_operations:
        config["S3Operations"] = s3_operations

    return config


def transform_config(
    transformer,
    data,
    data_type="S3Prefix",
    content_type=None,
    compression_type=None,
    split_type=None,
    job_name=None,
    input_filter=None,
    output_filter=None,
    join_source=None,
):
    """Export a CreateTransformJob config for the Airflow transform operator."""
    if job_name is not None:
        transformer._current_job_name = job_name
    else:
        base_name = transformer.base_transform_job_name
        transformer._current_job_name = (
            name_from_base(base_name) if base_name is not None else transformer.model_name
        )

    if transformer.output_path is None:
        transformer.output_path = "s3://{}/{}".format(
            transformer.sagemaker_session.default_bucket(), transformer._current_job_name
        )

    job_config = _TransformJob._load_config(
        data, data_type, content_type, compression_type, split_type, transformer
    )

    config = {
        "TransformJobName": transformer._current_job_name,
        "ModelName": transformer.model_name,
        "TransformInput": job_config["input_config"],
        "TransformOutput": job_config["output_config"],
        "TransformResources": job_config["resource_config"],
    }

    data_processing = _TransformJob._prepare_data_processing(
        input_filter, output_filter, join_source
    )
    if data_processing is not None:
        config["DataProcessing"] = data_processing

    if transformer.strategy is not None:
        config["BatchStrategy"] = transformer.strategy
    if transformer.max_concurrent_transforms is not None:
        config["MaxConcurrentTransforms"] = transformer.max_concurrent_transforms
    if transformer.max_payload is not None:
        config["MaxPayloadInMB"] = transformer.max_payload
    if transformer.env is not None:
        config["Environment"] = transformer.env
    if transformer.tags is not None:
        config["Tags"] = transformer.tags

    return config


def deploy_config(model, initial_instance_count, instance_type, endpoint_name=None, tags=None):
    """Export the Model, EndpointConfig and Endpoint configs for the Airflow endpoint operator."""
    model_base_config = model_config(model, instance_type)

    variant = production_variant(model.name, instance_type, initial_instance_count)
    name = model.name
    config_options = {"EndpointConfigName": name, "ProductionVariants": [variant]}
    if tags is not None:
        config_options["Tags"] = tags

    endpoint_base_config = {"EndpointName": endpoint_name or name, "EndpointConfigName": name}

    config = {
        "Model": model_base_config,
        "EndpointConfig": config_options,
        "Endpoint": endpoint_base_config,
    }

    s3_operations = model_base_config.pop("S3Operations", None)
    if s3_operations is not None:
        config["S3Operations"] = s3_operations

    return config


def processing_config(
    processor,
    inputs=None,
    outputs=None,
    job_name=None,
    experiment_config=None,
    container_arguments=None,
    container_entrypoint=None,
    kms_key_id=None,
):
    """Export a CreateProcessingJob config for the Airflow processing operator.

    Local input sources are uploaded to S3 so the config only references S3.
    """
    processor._current_job_name = processor._generate_current_job_name(job_name=job_name)
    config = {"ProcessingJobName": processor._current_job_name}

    if experiment_config is not None:
        config["ExperimentConfig"] = experiment_config

    if inputs is not None:
        config["ProcessingInputs"] = [
            processing_input._to_request_dict()
            for processing_input in processor._normalize_inputs(inputs)
        ]

    if outputs is not None:
        processing_output_config = {
            "Outputs": [
                processing_output._to_request_dict()
                for processing_output in processor._normalize_outputs(outputs)
            ]
        }
        if kms_key_id is not None:
            processing_output_config["KmsKeyId"] = kms_key_id
        config["ProcessingOutputConfig"] = processing_output_config

    cluster_config = {
        "InstanceCount": processor.instance_count,
        "InstanceType": processor.instance_type,
        "VolumeSizeInGB": processor.volume_size_in_gb,
    }
    if processor.volume_kms_key is not None:
        cluster_config["VolumeKmsKeyId"] = processor.volume_kms_key
    config["ProcessingResources"] = {"ClusterConfig": cluster_config}

    if processor.max_runtime_in_seconds is not None:
        config["StoppingCondition"] = {"MaxRuntimeInSeconds": processor.max_runtime_in_seconds}

    app_specification = {"ImageUri": processor.image_uri}
    if container_arguments is not None:
        app_specification["ContainerArguments"] = container_arguments
    if container_entrypoint is not None:
        app_specification["ContainerEntrypoint"] = container_entrypoint
    config["AppSpecification"] = app_specification

    config["RoleArn"] = processor.role

    if processor.env is not None:
        config["Environment"] = processor.env

    if processor.network_config is not None:
        config["NetworkConfig"] = processor.network_config._to_request_dict()

    if processor.tags is not None:
        config["Tags"] = processor.tags

    return config
