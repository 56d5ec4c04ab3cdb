"""Estimators: configure, launch and follow SageMaker training jobs."""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
import logging
import os

from . import fw_utils, vpc_utils
from .analytics import TrainingJobAnalytics
from .errors import ValidationError
from .job import _Job
from .model import (
    CONTAINER_LOG_LEVEL_PARAM_NAME,
    DIR_PARAM_NAME,
    JOB_NAME_PARAM_NAME,
    SAGEMAKER_REGION_PARAM_NAME,
    SCRIPT_PARAM_NAME,
    Model,
)
from .predictor import Predictor
from .session import Session
from .utils import base_name_from_image, name_from_base, parse_s3_url

logger = logging.getLogger(__name__)


class EstimatorBase(ABC):
    """Handle end-to-end training and deployment of a SageMaker model.

    Subclasses provide the training image and the hyperparameters; this
    class builds the CreateTrainingJob request, follows the job, and turns
    its artifacts into a deployable model.
    """

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        volume_size=30,
        volume_kms_key=None,
        max_run=24 * 60 * 60,
        input_mode="File",
        output_path=None,
        output_kms_key=None,
        base_job_name=None,
        sagemaker_session=None,
        tags=None,
        subnets=None,
        security_group_ids=None,
        model_uri=None,
        model_channel_name="model",
        metric_definitions=None,
        encrypt_inter_container_traffic=False,
        use_spot_instances=False,
        max_wait=None,
        checkpoint_s3_uri=None,
        checkpoint_local_path=None,
        enable_network_isolation=False,
        environment=None,
    ):
        """Initialize an EstimatorBase.

        Args:
            role (str): Execution role name or ARN.
            instance_count (int): Number of training instances.
            instance_type (str): Training instance type.
            volume_size (int): Storage volume per instance, in GB.
            volume_kms_key (str): KMS key for the storage volumes.
            max_run (int): Training time limit in seconds.
            input_mode (str): ``File`` or ``Pipe``.
            output_path (str): S3 prefix for model artifacts. Defaults to the default bucket.
            output_kms_key (str): KMS key for the artifacts.
            base_job_name (str): Prefix for generated job names.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            tags (list[dict]): Tags for the training job.
            subnets (list[str]): VPC subnets.
            security_group_ids (list[str]): VPC security groups.
            model_uri (str): S3 location of a model to start from, fed as ``model_channel_name``.
            model_channel_name (str): Channel name for ``model_uri``.
            metric_definitions (list[dict]): ``Name``/``Regex`` pairs parsed from the logs.
            encrypt_inter_container_traffic (bool): Encrypt traffic between instances.
            use_spot_instances (bool): Use managed spot training. Requires ``max_wait``.
            max_wait (int): Time limit in seconds including waits for spot capacity.
            checkpoint_s3_uri (str): S3 prefix synced with ``checkpoint_local_path``.
            checkpoint_local_path (str): Local checkpoint directory in the container.
            enable_network_isolation (bool): Run training without network access.
            environment (dict): Environment variables for the training container.

        Raises:
            ValidationError: If spot training is requested without a valid ``max_wait``.
        """
        self.role = role
        self.instance_count = instance_count
        self.instance_type = instance_type
        self.volume_size = volume_size
        self.volume_kms_key = volume_kms_key
        self.max_run = max_run
        self.input_mode = input_mode
        self.metric_definitions = metric_definitions
        self.model_uri = model_uri
        self.model_channel_name = model_channel_name
        self.tags = tags

        self.sagemaker_session = sagemaker_session or Session()
        self.base_job_name = base_job_name
        self._current_job_name = None
        self.output_path = output_path
        self.output_kms_key = output_kms_key
        self.latest_training_job = None

        self.subnets = subnets
        self.security_group_ids = security_group_ids
        self.encrypt_inter_container_traffic = encrypt_inter_container_traffic
        self.use_spot_instances = use_spot_instances
        self.max_wait = max_wait
        self.checkpoint_s3_uri = checkpoint_s3_uri
        self.checkpoint_local_path = checkpoint_local_path
        self._enable_network_isolation = enable_network_isolation
        self.environment = environment

        if self.use_spot_instances:
            if self.max_wait is None:
                raise ValidationError("max_wait must be set when use_spot_instances is True")
            if self.max_wait < self.max_run:
                raise ValidationError(
                    f"max_wait ({self.max_wait}) must be greater than or equal to "
                    f"max_run ({self.max_run})"
                )

    @abstractmethod
    def training_image_uri(self):
        """Return the image used for training."""

    @abstractmethod
    def hyperparameters(self):
        """Return the hyperparameters as a dict of strings."""

    def enable_network_isolation(self):
        return self._enable_network_isolation

    def _ensure_base_job_name(self):
        self.base_job_name = self.base_job_name or base_name_from_image(self.training_image_uri())

    def _get_or_create_name(self, name=None):
        if name:
            return name
        self._ensure_base_job_name()
        return name_from_base(self.base_job_name)

    def _prepare_for_training(self, job_name=None):
        """Set the job name and the default output path before a job starts."""
        self._current_job_name = self._get_or_create_name(job_name)

        if self.output_path is None:
            self.output_path = f"s3://{self.sagemaker_session.default_bucket()}/"

    def fit(self, inputs=None, wait=True, logs=True, job_name=None):
        """Train a model.

        Args:
            inputs: S3 URI, TrainingInput, FileSystemInput, or a dict of channels.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs while waiting. Ignored without ``wait``.
            job_name (str): Training job name. Generated if omitted.
        """
        self._prepare_for_training(job_name=job_name)
        self.latest_training_job = _TrainingJob.start_new(self, inputs)
        if wait:
            self.latest_training_job.wait(logs=logs)

    def _ensure_latest_training_job(self, error_message="Estimator is not associated with a training job"):
        if self.latest_training_job is None:
            raise ValidationError(error_message)

    @property
    def model_data(self):
        """S3 location of the model artifacts of the latest training job."""
        if self.latest_training_job is not None:
            return self.sagemaker_session.describe_training_job(
                self.latest_training_job.name
            )["ModelArtifacts"]["S3ModelArtifacts"]
        logger.warning(
            "No finished training job found associated with this estimator. Please make sure "
            "this estimator is only used for building workflow config"
        )
        return os.path.join(self.output_path, self._current_job_name, "output", "model.tar.gz")

    @abstractmethod
    def create_model(self, **kwargs):
        """Return a Model for the latest training job's artifacts."""

    def deploy(
        self,
        initial_instance_count,
        instance_type,
        serializer=None,
        deserializer=None,
        endpoint_name=None,
        use_compiled_model=False,
        wait=True,
        model_name=None,
        kms_key=None,
        data_capture_config=None,
        tags=None,
        **kwargs,
    ):
        """Deploy the trained model to a new endpoint and return its predictor."""
        self._ensure_latest_training_job()
        self._ensure_base_job_name()
        default_name = name_from_base(self.base_job_name)
        endpoint_name = endpoint_name or default_name
        model_name = model_name or default_name

        model = self.create_model(**kwargs)
        model.name = model_name
        return model.deploy(
            instance_type=instance_type,
            initial_instance_count=initial_instance_count,
            serializer=serializer,
            deserializer=deserializer,
            endpoint_name=endpoint_name,
            tags=tags or self.tags,
            wait=wait,
            kms_key=kms_key,
            data_capture_config=data_capture_config,
        )

    def transformer(
        self,
        instance_count,
        instance_type,
        strategy=None,
        assemble_with=None,
        output_path=None,
        output_kms_key=None,
        accept=None,
        env=None,
        max_concurrent_transforms=None,
        max_payload=None,
        tags=None,
        role=None,
        volume_kms_key=None,
    ):
        """Create a model from the latest training job and return a Transformer for it."""
        self._ensure_latest_training_job()
        tags = tags or self.tags
        model = self.create_model(role=role)
        model.name = model.name or self.latest_training_job.name
        return model.transformer(
            instance_count,
            instance_type,
            strategy=strategy,
            assemble_with=assemble_with,
            output_path=output_path,
            output_kms_key=output_kms_key,
            accept=accept,
            env=env,
            max_concurrent_transforms=max_concurrent_transforms,
            max_payload=max_payload,
            tags=tags,
            volume_kms_key=volume_kms_key,
        )

    @property
    def training_job_analytics(self):
        """TrainingJobAnalytics for the latest training job."""
        if self._current_job_name is None:
            raise ValidationError("Estimator is not associated with a TrainingJob")
        return TrainingJobAnalytics(self._current_job_name, sagemaker_session=self.sagemaker_session)

    def get_vpc_config(self, vpc_config_override=vpc_utils.VPC_CONFIG_DEFAULT):
        """VpcConfig for the job, or an explicit override for a model."""
        if vpc_config_override is vpc_utils.VPC_CONFIG_DEFAULT:
            return vpc_utils.to_dict(self.subnets, self.security_group_ids)
        return vpc_utils.sanitize(vpc_config_override)

    @classmethod
    def attach(cls, training_job_name, sagemaker_session=None, model_channel_name="model"):
        """Build an estimator bound to an existing training job.

        Waits for the job if it is still running.
        """
        sagemaker_session = sagemaker_session or Session()
        job_details = sagemaker_session.describe_training_job(training_job_name)
        init_params = cls._prepare_init_params_from_job_description(job_details, model_channel_name)
        tags = sagemaker_session.list_tags(job_details["TrainingJobArn"])
        init_params.update(tags=tags)

        estimator = cls(sagemaker_session=sagemaker_session, **init_params)
        estimator.latest_training_job = _TrainingJob(
            sagemaker_session=sagemaker_session, job_name=training_job_name
        )
        estimator._current_job_name = estimator.latest_training_job.name
        estimator.latest_training_job.wait(logs=False)
        return estimator

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details, model_channel_name=None):
        init_params = {}

        init_params["role"] = job_details["RoleArn"]
        init_params["instance_count"] = job_details["ResourceConfig"]["InstanceCount"]
        init_params["instance_type"] = job_details["ResourceConfig"]["InstanceType"]
        init_params["volume_size"] = job_details["ResourceConfig"]["VolumeSizeInGB"]
        init_params["max_run"] = job_details["StoppingCondition"]["MaxRuntimeInSeconds"]
        init_params["input_mode"] = job_details["AlgorithmSpecification"]["TrainingInputMode"]
        init_params["base_job_name"] = base_name_from_image(
            job_details["AlgorithmSpecification"]["TrainingImage"]
        )
        init_params["output_path"] = job_details["OutputDataConfig"]["S3OutputPath"]
        init_params["output_kms_key"] = job_details["OutputDataConfig"].get("KmsKeyId")
        if job_details.get("EnableNetworkIsolation", False):
            init_params["enable_network_isolation"] = True
        if job_details.get("EnableInterContainerTrafficEncryption", False):
            init_params["encrypt_inter_container_traffic"] = True

        init_params["image_uri"] = job_details["AlgorithmSpecification"]["TrainingImage"]
        metric_definitions = job_details["AlgorithmSpecification"].get("MetricDefinitions")
        if metric_definitions:
            init_params["metric_definitions"] = metric_definitions

        has_hps = "HyperParameters" in job_details
        init_params["hyperparameters"] = job_details["HyperParameters"] if has_hps else {}

        if "VpcConfig" in job_details:
            subnets, security_group_ids = vpc_utils.from_dict(job_details["VpcConfig"])
            init_params["subnets"] = subnets
            init_params["security_group_ids"] = security_group_ids

        if "InputDataConfig" in job_details and model_channel_name:
            for channel in job_details["InputDataConfig"]:
                if channel["ChannelName"] == model_channel_name:
                    init_params["model_channel_name"] = model_channel_name
                    init_params["model_uri"] = channel["DataSource"]["S3DataSource"]["S3Uri"]
                    break

        if job_details.get("EnableManagedSpotTraining", False):
            init_params["use_spot_instances"] = True
            init_params["max_wait"] = job_details["StoppingCondition"].get("MaxWaitTimeInSeconds")

        checkpoint_config = job_details.get("CheckpointConfig")
        if checkpoint_config:
            init_params["checkpoint_s3_uri"] = checkpoint_config["S3Uri"]
            init_params["checkpoint_local_path"] = checkpoint_config.get("LocalPath")

        return init_params

    def stop_training_job(self):
        self._ensure_latest_training_job()
        self.latest_training_job.stop()


class _TrainingJob(_Job):
    """A training job started by an estimator."""

    @classmethod
    def start_new(cls, estimator, inputs):
        """Create a training job from the estimator's settings.

        Returns:
            _TrainingJob: Handle on the new job.
        """
        train_args = cls._get_train_args(estimator, inputs)
        estimator.sagemaker_session.train(**train_args)
        return cls(estimator.sagemaker_session, estimator._current_job_name)

    @classmethod
    def _get_train_args(cls, estimator, inputs):
        config = _Job._load_config(inputs, estimator)

        hyperparameters = estimator.hyperparameters()
        if hyperparameters:
            hyperparameters = {str(k): str(v) for k, v in hyperparameters.items()}

        train_args = config.copy()
        train_args["input_mode"] = estimator.input_mode
        train_args["job_name"] = estimator._current_job_name
        train_args["hyperparameters"] = hyperparameters
        train_args["tags"] = estimator.tags
        train_args["metric_definitions"] = estimator.metric_definitions
        train_args["image_uri"] = estimator.training_image_uri()
        train_args["enable_network_isolation"] = estimator.enable_network_isolation()
        train_args["encrypt_inter_container_traffic"] = estimator.encrypt_inter_container_traffic
        train_args["use_spot_instances"] = estimator.use_spot_instances
        train_args["checkpoint_s3_uri"] = estimator.checkpoint_s3_uri
        train_args["checkpoint_local_path"] = estimator.checkpoint_local_path
        train_args["environment"] = estimator.environment
        return train_args

    def wait(self, logs=True):
        if logs:
            self.sagemaker_session.logs_for_job(self.job_name, wait=True)
        else:
            self.sagemaker_session.wait_for_job(self.job_name)

    def describe(self):
        return self.sagemaker_session.describe_training_job(self.job_name)

    def stop(self):
        self.sagemaker_session.stop_training_job(self.job_name)


class Estimator(EstimatorBase):
    """A generic estimator for any training image."""

    def __init__(
        self,
        image_uri,
        role,
        instance_count=None,
        instance_type=None,
        hyperparameters=None,
        **kwargs,
    ):
        """Initialize an Estimator.

        Args:
            image_uri (str): Training image URI.
            role (str): Execution role.
            instance_count (int): Number of training instances.
            instance_type (str): Training instance type.
            hyperparameters (dict): Hyperparameters passed to the container.
            **kwargs: Passed to :class:`EstimatorBase`.
        """
        self.image_uri = image_uri
        self._hyperparameters = dict(hyperparameters) if hyperparameters else {}
        super().__init__(role, instance_count, instance_type, **kwargs)

    def training_image_uri(self):
        return self.image_uri

    def set_hyperparameters(self, **kwargs):
        for k, v in kwargs.items():
            self._hyperparameters[k] = v

    def hyperparameters(self):
        return self._hyperparameters

    def create_model(
        self,
        role=None,
        image_uri=None,
        predictor_cls=None,
        vpc_config_override=vpc_utils.VPC_CONFIG_DEFAULT,
        **kwargs,
    ):
        """Create a Model from the latest training job.

        Returns:
            Model: Uses the training image unless ``image_uri`` is given.
        """
        self._ensure_latest_training_job()
        predictor_cls = predictor_cls or Predictor
        return Model(
            image_uri or self.training_image_uri(),
            self.model_data,
            role or self.role,
            predictor_cls=predictor_cls,
            vpc_config=self.get_vpc_config(vpc_config_override),
            sagemaker_session=self.sagemaker_session,
            enable_network_isolation=self.enable_network_isolation(),
            **kwargs,
        )


class Framework(EstimatorBase):
    """Base class for estimators that run a user script in a framework container.

    The script and its directory are packaged and uploaded to S3 before the
    job starts; the container finds them through reserved hyperparameters.
    """

    _framework_name = None

    def __init__(
        self,
        entry_point,
        source_dir=None,
        hyperparameters=None,
        container_log_level=logging.INFO,
        code_location=None,
        image_uri=None,
        dependencies=None,
        **kwargs,
    ):
        """Initialize a Framework estimator.

        Args:
            entry_point (str): Path of the training script, relative to ``source_dir`` if given.
            source_dir (str): Local directory or S3 tarball with the training code.
            hyperparameters (dict): Passed to the script as command line arguments.
            container_log_level (int): Log level inside the container.
            code_location (str): S3 prefix for the code tarball. Defaults to ``output_path``.
            image_uri (str): Overrides the framework image.
            dependencies (list[str]): Extra local paths packaged with the code.
            **kwargs: Passed to :class:`EstimatorBase`.
        """
        super().__init__(**kwargs)
        if entry_point.startswith("s3://"):
            raise ValidationError(
                f"Invalid entry point script: {entry_point}. Must be a path to a local file."
            )
        self.entry_point = entry_point
        self.source_dir = source_dir
        self.dependencies = dependencies or []
        self.uploaded_code = None
        self.container_log_level = container_log_level
        self.code_location = code_location
        self.image_uri = image_uri
        self._hyperparameters = dict(hyperparameters) if hyperparameters else {}

    def _prepare_for_training(self, job_name=None):
        super()._prepare_for_training(job_name=job_name)

        if self.source_dir and not self.source_dir.lower().startswith("s3://"):
            fw_utils.validate_source_dir(self.entry_point, self.source_dir)

        code_dir, script = self._stage_user_code()
        self._hyperparameters[DIR_PARAM_NAME] = code_dir
        self._hyperparameters[SCRIPT_PARAM_NAME] = script
        self._hyperparameters[CONTAINER_LOG_LEVEL_PARAM_NAME] = self.container_log_level
        self._hyperparameters[JOB_NAME_PARAM_NAME] = self._current_job_name
        self._hyperparameters[SAGEMAKER_REGION_PARAM_NAME] = self.sagemaker_session.boto_region_name

    def _stage_user_code(self):
        bucket, prefix = parse_s3_url(self.code_location or self.output_path)
        key_prefix = "/".join(filter(None, [prefix.strip("/"), self._current_job_name, "source"]))

        self.uploaded_code = fw_utils.tar_and_upload_dir(
            sagemaker_session=self.sagemaker_session,
            bucket=bucket,
            s3_key_prefix=key_prefix,
            script=self.entry_point,
            directory=self.source_dir,
            dependencies=self.dependencies,
            kms_key=self.output_kms_key,
        )
        return self.uploaded_code.s3_prefix, self.uploaded_code.script_name

    def set_hyperparameters(self, **kwargs):
        for k, v in kwargs.items():
            self._hyperparameters[k] = v

    def hyperparameters(self):
        """JSON-encode every hyperparameter, as the framework containers expect."""
        return {str(k): json.dumps(v) for k, v in self._hyperparameters.items()}

    def training_image_uri(self):
        if self.image_uri:
            return self.image_uri
        return self._default_image_uri()

    def _default_image_uri(self):
        raise ValidationError(f"{type(self).__name__} requires image_uri to be set")

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details, model_channel_name=None):
        init_params = super()._prepare_init_params_from_job_description(
            job_details, model_channel_name
        )
        hyperparameters = {}
        for k, v in init_params["hyperparameters"].items():
            try:
                value = json.loads(v)
            except ValueError:
                value = v
            hyperparameters[k] = value

        init_params["entry_point"] = hyperparameters.pop(SCRIPT_PARAM_NAME)
        init_params["source_dir"] = hyperparameters.pop(DIR_PARAM_NAME)
        init_params["container_log_level"] = hyperparameters.pop(CONTAINER_LOG_LEVEL_PARAM_NAME)
        hyperparameters.pop(JOB_NAME_PARAM_NAME, None)
        hyperparameters.pop(SAGEMAKER_REGION_PARAM_NAME, None)
        init_params["hyperparameters"] = hyperparameters
        return init_params
