"""Deployable models: an image plus optional artifacts, hosted on an endpoint."""

from __future__ import annotations

import logging
import os

from . import fw_utils
from .errors import ValidationError
from .session import Session, container_def, production_variant
from .transformer import Transformer
from .utils import base_name_from_image, name_from_base, parse_s3_url

logger = logging.getLogger(__name__)

SCRIPT_PARAM_NAME = "sagemaker_program"
DIR_PARAM_NAME = "sagemaker_submit_directory"
CONTAINER_LOG_LEVEL_PARAM_NAME = "sagemaker_container_log_level"
JOB_NAME_PARAM_NAME = "sagemaker_job_name"
SAGEMAKER_REGION_PARAM_NAME = "sagemaker_region"


class Model:
    """A SageMaker ``Model`` that can be deployed to an endpoint."""

    def __init__(
        self,
        image_uri,
        model_data=None,
        role=None,
        predictor_cls=None,
        env=None,
        name=None,
        vpc_config=None,
        sagemaker_session=None,
        enable_network_isolation=False,
    ):
        """Initialize a Model.

        Args:
            image_uri (str): Inference image URI.
            model_data (str): S3 location of a ``model.tar.gz``.
            role (str): Execution role, name or ARN.
            predictor_cls (callable): Called with ``(endpoint_name, sagemaker_session)``
                by :meth:`deploy` to build the returned predictor.
            env (dict): Environment variables for the container.
            name (str): Model name. Generated from the image if omitted.
            vpc_config (dict): VpcConfig with ``Subnets`` and ``SecurityGroupIds``.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            enable_network_isolation (bool): Run the container without network access.
        """
        self.image_uri = image_uri
        self.model_data = model_data
        self.role = role
        self.predictor_cls = predictor_cls
        self.env = env or {}
        self.name = name
        self._base_name = None
        self.vpc_config = vpc_config
        self.sagemaker_session = sagemaker_session
        self.endpoint_name = None
        self._enable_network_isolation = enable_network_isolation

    def _init_sagemaker_session_if_does_not_exist(self):
        if self.sagemaker_session is None:
            self.sagemaker_session = Session()

    def enable_network_isolation(self):
        return self._enable_network_isolation

    def prepare_container_def(self, instance_type=None):
        """Return the container definition used by CreateModel."""
        return container_def(self.image_uri, self.model_data, self.env)

    def _ensure_base_name_if_needed(self, image_uri):
        if self.name is None:
            self._base_name = self._base_name or base_name_from_image(image_uri)

    def _set_model_name_if_needed(self):
        if self.name is None:
            self.name = name_from_base(self._base_name)

    def _create_sagemaker_model(self, instance_type=None, accelerator_type=None, tags=None):
        """Create the model in SageMaker, generating a name if needed."""
        self._init_sagemaker_session_if_does_not_exist()
        c_def = self.prepare_container_def(instance_type)
        self._ensure_base_name_if_needed(c_def["Image"])
        self._set_model_name_if_needed()

        self.sagemaker_session.create_model(
            self.name,
            self.role,
            c_def,
            vpc_config=self.vpc_config,
            enable_network_isolation=self._enable_network_isolation,
            tags=tags,
        )

    def deploy(
        self,
        initial_instance_count=None,
        instance_type=None,
        serializer=None,
        deserializer=None,
        accelerator_type=None,
        endpoint_name=None,
        tags=None,
        kms_key=None,
        wait=True,
        data_capture_config=None,
    ):
        """Create the model, an endpoint config and an endpoint.

        Returns:
            The ``predictor_cls`` instance for the endpoint, or None without one.

        Raises:
            ValidationError: If the role, instance type or count is missing.
        """
        self._init_sagemaker_session_if_does_not_exist()

        if self.role is None:
            raise ValidationError("Role can not be null for deploying a model")
        if instance_type is None or initial_instance_count is None:
            raise ValidationError(
                "Must specify instance type and instance count to deploy a model"
            )

        self._create_sagemaker_model(instance_type, accelerator_type, tags)

        variant = production_variant(
            self.name, instance_type, initial_instance_count, accelerator_type=accelerator_type
        )
        if endpoint_name:
            self.endpoint_name = endpoint_name
        else:
            base_endpoint_name = self._base_name or base_name_from_image(self.image_uri)
            self.endpoint_name = name_from_base(base_endpoint_name)

        data_capture_config_dict = None
        if data_capture_config is not None:
            data_capture_config_dict = data_capture_config._to_request_dict()

        self.sagemaker_session.endpoint_from_production_variants(
            name=self.endpoint_name,
            production_variants=[variant],
            tags=tags,
            kms_key=kms_key,
            wait=wait,
            data_capture_config_dict=data_capture_config_dict,
        )

        if self.predictor_cls:
            predictor = self.predictor_cls(self.endpoint_name, self.sagemaker_session)
            if serializer:
                predictor.serializer = serializer
            if deserializer:
                predictor.deserializer = deserializer
            return predictor
        return None

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
        volume_kms_key=None,
    ):
        """Create the model and return a Transformer for batch transform jobs."""
        self._create_sagemaker_model(instance_type, tags=tags)
        if self._enable_network_isolation:
            env = None

        return Transformer(
            self.name,
            instance_count,
            instance_type,
            strategy=strategy,
            assemble_with=assemble_with,
            output_path=output_path,
            output_kms_key=output_kms_key,
            accept=accept,
            max_concurrent_transforms=max_concurrent_transforms,
            max_payload=max_payload,
            env=env,
            tags=tags,
            base_transform_job_name=self._base_name or self.name,
            volume_kms_key=volume_kms_key,
            sagemaker_session=self.sagemaker_session,
        )

    def delete_model(self):
        if self.name is None:
            raise ValidationError(
                "The SageMaker model must be created first before attempting to delete."
            )
        self.sagemaker_session.delete_model(self.name)


class FrameworkModel(Model):
    """A model served by a framework container running a user script."""

    def __init__(
        self,
        model_data,
        image_uri,
        role,
        entry_point,
        source_dir=None,
        predictor_cls=None,
        env=None,
        name=None,
        container_log_level=logging.INFO,
        code_location=None,
        sagemaker_session=None,
        **kwargs,
    ):
        """Initialize a FrameworkModel.

        Args:
            model_data (str): S3 location of the model artifacts.
            image_uri (str): Inference image URI.
            role (str): Execution role.
            entry_point (str): Script run as the inference entry point.
            source_dir (str): Local directory or S3 tarball holding the entry point.
            container_log_level (int): Log level inside the container.
            code_location (str): S3 prefix for the uploaded code. Defaults to the
                default bucket.
            **kwargs: Passed through to :class:`Model`.
        """
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=predictor_cls,
            env=env,
            name=name,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
        self.entry_point = entry_point
        self.source_dir = source_dir
        self.container_log_level = container_log_level
        self.uploaded_code = None
        if code_location:
            self.bucket, self.key_prefix = parse_s3_url(code_location)
        else:
            self.bucket, self.key_prefix = None, None

    def prepare_container_def(self, instance_type=None):
        deploy_key_prefix = fw_utils.model_code_key_prefix(
            self.key_prefix, self.name, self.image_uri
        )
        self._upload_code(deploy_key_prefix)
        deploy_env = dict(self.env)
        deploy_env.update(self._framework_env_vars())
        return container_def(self.image_uri, self.model_data, deploy_env)

    def _upload_code(self, key_prefix):
        self._init_sagemaker_session_if_does_not_exist()
        if self.source_dir and self.source_dir.lower().startswith("s3://"):
            self.uploaded_code = fw_utils.UploadedCode(
                s3_prefix=self.source_dir, script_name=os.path.basename(self.entry_point)
            )
            return
        self.uploaded_code = fw_utils.tar_and_upload_dir(
            sagemaker_session=self.sagemaker_session,
            bucket=self.bucket or self.sagemaker_session.default_bucket(),
            s3_key_prefix=key_prefix,
            script=self.entry_point,
            directory=self.source_dir,
        )

    def _framework_env_vars(self):
        script_name = self.uploaded_code.script_name if self.uploaded_code else self.entry_point
        dir_name = self.uploaded_code.s3_prefix if self.uploaded_code else self.source_dir
        return {
            SCRIPT_PARAM_NAME.upper(): script_name,
            DIR_PARAM_NAME.upper(): dir_name,
            CONTAINER_LOG_LEVEL_PARAM_NAME.upper(): str(self.container_log_level),
            SAGEMAKER_REGION_PARAM_NAME.upper(): self.sagemaker_session.boto_region_name,
        }
