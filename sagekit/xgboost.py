"""XGBoost in script mode on the managed XGBoost container."""

from __future__ import annotations

import logging

from . import image_uris
from .deserializers import CSVDeserializer
from .errors import ValidationError
from .estimator import Framework
from .model import FrameworkModel
from .predictor import Predictor
from .serializers import CSVSerializer
from .sklearn import framework_version_from_tag
from .vpc_utils import VPC_CONFIG_DEFAULT

logger = logging.getLogger(__name__)

FRAMEWORK_NAME = "xgboost"


class XGBoost(Framework):
    """Run an XGBoost training script. Distributed training is supported."""

    _framework_name = FRAMEWORK_NAME

    def __init__(
        self,
        entry_point,
        framework_version,
        source_dir=None,
        hyperparameters=None,
        py_version="py3",
        image_uri=None,
        **kwargs,
    ):
        """Initialize an XGBoost estimator.

        Args:
            entry_point (str): Training script.
            framework_version (str): XGBoost container version, e.g. ``1.7-1``.
            source_dir (str): Directory with the script and its helpers.
            hyperparameters (dict): Passed to the script as arguments.
            py_version (str): Python version of the container.
            image_uri (str): Overrides the XGBoost image.
            **kwargs: Passed to :class:`sagekit.estimator.Framework`.
        """
        super().__init__(entry_point, source_dir, hyperparameters, image_uri=image_uri, **kwargs)
        self.framework_version = framework_version
        self.py_version = py_version

    def _default_image_uri(self):
        return image_uris.retrieve(
            FRAMEWORK_NAME,
            self.sagemaker_session.boto_region_name,
            version=self.framework_version,
            py_version=self.py_version,
            instance_type=self.instance_type,
            image_scope="training",
        )

    def create_model(
        self,
        model_server_workers=None,
        role=None,
        vpc_config_override=VPC_CONFIG_DEFAULT,
        entry_point=None,
        source_dir=None,
        **kwargs,
    ):
        """Create an XGBoostModel from the trained artifacts."""
        self._ensure_latest_training_job()
        if "image_uri" not in kwargs and self.image_uri:
            kwargs["image_uri"] = self.image_uri
        if "name" not in kwargs:
            kwargs["name"] = self._current_job_name

        return XGBoostModel(
            self.model_data,
            role or self.role,
            entry_point or self.entry_point,
            framework_version=self.framework_version,
            py_version=self.py_version,
            source_dir=source_dir
            or (self.uploaded_code.s3_prefix if self.uploaded_code else self.source_dir),
            container_log_level=self.container_log_level,
            code_location=self.code_location,
            model_server_workers=model_server_workers,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details, model_channel_name=None):
        init_params = super()._prepare_init_params_from_job_description(
            job_details, model_channel_name
        )
        image_uri = init_params.pop("image_uri")
        framework_version, py_version = framework_version_from_tag(image_uri.rsplit(":", 1)[-1])
        if not framework_version:
            raise ValidationError(
                f"Training job {job_details['TrainingJobName']} did not use an XGBoost image: "
                f"{image_uri}"
            )
        init_params["framework_version"] = framework_version
        init_params["py_version"] = py_version or "py3"
        return init_params


class XGBoostPredictor(Predictor):
    """CSV in, CSV out."""

    def __init__(
        self,
        endpoint_name,
        sagemaker_session=None,
        serializer=CSVSerializer(),
        deserializer=CSVDeserializer(),
    ):
        super().__init__(
            endpoint_name, sagemaker_session, serializer=serializer, deserializer=deserializer
        )


class XGBoostModel(FrameworkModel):
    """An XGBoost model served by the managed container."""

    def __init__(
        self,
        model_data,
        role,
        entry_point,
        framework_version,
        image_uri=None,
        py_version="py3",
        predictor_cls=XGBoostPredictor,
        model_server_workers=None,
        **kwargs,
    ):
        super().__init__(
            model_data, image_uri, role, entry_point, predictor_cls=predictor_cls, **kwargs
        )
        self.framework_version = framework_version
        self.py_version = py_version
        self.model_server_workers = model_server_workers

    def serving_image_uri(self, region_name, instance_type=None):
        return image_uris.retrieve(
            FRAMEWORK_NAME,
            region_name,
            version=self.framework_version,
            py_version=self.py_version,
            instance_type=instance_type,
            image_scope="inference",
        )

    def prepare_container_def(self, instance_type=None):
        if self.image_uri is None:
            self._init_sagemaker_session_if_does_not_exist()
            self.image_uri = self.serving_image_uri(
                self.sagemaker_session.boto_region_name, instance_type
            )
        return super().prepare_container_def(instance_type)

    def _framework_env_vars(self):
        env = super()._framework_env_vars()
        if self.model_server_workers:
            env["SAGEMAKER_MODEL_SERVER_WORKERS"] = str(self.model_server_workers)
        return env
