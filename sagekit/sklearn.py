"""Scikit-learn training scripts and models on the managed scikit-learn container."""

from __future__ import annotations

import logging

from . import image_uris
from .deserializers import NumpyDeserializer
from .errors import ValidationError
from .estimator import Framework
from .model import FrameworkModel
from .predictor import Predictor
from .serializers import NumpySerializer
from .vpc_utils import VPC_CONFIG_DEFAULT

logger = logging.getLogger(__name__)

FRAMEWORK_NAME = "sklearn"


def framework_version_from_tag(image_tag):
    """Split an image tag such as ``1.2-1-cpu-py3`` into ``(framework_version, py_version)``."""
    parts = image_tag.split("-")
    py_version = parts[-1] if parts[-1].startswith("py") else None
    processor_idx = next(
        (i for i, p in enumerate(parts) if p in ("cpu", "gpu")), len(parts)
    )
    return "-".join(parts[:processor_idx]), py_version


class SKLearn(Framework):
    """Run a scikit-learn script as a SageMaker training job.

    Scikit-learn training does not distribute, so only a single instance is
    accepted.
    """

    _framework_name = FRAMEWORK_NAME

    def __init__(
        self,
        entry_point,
        framework_version=None,
        py_version="py3",
        source_dir=None,
        hyperparameters=None,
        image_uri=None,
        **kwargs,
    ):
        """Initialize an SKLearn estimator.

        Args:
            entry_point (str): Training script.
            framework_version (str): Scikit-learn container version, e.g. ``1.2-1``.
                Required unless ``image_uri`` is given.
            py_version (str): Python version of the container.
            source_dir (str): Directory with the script and its helpers.
            hyperparameters (dict): Passed to the script as arguments.
            image_uri (str): Overrides the scikit-learn image.
            **kwargs: Passed to :class:`sagekit.estimator.Framework`.
        """
        instance_count = kwargs.get("instance_count")
        if instance_count is not None and instance_count != 1:
            raise ValidationError(
                "Scikit-Learn training does not support distributed training. "
                "Please remove the 'instance_count' argument or set it to 1."
            )
        if framework_version is None and image_uri is None:
            raise ValidationError("framework_version or image_uri must be specified")

        kwargs["instance_count"] = 1
        super().__init__(
            entry_point,
            source_dir,
            hyperparameters,
            image_uri=image_uri,
            **kwargs,
        )
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
        """Create an SKLearnModel from the trained artifacts.

        The training script doubles as the inference script unless
        ``entry_point`` is given.
        """
        self._ensure_latest_training_job()
        if "image_uri" not in kwargs and self.image_uri:
            kwargs["image_uri"] = self.image_uri
        if "name" not in kwargs:
            kwargs["name"] = self._current_job_name

        return SKLearnModel(
            self.model_data,
            role or self.role,
            entry_point or self.entry_point,
            framework_version=self.framework_version,
            py_version=self.py_version,
            source_dir=source_dir or self._model_source_dir(),
            container_log_level=self.container_log_level,
            code_location=self.code_location,
            model_server_workers=model_server_workers,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _model_source_dir(self):
        return self.uploaded_code.s3_prefix if self.uploaded_code else self.source_dir

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details, model_channel_name=None):
        init_params = super()._prepare_init_params_from_job_description(
            job_details, model_channel_name
        )
        image_uri = init_params.pop("image_uri")
        tag = image_uri.split(":")[-1] if ":" in image_uri.rsplit("/", 1)[-1] else ""
        framework_version, py_version = framework_version_from_tag(tag)
        if framework_version:
            init_params["framework_version"] = framework_version
            init_params["py_version"] = py_version or "py3"
        else:
            init_params["image_uri"] = image_uri
        return init_params


class SKLearnPredictor(Predictor):
    """Send NPY arrays to a scikit-learn endpoint and read NPY back."""

    def __init__(
        self,
        endpoint_name,
        sagemaker_session=None,
        serializer=NumpySerializer(),
        deserializer=NumpyDeserializer(),
    ):
        super().__init__(
            endpoint_name, sagemaker_session, serializer=serializer, deserializer=deserializer
        )


class SKLearnModel(FrameworkModel):
    """A scikit-learn model served by the managed container."""

    def __init__(
        self,
        model_data,
        role,
        entry_point,
        framework_version=None,
        py_version="py3",
        image_uri=None,
        predictor_cls=SKLearnPredictor,
        model_server_workers=None,
        **kwargs,
    ):
        if framework_version is None and image_uri is None:
            raise ValidationError("framework_version or image_uri must be specified")
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
