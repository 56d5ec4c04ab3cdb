"""Inference pipelines: several models chained behind one endpoint."""

from __future__ import annotations

import logging

from .errors import ValidationError
from .session import Session, pipeline_container_def, production_variant
from .transformer import Transformer
from .utils import name_from_image

logger = logging.getLogger(__name__)


class PipelineModel:
    """A linear sequence of models, each container feeding the next.

    All containers are deployed together on the same instances.
    """

    def __init__(
        self,
        models,
        role,
        predictor_cls=None,
        name=None,
        vpc_config=None,
        sagemaker_session=None,
        enable_network_isolation=False,
    ):
        """Initialize a PipelineModel.

        Args:
            models (list[sagekit.model.Model]): Models in invocation order.
            role (str): Execution role.
            predictor_cls (callable): Called with ``(endpoint_name, sagemaker_session)``
                by :meth:`deploy`.
            name (str): Model name. Generated from the first image if omitted.
            vpc_config (dict): VpcConfig shared by all containers.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            enable_network_isolation (bool): Run the containers without network access.
        """
        self.models = models
        self.role = role
        self.predictor_cls = predictor_cls
        self.name = name
        self.vpc_config = vpc_config
        self.sagemaker_session = sagemaker_session
        self.enable_network_isolation = enable_network_isolation
        self.endpoint_name = None

    def pipeline_container_def(self, instance_type=None):
        """Container definitions of every model, in invocation order."""
        return pipeline_container_def(self.models, instance_type)

    def _create_sagemaker_pipeline_model(self, instance_type, tags=None):
        if self.sagemaker_session is None:
            self.sagemaker_session = Session()

        containers = self.pipeline_container_def(instance_type)
        self.name = self.name or name_from_image(containers[0]["Image"])
        self.sagemaker_session.create_model(
            self.name,
            self.role,
            containers,
            vpc_config=self.vpc_config,
            enable_network_isolation=self.enable_network_isolation,
            tags=tags,
        )

    def deploy(
        self,
        initial_instance_count,
        instance_type,
        serializer=None,
        deserializer=None,
        endpoint_name=None,
        tags=None,
        wait=True,
        update_endpoint=False,
        data_capture_config=None,
    ):
        """Create the pipeline model and host it on an endpoint.

        With ``update_endpoint`` an existing endpoint of that name is moved to
        a new endpoint config instead of creating a new endpoint.

        Returns:
            The ``predictor_cls`` instance for the endpoint, or None without one.
        """
        if self.role is None:
            raise ValidationError("Role can not be null for deploying a model")

        self._create_sagemaker_pipeline_model(instance_type, tags=tags)

        variant = production_variant(self.name, instance_type, initial_instance_count)
        self.endpoint_name = endpoint_name or self.name

        data_capture_config_dict = None
        if data_capture_config is not None:
            data_capture_config_dict = data_capture_config._to_request_dict()

        if update_endpoint:
            endpoint_config_name = self.sagemaker_session.create_endpoint_config(
                name=self.name,
                model_name=self.name,
                initial_instance_count=initial_instance_count,
                instance_type=instance_type,
                tags=tags,
                data_capture_config_dict=data_capture_config_dict,
            )
            self.sagemaker_session.update_endpoint(
                self.endpoint_name, endpoint_config_name, wait=wait
            )
        else:
            self.sagemaker_session.endpoint_from_production_variants(
                name=self.endpoint_name,
                production_variants=[variant],
                tags=tags,
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
        """Create the pipeline model and return a Transformer for it."""
        self._create_sagemaker_pipeline_model(instance_type, tags=tags)

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
            base_transform_job_name=self.name,
            volume_kms_key=volume_kms_key,
            sagemaker_session=self.sagemaker_session,
        )

    def delete_model(self):
        if self.name is None:
            raise ValidationError(
                "The SageMaker model must be created before attempting to delete."
            )
        self.sagemaker_session.delete_model(self.name)
