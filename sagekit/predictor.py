"""Real-time inference against a deployed endpoint."""

from __future__ import annotations

import logging

from .data_capture_config import DataCaptureConfig
from .deserializers import BytesDeserializer
from .errors import ValidationError
from .model_monitor.model_monitoring import DefaultModelMonitor, ModelMonitor
from .serializers import IdentitySerializer
from .session import Session, production_variant
from .utils import name_from_base

logger = logging.getLogger(__name__)


class Predictor:
    """Make predictions against a SageMaker endpoint, and manage its lifecycle."""

    def __init__(
        self,
        endpoint_name,
        sagemaker_session=None,
        serializer=IdentitySerializer(),
        deserializer=BytesDeserializer(),
    ):
        """Initialize a Predictor.

        Args:
            endpoint_name (str): Name of the endpoint to invoke.
            sagemaker_session (sagekit.session.Session): Session to use. Created if omitted.
            serializer: Encodes ``data`` passed to :meth:`predict`.
            deserializer: Decodes the response body.
        """
        self.endpoint_name = endpoint_name
        self.sagemaker_session = sagemaker_session or Session()
        self.serializer = serializer
        self.deserializer = deserializer
        self._endpoint_config_name = None
        self._model_names = None

    def predict(
        self,
        data,
        initial_args=None,
        target_model=None,
        target_variant=None,
        inference_id=None,
    ):
        """Invoke the endpoint and return the deserialized response.

        Args:
            data: Input, encoded with the serializer unless it is already bytes.
            initial_args (dict): Extra ``InvokeEndpoint`` arguments.
            target_model (str): Model to call on a multi-model endpoint.
            target_variant (str): Production variant to call.
            inference_id (str): Identifier recorded with captured data.
        """
        request_args = self._create_request_args(
            data, initial_args, target_model, target_variant, inference_id
        )
        response = self.sagemaker_session.sagemaker_runtime_client.invoke_endpoint(**request_args)
        return self._handle_response(response)

    def _handle_response(self, response):
        response_body = response["Body"]
        content_type = response.get("ContentType", "application/octet-stream")
        return self.deserializer.deserialize(response_body, content_type)

    def _create_request_args(
        self, data, initial_args=None, target_model=None, target_variant=None, inference_id=None
    ):
        args = dict(initial_args) if initial_args else {}

        if "EndpointName" not in args:
            args["EndpointName"] = self.endpoint_name
        if "ContentType" not in args:
            args["ContentType"] = self.content_type
        if "Accept" not in args:
            args["Accept"] = ", ".join(self.accept)
        if target_model:
            args["TargetModel"] = target_model
        if target_variant:
            args["TargetVariant"] = target_variant
        if inference_id:
            args["InferenceId"] = inference_id

        args["Body"] = data if isinstance(data, bytes) else self.serializer.serialize(data)
        return args

    @property
    def content_type(self):
        return self.serializer.content_type

    @property
    def accept(self):
        return self.deserializer.accept

    def update_endpoint(
        self,
        initial_instance_count=None,
        instance_type=None,
        accelerator_type=None,
        model_name=None,
        tags=None,
        kms_key=None,
        data_capture_config_dict=None,
        wait=True,
    ):
        """Move the endpoint to a new endpoint config built from the current one.

        Passing any of ``initial_instance_count``, ``instance_type`` or
        ``model_name`` replaces the production variant. Instance count and
        type are then both required, and the model defaults to the one the
        endpoint already serves.
        """
        new_config_name = name_from_base(self.endpoint_name)

        production_variants = None
        if initial_instance_count or instance_type or accelerator_type or model_name:
            if instance_type is None or initial_instance_count is None:
                raise ValidationError(
                    "Missing initial_instance_count and/or instance_type. Provided values: "
                    f"initial_instance_count={initial_instance_count}, instance_type={instance_type}, "
                    f"accelerator_type={accelerator_type}, model_name={model_name}."
                )
            if model_name is None:
                model_names = self._get_model_names()
                if len(model_names) > 1:
                    raise ValidationError(
                        f"Unable to choose a default model for a new EndpointConfig because "
                        f"the endpoint has multiple models: {', '.join(model_names)}"
                    )
                model_name = model_names[0]
            production_variants = [
                production_variant(
                    model_name,
                    instance_type,
                    initial_instance_count,
                    accelerator_type=accelerator_type,
                )
            ]

        existing_name = self._get_endpoint_config_name()
        existing = self.sagemaker_session.sagemaker_client.describe_endpoint_config(
            EndpointConfigName=existing_name
        )
        request = {
            "EndpointConfigName": new_config_name,
            "ProductionVariants": production_variants or existing["ProductionVariants"],
        }
        tags = tags or self.sagemaker_session.list_tags(existing["EndpointConfigArn"])
        if tags:
            request["Tags"] = tags
        kms_key = kms_key or existing.get("KmsKeyId")
        if kms_key:
            request["KmsKeyId"] = kms_key
        data_capture = data_capture_config_dict or existing.get("DataCaptureConfig")
        if data_capture:
            request["DataCaptureConfig"] = data_capture

        logger.info("Creating endpoint-config with name %s", new_config_name)
        self.sagemaker_session.sagemaker_client.create_endpoint_config(**request)
        self.sagemaker_session.update_endpoint(self.endpoint_name, new_config_name, wait=wait)
        self._endpoint_config_name = new_config_name
        self._model_names = None

    def _delete_endpoint_config(self):
        self.sagemaker_session.delete_endpoint_config(self._get_endpoint_config_name())

    def delete_endpoint(self, delete_endpoint_config=True):
        """Delete the endpoint, and by default its endpoint config."""
        if delete_endpoint_config:
            self._delete_endpoint_config()
        self.sagemaker_session.delete_endpoint(self.endpoint_name)

    def delete_model(self):
        """Delete every model behind the endpoint."""
        for model_name in self._get_model_names():
            self.sagemaker_session.delete_model(model_name)

    def enable_data_capture(self):
        """Turn on data capture with default sampling and destination."""
        self.update_data_capture_config(
            data_capture_config=DataCaptureConfig(
                enable_capture=True, sagemaker_session=self.sagemaker_session
            )
        )

    def disable_data_capture(self):
        self.update_data_capture_config(
            data_capture_config=DataCaptureConfig(
                enable_capture=False, sagemaker_session=self.sagemaker_session
            )
        )

    def update_data_capture_config(self, data_capture_config):
        """Apply a new DataCaptureConfig through a new endpoint config."""
        endpoint_desc = self.sagemaker_session.sagemaker_client.describe_endpoint(
            EndpointName=self.endpoint_name
        )
        new_config_name = name_from_base(base=self.endpoint_name)
        data_capture_config_dict = None
        if data_capture_config is not None:
            data_capture_config_dict = data_capture_config._to_request_dict()

        self.sagemaker_session.create_endpoint_config_from_existing(
            existing_config_name=endpoint_desc["EndpointConfigName"],
            new_config_name=new_config_name,
            new_data_capture_config_dict=data_capture_config_dict,
        )
        self.sagemaker_session.update_endpoint(
            endpoint_name=self.endpoint_name, endpoint_config_name=new_config_name
        )
        self._endpoint_config_name = new_config_name

    def list_monitors(self):
        """Return a monitor object for each monitoring schedule on the endpoint."""
        monitoring_schedules_dict = self.sagemaker_session.list_monitoring_schedules(
            endpoint_name=self.endpoint_name
        )
        summaries = monitoring_schedules_dict["MonitoringScheduleSummaries"]
        if not summaries:
            print(f"No monitors found for endpoint. endpoint: {self.endpoint_name}")
            return []

        monitors = []
        for schedule in summaries:
            schedule_name = schedule["MonitoringScheduleName"]
            if schedule.get("MonitoringType", "DataQuality") == "DataQuality":
                monitors.append(
                    DefaultModelMonitor.attach(
                        monitor_schedule_name=schedule_name,
                        sagemaker_session=self.sagemaker_session,
                    )
                )
            else:
                monitors.append(
                    ModelMonitor.attach(
                        monitor_schedule_name=schedule_name,
                        sagemaker_session=self.sagemaker_session,
                    )
                )
        return monitors

    def _get_endpoint_config_name(self):
        if self._endpoint_config_name is None:
            endpoint_desc = self.sagemaker_session.sagemaker_client.describe_endpoint(
                EndpointName=self.endpoint_name
            )
            self._endpoint_config_name = endpoint_desc["EndpointConfigName"]
        return self._endpoint_config_name

    def _get_model_names(self):
        if self._model_names is None:
            endpoint_config = self.sagemaker_session.sagemaker_client.describe_endpoint_config(
                EndpointConfigName=self._get_endpoint_config_name()
            )
            self._model_names = [
                variant["ModelName"] for variant in endpoint_config["ProductionVariants"]
            ]
        return self._model_names
