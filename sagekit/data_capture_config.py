"""Data capture settings for an endpoint, used by model monitoring."""

from __future__ import annotations

from .errors import ValidationError
from .s3 import s3_path_join
from .session import Session

_MODEL_MONITOR_S3_PATH = "model-monitor"
_DATA_CAPTURE_S3_PATH = "data-capture"

_CAPTURE_MODES = {"REQUEST": "Input", "RESPONSE": "Output"}


class DataCaptureConfig:
    """Which requests and responses an endpoint records to S3, and where."""

    def __init__(
        self,
        enable_capture,
        sampling_percentage=20,
        destination_s3_uri=None,
        kms_key_id=None,
        capture_options=None,
        csv_content_types=None,
        json_content_types=None,
        sagemaker_session=None,
    ):
        """Initialize a DataCaptureConfig.

        Args:
            enable_capture (bool): Whether data capture is enabled.
            sampling_percentage (int): Percentage of requests to capture, 0 to 100.
            destination_s3_uri (str): Where captured data is written. Defaults to
                ``s3://{default_bucket}/model-monitor/data-capture``.
            kms_key_id (str): KMS key used to encrypt the captured data.
            capture_options ([str]): Any of ``REQUEST`` and ``RESPONSE``. Both by default.
            csv_content_types ([str]): Content types treated as CSV.
            json_content_types ([str]): Content types treated as JSON.
            sagemaker_session (sagekit.session.Session): Session used for the default bucket.

        Raises:
            ValidationError: If the sampling percentage or a capture option is invalid.
        """
        if not 0 <= sampling_percentage <= 100:
            raise ValidationError(
                f"sampling_percentage must be between 0 and 100, got {sampling_percentage}"
            )
        capture_options = capture_options or ["REQUEST", "RESPONSE"]
        unknown = [opt for opt in capture_options if opt.upper() not in _CAPTURE_MODES]
        if unknown:
            raise ValidationError(
                f"Invalid capture options {unknown}. Expecting any of {list(_CAPTURE_MODES)}"
            )

        self.enable_capture = enable_capture
        self.sampling_percentage = sampling_percentage
        self.destination_s3_uri = destination_s3_uri
        if self.destination_s3_uri is None:
            sagemaker_session = sagemaker_session or Session()
            self.destination_s3_uri = s3_path_join(
                "s3://",
                sagemaker_session.default_bucket(),
                _MODEL_MONITOR_S3_PATH,
                _DATA_CAPTURE_S3_PATH,
            )

        self.kms_key_id = kms_key_id
        self.capture_options = capture_options
        self.csv_content_types = csv_content_types or ["text/csv"]
        self.json_content_types = json_content_types or ["application/json"]

    def _to_request_dict(self):
        """Build the ``DataCaptureConfig`` part of CreateEndpointConfig."""
        request_dict = {
            "EnableCapture": self.enable_capture,
            "InitialSamplingPercentage": self.sampling_percentage,
            "DestinationS3Uri": self.destination_s3_uri,
            "CaptureOptions": [
                {"CaptureMode": _CAPTURE_MODES[option.upper()]} for option in self.capture_options
            ],
        }

        if self.kms_key_id is not None:
            request_dict["KmsKeyId"] = self.kms_key_id

        if self.csv_content_types is not None or self.json_content_types is not None:
            request_dict["CaptureContentTypeHeader"] = {}
        if self.csv_content_types is not None:
            request_dict["CaptureContentTypeHeader"]["CsvContentTypes"] = self.csv_content_types
        if self.json_content_types is not None:
            request_dict["CaptureContentTypeHeader"]["JsonContentTypes"] = self.json_content_types

        return request_dict
