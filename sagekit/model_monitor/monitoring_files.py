"""JSON files written and read by monitoring jobs: statistics, constraints and violations."""

from __future__ import annotations

import json
import logging
import os
import uuid

from botocore.exceptions import ClientError

from ..errors import NotFoundError
from ..s3 import S3Downloader, S3Uploader, s3_path_join
from ..session import Session

logger = logging.getLogger(__name__)

NO_SUCH_KEY_CODES = ("NoSuchKey", "404")


class ModelMonitoringFile:
    """A JSON document stored in S3."""

    default_file_name = None

    def __init__(self, body_dict, file_s3_uri, kms_key=None, sagemaker_session=None):
        self.body_dict = body_dict
        self.file_s3_uri = file_s3_uri
        self.kms_key = kms_key
        self.session = sagemaker_session

    def save(self, new_save_location_s3_uri=None):
        """Write ``body_dict`` back to S3, optionally to a new location.

        Returns:
            str: The S3 URI written.
        """
        if new_save_location_s3_uri is not None:
            self.file_s3_uri = new_save_location_s3_uri

        return S3Uploader.upload_string_as_file_body(
            body=json.dumps(self.body_dict),
            desired_s3_uri=self.file_s3_uri,
            kms_key=self.kms_key,
            sagemaker_session=self.session,
        )

    @classmethod
    def from_s3_uri(cls, file_s3_uri, kms_key=None, sagemaker_session=None):
        """Load the file at ``file_s3_uri``.

        Raises:
            NotFoundError: If no object exists at the URI.
        """
        try:
            body = S3Downloader.read_file(s3_uri=file_s3_uri, sagemaker_session=sagemaker_session)
        except ClientError as error:
            if error.response["Error"]["Code"] in NO_SUCH_KEY_CODES:
                raise NotFoundError(
                    f"Could not retrieve {cls.__name__} file at location '{file_s3_uri}'. "
                    f"To manually retrieve a {cls.__name__} object from a given uri, use "
                    f"'{cls.__name__}.from_s3_uri(my_s3_uri)'."
                ) from error
            raise

        return cls(
            body_dict=json.loads(body),
            file_s3_uri=file_s3_uri,
            kms_key=kms_key,
            sagemaker_session=sagemaker_session,
        )

    @classmethod
    def from_string(cls, string, kms_key=None, file_name=None, sagemaker_session=None):
        """Upload ``string`` under ``s3://{default_bucket}/monitoring/{uuid}/`` and load it."""
        sagemaker_session = sagemaker_session or Session()
        file_name = file_name or cls.default_file_name
        desired_s3_uri = s3_path_join(
            "s3://", sagemaker_session.default_bucket(), "monitoring", str(uuid.uuid4()), file_name
        )
        s3_uri = S3Uploader.upload_string_as_file_body(
            body=string,
            desired_s3_uri=desired_s3_uri,
            kms_key=kms_key,
            sagemaker_session=sagemaker_session,
        )
        return cls.from_s3_uri(s3_uri, kms_key=kms_key, sagemaker_session=sagemaker_session)

    @classmethod
    def from_file_path(cls, file_path, kms_key=None, sagemaker_session=None):
        """Upload a local JSON file and load it."""
        with open(file_path, "r") as f:
            file_body = f.read()

        return cls.from_string(
            file_body,
            kms_key=kms_key,
            file_name=os.path.basename(file_path),
            sagemaker_session=sagemaker_session,
        )


class Statistics(ModelMonitoringFile):
    """Statistics computed over a baseline dataset or captured traffic."""

    default_file_name = "statistics.json"


class Constraints(ModelMonitoringFile):
    """Constraints suggested from a baseline, evaluated against captured traffic."""

    default_file_name = "constraints.json"

    def set_monitoring(self, enable_monitoring, feature_name=None):
        """Turn constraint evaluation on or off, for the whole file or one feature."""
        flag = "Enabled" if enable_monitoring else "Disabled"
        if feature_name is None:
            self.body_dict.setdefault("monitoring_config", {})["evaluate_constraints"] = flag
            return

        for feature in self.body_dict.get("features", []):
            if feature.get("name") == feature_name:
                string_constraints = feature.setdefault("string_constraints", {})
                overrides = string_constraints.setdefault("monitoring_config_overrides", {})
                overrides["evaluate_constraints"] = flag


class ConstraintViolations(ModelMonitoringFile):
    """Violations found by a monitoring execution."""

    default_file_name = "constraint_violations.json"
