"""Upload and download helpers addressed by ``s3://`` URIs."""

from __future__ import annotations

import logging
import os
import re

from botocore.exceptions import ClientError

from .errors import ValidationError
from .session import Session
from .utils import parse_s3_url

logger = logging.getLogger(__name__)

_S3_URI_RE = re.compile(r"^s3://[a-z0-9.-]+(/.*)?$")


def is_s3_uri(value) -> bool:
    return isinstance(value, str) and bool(_S3_URI_RE.match(value))


def s3_path_join(*args):
    """Join path parts with ``/``, keeping an ``s3://`` prefix intact.

    Empty parts are dropped and duplicate slashes between parts are collapsed.
    """
    if not args:
        return ""
    first = args[0]
    prefix = ""
    if isinstance(first, str) and first.startswith("s3://"):
        prefix = "s3://"
        args = (first[len("s3://"):],) + args[1:]
    parts = [str(a).strip("/") for a in args if a not in (None, "")]
    return prefix + "/".join(p for p in parts if p)


class S3Uploader:
    """Upload local files or strings to S3."""

    @staticmethod
    def upload(local_path, desired_s3_uri, kms_key=None, sagemaker_session=None):
        """Upload a file or directory to ``desired_s3_uri``.

        Returns:
            str: The S3 URI of the uploaded data.
        """
        sagemaker_session = sagemaker_session or Session()
        bucket, key_prefix = parse_s3_url(desired_s3_uri)
        extra_args = {"SSEKMSKeyId": kms_key, "ServerSideEncryption": "aws:kms"} if kms_key else None
        return sagemaker_session.upload_data(
            path=local_path, bucket=bucket, key_prefix=key_prefix, extra_args=extra_args
        )

    @staticmethod
    def upload_string_as_file_body(body, desired_s3_uri, kms_key=None, sagemaker_session=None):
        sagemaker_session = sagemaker_session or Session()
        bucket, key = parse_s3_url(desired_s3_uri)
        sagemaker_session.upload_string_as_file_body(
            body=body, bucket=bucket, key=key, kms_key=kms_key
        )
        return desired_s3_uri


class S3Downloader:
    """Read or download objects from S3."""

    @staticmethod
    def download(s3_uri, local_path, kms_key=None, sagemaker_session=None):
        """Download every object under ``s3_uri`` into ``local_path``.

        Returns:
            list[str]: Local paths of the downloaded files.
        """
        sagemaker_session = sagemaker_session or Session()
        bucket, key_prefix = parse_s3_url(s3_uri)
        extra_args = {"SSECustomerKey": kms_key} if kms_key else None
        return sagemaker_session.download_data(
            path=local_path, bucket=bucket, key_prefix=key_prefix, extra_args=extra_args
        )

    @staticmethod
    def read_file(s3_uri, sagemaker_session=None):
        sagemaker_session = sagemaker_session or Session()
        bucket, key = parse_s3_url(s3_uri)
        return sagemaker_session.read_s3_file(bucket=bucket, key_prefix=key)

    @staticmethod
    def list(s3_uri, sagemaker_session=None):
        """List the S3 URIs of every object under ``s3_uri``."""
        sagemaker_session = sagemaker_session or Session()
        bucket, key_prefix = parse_s3_url(s3_uri)
        file_keys = sagemaker_session.list_s3_files(bucket=bucket, key_prefix=key_prefix)
        return [f"s3://{bucket}/{key}" for key in file_keys]


def local_or_s3(path):
    """Return ``"s3"`` for an S3 URI and ``"local"`` for an existing local path."""
    if is_s3_uri(path):
        return "s3"
    if os.path.exists(path):
        return "local"
    raise ValidationError(f"{path} is neither an S3 URI nor an existing local path.")


def download_folder(bucket_name, prefix, target, sagemaker_session=None):
    """Download an S3 folder, or a single object, into ``target``.

    A prefix naming an existing object downloads just that object.

    Returns:
        list[str]: Local paths of the downloaded files.
    """
    sagemaker_session = sagemaker_session or Session()
    prefix = prefix.lstrip("/")

    if prefix and not prefix.endswith("/"):
        try:
            sagemaker_session.s3_client.head_object(Bucket=bucket_name, Key=prefix)
        except ClientError as e:
            if e.response["Error"]["Code"] not in ("404", "NoSuchKey"):
                raise
        else:
            os.makedirs(target, exist_ok=True)
            file_destination = os.path.join(target, os.path.basename(prefix))
            sagemaker_session.s3_client.download_file(
                Bucket=bucket_name, Key=prefix, Filename=file_destination
            )
            return [file_destination]

    return sagemaker_session.download_data(path=target, bucket=bucket_name, key_prefix=prefix)
