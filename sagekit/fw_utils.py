"""Source code staging shared by framework estimators and models."""

from __future__ import annotations

from collections import namedtuple
import logging
import os
import shutil
import tempfile

from .errors import ValidationError
from .utils import create_tar_file, name_from_image

logger = logging.getLogger(__name__)

UploadedCode = namedtuple("UploadedCode", ["s3_prefix", "script_name"])

_TAR_SOURCE_FILENAME = "sourcedir.tar.gz"


def validate_source_dir(script, directory):
    """Check that ``script`` exists inside ``directory``."""
    if directory and not directory.lower().startswith("s3://"):
        if not os.path.isfile(os.path.join(directory, script)):
            raise ValidationError(
                f'No file named "{script}" was found in directory "{directory}".'
            )
    return True


def tar_and_upload_dir(
    sagemaker_session, bucket, s3_key_prefix, script, directory=None, dependencies=None, kms_key=None
):
    """Package the training or inference code and upload it to S3.

    Without ``directory`` only ``script`` is packaged; with one, every file
    in the directory is. A ``directory`` already in S3 is used as is.

    Returns:
        UploadedCode: S3 URI of the tarball and the script name inside it.
    """
    if directory and directory.lower().startswith("s3://"):
        return UploadedCode(s3_prefix=directory, script_name=os.path.basename(script))

    script_name = script if directory else os.path.basename(script)
    key = f"{s3_key_prefix}/{_TAR_SOURCE_FILENAME}"
    extra_args = {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": kms_key} if kms_key else None

    tmp = tempfile.mkdtemp()
    try:
        source_files = _list_files_to_compress(script, directory) + list(dependencies or [])
        tar_file = create_tar_file(source_files, os.path.join(tmp, _TAR_SOURCE_FILENAME))
        sagemaker_session.s3_client.upload_file(tar_file, bucket, key, ExtraArgs=extra_args)
    finally:
        shutil.rmtree(tmp)

    return UploadedCode(s3_prefix=f"s3://{bucket}/{key}", script_name=script_name)


def _list_files_to_compress(script, directory):
    if directory is None:
        return [script]
    return [os.path.join(directory, name) for name in os.listdir(directory)]


def model_code_key_prefix(code_location_key_prefix, model_name, image):
    """S3 key prefix for model code: the code location prefix plus the model name."""
    return "/".join(filter(None, [code_location_key_prefix, model_name or name_from_image(image)]))
