"""Channel definitions for training, transform and model-creation requests."""

from __future__ import annotations

from .errors import ValidationError

FILE_SYSTEM_TYPES = ["FSxLustre", "EFS"]
FILE_SYSTEM_ACCESS_MODES = ["ro", "rw"]


class ShuffleConfig:
    """Seed for shuffling the S3 objects of a channel at the start of each epoch."""

    def __init__(self, seed):
        self.seed = seed


class TrainingInput:
    """An S3 data channel for a training job.

    ``config`` holds the ``Channel`` request structure, minus the channel name.
    """

    def __init__(
        self,
        s3_data,
        distribution=None,
        compression=None,
        content_type=None,
        record_wrapping=None,
        s3_data_type="S3Prefix",
        input_mode=None,
        attribute_names=None,
        target_attribute_name=None,
        shuffle_config=None,
    ):
        """Create a training channel.

        Args:
            s3_data (str): S3 location of the data, or of a manifest.
            distribution (str): ``FullyReplicated`` (default) or ``ShardedByS3Key``.
            compression (str): ``Gzip`` or None.
            content_type (str): MIME type of the channel's data.
            record_wrapping (str): ``RecordIO`` or None.
            s3_data_type (str): ``S3Prefix``, ``ManifestFile`` or ``AugmentedManifestFile``.
            input_mode (str): Overrides the estimator's input mode for this channel.
            attribute_names (list[str]): Attributes to read from an augmented manifest.
            target_attribute_name (str): Target attribute, used by AutoML.
            shuffle_config (ShuffleConfig): Optional shuffle seed.
        """
        self.config = {
            "DataSource": {
                "S3DataSource": {
                    "S3DataType": s3_data_type,
                    "S3Uri": s3_data,
                    "S3DataDistributionType": distribution or "FullyReplicated",
                }
            }
        }

        if compression is not None:
            self.config["CompressionType"] = compression
        if content_type is not None:
            self.config["ContentType"] = content_type
        if record_wrapping is not None:
            self.config["RecordWrapperType"] = record_wrapping
        if input_mode is not None:
            self.config["InputMode"] = input_mode
        if attribute_names is not None:
            self.config["DataSource"]["S3DataSource"]["AttributeNames"] = attribute_names
        if target_attribute_name is not None:
            self.config["TargetAttributeName"] = target_attribute_name
        if shuffle_config is not None:
            self.config["ShuffleConfig"] = {"Seed": shuffle_config.seed}


class FileSystemInput:
    """An EFS or FSx for Lustre channel for a training job."""

    def __init__(
        self,
        file_system_id,
        file_system_type,
        directory_path,
        file_system_access_mode="ro",
        content_type=None,
    ):
        if file_system_type not in FILE_SYSTEM_TYPES:
            raise ValidationError(
                "Unrecognized file system type: {}. Valid values: {}.".format(
                    file_system_type, ", ".join(FILE_SYSTEM_TYPES)
                )
            )

        if file_system_access_mode not in FILE_SYSTEM_ACCESS_MODES:
            raise ValidationError(
                "Unrecognized file system access mode: {}. Valid values: {}.".format(
                    file_system_access_mode, ", ".join(FILE_SYSTEM_ACCESS_MODES)
                )
            )

        self.config = {
            "DataSource": {
                "FileSystemDataSource": {
                    "FileSystemId": file_system_id,
                    "FileSystemType": file_system_type,
                    "DirectoryPath": directory_path,
                    "FileSystemAccessMode": file_system_access_mode,
                }
            }
        }

        if content_type:
            self.config["ContentType"] = content_type


class TransformInput:
    """Data source of a batch transform job."""

    def __init__(
        self,
        data,
        data_type="S3Prefix",
        content_type=None,
        compression_type=None,
        split_type=None,
    ):
        self.data = data
        self.data_type = data_type
        self.content_type = content_type
        self.compression_type = compression_type
        self.split_type = split_type

    def to_request_dict(self):
        config = {"DataSource": {"S3DataSource": {"S3DataType": self.data_type, "S3Uri": self.data}}}
        if self.content_type is not None:
            config["ContentType"] = self.content_type
        if self.compression_type is not None:
            config["CompressionType"] = self.compression_type
        if self.split_type is not None:
            config["SplitType"] = self.split_type
        return config


class CreateModelInput:
    """Instance settings used when a model is created ahead of deployment."""

    def __init__(self, instance_type=None, accelerator_type=None):
        self.instance_type = instance_type
        self.accelerator_type = accelerator_type
