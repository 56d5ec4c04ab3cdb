"""Base estimator for the first-party SageMaker algorithms, and RecordSet upload."""

from __future__ import annotations

import io
import json
import logging
import math

from botocore.exceptions import ClientError

from .. import image_uris
from ..errors import ValidationError
from ..estimator import EstimatorBase, _TrainingJob
from ..inputs import FileSystemInput, TrainingInput
from ..utils import parse_s3_url, sagemaker_timestamp
from .common import write_numpy_to_dense_tensor
from .hyperparameter import Hyperparameter as hp
from .validation import gt

logger = logging.getLogger(__name__)


class AmazonAlgorithmEstimatorBase(EstimatorBase):
    """Base class for Amazon first-party Estimator implementations.

    Subclasses set ``repo_name`` and ``repo_version`` and declare their
    hyperparameters as :class:`~sagekit.amazon.hyperparameter.Hyperparameter`
    class attributes. Training data is passed as one or more RecordSets.
    """

    repo_name = None
    repo_version = None

    feature_dim = hp("feature_dim", gt(0), data_type=int)
    mini_batch_size = hp("mini_batch_size", gt(0), data_type=int)

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        data_location=None,
        enable_network_isolation=False,
        **kwargs,
    ):
        """Initialize an AmazonAlgorithmEstimatorBase.

        Args:
            role (str): Execution role.
            instance_count (int): Number of training instances. Also the
                number of shards :meth:`record_set` writes.
            instance_type (str): Training instance type.
            data_location (str): S3 prefix for RecordSet uploads. Defaults to
                ``s3://{default_bucket}/sagemaker-record-sets/``.
            enable_network_isolation (bool): Run training without network access.
            **kwargs: Passed to :class:`~sagekit.estimator.EstimatorBase`.
        """
        super().__init__(
            role,
            instance_count,
            instance_type,
            enable_network_isolation=enable_network_isolation,
            **kwargs,
        )
        data_location = data_location or "s3://{}/sagemaker-record-sets/".format(
            self.sagemaker_session.default_bucket()
        )
        self._data_location = None
        self.data_location = data_location

    def training_image_uri(self):
        return image_uris.retrieve(
            self.repo_name, self.sagemaker_session.boto_region_name, version=self.repo_version
        )

    def hyperparameters(self):
        return hp.serialize_all(self)

    @property
    def data_location(self):
        return self._data_location

    @data_location.setter
    def data_location(self, data_location):
        if not data_location.startswith("s3://"):
            raise ValidationError(
                'Expecting an S3 URL beginning with "s3://". Got "{}"'.format(data_location)
            )
        if data_location[-1] != "/":
            data_location = data_location + "/"
        self._data_location = data_location

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details, model_channel_name=None):
        init_params = super()._prepare_init_params_from_job_description(
            job_details, model_channel_name
        )

        # hyperparameter names can differ from the attributes holding them
        for attribute in dir(cls):
            value = getattr(cls, attribute)
            if isinstance(value, hp) and value.name in init_params["hyperparameters"]:
                init_params[attribute] = init_params["hyperparameters"][value.name]

        del init_params["hyperparameters"]
        del init_params["image_uri"]
        return init_params

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        """Set the job name and the ``feature_dim``/``mini_batch_size`` hyperparameters.

        Raises:
            ValidationError: If a list of records has no ``train`` channel.
        """
        super()._prepare_for_training(job_name=job_name)

        feature_dim = None

        if isinstance(records, list):
            for record in records:
                if record.channel == "train":
                    feature_dim = record.feature_dim
                    break
            if feature_dim is None:
                raise ValidationError("Must provide train channel.")
        else:
            feature_dim = records.feature_dim

        self.feature_dim = feature_dim
        self.mini_batch_size = mini_batch_size

    def fit(self, records, mini_batch_size=None, wait=True, logs=True, job_name=None):
        """Fit this estimator on RecordSets stored in S3.

        Each record holds a dense vector in the ``values`` feature and, when
        labeled, a scalar in the ``values`` label. See :meth:`record_set`.

        Args:
            records (RecordSet or list[RecordSet]): Training data, one per channel.
            mini_batch_size (int): Mini-batch size. The algorithm default if None.
            wait (bool): Block until the job finishes.
            logs (bool): Tail the job's logs while waiting.
            job_name (str): Training job name. Generated if omitted.
        """
        self._prepare_for_training(records, job_name=job_name, mini_batch_size=mini_batch_size)

        self.latest_training_job = _TrainingJob.start_new(self, records)
        if wait:
            self.latest_training_job.wait(logs=logs)

    def record_set(self, train, labels=None, channel="train", encrypt=False):
        """Encode a matrix, and optional labels, as RecordIO-protobuf shards in S3.

        One shard is written per training instance, plus a manifest listing
        them, under ``{data_location}{ClassName}-{timestamp}/``.

        Args:
            train (numpy.ndarray): 2-D training data.
            labels (numpy.ndarray): 1-D labels, one per row of ``train``.
            channel (str): Training channel the RecordSet is bound to.
            encrypt (bool): Encrypt the objects with AES-256 server-side encryption.

        Returns:
            RecordSet: Points at the uploaded manifest.
        """
        bucket, key_prefix = parse_s3_url(self.data_location)
        key_prefix = key_prefix + "{}-{}/".format(type(self).__name__, sagemaker_timestamp())
        key_prefix = key_prefix.lstrip("/")
        logger.debug("Uploading to bucket %s and key_prefix %s", bucket, key_prefix)
        manifest_s3_file = upload_numpy_to_s3_shards(
            self.instance_count,
            self.sagemaker_session.s3_client,
            bucket,
            key_prefix,
            train,
            labels,
            encrypt,
        )
        logger.debug("Created manifest file %s", manifest_s3_file)
        return RecordSet(
            manifest_s3_file,
            num_records=train.shape[0],
            feature_dim=train.shape[1],
            channel=channel,
        )


class RecordSet:
    """A collection of Amazon ``Record`` objects serialized and stored in S3."""

    def __init__(
        self, s3_data, num_records, feature_dim, s3_data_type="ManifestFile", channel="train"
    ):
        """Initialize a RecordSet.

        Args:
            s3_data (str): S3 location of the training data.
            num_records (int): Number of records in the set.
            feature_dim (int): Length of the ``values`` vectors.
            s3_data_type (str): ``ManifestFile`` or ``S3Prefix``.
            channel (str): Training channel the set is bound to.
        """
        self.s3_data = s3_data
        self.feature_dim = feature_dim
        self.num_records = num_records
        self.s3_data_type = s3_data_type
        self.channel = channel

    def __repr__(self):
        return str((RecordSet, self.__dict__))

    def data_channel(self):
        """Return ``{channel: TrainingInput}`` for ``fit()``."""
        return {self.channel: self.records_s3_input()}

    def records_s3_input(self):
        return TrainingInput(
            self.s3_data, distribution="ShardedByS3Key", s3_data_type=self.s3_data_type
        )


class FileSystemRecordSet:
    """RecordIO-protobuf data stored on EFS or FSx for Lustre."""

    def __init__(
        self,
        file_system_id,
        file_system_type,
        directory_path,
        num_records,
        feature_dim,
        file_system_access_mode="ro",
        channel="train",
    ):
        self.file_system_input = FileSystemInput(
            file_system_id, file_system_type, directory_path, file_system_access_mode
        )
        self.feature_dim = feature_dim
        self.num_records = num_records
        self.channel = channel

    def __repr__(self):
        return str((FileSystemRecordSet, self.__dict__))

    def data_channel(self):
        return {self.channel: self.file_system_input}


def _build_shards(num_shards, array):
    """Split ``array`` row-wise into chunks of ``ceil(n / num_shards)`` rows."""
    if num_shards < 1:
        raise ValidationError("num_shards must be >= 1")
    shard_size = int(math.ceil(array.shape[0] / num_shards))
    if shard_size == 0:
        raise ValidationError("Array length is less than num shards")
    return [array[i : i + shard_size] for i in range(0, array.shape[0], shard_size)]


def upload_numpy_to_s3_shards(
    num_shards, s3, bucket, key_prefix, array, labels=None, encrypt=False
):
    """Upload ``array`` and ``labels`` to ``num_shards`` RecordIO-protobuf objects.

    Objects land in ``s3://{bucket}/{key_prefix}/`` with a ``.amazon.manifest``
    listing them. On failure every shard already uploaded is deleted.

    Returns:
        str: S3 URI of the manifest.
    """
    shards = _build_shards(num_shards, array)
    if labels is not None:
        label_shards = _build_shards(num_shards, labels)
    uploaded_files = []
    if key_prefix[-1] != "/":
        key_prefix = key_prefix + "/"
    extra_put_kwargs = {"ServerSideEncryption": "AES256"} if encrypt else {}
    try:
        for shard_index, shard in enumerate(shards):
            with io.BytesIO() as file:
                if labels is not None:
                    write_numpy_to_dense_tensor(file, shard, label_shards[shard_index])
                else:
                    write_numpy_to_dense_tensor(file, shard)
                file.seek(0)
                shard_index_string = str(shard_index).zfill(len(str(len(shards))))
                file_name = "matrix_{}.pbr".format(shard_index_string)
                key = key_prefix + file_name
                logger.debug("Creating object %s in bucket %s", key, bucket)
                s3.put_object(Bucket=bucket, Key=key, Body=file.getvalue(), **extra_put_kwargs)
                uploaded_files.append(file_name)
        manifest_key = key_prefix + ".amazon.manifest"
        manifest_str = json.dumps(
            [{"prefix": "s3://{}/{}".format(bucket, key_prefix)}] + uploaded_files
        )
        s3.put_object(
            Bucket=bucket, Key=manifest_key, Body=manifest_str.encode("utf-8"), **extra_put_kwargs
        )
        return "s3://{}/{}".format(bucket, manifest_key)
    except (ClientError, ValidationError):
        for file in uploaded_files:
            s3.delete_object(Bucket=bucket, Key=key_prefix + file)
        raise


def _num_train_records(records):
    """Number of records in the ``train`` channel of ``records``."""
    if isinstance(records, list):
        for record in records:
            if record.channel == "train":
                return record.num_records
        raise ValidationError("Must provide train channel.")
    return records.num_records
