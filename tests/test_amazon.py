"""Tests for the first-party algorithm estimators and the RecordIO codec."""

import io
import json
from unittest.mock import Mock

from botocore.exceptions import ClientError
import numpy as np
import pytest

from sagekit.amazon import (
    LDA,
    KMeans,
    LinearLearner,
    RandomCutForest,
    RecordSet,
    upload_numpy_to_s3_shards,
)
from sagekit.amazon.common import (
    RecordDeserializer,
    RecordSerializer,
    read_records,
    write_numpy_to_dense_tensor,
)
from sagekit.amazon.hyperparameter import Hyperparameter
from sagekit.amazon.validation import ge, gt, isin, le
from sagekit.errors import ValidationError

from .conftest import BUCKET, ROLE


class _Holder:
    count = Hyperparameter("count", (ge(1), le(10)), "An integer in [1, 10]", int)
    mode = Hyperparameter("mode", isin("a", "b"), 'One of "a", "b"', str)
    weights = Hyperparameter("weights", (), "A list", list)


def test_hyperparameter_descriptor() -> None:
    """Values are converted, validated and serialized as strings."""
    holder = _Holder()
    holder.count = "3"
    holder.mode = "a"
    holder.weights = [1, 2]
    assert holder.count == 3
    assert Hyperparameter.serialize_all(holder) == {"count": "3", "mode": "a", "weights": "[1, 2]"}


def test_hyperparameter_validation_message() -> None:
    """Invalid values raise with the usage guide."""
    holder = _Holder()
    with pytest.raises(ValidationError, match=r"Expecting: An integer in \[1, 10\]"):
        holder.count = 11
    with pytest.raises(ValidationError):
        holder.mode = "c"


def test_hyperparameter_none_is_dropped() -> None:
    """Cleared values are not sent, and unset ones raise AttributeError."""
    holder = _Holder()
    with pytest.raises(AttributeError):
        holder.count  # noqa: B018
    holder.count = 2
    holder.count = None
    assert Hyperparameter.serialize_all(holder) == {}


def test_validation_predicates_have_docs() -> None:
    """Predicate factories describe themselves."""
    assert gt(1)(2) and not gt(1)(1)
    assert "greater than 1" in gt(1).__doc__


def test_record_codec() -> None:
    """Dense rows and labels survive a write and a read."""
    buffer = io.BytesIO()
    array = np.array([[1.0, 2.0], [3.0, 4.0]], dtype="float32")
    write_numpy_to_dense_tensor(buffer, array, np.array([0.0, 1.0], dtype="float32"))
    buffer.seek(0)
    records = read_records(buffer)
    assert len(records) == 2
    assert list(records[1].features["values"].float32_tensor.values) == [3.0, 4.0]
    assert list(records[1].label["values"].float32_tensor.values) == [1.0]


def test_record_codec_rejects_bad_shapes() -> None:
    """Only matrices with vector labels of a matching length are encoded."""
    with pytest.raises(ValidationError):
        write_numpy_to_dense_tensor(io.BytesIO(), np.zeros(3))
    with pytest.raises(ValidationError):
        write_numpy_to_dense_tensor(io.BytesIO(), np.zeros((2, 2)), np.zeros((2, 1)))


def test_record_codec_labels_must_match_rows() -> None:
    """Labels need one entry per row, not per column."""
    with pytest.raises(ValidationError, match="not compatible"):
        write_numpy_to_dense_tensor(io.BytesIO(), np.ones((5, 2)), np.array([1, 2]))
    with pytest.raises(ValidationError, match="not compatible"):
        write_numpy_to_dense_tensor(io.BytesIO(), np.ones((2, 5)), np.arange(5))


def test_record_serializer_and_deserializer() -> None:
    """A 1-D array becomes one record and decodes back."""
    payload = RecordSerializer().serialize(np.array([1.0, 2.0, 3.0]))
    records = RecordDeserializer().deserialize(io.BytesIO(payload), "application/x-recordio-protobuf")
    assert len(records) == 1
    assert list(records[0].features["values"].float64_tensor.values) == [1.0, 2.0, 3.0]


def test_upload_shards_writes_manifest() -> None:
    """One object per shard plus a manifest listing them."""
    s3 = Mock()
    manifest = upload_numpy_to_s3_shards(2, s3, "bucket", "prefix", np.ones((4, 2)), np.ones(4))
    assert manifest == "s3://bucket/prefix/.amazon.manifest"
    keys = [call.kwargs["Key"] for call in s3.put_object.call_args_list]
    assert keys == ["prefix/matrix_0.pbr", "prefix/matrix_1.pbr", "prefix/.amazon.manifest"]
    body = json.loads(s3.put_object.call_args_list[-1].kwargs["Body"].decode("utf-8"))
    assert body == [{"prefix": "s3://bucket/prefix/"}, "matrix_0.pbr", "matrix_1.pbr"]


def test_upload_shards_cleans_up_on_failure() -> None:
    """Shards already uploaded are deleted when a later upload fails."""
    s3 = Mock()
    error = ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
    s3.put_object.side_effect = [None, error]
    with pytest.raises(ClientError):
        upload_numpy_to_s3_shards(2, s3, "bucket", "prefix/", np.ones((4, 2)))
    s3.delete_object.assert_called_once_with(Bucket="bucket", Key="prefix/matrix_0.pbr")


def test_upload_shards_cleans_up_on_label_mismatch() -> None:
    """A shard whose labels do not line up removes the shards before it."""
    s3 = Mock()
    with pytest.raises(ValidationError):
        upload_numpy_to_s3_shards(2, s3, "bucket", "prefix/", np.ones((6, 2)), np.ones(5))
    s3.delete_object.assert_called_once_with(Bucket="bucket", Key="prefix/matrix_0.pbr")


def _kmeans(session, **kwargs):
    return KMeans(ROLE, instance_count=1, instance_type="ml.c4.xlarge", sagemaker_session=session, **kwargs)


def test_kmeans_hyperparameters(sagemaker_session) -> None:
    """Attribute names map to algorithm names and force_dense is always set."""
    kmeans = _kmeans(sagemaker_session, k=10, max_iterations=5, eval_metrics=["msd"])
    kmeans._prepare_for_training(RecordSet("s3://b/manifest", num_records=100, feature_dim=4))
    assert kmeans.hyperparameters() == {
        "force_dense": "True",
        "k": "10",
        "local_lloyd_max_iter": "5",
        "eval_metrics": '["msd"]',
        "feature_dim": "4",
        "mini_batch_size": "5000",
    }
    assert kmeans.data_location == f"s3://{BUCKET}/sagemaker-record-sets/"


def test_kmeans_invalid_hyperparameter(sagemaker_session) -> None:
    """k must be greater than one."""
    with pytest.raises(ValidationError):
        _kmeans(sagemaker_session, k=1)


def test_data_location_must_be_s3(sagemaker_session) -> None:
    """RecordSets can only be uploaded to S3."""
    with pytest.raises(ValidationError):
        _kmeans(sagemaker_session, k=2, data_location="/tmp/data")


def test_kmeans_fit_starts_training(sagemaker_session) -> None:
    """fit() sends the algorithm image and a sharded channel to train()."""
    kmeans = _kmeans(sagemaker_session, k=3)
    records = RecordSet("s3://b/manifest", num_records=10, feature_dim=2)
    kmeans.fit(records, wait=False, job_name="kmeans-job")

    train_args = sagemaker_session.train.call_args.kwargs
    assert train_args["job_name"] == "kmeans-job"
    assert train_args["image_uri"] == "174872318107.dkr.ecr.us-west-2.amazonaws.com/kmeans:1"
    channel = train_args["input_config"][0]
    assert channel["ChannelName"] == "train"
    assert channel["DataSource"]["S3DataSource"]["S3DataDistributionType"] == "ShardedByS3Key"
    assert channel["DataSource"]["S3DataSource"]["S3DataType"] == "ManifestFile"


def test_record_set_uploads_shards(sagemaker_session) -> None:
    """record_set() writes one shard per instance under the data location."""
    kmeans = KMeans(ROLE, instance_count=2, instance_type="ml.c4.xlarge", k=2, sagemaker_session=sagemaker_session)
    record_set = kmeans.record_set(np.ones((4, 3), dtype="float32"), channel="test")
    assert record_set.feature_dim == 3
    assert record_set.num_records == 4
    assert record_set.channel == "test"
    assert record_set.s3_data.startswith(f"s3://{BUCKET}/sagemaker-record-sets/KMeans-")
    assert sagemaker_session.s3_client.put_object.call_count == 3


def test_list_of_records_requires_train_channel(sagemaker_session) -> None:
    """A list of RecordSets must include the train channel."""
    kmeans = _kmeans(sagemaker_session, k=2)
    with pytest.raises(ValidationError, match="Must provide train channel"):
        kmeans._prepare_for_training([RecordSet("s3://b/m", 1, 1, channel="test")])


def test_linear_learner_rules(sagemaker_session) -> None:
    """Multiclass needs num_classes above two, and the default mini batch fits the data."""
    with pytest.raises(ValidationError):
        LinearLearner(ROLE, 1, "ml.c4.xlarge", predictor_type="multiclass_classifier", sagemaker_session=sagemaker_session)
    with pytest.raises(ValidationError):
        LinearLearner(
            ROLE,
            1,
            "ml.c4.xlarge",
            predictor_type="binary_classifier",
            binary_classifier_model_selection_criteria="precision_at_target_recall",
            sagemaker_session=sagemaker_session,
        )
    learner = LinearLearner(ROLE, 2, "ml.c4.xlarge", predictor_type="regressor", sagemaker_session=sagemaker_session)
    learner._prepare_for_training(RecordSet("s3://b/m", num_records=100, feature_dim=3))
    assert learner.mini_batch_size == 50


def test_lda_requires_mini_batch_and_single_instance(sagemaker_session) -> None:
    """LDA trains on one instance and needs an explicit mini batch size."""
    lda = LDA(ROLE, instance_type="ml.c4.xlarge", num_topics=3, instance_count=4, sagemaker_session=sagemaker_session)
    assert lda.instance_count == 1
    with pytest.raises(ValidationError, match="mini_batch_size must be set"):
        lda._prepare_for_training(RecordSet("s3://b/m", 10, 5))


def test_random_cut_forest_fixed_mini_batch(sagemaker_session) -> None:
    """Random Cut Forest only accepts its fixed mini batch size."""
    rcf = RandomCutForest(ROLE, 1, "ml.c4.xlarge", sagemaker_session=sagemaker_session)
    rcf._prepare_for_training(RecordSet("s3://b/m", 10, 5))
    assert rcf.mini_batch_size == RandomCutForest.MINI_BATCH_SIZE
    with pytest.raises(ValidationError):
        rcf._prepare_for_training(RecordSet("s3://b/m", 10, 5), mini_batch_size=10)
