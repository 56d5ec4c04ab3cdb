"""Random cut forest anomaly detection."""

from __future__ import annotations

from .. import image_uris
from ..errors import ValidationError
from ..model import Model
from ..predictor import Predictor
from ..session import Session
from ..vpc_utils import VPC_CONFIG_DEFAULT
from .amazon_estimator import AmazonAlgorithmEstimatorBase
from .common import RecordDeserializer, RecordSerializer
from .hyperparameter import Hyperparameter as hp
from .validation import ge, le


class RandomCutForest(AmazonAlgorithmEstimatorBase):
    """Detect anomalous points in a data set with an ensemble of random cut trees."""

    repo_name = "randomcutforest"
    repo_version = "1"
    MINI_BATCH_SIZE = 1000

    eval_metrics = hp(
        name="eval_metrics",
        validation_message='A comma separated list of "accuracy" or "precision_recall_fscore"',
        data_type=list,
    )
    num_trees = hp("num_trees", (ge(50), le(1000)), "An integer in [50, 1000]", int)
    num_samples_per_tree = hp(
        "num_samples_per_tree", (ge(1), le(2048)), "An integer in [1, 2048]", int
    )

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        num_samples_per_tree=None,
        num_trees=None,
        eval_metrics=None,
        **kwargs,
    ):
        """Initialize a RandomCutForest estimator.

        Args:
            num_samples_per_tree (int): Points sampled for each tree.
            num_trees (int): Trees in the forest.
            eval_metrics (list[str]): ``accuracy`` and/or ``precision_recall_fscore``,
                reported on a labeled test channel.
            **kwargs: Passed to :class:`AmazonAlgorithmEstimatorBase`.
        """
        super().__init__(role, instance_count, instance_type, **kwargs)
        self.num_samples_per_tree = num_samples_per_tree
        self.num_trees = num_trees
        self.eval_metrics = eval_metrics

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return RandomCutForestModel(
            self.model_data,
            role or self.role,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        if mini_batch_size is None:
            mini_batch_size = self.MINI_BATCH_SIZE
        elif mini_batch_size != self.MINI_BATCH_SIZE:
            raise ValidationError(
                "Random Cut Forest uses a fixed mini_batch_size of {}".format(self.MINI_BATCH_SIZE)
            )

        super()._prepare_for_training(records, mini_batch_size=mini_batch_size, job_name=job_name)


class RandomCutForestPredictor(Predictor):
    """Return the anomaly ``score`` of each input row."""

    def __init__(
        self,
        endpoint_name,
        sagemaker_session=None,
        serializer=RecordSerializer(),
        deserializer=RecordDeserializer(),
    ):
        super().__init__(
            endpoint_name, sagemaker_session, serializer=serializer, deserializer=deserializer
        )


class RandomCutForestModel(Model):
    """Reference RandomCutForest S3 model data."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            RandomCutForest.repo_name,
            sagemaker_session.boto_region_name,
            version=RandomCutForest.repo_version,
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=RandomCutForestPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
