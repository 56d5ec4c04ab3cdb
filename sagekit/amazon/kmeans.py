"""K-means clustering."""

from __future__ import annotations

from .. import image_uris
from ..model import Model
from ..predictor import Predictor
from ..session import Session
from ..vpc_utils import VPC_CONFIG_DEFAULT
from .amazon_estimator import AmazonAlgorithmEstimatorBase
from .common import RecordDeserializer, RecordSerializer
from .hyperparameter import Hyperparameter as hp
from .validation import ge, gt, isin, le


def _valid_eval_metrics(value):
    return isinstance(value, list) and all(
        isinstance(metric, str) and metric in ("msd", "ssd") for metric in value
    )


class KMeans(AmazonAlgorithmEstimatorBase):
    """An unsupervised learning algorithm that finds discrete groupings within data.

    The trained model assigns each record to its closest cluster center.
    """

    repo_name = "kmeans"
    repo_version = "1"

    k = hp("k", gt(1), "An integer greater-than 1", int)
    init_method = hp("init_method", isin("random", "kmeans++"), 'One of "random", "kmeans++"', str)
    max_iterations = hp("local_lloyd_max_iter", gt(0), "An integer greater-than 0", int)
    tol = hp("local_lloyd_tol", (ge(0), le(1)), "An float in [0, 1]", float)
    num_trials = hp("local_lloyd_num_trials", gt(0), "An integer greater-than 0", int)
    local_init_method = hp(
        "local_lloyd_init_method", isin("random", "kmeans++"), 'One of "random", "kmeans++"', str
    )
    half_life_time_size = hp(
        "half_life_time_size", ge(0), "An integer greater-than-or-equal-to 0", int
    )
    epochs = hp("epochs", gt(0), "An integer greater-than 0", int)
    center_factor = hp("extra_center_factor", gt(0), "An integer greater-than 0", int)
    eval_metrics = hp("eval_metrics", _valid_eval_metrics, 'A list of str: "msd", "ssd"', list)

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        k=None,
        init_method=None,
        max_iterations=None,
        tol=None,
        num_trials=None,
        local_init_method=None,
        half_life_time_size=None,
        epochs=None,
        center_factor=None,
        eval_metrics=None,
        **kwargs,
    ):
        """Initialize a KMeans estimator.

        Args:
            role (str): Execution role.
            instance_count (int): Number of training instances.
            instance_type (str): Training instance type.
            k (int): Number of clusters.
            init_method (str): ``random`` or ``kmeans++``.
            max_iterations (int): Lloyd iterations of the final local k-means.
            tol (float): Relative loss change that stops the local k-means.
            num_trials (int): Local k-means runs; the best one is kept.
            local_init_method (str): Initialization of the local k-means.
            half_life_time_size (int): Weight decay half life, in points.
            epochs (int): Passes over the training data.
            center_factor (int): Over-provisioning factor for cluster centers.
            eval_metrics (list[str]): ``msd`` and/or ``ssd``, reported on the test channel.
            **kwargs: Passed to :class:`AmazonAlgorithmEstimatorBase`.
        """
        super().__init__(role, instance_count, instance_type, **kwargs)
        self.k = k
        self.init_method = init_method
        self.max_iterations = max_iterations
        self.tol = tol
        self.num_trials = num_trials
        self.local_init_method = local_init_method
        self.half_life_time_size = half_life_time_size
        self.epochs = epochs
        self.center_factor = center_factor
        self.eval_metrics = eval_metrics

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return KMeansModel(
            self.model_data,
            role or self.role,
            self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=5000, job_name=None):
        super()._prepare_for_training(records, mini_batch_size=mini_batch_size, job_name=job_name)

    def hyperparameters(self):
        hp_dict = dict(force_dense="True")
        hp_dict.update(super().hyperparameters())
        return hp_dict


class KMeansPredictor(Predictor):
    """Assign input vectors to their closest cluster.

    The serializer accepts a numpy array; each row is one vector. The result
    is a list of ``Record`` messages, with ``closest_cluster`` and
    ``distance_to_cluster`` labels.
    """

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


class KMeansModel(Model):
    """Reference KMeans S3 model data; ``deploy`` returns a KMeansPredictor."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            KMeans.repo_name, sagemaker_session.boto_region_name, version=KMeans.repo_version
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=KMeansPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
