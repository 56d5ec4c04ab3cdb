"""Principal component analysis."""

from __future__ import annotations

from .. import image_uris
from ..model import Model
from ..predictor import Predictor
from ..session import Session
from ..vpc_utils import VPC_CONFIG_DEFAULT
from .amazon_estimator import AmazonAlgorithmEstimatorBase, _num_train_records
from .common import RecordDeserializer, RecordSerializer
from .hyperparameter import Hyperparameter as hp
from .validation import gt, isin


class PCA(AmazonAlgorithmEstimatorBase):
    """Reduce the dimensionality of data while keeping as much information as possible."""

    repo_name = "pca"
    repo_version = "1"

    DEFAULT_MINI_BATCH_SIZE = 500

    num_components = hp(
        "num_components", gt(0), "Value must be an integer greater than zero", int
    )
    algorithm_mode = hp(
        "algorithm_mode",
        isin("regular", "randomized"),
        'Value must be one of "regular" and "randomized"',
        str,
    )
    subtract_mean = hp(name="subtract_mean", validation_message="Value must be a boolean", data_type=bool)
    extra_components = hp(
        name="extra_components",
        validation_message="Value must be an integer greater than or equal to 0, or -1.",
        data_type=int,
    )

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        num_components=None,
        algorithm_mode=None,
        subtract_mean=None,
        extra_components=None,
        **kwargs,
    ):
        """Initialize a PCA estimator.

        Args:
            num_components (int): Number of principal components to compute.
            algorithm_mode (str): ``regular`` or ``randomized``.
            subtract_mean (bool): Unbias the data before training.
            extra_components (int): Extra components used by randomized mode; -1 picks
                the algorithm default.
            **kwargs: Passed to :class:`AmazonAlgorithmEstimatorBase`.
        """
        super().__init__(role, instance_count, instance_type, **kwargs)
        self.num_components = num_components
        self.algorithm_mode = algorithm_mode
        self.subtract_mean = subtract_mean
        self.extra_components = extra_components

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return PCAModel(
            self.model_data,
            role or self.role,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        num_records = _num_train_records(records)

        # mini_batch_size is required by the algorithm
        default_mini_batch_size = min(
            self.DEFAULT_MINI_BATCH_SIZE, max(1, int(num_records / self.instance_count))
        )
        use_mini_batch_size = mini_batch_size or default_mini_batch_size

        super()._prepare_for_training(
            records=records, mini_batch_size=use_mini_batch_size, job_name=job_name
        )


class PCAPredictor(Predictor):
    """Project vectors onto the principal components.

    Results carry the projection in the ``projection`` label of each record.
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


class PCAModel(Model):
    """Reference PCA S3 model data; ``deploy`` returns a PCAPredictor."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            PCA.repo_name, sagemaker_session.boto_region_name, version=PCA.repo_version
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=PCAPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
