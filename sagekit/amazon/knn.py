"""k-nearest neighbors classification and regression."""

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
from .validation import ge, isin


class KNN(AmazonAlgorithmEstimatorBase):
    """An index-based k-nearest neighbors algorithm.

    Predicts the majority label (classifier) or the average label
    (regressor) of the ``k`` closest training points.
    """

    repo_name = "knn"
    repo_version = "1"

    k = hp("k", ge(1), "An integer greater than 0", int)
    sample_size = hp("sample_size", ge(1), "An integer greater than 0", int)
    predictor_type = hp(
        "predictor_type", isin("classifier", "regressor"), 'One of "classifier" or "regressor"', str
    )
    dimension_reduction_target = hp(
        "dimension_reduction_target",
        ge(1),
        "An integer greater than 0 and less than feature_dim",
        int,
    )
    dimension_reduction_type = hp(
        "dimension_reduction_type", isin("sign", "fjlt"), 'One of "sign" or "fjlt"', str
    )
    index_metric = hp(
        "index_metric",
        isin("COSINE", "INNER_PRODUCT", "L2"),
        'One of "COSINE", "INNER_PRODUCT", "L2"',
        str,
    )
    index_type = hp(
        "index_type",
        isin("faiss.Flat", "faiss.IVFFlat", "faiss.IVFPQ"),
        'One of "faiss.Flat", "faiss.IVFFlat", "faiss.IVFPQ"',
        str,
    )
    faiss_index_ivf_nlists = hp(
        "faiss_index_ivf_nlists", (), '"auto" or an integer greater than 0', str
    )
    faiss_index_pq_m = hp("faiss_index_pq_m", ge(1), "An integer greater than 0", int)

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        k=None,
        sample_size=None,
        predictor_type=None,
        dimension_reduction_type=None,
        dimension_reduction_target=None,
        index_type=None,
        index_metric=None,
        faiss_index_ivf_nlists=None,
        faiss_index_pq_m=None,
        **kwargs,
    ):
        """Initialize a KNN estimator.

        ``k``, ``sample_size`` and ``predictor_type`` are required by the algorithm.

        Raises:
            ValidationError: If ``dimension_reduction_type`` is set without a target.
        """
        super().__init__(role, instance_count, instance_type, **kwargs)
        self.k = k
        self.sample_size = sample_size
        self.predictor_type = predictor_type
        self.dimension_reduction_type = dimension_reduction_type
        self.dimension_reduction_target = dimension_reduction_target
        self.index_type = index_type
        self.index_metric = index_metric
        self.faiss_index_ivf_nlists = faiss_index_ivf_nlists
        self.faiss_index_pq_m = faiss_index_pq_m
        if dimension_reduction_type and not dimension_reduction_target:
            raise ValidationError(
                '"dimension_reduction_target" is required when "dimension_reduction_type" is set.'
            )

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return KNNModel(
            self.model_data,
            role or self.role,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        super()._prepare_for_training(records, mini_batch_size=mini_batch_size, job_name=job_name)


class KNNPredictor(Predictor):
    """Return the ``predicted_label`` of each input row."""

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


class KNNModel(Model):
    """Reference KNN S3 model data; ``deploy`` returns a KNNPredictor."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            KNN.repo_name, sagemaker_session.boto_region_name, version=KNN.repo_version
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=KNNPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
