"""IP Insights: learn usage patterns of IPv4 addresses per entity."""

from __future__ import annotations

from .. import image_uris
from ..deserializers import JSONDeserializer
from ..errors import ValidationError
from ..model import Model
from ..predictor import Predictor
from ..serializers import CSVSerializer
from ..session import Session
from ..vpc_utils import VPC_CONFIG_DEFAULT
from .amazon_estimator import AmazonAlgorithmEstimatorBase
from .hyperparameter import Hyperparameter as hp
from .validation import ge, le


class IPInsights(AmazonAlgorithmEstimatorBase):
    """Learn associations between entities and the IP addresses they use.

    Training data is CSV of ``entity_id, ipv4`` pairs; the model scores how
    likely an entity is to use an address.
    """

    repo_name = "ipinsights"
    repo_version = "1"
    MINI_BATCH_SIZE = 10000

    num_entity_vectors = hp(
        "num_entity_vectors", (ge(1), le(250000000)), "An integer in [1, 250000000]", int
    )
    vector_dim = hp("vector_dim", (ge(4), le(4096)), "An integer in [4, 4096]", int)

    batch_metrics_publish_interval = hp(
        "batch_metrics_publish_interval", ge(1), "An integer greater than 0", int
    )
    epochs = hp("epochs", ge(1), "An integer greater than 0", int)
    learning_rate = hp("learning_rate", (ge(1e-6), le(10.0)), "A float in [1e-6, 10.0]", float)
    num_ip_encoder_layers = hp(
        "num_ip_encoder_layers", (ge(0), le(100)), "An integer in [0, 100]", int
    )
    random_negative_sampling_rate = hp(
        "random_negative_sampling_rate", (ge(0), le(500)), "An integer in [0, 500]", int
    )
    shuffled_negative_sampling_rate = hp(
        "shuffled_negative_sampling_rate", (ge(0), le(500)), "An integer in [0, 500]", int
    )
    weight_decay = hp("weight_decay", (ge(0.0), le(10.0)), "A float in [0.0, 10.0]", float)

    def __init__(
        self,
        role,
        instance_count=None,
        instance_type=None,
        num_entity_vectors=None,
        vector_dim=None,
        batch_metrics_publish_interval=None,
        epochs=None,
        learning_rate=None,
        num_ip_encoder_layers=None,
        random_negative_sampling_rate=None,
        shuffled_negative_sampling_rate=None,
        weight_decay=None,
        **kwargs,
    ):
        """Initialize an IPInsights estimator.

        ``num_entity_vectors`` and ``vector_dim`` are required by the algorithm.
        """
        super().__init__(role, instance_count, instance_type, **kwargs)
        self.num_entity_vectors = num_entity_vectors
        self.vector_dim = vector_dim
        self.batch_metrics_publish_interval = batch_metrics_publish_interval
        self.epochs = epochs
        self.learning_rate = learning_rate
        self.num_ip_encoder_layers = num_ip_encoder_layers
        self.random_negative_sampling_rate = random_negative_sampling_rate
        self.shuffled_negative_sampling_rate = shuffled_negative_sampling_rate
        self.weight_decay = weight_decay

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return IPInsightsModel(
            self.model_data,
            role or self.role,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        if mini_batch_size is not None and (mini_batch_size < 1 or mini_batch_size > 500000):
            raise ValidationError("mini_batch_size must be in [1, 500000]")
        super()._prepare_for_training(records, mini_batch_size=mini_batch_size, job_name=job_name)


class IPInsightsPredictor(Predictor):
    """Score ``entity, ip`` pairs.

    The endpoint takes CSV rows and answers JSON with one ``dot_product``
    prediction per row.
    """

    def __init__(
        self,
        endpoint_name,
        sagemaker_session=None,
        serializer=CSVSerializer(),
        deserializer=JSONDeserializer(),
    ):
        super().__init__(
            endpoint_name, sagemaker_session, serializer=serializer, deserializer=deserializer
        )


class IPInsightsModel(Model):
    """Reference IPInsights S3 model data; ``deploy`` returns an IPInsightsPredictor."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            IPInsights.repo_name,
            sagemaker_session.boto_region_name,
            version=IPInsights.repo_version,
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=IPInsightsPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
