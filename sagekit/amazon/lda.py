"""Latent Dirichlet allocation topic modeling."""

from __future__ import annotations

import logging

from .. import image_uris
from ..errors import ValidationError
from ..model import Model
from ..predictor import Predictor
from ..session import Session
from ..vpc_utils import VPC_CONFIG_DEFAULT
from .amazon_estimator import AmazonAlgorithmEstimatorBase
from .common import RecordDeserializer, RecordSerializer
from .hyperparameter import Hyperparameter as hp
from .validation import gt

logger = logging.getLogger(__name__)


class LDA(AmazonAlgorithmEstimatorBase):
    """Describe documents as mixtures of a fixed number of topics.

    Training runs on a single instance only.
    """

    repo_name = "lda"
    repo_version = "1"

    num_topics = hp("num_topics", gt(0), "An integer greater than zero", int)
    alpha0 = hp("alpha0", gt(0), "A positive float", float)
    max_restarts = hp("max_restarts", gt(0), "An integer greater than zero", int)
    max_iterations = hp("max_iterations", gt(0), "An integer greater than zero", int)
    tol = hp("tol", gt(0), "A positive float", float)

    def __init__(
        self,
        role,
        instance_type=None,
        num_topics=None,
        alpha0=None,
        max_restarts=None,
        max_iterations=None,
        tol=None,
        **kwargs,
    ):
        """Initialize an LDA estimator.

        Args:
            role (str): Execution role.
            instance_type (str): Training instance type.
            num_topics (int): Number of topics to find.
            alpha0 (float): Initial concentration parameter.
            max_restarts (int): Restarts of the spectral decomposition.
            max_iterations (int): ALS iterations of the spectral decomposition.
            tol (float): Target error tolerance of the ALS phase.
            **kwargs: Passed to :class:`AmazonAlgorithmEstimatorBase`. An
                ``instance_count`` other than 1 is ignored.
        """
        instance_count = kwargs.pop("instance_count", 1)
        if instance_count != 1:
            logger.warning(
                "LDA only supports single instance training. Defaulting to 1 %s.", instance_type
            )

        super().__init__(role, 1, instance_type, **kwargs)
        self.num_topics = num_topics
        self.alpha0 = alpha0
        self.max_restarts = max_restarts
        self.max_iterations = max_iterations
        self.tol = tol

    def create_model(self, role=None, vpc_config_override=VPC_CONFIG_DEFAULT, **kwargs):
        return LDAModel(
            self.model_data,
            role or self.role,
            sagemaker_session=self.sagemaker_session,
            vpc_config=self.get_vpc_config(vpc_config_override),
            **kwargs,
        )

    def _prepare_for_training(self, records, mini_batch_size=None, job_name=None):
        if mini_batch_size is None:
            raise ValidationError("mini_batch_size must be set")

        super()._prepare_for_training(records, mini_batch_size=mini_batch_size, job_name=job_name)


class LDAPredictor(Predictor):
    """Return the ``topic_mixture`` of each input document."""

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


class LDAModel(Model):
    """Reference LDA S3 model data; ``deploy`` returns an LDAPredictor."""

    def __init__(self, model_data, role, sagemaker_session=None, **kwargs):
        sagemaker_session = sagemaker_session or Session()
        image_uri = image_uris.retrieve(
            LDA.repo_name, sagemaker_session.boto_region_name, version=LDA.repo_version
        )
        kwargs.pop("predictor_cls", None)
        super().__init__(
            image_uri,
            model_data,
            role,
            predictor_cls=LDAPredictor,
            sagemaker_session=sagemaker_session,
            **kwargs,
        )
