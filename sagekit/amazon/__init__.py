"""Estimators, models and predictors for the SageMaker first-party algorithms."""

from .amazon_estimator import (  # noqa: F401
    AmazonAlgorithmEstimatorBase,
    FileSystemRecordSet,
    RecordSet,
    upload_numpy_to_s3_shards,
)
from .common import RecordDeserializer, RecordSerializer  # noqa: F401
from .factorization_machines import (  # noqa: F401
    FactorizationMachines,
    FactorizationMachinesModel,
    FactorizationMachinesPredictor,
)
from .ipinsights import IPInsights, IPInsightsModel, IPInsightsPredictor  # noqa: F401
from .kmeans import KMeans, KMeansModel, KMeansPredictor  # noqa: F401
from .knn import KNN, KNNModel, KNNPredictor  # noqa: F401
from .lda import LDA, LDAModel, LDAPredictor  # noqa: F401
from .linear_learner import (  # noqa: F401
    LinearLearner,
    LinearLearnerModel,
    LinearLearnerPredictor,
)
from .ntm import NTM, NTMModel, NTMPredictor  # noqa: F401
from .pca import PCA, PCAModel, PCAPredictor  # noqa: F401
from .randomcutforest import (  # noqa: F401
    RandomCutForest,
    RandomCutForestModel,
    RandomCutForestPredictor,
)
