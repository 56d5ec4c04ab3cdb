"""sagekit: train, host, process and monitor models on Amazon SageMaker."""

from . import image_uris  # noqa: F401
from .amazon import (  # noqa: F401
    KNN,
    LDA,
    NTM,
    PCA,
    FactorizationMachines,
    IPInsights,
    KMeans,
    LinearLearner,
    RandomCutForest,
    RecordSet,
)
from .analytics import TrainingJobAnalytics  # noqa: F401
from .automl import AutoML, AutoMLInput, CandidateEstimator  # noqa: F401
from .config import SagekitConfig, load_config  # noqa: F401
from .data_capture_config import DataCaptureConfig  # noqa: F401
from .errors import (  # noqa: F401
    CapacityError,
    NotFoundError,
    SagekitError,
    UnexpectedClientError,
    UnexpectedStatusError,
    ValidationError,
)
from .estimator import Estimator, EstimatorBase, Framework  # noqa: F401
from .inputs import FileSystemInput, TrainingInput, TransformInput  # noqa: F401
from .model import FrameworkModel, Model  # noqa: F401
from .model_metrics import MetricsSource, ModelMetrics  # noqa: F401
from .model_monitor import (  # noqa: F401
    CronExpressionGenerator,
    DatasetFormat,
    DefaultModelMonitor,
    ModelMonitor,
)
from .pipeline import PipelineModel  # noqa: F401
from .predictor import Predictor  # noqa: F401
from .processing import (  # noqa: F401
    NetworkConfig,
    ProcessingInput,
    ProcessingJob,
    ProcessingOutput,
    Processor,
    ScriptProcessor,
)
from .session import Session, get_execution_role  # noqa: F401
from .sklearn import SKLearn, SKLearnModel, SKLearnPredictor  # noqa: F401
from .transformer import Transformer  # noqa: F401
from .xgboost import XGBoost, XGBoostModel, XGBoostPredictor  # noqa: F401

__version__ = "0.1.0"
