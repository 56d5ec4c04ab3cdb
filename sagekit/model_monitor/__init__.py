"""Data-quality monitoring for SageMaker endpoints."""

from .cron_expression_generator import CronExpressionGenerator  # noqa: F401
from .dataset_format import DatasetFormat  # noqa: F401
from .model_monitoring import (  # noqa: F401
    BaseliningJob,
    DefaultModelMonitor,
    EndpointInput,
    ModelMonitor,
    MonitoringExecution,
    MonitoringOutput,
)
from .monitoring_files import (  # noqa: F401
    Constraints,
    ConstraintViolations,
    ModelMonitoringFile,
    Statistics,
)
