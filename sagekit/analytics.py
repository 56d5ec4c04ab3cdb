"""Training metrics pulled from CloudWatch into pandas."""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict

import pandas as pd

from .errors import ValidationError
from .session import Session

logger = logging.getLogger(__name__)

METRICS_NAMESPACE = "/aws/sagemaker/TrainingJobs"


class TrainingJobAnalytics:
    """Fetch the metrics a training job emitted to CloudWatch.

    Each metric declared in the job's ``MetricDefinitions`` is queried with
    ``GetMetricStatistics`` (Average) over the job's run window. The result
    is a long-form DataFrame with ``timestamp``, ``metric_name`` and ``value``.
    """

    CLOUDWATCH_NAMESPACE = METRICS_NAMESPACE

    def __init__(
        self,
        training_job_name,
        metric_names=None,
        sagemaker_session=None,
        start_time=None,
        end_time=None,
        period=60,
    ):
        self.sagemaker_session = sagemaker_session or Session()
        self._cloudwatch = self.sagemaker_session._client("cloudwatch")
        self._training_job_name = training_job_name
        self._start_time = start_time
        self._end_time = end_time
        self._period = period
        self._metric_names = metric_names or self._metric_names_for_training_job()
        self._dataframe = None

    @property
    def name(self):
        return self._training_job_name

    def __repr__(self):
        return f"<sagekit.TrainingJobAnalytics for {self.name}>"

    def dataframe(self, force_refresh=False):
        """Return the metrics as a DataFrame, fetching them on first use."""
        if force_refresh or self._dataframe is None:
            self._dataframe = self._fetch_dataframe()
        return self._dataframe

    def export_csv(self, filename):
        """Write the metrics DataFrame to ``filename`` as CSV."""
        self.dataframe().to_csv(filename)

    def clear_cache(self):
        self._dataframe = None
        self._data = defaultdict(list)
        self._time_interval = self._determine_timeinterval()

    def _fetch_dataframe(self):
        self.clear_cache()
        for metric_name in self._metric_names:
            self._fetch_metric(metric_name)
        return pd.DataFrame(self._data, columns=["timestamp", "metric_name", "value"])

    def _determine_timeinterval(self):
        description = self.sagemaker_session.describe_training_job(self.name)
        start_time = self._start_time or description["TrainingStartTime"]
        # padding covers metrics published after the job reports completion
        end_time = self._end_time or description.get(
            "TrainingEndTime", datetime.datetime.utcnow()
        ) + datetime.timedelta(minutes=1)
        return {"start_time": start_time, "end_time": end_time}

    def _fetch_metric(self, metric_name):
        request = {
            "Namespace": self.CLOUDWATCH_NAMESPACE,
            "MetricName": metric_name,
            "Dimensions": [{"Name": "TrainingJobName", "Value": self.name}],
            "StartTime": self._time_interval["start_time"],
            "EndTime": self._time_interval["end_time"],
            "Period": self._period,
            "Statistics": ["Average"],
        }
        raw_cwm_data = self._cloudwatch.get_metric_statistics(**request)["Datapoints"]
        if not raw_cwm_data:
            logger.warning("Warning: No metrics called %s found", metric_name)
            return

        # relative to the job start so multiple jobs line up
        base_time = min(raw_cwm_data, key=lambda pt: pt["Timestamp"])["Timestamp"]
        for pt in sorted(raw_cwm_data, key=lambda pt: pt["Timestamp"]):
            elapsed_seconds = (pt["Timestamp"] - base_time).total_seconds()
            self._data["timestamp"].append(elapsed_seconds)
            self._data["metric_name"].append(metric_name)
            self._data["value"].append(pt["Average"])

    def _metric_names_for_training_job(self):
        description = self.sagemaker_session.describe_training_job(self.name)
        metric_definitions = description["AlgorithmSpecification"].get("MetricDefinitions")
        if not metric_definitions:
            raise ValidationError(f"Training job {self.name} has no metric definitions")
        return [md["Name"] for md in metric_definitions]
