"""Autopilot jobs and their candidates."""

from .automl import AutoML, AutoMLInput, AutoMLJob  # noqa: F401
from .candidate_estimator import CandidateEstimator, CandidateStep  # noqa: F401
