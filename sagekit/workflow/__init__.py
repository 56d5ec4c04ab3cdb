"""Workflow integrations."""

from .airflow import (  # noqa: F401
    deploy_config,
    model_config,
    processing_config,
    training_base_config,
    training_config,
    transform_config,
)
