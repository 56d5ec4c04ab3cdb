"""Helpers for the ``VpcConfig`` block shared by training, hosting and processing."""

from __future__ import annotations

from .errors import ValidationError

SUBNETS_KEY = "Subnets"
SECURITY_GROUP_IDS_KEY = "SecurityGroupIds"
VPC_CONFIG_KEY = "VpcConfig"

# Sentinel meaning "reuse the VpcConfig of the training job"
VPC_CONFIG_DEFAULT = "VPC_CONFIG_DEFAULT"


def to_dict(subnets, security_group_ids):
    """Build a VpcConfig dict, or None unless both lists are non-empty."""
    if not subnets or not security_group_ids:
        return None
    return {SUBNETS_KEY: list(subnets), SECURITY_GROUP_IDS_KEY: list(security_group_ids)}


def from_dict(vpc_config, do_sanitize=False):
    """Return ``(subnets, security_group_ids)`` from a VpcConfig dict."""
    if do_sanitize:
        vpc_config = sanitize(vpc_config)
    if vpc_config is None:
        return None, None
    return vpc_config[SUBNETS_KEY], vpc_config[SECURITY_GROUP_IDS_KEY]


def sanitize(vpc_config):
    """Check a VpcConfig dict and strip unknown keys.

    Returns:
        dict or None: A copy holding only Subnets and SecurityGroupIds.

    Raises:
        TypeError: If a value has the wrong type.
        ValidationError: If a required key is missing or empty.
    """
    if vpc_config is None:
        return vpc_config
    if not isinstance(vpc_config, dict):
        raise TypeError(f"vpc_config is not a dict: {vpc_config}")
    if not vpc_config:
        raise ValidationError(f"vpc_config is empty: {vpc_config}")

    subnets = vpc_config.get(SUBNETS_KEY)
    if subnets is None:
        raise ValidationError(f"vpc_config is missing key: {SUBNETS_KEY}")
    if not isinstance(subnets, list):
        raise TypeError(f"vpc_config value for {SUBNETS_KEY} is not a list: {subnets}")
    if not subnets:
        raise ValidationError(f"vpc_config value for {SUBNETS_KEY} is empty: {subnets}")

    security_group_ids = vpc_config.get(SECURITY_GROUP_IDS_KEY)
    if security_group_ids is None:
        raise ValidationError(f"vpc_config is missing key: {SECURITY_GROUP_IDS_KEY}")
    if not isinstance(security_group_ids, list):
        raise TypeError(
            f"vpc_config value for {SECURITY_GROUP_IDS_KEY} is not a list: {security_group_ids}"
        )
    if not security_group_ids:
        raise ValidationError(
            f"vpc_config value for {SECURITY_GROUP_IDS_KEY} is empty: {security_group_ids}"
        )

    return to_dict(subnets, security_group_ids)
