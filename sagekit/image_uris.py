"""Resolve ECR image URIs for built-in algorithms and framework containers.

The per-framework registries and repositories live in JSON files under
``image_uri_config/``; the URI is
``{account}.dkr.ecr.{region}.{domain}/{repository}:{tag}``.
"""

from __future__ import annotations

import functools
import json
import logging
import os
import re

from .errors import ValidationError

logger = logging.getLogger(__name__)

ECR_URI_TEMPLATE = "{registry}.dkr.ecr.{region}.{hostname}/{repository}"
CONFIG_DIR = os.path.join(os.path.dirname(__file__), "image_uri_config")


@functools.lru_cache(maxsize=None)
def config_for_framework(framework):
    """Load the JSON image config of one framework or algorithm."""
    fname = os.path.join(CONFIG_DIR, f"{framework}.json")
    if not os.path.exists(fname):
        raise ValidationError(
            f"Unsupported framework: {framework}. Supported: {', '.join(available_frameworks())}."
        )
    with open(fname) as f:
        return json.load(f)


def available_frameworks():
    return sorted(os.path.splitext(f)[0] for f in os.listdir(CONFIG_DIR) if f.endswith(".json"))


def retrieve(
    framework,
    region,
    version=None,
    py_version=None,
    instance_type=None,
    image_scope=None,
):
    """Return the ECR image URI for a framework or built-in algorithm.

    Args:
        framework (str): Name of the framework or algorithm, e.g. ``kmeans`` or ``sklearn``.
        region (str): AWS region.
        version (str): Framework version. May be omitted when only one exists.
        py_version (str): Python version, for framework images.
        instance_type (str): Used to pick the ``cpu`` or ``gpu`` image.
        image_scope (str): ``training``, ``inference`` or ``monitoring``.

    Returns:
        str: The image URI.

    Raises:
        ValidationError: If any argument is not supported by the config.
    """
    config = config_for_framework(framework)
    _validate_arg(image_scope, config.get("scope"), "image scope")

    version = _resolve_version(framework, config, version)
    version_config = config["versions"][version]

    registry = _registry_from_region(region, version_config["registries"])
    hostname = "amazonaws.com.cn" if region.startswith("cn-") else "amazonaws.com"
    repo = version_config["repository"]

    processor = _processor(instance_type, config.get("processors"))
    py_version = _validate_py_version(py_version, version_config.get("py_versions"), framework, version)

    tag = _format_tag(version_config.get("tag_prefix", version), processor, py_version)
    uri = ECR_URI_TEMPLATE.format(registry=registry, region=region, hostname=hostname, repository=repo)
    if tag:
        uri = f"{uri}:{tag}"
    logger.debug("Resolved image uri %s for %s %s", uri, framework, version)
    return uri


def _resolve_version(framework, config, version):
    available_versions = list(config["versions"].keys())
    aliases = config.get("version_aliases", {})

    if version is None:
        if len(available_versions) == 1:
            return available_versions[0]
        raise ValidationError(
            f"Unspecified version for {framework}. Supported version(s): "
            f"{', '.join(available_versions + list(aliases))}."
        )

    version = aliases.get(version, version)
    if version not in available_versions:
        raise ValidationError(
            f"Unsupported {framework} version: {version}. Supported {framework} version(s): "
            f"{', '.join(available_versions + list(aliases))}."
        )
    return version


def _registry_from_region(region, registry_dict):
    _validate_arg(region, registry_dict.keys(), "region")
    return registry_dict[region]


def _processor(instance_type, available_processors):
    """Pick ``cpu`` or ``gpu`` from the instance family.

    ``ml.p*`` and ``ml.g*`` instances are GPU instances.
    """
    if not available_processors:
        return None

    if instance_type is None:
        if len(available_processors) == 1:
            return available_processors[0]
        raise ValidationError(
            "Empty SageMaker instance type. For options, see: "
            "https://aws.amazon.com/sagemaker/pricing/instance-types"
        )

    if instance_type.startswith("local"):
        processor = "cpu" if instance_type == "local" else "gpu"
    else:
        match = re.match(r"^ml\.([a-z\d]+)\.?\w*$", instance_type)
        if not match:
            raise ValidationError(
                f"Invalid SageMaker instance type: {instance_type}. For options, see: "
                "https://aws.amazon.com/sagemaker/pricing/instance-types"
            )
        family = match.group(1)
        processor = "gpu" if family[0] in ("g", "p") else "cpu"

    _validate_arg(processor, available_processors, "processor")
    return processor


def _validate_py_version(py_version, available_versions, framework, version):
    if not available_versions:
        if py_version is not None:
            logger.info("Ignoring unnecessary Python version: %s.", py_version)
        return None

    if py_version is None and len(available_versions) == 1:
        return available_versions[0]

    if py_version not in available_versions:
        raise ValidationError(
            f"Unsupported Python version for {framework} {version}: {py_version}. "
            f"Supported Python version(s): {', '.join(available_versions)}."
        )
    return py_version


def _validate_arg(arg, available_options, arg_name):
    if available_options is None or arg is None and arg_name != "region":
        return
    if arg not in available_options:
        raise ValidationError(
            f"Unsupported {arg_name}: {arg}. Supported {arg_name}(s): {', '.join(available_options)}."
        )


def _format_tag(tag_prefix, processor, py_version):
    return "-".join(x for x in (tag_prefix, processor, py_version) if x)
