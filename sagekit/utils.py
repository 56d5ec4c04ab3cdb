"""Naming, timestamp and archive helpers shared across sagekit."""

from __future__ import annotations

import datetime
import logging
import os
import random
import re
import tarfile
import time
from typing import Any, Iterable
from urllib.parse import urlparse

from .errors import ValidationError

logger = logging.getLogger(__name__)

_IMAGE_NAME_RE = re.compile(r"^(.+/)?([^:/]+)(:[^:]+)?$")


def name_from_base(base: str, max_length: int = 63, short: bool = False) -> str:
    """Append a timestamp to ``base``, trimming the base so the result fits.

    Args:
        base: String used as prefix to generate the unique name.
        max_length: Maximum length for the resulting string.
        short: Use a short ``%y%m%d-%H%M`` timestamp instead of millisecond precision.

    Returns:
        str: Input string with appended timestamp.
    """
    timestamp = sagemaker_short_timestamp() if short else sagemaker_timestamp()
    trimmed_base = base[: max_length - len(timestamp) - 1]
    return f"{trimmed_base}-{timestamp}"


def unique_name_from_base(base: str, max_length: int = 63) -> str:
    unique = "%04x" % random.randrange(16**4)
    ts = str(int(time.time()))
    available_length = max_length - 2 - len(ts) - len(unique)
    trimmed = base[:available_length]
    return f"{trimmed}-{ts}-{unique}"


def name_from_image(image: str) -> str:
    return name_from_base(base_name_from_image(image))


def base_name_from_image(image: str) -> str:
    """Extract the repository name from an image URI.

    ``123.dkr.ecr.us-east-1.amazonaws.com/kmeans:1`` becomes ``kmeans``.
    """
    m = _IMAGE_NAME_RE.match(image)
    return m.group(2) if m else image


def sagemaker_timestamp() -> str:
    """Return a timestamp with millisecond precision."""
    moment = time.time()
    moment_ms = repr(moment).split(".")[1][:3]
    return time.strftime("%Y-%m-%d-%H-%M-%S-{}".format(moment_ms), time.gmtime(moment))


def sagemaker_short_timestamp() -> str:
    """Return a timestamp that is relatively short in length."""
    return time.strftime("%y%m%d-%H%M")


def build_dict(key: str, value: Any) -> dict:
    if value is not None:
        return {key: value}
    return {}


def get_config_value(key_path: str, config: dict | None) -> Any:
    """Walk a dotted ``key_path`` through nested dicts, returning None if absent."""
    if config is None:
        return None
    current_section = config
    for key in key_path.split("."):
        if isinstance(current_section, dict) and key in current_section:
            current_section = current_section[key]
        else:
            return None
    return current_section


def parse_s3_url(url: str) -> tuple[str, str]:
    """Split an ``s3://bucket/key`` URL into bucket and key.

    Raises:
        ValidationError: If the scheme is not ``s3``.
    """
    parsed = urlparse(url)
    if parsed.scheme != "s3":
        raise ValidationError(f"Expecting 's3' scheme, got: {parsed.scheme} in {url}.")
    return parsed.netloc, parsed.path.lstrip("/")


def create_tar_file(source_files: Iterable[str], target: str) -> str:
    """Create a gzip tarball holding ``source_files`` at their basenames.

    Directories are added recursively.
    """
    with tarfile.open(target, "w:gz") as tar:
        for sf in source_files:
            tar.add(sf, arcname=os.path.basename(sf))
    return target


def secondary_training_status_changed(current_job_description, prev_job_description) -> bool:
    """Whether the last secondary status message differs from the previous poll."""
    current_transitions = (current_job_description or {}).get("SecondaryStatusTransitions")
    if not current_transitions:
        return False

    prev_transitions = (
        (prev_job_description or {}).get("SecondaryStatusTransitions") or []
    )
    last_message = prev_transitions[-1]["StatusMessage"] if prev_transitions else ""
    message = current_transitions[-1]["StatusMessage"]
    return message != last_message


def secondary_training_status_message(job_description, prev_description) -> str:
    """Format the newest secondary status transition of a training job.

    Args:
        job_description: Returned response from DescribeTrainingJob call.
        prev_description: Previous job description from DescribeTrainingJob call.

    Returns:
        str: Job status string to be printed.
    """
    if not job_description or not job_description.get("SecondaryStatusTransitions"):
        return ""

    prev_transitions = (prev_description or {}).get("SecondaryStatusTransitions") or []
    prev_transitions_num = len(prev_transitions)
    current_transitions = job_description["SecondaryStatusTransitions"]

    if len(current_transitions) == prev_transitions_num:
        # status unchanged, message changed
        transitions_to_print = current_transitions[-1:]
    else:
        transitions_to_print = current_transitions[
            prev_transitions_num - len(current_transitions):
        ]

    last_modified = job_description.get("LastModifiedTime")
    if isinstance(last_modified, datetime.datetime):
        status_time = last_modified.strftime("%Y-%m-%d %H:%M:%S")
    else:
        status_time = str(last_modified or "")

    return "\n".join(
        "{} {} - {}".format(status_time, t["Status"], t["StatusMessage"])
        for t in transitions_to_print
    )
