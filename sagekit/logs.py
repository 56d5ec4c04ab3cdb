"""CloudWatch log tailing for SageMaker jobs.

Each job writes one log stream per instance under ``{job_name}/...`` in a log
group named after the job kind. :func:`logs_for_job` alternates between
reading whatever is available in those streams and polling the job status,
until the job is done and a final read has drained the streams.
"""

from __future__ import annotations

import collections
import enum
import logging
import re
import sys
import time

import botocore.config
from botocore.exceptions import ClientError

from .utils import secondary_training_status_changed, secondary_training_status_message

logger = logging.getLogger(__name__)

JOB_KINDS = {
    "Training": ("describe_training_job", "TrainingJobName", "TrainingJobStatus"),
    "Processing": ("describe_processing_job", "ProcessingJobName", "ProcessingJobStatus"),
    "Transform": ("describe_transform_job", "TransformJobName", "TransformJobStatus"),
}

TERMINAL_STATUSES = ("Completed", "Failed", "Stopped")

# seconds between DescribeJob calls while tailing
DESCRIBE_INTERVAL = 30


class LogState(enum.IntEnum):
    STARTING = 1
    WAIT_IN_PROGRESS = 2
    TAILING = 3
    JOB_COMPLETE = 4
    COMPLETE = 5


# Position in a stream: last seen timestamp and how many events carried it.
Position = collections.namedtuple("Position", ["timestamp", "skip"])


def log_group_for(job_kind: str) -> str:
    """Return the CloudWatch log group used by ``Training``, ``Processing`` or ``Transform`` jobs."""
    if job_kind not in JOB_KINDS:
        raise ValueError(f"Unknown job kind {job_kind!r}. Expected one of {sorted(JOB_KINDS)}")
    return f"/aws/sagemaker/{job_kind}Jobs"


_LEVEL_COLORS = (
    (re.compile(r"^\[.*FATAL.*\]|^FATAL:"), "38;5;196"),
    (re.compile(r"^\[.*ERROR.*\]|^ERROR:"), "38;5;124"),
    (re.compile(r"^\[.*WARNING.*\]|^.*WARNING:"), "38;5;214"),
    (re.compile(r"^\[.*SUCCESS.*\]|^SUCCESS:"), "38;5;34"),
    (re.compile(r"^\[.*INFO.*\]|^INFO:"), "34"),
    (re.compile(r"^\[.*DEBUG.*\]|^DEBUG:"), "38;5;31"),
    (re.compile(r"^\[.*TRACE.*\]|^TRACE:"), "38;5;25"),
)


def level_color(line: str) -> str:
    """ANSI colour code for a log line based on its level marker."""
    for pattern, code in _LEVEL_COLORS:
        if pattern.search(line):
            return code
    return "38;5;246"


class ColorWrap:
    """Print log lines, colour coded by instance when writing to a terminal."""

    _stream_colors = [31, 32, 33, 34, 35, 36]

    def __init__(self, force=False, by_level=False, stream=None):
        self.stream = stream or sys.stdout
        self.colorize = force or self.stream.isatty()
        self.by_level = by_level

    def __call__(self, index, s):
        if not self.colorize:
            print(s, file=self.stream)
            return
        if self.by_level:
            code = level_color(s)
        else:
            code = str(self._stream_colors[index % len(self._stream_colors)])
        print(f"\x1b[{code}m{s}\x1b[0m", file=self.stream)


def log_stream(client, log_group, stream_name, start_time=0, skip=0):
    """Yield the events of one log stream from ``start_time`` onwards.

    The first ``skip`` events are dropped; they were already printed by a
    previous read that stopped on the same timestamp.

    Args:
        client: boto3 CloudWatch Logs client.
        log_group: Name of the log group.
        stream_name: Name of the stream inside the group.
        start_time: Epoch milliseconds to read from.
        skip: Number of leading events to discard.
    """
    next_token = None
    event_count = 1
    while event_count > 0:
        token_arg = {"nextToken": next_token} if next_token is not None else {}
        response = client.get_log_events(
            logGroupName=log_group,
            logStreamName=stream_name,
            startTime=start_time,
            startFromHead=True,
            **token_arg,
        )
        next_token = response["nextForwardToken"]
        events = response["events"]
        event_count = len(events)
        if event_count > skip:
            events = events[skip:]
            skip = 0
        else:
            skip -= event_count
            events = []
        yield from events


def multi_stream_iter(client, log_group, streams, positions=None):
    """Merge several log streams, yielding ``(stream_index, event)`` by timestamp."""
    positions = positions or {s: Position(timestamp=0, skip=0) for s in streams}
    event_iters = [
        log_stream(client, log_group, s, positions[s].timestamp, positions[s].skip)
        for s in streams
    ]
    events = [next(it, None) for it in event_iters]

    while any(e is not None for e in events):
        i = min(
            (idx for idx, e in enumerate(events) if e is not None),
            key=lambda idx: events[idx]["timestamp"],
        )
        yield i, events[i]
        events[i] = next(event_iters[i], None)


def _instance_count(description, job_kind):
    if job_kind == "Training":
        resources = description["ResourceConfig"]
        if "InstanceGroups" in resources:
            return sum(g["InstanceCount"] for g in resources["InstanceGroups"])
        return resources["InstanceCount"]
    if job_kind == "Transform":
        return description["TransformResources"]["InstanceCount"]
    return description["ProcessingResources"]["ClusterConfig"]["InstanceCount"]


class _LogTail:
    """Stream discovery and read positions for one job."""

    def __init__(self, client, log_group, job_name, instance_count, color_wrap):
        self.client = client
        self.log_group = log_group
        self.job_name = job_name
        self.instance_count = instance_count
        self.color_wrap = color_wrap
        self.stream_names = []
        self.positions = {}
        self.dot = False

    def _discover_streams(self):
        kwargs = dict(
            logGroupName=self.log_group,
            logStreamNamePrefix=self.job_name + "/",
            orderBy="LogStreamName",
            limit=min(self.instance_count, 50),
        )
        try:
            streams = self.client.describe_log_streams(**kwargs)
            names = [s["logStreamName"] for s in streams["logStreams"]]
            while "nextToken" in streams:
                streams = self.client.describe_log_streams(
                    nextToken=streams["nextToken"], **dict(kwargs, limit=50)
                )
                names.extend(s["logStreamName"] for s in streams["logStreams"])
        except ClientError as e:
            # no log group exists until the first container starts logging
            if e.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise
            return
        self.stream_names = names
        for s in names:
            self.positions.setdefault(s, Position(timestamp=0, skip=0))

    def flush(self):
        """Print every event available since the last flush."""
        if len(self.stream_names) < self.instance_count:
            self._discover_streams()

        if not self.stream_names:
            self.dot = True
            print(".", end="")
            sys.stdout.flush()
            return

        if self.dot:
            print()
            self.dot = False
        for idx, event in multi_stream_iter(
            self.client, self.log_group, self.stream_names, self.positions
        ):
            self.color_wrap(idx, event["message"])
            stream = self.stream_names[idx]
            ts, count = self.positions[stream]
            if event["timestamp"] == ts:
                self.positions[stream] = Position(timestamp=ts, skip=count + 1)
            else:
                self.positions[stream] = Position(timestamp=event["timestamp"], skip=1)


def logs_for_job(boto_session, job_name, job_kind="Training", wait=False, poll=10, timeout=None):
    """Display the logs of a job, optionally tailing them until it finishes.

    State table::

        TAILING       read logs, pause, get status    job complete -> JOB_COMPLETE
        JOB_COMPLETE  read logs, pause                               -> COMPLETE
        COMPLETE      read logs, exit

    Args:
        boto_session: boto3 session used for the sagemaker and logs clients.
        job_name: Name of the job.
        job_kind: ``Training``, ``Processing`` or ``Transform``.
        wait: Keep tailing until the job reaches a terminal status.
        poll: Seconds between reads.
        timeout: Optional limit in seconds on the whole tailing loop.

    Returns:
        dict: The last job description.

    Raises:
        UnexpectedStatusError: If waiting and the job does not complete.
    """
    # imported here, session imports this module
    from .session import _check_job_status

    describe_name, name_key, status_key = JOB_KINDS[job_kind]
    sagemaker_client = boto_session.client("sagemaker")

    def describe():
        return getattr(sagemaker_client, describe_name)(**{name_key: job_name})

    description = describe()
    if job_kind == "Training":
        print(secondary_training_status_message(description, None), end="")

    # more retries than the default; a transient error should not end the tail
    logs_client = boto_session.client(
        "logs", config=botocore.config.Config(retries={"max_attempts": 15})
    )
    tail = _LogTail(
        logs_client,
        log_group_for(job_kind),
        job_name,
        _instance_count(description, job_kind),
        ColorWrap(),
    )

    job_already_completed = description[status_key] in TERMINAL_STATUSES
    state = LogState.TAILING if wait and not job_already_completed else LogState.COMPLETE
    request_end_time = time.time() + timeout if timeout else None
    last_describe_job_call = time.time()
    last_description = description

    while True:
        tail.flush()
        if request_end_time and time.time() > request_end_time:
            print(f"Timeout Exceeded. {timeout} seconds elapsed.")
            break
        if state == LogState.COMPLETE:
            break

        time.sleep(poll)

        if state == LogState.JOB_COMPLETE:
            state = LogState.COMPLETE
        elif time.time() - last_describe_job_call >= DESCRIBE_INTERVAL:
            description = describe()
            last_describe_job_call = time.time()

            if job_kind == "Training" and secondary_training_status_changed(
                description, last_description
            ):
                print()
                print(secondary_training_status_message(description, last_description), end="")
            last_description = description

            if description[status_key] in TERMINAL_STATUSES:
                print()
                state = LogState.JOB_COMPLETE

    if wait:
        _check_job_status(job_name, description, status_key)
        if tail.dot:
            print()
        if job_kind == "Training":
            instance_count = tail.instance_count
            training_time = description.get("TrainingTimeInSeconds")
            billable_time = description.get("BillableTimeInSeconds")
            if training_time is not None:
                print("Training seconds:", training_time * instance_count)
            if billable_time is not None:
                print("Billable seconds:", billable_time * instance_count)
                if description.get("EnableManagedSpotTraining") and training_time:
                    saving = (1 - float(billable_time) / training_time) * 100
                    print("Managed Spot Training savings: {:.1f}%".format(saving))
    return description
