"""Tests for CloudWatch log reading."""

from unittest.mock import Mock

import pytest

from sagekit import logs


def _events(*pairs):
    return {"events": [{"timestamp": ts, "message": msg} for ts, msg in pairs], "nextForwardToken": "next"}


def test_log_group_for() -> None:
    """Each job kind has its own log group."""
    assert logs.log_group_for("Processing") == "/aws/sagemaker/ProcessingJobs"
    with pytest.raises(ValueError):
        logs.log_group_for("Tuning")


def test_log_stream_skips_seen_events() -> None:
    """Events already printed at the start timestamp are dropped."""
    client = Mock()
    client.get_log_events.side_effect = [_events((1, "a"), (1, "b"), (2, "c")), _events()]
    messages = [e["message"] for e in logs.log_stream(client, "group", "stream", start_time=1, skip=2)]
    assert messages == ["c"]
    assert client.get_log_events.call_args.kwargs["nextToken"] == "next"


def test_multi_stream_iter_orders_by_timestamp() -> None:
    """Streams are merged in time order and tagged with their index."""
    client = Mock()
    pages = {
        "s1": [_events((1, "one"), (4, "four")), _events()],
        "s2": [_events((2, "two"), (3, "three")), _events()],
    }
    client.get_log_events.side_effect = lambda **kw: pages[kw["logStreamName"]].pop(0)
    merged = [(i, e["message"]) for i, e in logs.multi_stream_iter(client, "group", ["s1", "s2"])]
    assert merged == [(0, "one"), (1, "two"), (1, "three"), (0, "four")]


def test_level_color() -> None:
    """Level markers pick the colour, anything else is grey."""
    assert logs.level_color("[ERROR] boom") == "38;5;124"
    assert logs.level_color("WARNING: careful") == "38;5;214"
    assert logs.level_color("plain line") == "38;5;246"


def test_logs_for_finished_job_prints_once(capsys) -> None:
    """A finished job's logs are read once without waiting."""
    sagemaker_client = Mock()
    sagemaker_client.describe_processing_job.return_value = {
        "ProcessingJobStatus": "Completed",
        "ProcessingResources": {"ClusterConfig": {"InstanceCount": 1}},
    }
    logs_client = Mock()
    logs_client.describe_log_streams.return_value = {"logStreams": [{"logStreamName": "prep/algo-1"}]}
    logs_client.get_log_events.side_effect = [_events((1, "starting"), (2, "done")), _events()]
    boto_session = Mock()
    boto_session.client.side_effect = lambda name, **kwargs: {"sagemaker": sagemaker_client, "logs": logs_client}[name]

    description = logs.logs_for_job(boto_session, "prep", job_kind="Processing")

    assert description["ProcessingJobStatus"] == "Completed"
    assert capsys.readouterr().out.splitlines() == ["starting", "done"]
    assert logs_client.describe_log_streams.call_args.kwargs["logStreamNamePrefix"] == "prep/"
