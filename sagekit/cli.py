"""Command line entry point: follow, inspect and stop SageMaker jobs."""

from __future__ import annotations

import argparse
import logging
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import image_uris
from .config import load_config
from .errors import SagekitError
from .session import Session

logger = logging.getLogger(__name__)

JOB_KINDS = ("training", "processing", "transform")

_STATUS_KEYS = {
    "training": "TrainingJobStatus",
    "processing": "ProcessingJobStatus",
    "transform": "TransformJobStatus",
}


def _session(args):
    config = load_config(args.config)
    boto_session = boto3.Session(region_name=args.region) if args.region else None
    return Session(boto_session=boto_session, config=config)


def _describe(session, kind, job_name):
    if kind == "training":
        return session.describe_training_job(job_name)
    if kind == "processing":
        return session.describe_processing_job(job_name)
    return session.describe_transform_job(job_name)


def cmd_logs(args):
    session = _session(args)
    print(f"📜 Logs for {args.kind} job {args.job}")
    if args.kind == "training":
        session.logs_for_job(args.job, wait=args.wait)
    elif args.kind == "processing":
        session.logs_for_processing_job(args.job, wait=args.wait)
    else:
        session.logs_for_transform_job(args.job, wait=args.wait)
    return 0


def cmd_status(args):
    session = _session(args)
    desc = _describe(session, args.kind, args.job)
    status = desc[_STATUS_KEYS[args.kind]]
    print(f"🔎 {args.kind} job {args.job}: {status}")
    if desc.get("FailureReason"):
        print(f"❌ Failure reason: {desc['FailureReason']}")
    return 0


def cmd_stop(args):
    session = _session(args)
    print(f"🛑 Stopping {args.kind} job {args.job}")
    if args.kind == "training":
        session.stop_training_job(args.job)
    elif args.kind == "processing":
        session.stop_processing_job(args.job)
    else:
        session.stop_transform_job(args.job)
    print(f"✅ Stop requested for {args.job}")
    return 0


def cmd_endpoints_delete(args):
    session = _session(args)
    print(f"🗑️ Deleting endpoint: {args.name}")
    session.delete_endpoint(args.name)
    print(f"✅ Endpoint {args.name} deleted")
    return 0


def cmd_image_uri(args):
    region = args.region or load_config(args.config).region
    uri = image_uris.retrieve(
        args.framework,
        region,
        version=args.version,
        py_version=args.py_version,
        instance_type=args.instance_type,
        image_scope=args.image_scope,
    )
    print(uri)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="sagekit", description="SageMaker job utilities")
    parser.add_argument("--region", help="AWS region, overriding the config file")
    parser.add_argument("--config", help="Path to a sagekit YAML config file")
    parser.add_argument("--log-level", default=None, help="Logging level, e.g. DEBUG")
    subparsers = parser.add_subparsers(dest="command", required=True)

    logs_parser = subparsers.add_parser("logs", help="Print the CloudWatch logs of a job")
    logs_parser.add_argument("job", help="Job name")
    logs_parser.add_argument("--kind", choices=JOB_KINDS, default="training")
    logs_parser.add_argument(
        "--wait", action="store_true", help="Keep tailing until the job finishes"
    )
    logs_parser.set_defaults(func=cmd_logs)

    status_parser = subparsers.add_parser("status", help="Show the status of a job")
    status_parser.add_argument("job", help="Job name")
    status_parser.add_argument("--kind", choices=JOB_KINDS, default="training")
    status_parser.set_defaults(func=cmd_status)

    stop_parser = subparsers.add_parser("stop", help="Stop a running job")
    stop_parser.add_argument("job", help="Job name")
    stop_parser.add_argument("--kind", choices=JOB_KINDS, default="training")
    stop_parser.set_defaults(func=cmd_stop)

    endpoints_parser = subparsers.add_parser("endpoints", help="Manage endpoints")
    endpoints_sub = endpoints_parser.add_subparsers(dest="endpoints_command", required=True)
    delete_parser = endpoints_sub.add_parser("delete", help="Delete an endpoint")
    delete_parser.add_argument("name", help="Endpoint name")
    delete_parser.set_defaults(func=cmd_endpoints_delete)

    image_parser = subparsers.add_parser("image-uri", help="Print the ECR image URI of a framework")
    image_parser.add_argument("framework", help="Framework or algorithm, e.g. xgboost, kmeans")
    image_parser.add_argument("--version", default=None)
    image_parser.add_argument("--py-version", default=None)
    image_parser.add_argument("--instance-type", default=None)
    image_parser.add_argument("--image-scope", default=None, choices=("training", "inference", "monitoring"))
    image_parser.set_defaults(func=cmd_image_uri)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=(args.log_level or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user")
        return 1
    except (SagekitError, ValueError, OSError, ClientError, BotoCoreError) as e:
        print(f"❌ {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
