"""Re-run the training and transform steps of an AutoML candidate on new data."""

from __future__ import annotations

import logging
import time

from ..errors import ValidationError
from ..inputs import TrainingInput
from ..session import Session
from ..utils import name_from_base

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = ("Completed", "Failed", "Stopped")


class CandidateEstimator:
    """A candidate of an AutoML job, as a sequence of training and transform steps."""

    def __init__(self, candidate, sagemaker_session=None):
        """Initialize a CandidateEstimator.

        Args:
            candidate (dict): A candidate as returned by ``ListCandidatesForAutoMLJob``.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
        """
        self.name = candidate["CandidateName"]
        self.containers = candidate["InferenceContainers"]
        self.steps = self._process_steps(candidate["CandidateSteps"])
        self.sagemaker_session = sagemaker_session or Session()

    def get_steps(self):
        """Describe each step job of the candidate.

        Returns:
            list[CandidateStep]: Training and transform steps, in order.
        """
        candidate_steps = []
        for step in self.steps:
            step_type = step["type"]
            step_name = step["name"]
            if step_type == "TrainingJob":
                training_job = self.sagemaker_session.describe_training_job(step_name)
                inputs = training_job["InputDataConfig"]
                candidate_steps.append(CandidateStep(step_name, inputs, step_type, training_job))
            elif step_type == "TransformJob":
                transform_job = self.sagemaker_session.describe_transform_job(step_name)
                inputs = transform_job["TransformInput"]
                candidate_steps.append(CandidateStep(step_name, inputs, step_type, transform_job))
        return candidate_steps

    def fit(
        self,
        inputs,
        candidate_name=None,
        volume_kms_key=None,
        encrypt_inter_container_traffic=False,
        vpc_config=None,
        wait=True,
        logs=True,
    ):
        """Re-run every step of the candidate against ``inputs``.

        Args:
            inputs (str): Local path or S3 URI of the new dataset.
            candidate_name (str): Renames the candidate.
            volume_kms_key (str): KMS key for the step jobs' volumes.
            encrypt_inter_container_traffic (bool): Encrypt traffic between instances.
            vpc_config (dict): VpcConfig, used unless a step job already had one.
            wait (bool): Block until every step job finishes.
            logs (bool): Requires ``wait``.

        Raises:
            ValidationError: If ``logs`` is set without ``wait`` or ``inputs`` is not a string.
        """
        if logs and not wait:
            raise ValidationError(
                "Logs can only be shown if wait is set to True. "
                "Please either set wait to True or set logs to False."
            )
        if not isinstance(inputs, str):
            raise ValidationError(f"Cannot format input {inputs}. Expecting a string.")

        self.name = candidate_name or self.name
        running_jobs = {}

        if not inputs.startswith("s3://"):
            inputs = self.sagemaker_session.upload_data(inputs, key_prefix="auto-ml-input-data")

        for step in self.steps:
            step_type = step["type"]
            step_name = step["name"]
            if step_type == "TrainingJob":
                channel = dict(TrainingInput(inputs).config)
                channel["ChannelName"] = "train"

                desc = self.sagemaker_session.describe_training_job(step_name)
                step_name = name_from_base("sagemaker-automl-training-rerun")
                step["name"] = step_name
                train_args = self._get_train_args(
                    desc,
                    [channel],
                    step_name,
                    volume_kms_key,
                    encrypt_inter_container_traffic,
                    vpc_config,
                )
                self.sagemaker_session.train(**train_args)
                running_jobs[step_name] = True

            elif step_type == "TransformJob":
                desc = self.sagemaker_session.describe_transform_job(step_name)
                step_name = name_from_base("sagemaker-automl-transform-rerun")
                step["name"] = step_name
                transform_args = self._get_transform_args(desc, inputs, step_name, volume_kms_key)
                self.sagemaker_session.transform(**transform_args)
                running_jobs[step_name] = True

        if wait:
            self._wait_for_steps(running_jobs)

    def _wait_for_steps(self, running_jobs):
        while True:
            for step in self.steps:
                step_type = step["type"]
                step_name = step["name"]
                status = None
                if step_type == "TrainingJob":
                    status = self.sagemaker_session.describe_training_job(step_name)[
                        "TrainingJobStatus"
                    ]
                elif step_type == "TransformJob":
                    status = self.sagemaker_session.describe_transform_job(step_name)[
                        "TransformJobStatus"
                    ]
                if status in _TERMINAL_STATUSES:
                    running_jobs[step_name] = False
            if not any(running_jobs.values()):
                return
            time.sleep(self.sagemaker_session.poll_interval)

    @staticmethod
    def _get_train_args(
        desc, inputs, name, volume_kms_key, encrypt_inter_container_traffic, vpc_config
    ):
        """Arguments for ``Session.train`` that replay the described training job."""
        train_args = {
            "input_config": inputs,
            "job_name": name,
            "input_mode": desc["AlgorithmSpecification"]["TrainingInputMode"],
            "role": desc["RoleArn"],
            "output_config": desc["OutputDataConfig"],
            "resource_config": dict(desc["ResourceConfig"]),
            "image_uri": desc["AlgorithmSpecification"]["TrainingImage"],
            "enable_network_isolation": desc.get("EnableNetworkIsolation", False),
            "encrypt_inter_container_traffic": encrypt_inter_container_traffic,
            "use_spot_instances": desc.get("EnableManagedSpotTraining", False),
            "hyperparameters": desc.get("HyperParameters", {}),
            "stop_condition": desc.get("StoppingCondition", {}),
            "metric_definitions": None,
            "checkpoint_s3_uri": None,
            "checkpoint_local_path": None,
            "tags": [],
            "vpc_config": desc.get("VpcConfig") or vpc_config,
        }

        if volume_kms_key is not None:
            train_args["resource_config"]["VolumeKmsKeyId"] = volume_kms_key
        if "CheckpointConfig" in desc:
            train_args["checkpoint_s3_uri"] = desc["CheckpointConfig"]["S3Uri"]
            train_args["checkpoint_local_path"] = desc["CheckpointConfig"].get("LocalPath")
        return train_args

    @staticmethod
    def _get_transform_args(desc, inputs, name, volume_kms_key):
        """Arguments for ``Session.transform`` that replay the described job on ``inputs``."""
        input_config = dict(desc["TransformInput"])
        input_config["DataSource"] = {
            "S3DataSource": dict(input_config["DataSource"]["S3DataSource"], S3Uri=inputs)
        }
        resource_config = dict(desc["TransformResources"])
        if volume_kms_key is not None:
            resource_config["VolumeKmsKeyId"] = volume_kms_key

        return {
            "job_name": name,
            "model_name": desc["ModelName"],
            "strategy": desc.get("BatchStrategy"),
            "max_concurrent_transforms": desc.get("MaxConcurrentTransforms"),
            "max_payload": desc.get("MaxPayloadInMB"),
            "env": desc.get("Environment"),
            "input_config": input_config,
            "output_config": desc["TransformOutput"],
            "resource_config": resource_config,
            "tags": [],
            "data_processing": desc.get("DataProcessing"),
        }

    @staticmethod
    def _process_steps(steps):
        """Reduce ``CandidateSteps`` to name and type, e.g. ``AWS::SageMaker::TrainingJob`` -> ``TrainingJob``."""
        return [
            {"name": step["CandidateStepName"], "type": step["CandidateStepType"].split("::")[2]}
            for step in steps
        ]


class CandidateStep:
    """One step job of a candidate."""

    def __init__(self, name, inputs, step_type, description):
        self.name = name
        self.inputs = inputs
        self.type = step_type
        self.description = description
