"""Autopilot: let SageMaker search for the best pipeline for a tabular dataset."""

from __future__ import annotations

import logging

from ..errors import ValidationError
from ..inputs import TrainingInput
from ..job import _Job
from ..model import Model
from ..pipeline import PipelineModel
from ..session import Session
from ..utils import name_from_base
from .candidate_estimator import CandidateEstimator

logger = logging.getLogger(__name__)

INFERENCE_SUPPORTED_ENV = "SAGEMAKER_INFERENCE_SUPPORTED"
INFERENCE_INPUT_ENV = "SAGEMAKER_INFERENCE_INPUT"
INFERENCE_OUTPUT_ENV = "SAGEMAKER_INFERENCE_OUTPUT"


class AutoML:
    """Launch an AutoML job and deploy its candidates."""

    def __init__(
        self,
        role,
        target_attribute_name,
        output_kms_key=None,
        output_path=None,
        base_job_name=None,
        compression_type=None,
        sagemaker_session=None,
        volume_kms_key=None,
        encrypt_inter_container_traffic=False,
        vpc_config=None,
        problem_type=None,
        max_candidates=None,
        max_runtime_per_training_job_in_seconds=None,
        total_job_runtime_in_seconds=None,
        job_objective=None,
        generate_candidate_definitions_only=False,
        tags=None,
    ):
        """Initialize an AutoML object.

        Args:
            role (str): Execution role.
            target_attribute_name (str): Column to predict.
            output_kms_key (str): KMS key for the job's outputs.
            output_path (str): S3 prefix for outputs. Defaults to the default bucket.
            base_job_name (str): Prefix for generated job names.
            compression_type (str): ``Gzip`` if the inputs are compressed.
            sagemaker_session (sagekit.session.Session): Session used for API calls.
            volume_kms_key (str): KMS key for the candidates' storage volumes.
            encrypt_inter_container_traffic (bool): Encrypt traffic between instances.
            vpc_config (dict): VpcConfig for the candidates' jobs.
            problem_type (str): ``Regression``, ``BinaryClassification`` or
                ``MultiClassClassification``. Must come with ``job_objective``.
            max_candidates (int): Maximum number of candidates to train.
            max_runtime_per_training_job_in_seconds (int): Time limit per candidate job.
            total_job_runtime_in_seconds (int): Time limit of the whole search.
            job_objective (dict): ``{"MetricName": ...}``. Must come with ``problem_type``.
            generate_candidate_definitions_only (bool): Only generate notebooks.
            tags (list[dict]): Tags for the job.

        Raises:
            ValidationError: If only one of ``problem_type`` and ``job_objective`` is given.
        """
        self.role = role
        self.output_kms_key = output_kms_key
        self.output_path = output_path
        self.base_job_name = base_job_name
        self.compression_type = compression_type
        self.volume_kms_key = volume_kms_key
        self.encrypt_inter_container_traffic = encrypt_inter_container_traffic
        self.vpc_config = vpc_config
        self.problem_type = problem_type
        self.max_candidates = max_candidates
        self.max_runtime_per_training_job_in_seconds = max_runtime_per_training_job_in_seconds
        self.total_job_runtime_in_seconds = total_job_runtime_in_seconds
        self.target_attribute_name = target_attribute_name
        self.job_objective = job_objective
        self.generate_candidate_definitions_only = generate_candidate_definitions_only
        self.tags = tags

        self.current_job_name = None
        self.latest_auto_ml_job = None
        self._auto_ml_job_desc = None
        self._best_candidate = None
        self.sagemaker_session = sagemaker_session or Session()

        self._check_problem_type_and_job_objective(self.problem_type, self.job_objective)

    def fit(self, inputs=None, wait=True, logs=True, job_name=None):
        """Start an AutoML job.

        Args:
            inputs (str or list[str] or AutoMLInput): Local path or S3 URI(s) of
                the dataset. Local data is uploaded under ``auto-ml-input-data``.
            wait (bool): Block until the job finishes.
            logs (bool): Print the job's progress. Only meaningful with ``wait``.
            job_name (str): Job name. Generated if omitted.
        """
        if not wait and logs:
            logs = False
            logger.warning("Setting logs to False. logs is only meaningful when wait is True.")

        if isinstance(inputs, str) and not inputs.startswith("s3://"):
            inputs = self.sagemaker_session.upload_data(inputs, key_prefix="auto-ml-input-data")

        self._prepare_for_auto_ml_job(job_name=job_name)

        self.latest_auto_ml_job = AutoMLJob.start_new(self, inputs)
        if wait:
            self.latest_auto_ml_job.wait(logs=logs)

    @classmethod
    def attach(cls, auto_ml_job_name, sagemaker_session=None):
        """Build an AutoML object bound to an existing AutoML job."""
        sagemaker_session = sagemaker_session or Session()
        auto_ml_job_desc = sagemaker_session.describe_auto_ml_job(auto_ml_job_name)
        automl_job_tags = sagemaker_session.list_tags(resource_arn=auto_ml_job_desc["AutoMLJobArn"])

        job_config = auto_ml_job_desc.get("AutoMLJobConfig", {})
        security_config = job_config.get("SecurityConfig", {})
        completion_criteria = job_config.get("CompletionCriteria", {})
        input_config = auto_ml_job_desc["InputDataConfig"][0]

        amlj = cls(
            role=auto_ml_job_desc["RoleArn"],
            target_attribute_name=input_config["TargetAttributeName"],
            output_kms_key=auto_ml_job_desc["OutputDataConfig"].get("KmsKeyId"),
            output_path=auto_ml_job_desc["OutputDataConfig"]["S3OutputPath"],
            base_job_name=auto_ml_job_name,
            compression_type=input_config.get("CompressionType"),
            sagemaker_session=sagemaker_session,
            volume_kms_key=security_config.get("VolumeKmsKeyId"),
            encrypt_inter_container_traffic=security_config.get(
                "EnableInterContainerTrafficEncryption", False
            ),
            vpc_config=security_config.get("VpcConfig"),
            problem_type=auto_ml_job_desc.get("ProblemType"),
            max_candidates=completion_criteria.get("MaxCandidates"),
            max_runtime_per_training_job_in_seconds=completion_criteria.get(
                "MaxRuntimePerTrainingJobInSeconds"
            ),
            total_job_runtime_in_seconds=completion_criteria.get("MaxAutoMLJobRuntimeInSeconds"),
            job_objective=auto_ml_job_desc.get("AutoMLJobObjective"),
            generate_candidate_definitions_only=auto_ml_job_desc.get(
                "GenerateCandidateDefinitionsOnly", False
            ),
            tags=automl_job_tags,
        )
        amlj.current_job_name = auto_ml_job_name
        amlj.latest_auto_ml_job = AutoMLJob(sagemaker_session, auto_ml_job_name)
        amlj._auto_ml_job_desc = auto_ml_job_desc
        return amlj

    def describe_auto_ml_job(self, job_name=None):
        job_name = job_name or self.current_job_name
        self._auto_ml_job_desc = self.sagemaker_session.describe_auto_ml_job(job_name)
        return self._auto_ml_job_desc

    def best_candidate(self, job_name=None):
        """The job's best candidate. Cached after the first call."""
        if self._best_candidate:
            return self._best_candidate

        job_name = job_name or self.current_job_name
        if self._auto_ml_job_desc is None or self._auto_ml_job_desc["AutoMLJobName"] != job_name:
            self._auto_ml_job_desc = self.sagemaker_session.describe_auto_ml_job(job_name)

        self._best_candidate = self._auto_ml_job_desc["BestCandidate"]
        return self._best_candidate

    def list_candidates(
        self,
        job_name=None,
        status_equals=None,
        candidate_name=None,
        candidate_arn=None,
        sort_order=None,
        sort_by=None,
        max_results=None,
    ):
        """List the job's candidates.

        Returns:
            list[dict]: Candidate descriptions.
        """
        job_name = job_name or self.current_job_name
        return self.sagemaker_session.list_candidates(
            job_name=job_name,
            status_equals=status_equals,
            candidate_name=candidate_name,
            candidate_arn=candidate_arn,
            sort_order=sort_order,
            sort_by=sort_by,
            max_results=max_results,
        )["Candidates"]

    def create_model(
        self,
        name,
        sagemaker_session=None,
        candidate=None,
        vpc_config=None,
        enable_network_isolation=False,
        predictor_cls=None,
        inference_response_keys=None,
    ):
        """Build a PipelineModel from a candidate's inference containers.

        Args:
            name (str): Pipeline model name.
            sagemaker_session (sagekit.session.Session): Defaults to this object's session.
            candidate (CandidateEstimator or dict): Defaults to the best candidate.
            vpc_config (dict): VpcConfig for the model.
            enable_network_isolation (bool): Run the containers without network access.
            predictor_cls (callable): Predictor class returned by ``deploy``.
            inference_response_keys (list[str]): Content the endpoint should return,
                e.g. ``["predicted_label", "probability"]``.

        Returns:
            sagekit.pipeline.PipelineModel: Not yet created in SageMaker.
        """
        sagemaker_session = sagemaker_session or self.sagemaker_session

        if candidate is None:
            candidate = CandidateEstimator(self.best_candidate(), sagemaker_session=sagemaker_session)
        elif isinstance(candidate, dict):
            candidate = CandidateEstimator(candidate, sagemaker_session=sagemaker_session)

        inference_containers = self.validate_and_update_inference_response(
            candidate.containers, inference_response_keys
        )

        models = [
            Model(
                image_uri=container["Image"],
                model_data=container.get("ModelDataUrl"),
                role=self.role,
                env=container.get("Environment"),
                vpc_config=vpc_config,
                sagemaker_session=sagemaker_session,
                enable_network_isolation=enable_network_isolation,
            )
            for container in inference_containers
        ]

        return PipelineModel(
            models=models,
            role=self.role,
            predictor_cls=predictor_cls,
            name=name,
            vpc_config=vpc_config,
            sagemaker_session=sagemaker_session,
            enable_network_isolation=enable_network_isolation,
        )

    def deploy(
        self,
        initial_instance_count,
        instance_type,
        serializer=None,
        deserializer=None,
        candidate=None,
        sagemaker_session=None,
        name=None,
        endpoint_name=None,
        tags=None,
        wait=True,
        vpc_config=None,
        enable_network_isolation=False,
        predictor_cls=None,
        inference_response_keys=None,
    ):
        """Deploy a candidate, the best one by default, to an endpoint."""
        sagemaker_session = sagemaker_session or self.sagemaker_session
        model = self.create_model(
            name=name,
            sagemaker_session=sagemaker_session,
            candidate=candidate,
            inference_response_keys=inference_response_keys,
            vpc_config=vpc_config,
            enable_network_isolation=enable_network_isolation,
            predictor_cls=predictor_cls,
        )
        return model.deploy(
            initial_instance_count=initial_instance_count,
            instance_type=instance_type,
            serializer=serializer,
            deserializer=deserializer,
            endpoint_name=endpoint_name,
            tags=tags,
            wait=wait,
        )

    def validate_and_update_inference_response(self, inference_containers, inference_response_keys):
        """Wire the requested response keys through the inference containers.

        Each container outputs the requested keys it supports and receives
        those of the previous container as its input.

        Raises:
            ValidationError: If the last container does not support the keys.
        """
        if not inference_response_keys:
            return inference_containers

        self._check_inference_keys(inference_response_keys, inference_containers)

        previous_container_output = None
        for container in inference_containers:
            supported_inference_keys_container = self._get_supported_inference_keys(
                container, default=[]
            )
            if not supported_inference_keys_container:
                previous_container_output = None
                continue

            current_container_output = None
            for key in inference_response_keys:
                if key in supported_inference_keys_container:
                    current_container_output = (
                        current_container_output + "," + key if current_container_output else key
                    )

            environment = container.setdefault("Environment", {})
            if previous_container_output:
                environment[INFERENCE_INPUT_ENV] = previous_container_output
            if current_container_output:
                environment[INFERENCE_OUTPUT_ENV] = current_container_output
            previous_container_output = current_container_output

        return inference_containers

    def _prepare_for_auto_ml_job(self, job_name=None):
        if job_name is not None:
            self.current_job_name = job_name
        else:
            # CreateAutoMLJob caps the name at 32 characters
            self.current_job_name = name_from_base(self.base_job_name or "automl", max_length=32)

        if self.output_path is None:
            self.output_path = f"s3://{self.sagemaker_session.default_bucket()}/"

    @staticmethod
    def _check_problem_type_and_job_objective(problem_type, job_objective):
        if not (problem_type and job_objective) and (problem_type or job_objective):
            raise ValidationError(
                "One of problem type and objective metric provided. "
                "Either both of them should be provided or none of them should be provided."
            )

    @staticmethod
    def _get_supported_inference_keys(container, default=None):
        """Keys listed in the container's ``SAGEMAKER_INFERENCE_SUPPORTED``.

        Raises:
            KeyError: If the variable is absent and no ``default`` is given.
        """
        try:
            return [
                x.strip() for x in container["Environment"][INFERENCE_SUPPORTED_ENV].split(",")
            ]
        except KeyError:
            if default is None:
                raise
        return default

    @classmethod
    def _check_inference_keys(cls, inference_response_keys, containers):
        try:
            supported_inference_keys = cls._get_supported_inference_keys(container=containers[-1])
        except KeyError as err:
            raise ValidationError(
                "The inference model does not support selection of inference content beyond "
                "it's default content. Please retry without setting "
                "inference_response_keys key word argument."
            ) from err

        bad_keys = [key for key in inference_response_keys if key not in supported_inference_keys]
        if bad_keys:
            raise ValidationError(
                f"Requested inference output keys [{', '.join(bad_keys)}] are unsupported. "
                f"The supported inference keys are [{', '.join(supported_inference_keys)}]"
            )


class AutoMLInput:
    """One or more S3 datasets with the target column and compression."""

    def __init__(self, inputs, target_attribute_name, compression=None):
        self.inputs = inputs
        self.target_attribute_name = target_attribute_name
        self.compression = compression

    def to_request_dict(self):
        inputs = [self.inputs] if isinstance(self.inputs, str) else self.inputs
        auto_ml_input = []
        for entry in inputs:
            input_entry = {
                "DataSource": {"S3DataSource": {"S3DataType": "S3Prefix", "S3Uri": entry}},
                "TargetAttributeName": self.target_attribute_name,
            }
            if self.compression is not None:
                input_entry["CompressionType"] = self.compression
            auto_ml_input.append(input_entry)
        return auto_ml_input


class AutoMLJob(_Job):
    """A running or finished AutoML job."""

    def __init__(self, sagemaker_session, job_name, inputs=None):
        self.inputs = inputs
        super().__init__(sagemaker_session=sagemaker_session, job_name=job_name)

    @classmethod
    def start_new(cls, auto_ml, inputs):
        """Create an AutoML job from the AutoML object's settings."""
        auto_ml_args = cls._load_config(inputs, auto_ml)
        auto_ml_args["job_name"] = auto_ml.current_job_name
        auto_ml_args["problem_type"] = auto_ml.problem_type
        auto_ml_args["job_objective"] = auto_ml.job_objective
        auto_ml_args["tags"] = auto_ml.tags

        auto_ml.sagemaker_session.auto_ml(**auto_ml_args)
        return cls(auto_ml.sagemaker_session, auto_ml.current_job_name, inputs)

    @classmethod
    def _load_config(cls, inputs, auto_ml, expand_role=True, validate_uri=True):
        if isinstance(inputs, AutoMLInput):
            input_config = inputs.to_request_dict()
        else:
            input_config = cls._format_inputs_to_input_config(
                inputs, validate_uri, auto_ml.compression_type, auto_ml.target_attribute_name
            )
        output_config = _Job._prepare_output_config(auto_ml.output_path, auto_ml.output_kms_key)

        role = auto_ml.sagemaker_session.expand_role(auto_ml.role) if expand_role else auto_ml.role

        stop_condition = cls._prepare_auto_ml_stop_condition(
            auto_ml.max_candidates,
            auto_ml.max_runtime_per_training_job_in_seconds,
            auto_ml.total_job_runtime_in_seconds,
        )

        auto_ml_job_config = {
            "CompletionCriteria": stop_condition,
            "SecurityConfig": {
                "EnableInterContainerTrafficEncryption": auto_ml.encrypt_inter_container_traffic
            },
        }
        if auto_ml.volume_kms_key:
            auto_ml_job_config["SecurityConfig"]["VolumeKmsKeyId"] = auto_ml.volume_kms_key
        if auto_ml.vpc_config:
            auto_ml_job_config["SecurityConfig"]["VpcConfig"] = auto_ml.vpc_config

        return {
            "input_config": input_config,
            "output_config": output_config,
            "auto_ml_job_config": auto_ml_job_config,
            "role": role,
            "generate_candidate_definitions_only": auto_ml.generate_candidate_definitions_only,
        }

    @classmethod
    def _format_inputs_to_input_config(
        cls, inputs, validate_uri=True, compression=None, target_attribute_name=None
    ):
        """Turn S3 URIs, or an AutoMLInput, into the AutoML ``InputDataConfig``."""
        if inputs is None:
            return None

        channels = []
        if isinstance(inputs, AutoMLInput):
            channels.extend(inputs.to_request_dict())
        elif isinstance(inputs, str):
            channels.append(
                cls._format_string_uri_channel(
                    inputs, validate_uri, compression, target_attribute_name
                )
            )
        elif isinstance(inputs, list):
            for input_entry in inputs:
                channels.append(
                    cls._format_string_uri_channel(
                        input_entry, validate_uri, compression, target_attribute_name
                    )
                )
        else:
            raise ValidationError(
                f"Cannot format input {inputs}. Expecting a string or a list of strings."
            )

        for channel in channels:
            if not channel.get("TargetAttributeName"):
                raise ValidationError("TargetAttributeName cannot be None")

        return channels

    @staticmethod
    def _format_string_uri_channel(uri, validate_uri, compression, target_attribute_name):
        if not isinstance(uri, str):
            raise ValidationError(f"Cannot format input {uri}. Expecting a string.")
        if validate_uri and not uri.startswith("s3://"):
            raise ValidationError(f'URI input {uri} must be a valid S3 URI and must start with "s3://"')
        channel = TrainingInput(
            uri, compression=compression, target_attribute_name=target_attribute_name
        ).config
        # AutoML channels take no distribution type
        channel["DataSource"]["S3DataSource"].pop("S3DataDistributionType")
        return channel

    @staticmethod
    def _prepare_auto_ml_stop_condition(
        max_candidates, max_runtime_per_training_job_in_seconds=None, total_job_runtime_in_seconds=None
    ):
        stopping_condition = {}
        if max_candidates is not None:
            stopping_condition["MaxCandidates"] = max_candidates
        if max_runtime_per_training_job_in_seconds is not None:
            stopping_condition[
                "MaxRuntimePerTrainingJobInSeconds"
            ] = max_runtime_per_training_job_in_seconds
        if total_job_runtime_in_seconds is not None:
            stopping_condition["MaxAutoMLJobRuntimeInSeconds"] = total_job_runtime_in_seconds
        return stopping_condition

    def describe(self):
        return self.sagemaker_session.describe_auto_ml_job(self.job_name)

    def wait(self, logs=True):
        if logs:
            self.sagemaker_session.logs_for_auto_ml_job(self.job_name, wait=True)
        else:
            self.sagemaker_session.wait_for_auto_ml_job(self.job_name)

    def stop(self):
        self.sagemaker_session.sagemaker_client.stop_auto_ml_job(AutoMLJobName=self.job_name)
