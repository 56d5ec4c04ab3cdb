"""Tests for the Airflow config exporters."""

import json

from sagekit.amazon.amazon_estimator import RecordSet
from sagekit.amazon.kmeans import KMeans
from sagekit.estimator import Estimator
from sagekit.model import Model
from sagekit.processing import ProcessingInput, ProcessingOutput, Processor
from sagekit.transformer import Transformer
from sagekit.workflow import airflow
from sagekit.xgboost import XGBoost, XGBoostModel

from .conftest import BUCKET, REGION, ROLE

IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/my-algo:latest"


def test_training_config_for_estimator(sagemaker_session) -> None:
    """The exported request matches CreateTrainingJob without calling it."""
    estimator = Estimator(
        IMAGE,
        ROLE,
        1,
        "ml.m5.xlarge",
        hyperparameters={"epochs": 3},
        tags=[{"Key": "team", "Value": "ml"}],
        metric_definitions=[{"Name": "loss", "Regex": "loss=(.*)"}],
        sagemaker_session=sagemaker_session,
    )
    config = airflow.training_config(estimator, "s3://data/train", job_name="train-job")

    assert config["TrainingJobName"] == "train-job"
    assert config["AlgorithmSpecification"] == {
        "TrainingImage": IMAGE,
        "TrainingInputMode": "File",
        "MetricDefinitions": [{"Name": "loss", "Regex": "loss=(.*)"}],
    }
    assert config["OutputDataConfig"] == {"S3OutputPath": f"s3://{BUCKET}/"}
    assert config["InputDataConfig"][0]["ChannelName"] == "training"
    assert config["HyperParameters"] == {"epochs": "3"}
    assert config["RoleArn"] == ROLE
    assert config["Tags"] == [{"Key": "team", "Value": "ml"}]
    assert "S3Operations" not in config
    sagemaker_session.train.assert_not_called()


def test_training_config_for_framework_records_upload(sagemaker_session) -> None:
    """Framework code is listed for upload instead of being uploaded."""
    estimator = XGBoost(
        "train.py",
        "1.7-1",
        source_dir="/work/src",
        role=ROLE,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        sagemaker_session=sagemaker_session,
    )
    config = airflow.training_config(estimator, "s3://data/train", job_name="xgb-job")

    assert config["S3Operations"] == {
        "S3Upload": [
            {"Path": "/work/src", "Bucket": BUCKET, "Key": "xgb-job/source/sourcedir.tar.gz", "Tar": True}
        ]
    }
    hps = config["HyperParameters"]
    assert json.loads(hps["sagemaker_submit_directory"]) == f"s3://{BUCKET}/xgb-job/source/sourcedir.tar.gz"
    assert json.loads(hps["sagemaker_program"]) == "train.py"
    assert json.loads(hps["sagemaker_region"]) == REGION
    sagemaker_session.s3_client.upload_file.assert_not_called()


def test_training_config_with_s3_source_dir(sagemaker_session) -> None:
    """Code already in S3 needs no upload."""
    estimator = XGBoost(
        "train.py",
        "1.7-1",
        source_dir="s3://code/sourcedir.tar.gz",
        role=ROLE,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        sagemaker_session=sagemaker_session,
    )
    config = airflow.training_config(estimator, "s3://data/train", job_name="xgb-job")
    assert "S3Operations" not in config
    assert json.loads(config["HyperParameters"]["sagemaker_submit_directory"]) == "s3://code/sourcedir.tar.gz"


def test_training_config_for_algorithm(sagemaker_session) -> None:
    """First-party algorithms export feature_dim and the record set channel."""
    kmeans = KMeans(ROLE, instance_count=1, instance_type="ml.c4.xlarge", k=3, sagemaker_session=sagemaker_session)
    records = RecordSet("s3://b/manifest", num_records=10, feature_dim=5)
    config = airflow.training_config(kmeans, records, job_name="kmeans-job", mini_batch_size=50)

    assert config["HyperParameters"]["feature_dim"] == "5"
    assert config["HyperParameters"]["mini_batch_size"] == "50"
    channel = config["InputDataConfig"][0]
    assert channel["ChannelName"] == "train"
    assert channel["DataSource"]["S3DataSource"]["S3DataDistributionType"] == "ShardedByS3Key"


def test_model_config(sagemaker_session) -> None:
    """A plain model exports its container and role."""
    model = Model(
        IMAGE,
        "s3://m/model.tar.gz",
        ROLE,
        name="my-model",
        vpc_config={"Subnets": ["s"], "SecurityGroupIds": ["g"]},
        sagemaker_session=sagemaker_session,
    )
    config = airflow.model_config(model)
    assert config == {
        "ModelName": "my-model",
        "PrimaryContainer": {"Image": IMAGE, "ModelDataUrl": "s3://m/model.tar.gz", "Environment": {}},
        "ExecutionRoleArn": ROLE,
        "VpcConfig": {"Subnets": ["s"], "SecurityGroupIds": ["g"]},
    }


def test_deploy_config_for_framework_model(sagemaker_session) -> None:
    """Endpoint configs share the model's name and carry the code upload."""
    model = XGBoostModel(
        "s3://m/model.tar.gz",
        ROLE,
        "serve.py",
        framework_version="1.7-1",
        name="xgb-model",
        sagemaker_session=sagemaker_session,
    )
    config = airflow.deploy_config(model, 2, "ml.m5.large", endpoint_name="xgb-endpoint")

    container = config["Model"]["PrimaryContainer"]
    assert container["Image"].endswith("sagemaker-xgboost:1.7-1-cpu-py3")
    assert container["Environment"]["SAGEMAKER_PROGRAM"] == "serve.py"
    assert container["Environment"]["SAGEMAKER_SUBMIT_DIRECTORY"] == (
        f"s3://{BUCKET}/xgb-model/source/sourcedir.tar.gz"
    )
    assert "S3Operations" not in config["Model"]
    assert config["S3Operations"]["S3Upload"][0]["Key"] == "xgb-model/source/sourcedir.tar.gz"
    variant = config["EndpointConfig"]["ProductionVariants"][0]
    assert variant["ModelName"] == "xgb-model"
    assert variant["InitialInstanceCount"] == 2
    assert config["Endpoint"] == {"EndpointName": "xgb-endpoint", "EndpointConfigName": "xgb-model"}


def test_transform_config(sagemaker_session) -> None:
    """Transform configs default the output path under the job name."""
    transformer = Transformer(
        "my-model",
        1,
        "ml.m5.xlarge",
        strategy="MultiRecord",
        accept="text/csv",
        sagemaker_session=sagemaker_session,
    )
    config = airflow.transform_config(
        transformer, "s3://data/batch", content_type="text/csv", split_type="Line", job_name="batch-job",
        input_filter="$[1:]",
    )
    assert config["TransformJobName"] == "batch-job"
    assert config["ModelName"] == "my-model"
    assert config["TransformInput"]["DataSource"]["S3DataSource"]["S3Uri"] == "s3://data/batch"
    assert config["TransformInput"]["SplitType"] == "Line"
    assert config["TransformOutput"] == {"S3OutputPath": f"s3://{BUCKET}/batch-job", "Accept": "text/csv"}
    assert config["TransformResources"] == {"InstanceCount": 1, "InstanceType": "ml.m5.xlarge"}
    assert config["DataProcessing"] == {"InputFilter": "$[1:]"}
    assert config["BatchStrategy"] == "MultiRecord"
    sagemaker_session.transform.assert_not_called()


def test_processing_config(sagemaker_session, tmp_path) -> None:
    """Processing configs reference S3 only and carry the cluster settings."""
    sagemaker_session.upload_data.return_value = f"s3://{BUCKET}/prep/input/input-2"
    processor = Processor(
        ROLE, IMAGE, 1, "ml.m5.xlarge", max_runtime_in_seconds=300, sagemaker_session=sagemaker_session
    )
    config = airflow.processing_config(
        processor,
        inputs=[
            ProcessingInput("s3://data/raw", "/opt/ml/processing/raw"),
            ProcessingInput(str(tmp_path), "/opt/ml/processing/local"),
        ],
        outputs=[ProcessingOutput("/opt/ml/processing/output")],
        job_name="prep",
        container_arguments=["--fast"],
        kms_key_id="kms",
    )

    assert config["ProcessingJobName"] == "prep"
    sources = [i["S3Input"]["S3Uri"] for i in config["ProcessingInputs"]]
    assert sources == ["s3://data/raw", f"s3://{BUCKET}/prep/input/input-2"]
    assert config["ProcessingOutputConfig"]["KmsKeyId"] == "kms"
    assert config["ProcessingOutputConfig"]["Outputs"][0]["S3Output"]["S3Uri"] == (
        f"s3://{BUCKET}/prep/output/output-1"
    )
    assert config["ProcessingResources"]["ClusterConfig"]["InstanceCount"] == 1
    assert config["StoppingCondition"] == {"MaxRuntimeInSeconds": 300}
    assert config["AppSpecification"] == {"ImageUri": IMAGE, "ContainerArguments": ["--fast"]}
    assert config["RoleArn"] == ROLE
    sagemaker_session.process.assert_not_called()
