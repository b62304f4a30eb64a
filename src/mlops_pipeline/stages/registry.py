#!/usr/bin/env python3
"""
Ordered stage sequence.

    Stage                    Gate (branch)             Failure policy
    Data Validation          always                    FATAL
    Model Training           always                    FATAL
    Model Validation         always                    FATAL
    Model Testing            always                    FATAL
    Model Packaging          main, master, develop     FATAL
    Model Deployment         main, master              FATAL
    Model Monitoring Setup   main, master              NON_FATAL
"""

from typing import List, Type

from mlops_pipeline.stages.base import Stage, StageServices
from mlops_pipeline.stages.data_validation import DataValidationStage
from mlops_pipeline.stages.model_deployment import ModelDeploymentStage
from mlops_pipeline.stages.model_monitoring import ModelMonitoringStage
from mlops_pipeline.stages.model_packaging import ModelPackagingStage
from mlops_pipeline.stages.model_testing import ModelTestingStage
from mlops_pipeline.stages.model_training import ModelTrainingStage
from mlops_pipeline.stages.model_validation import ModelValidationStage

STAGE_SEQUENCE: List[Type[Stage]] = [
    DataValidationStage,
    ModelTrainingStage,
    ModelValidationStage,
    ModelTestingStage,
    ModelPackagingStage,
    ModelDeploymentStage,
    ModelMonitoringStage,
]


def build_stages(services: StageServices) -> List[Stage]:
    return [stage_class(services) for stage_class in STAGE_SEQUENCE]
