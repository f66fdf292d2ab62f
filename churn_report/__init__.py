"""
Customer Churn Report - Source Package
"""

from .data_generator import generate_telco_dataset
from .preprocessing import (
    load_data, clean_data, split_data, upsample_minority, ChurnDataProcessor
)
from .model_training import ChurnModel, ChurnModelTrainer
from .evaluation import evaluate_model, evaluate_predictions, compute_roc
from .explainer import ChurnExplainer
from .exceptions import (
    ChurnReportError, ParseError, InsufficientDataError, ConvergenceError,
    InvalidArgumentError, InvalidThresholdError
)
