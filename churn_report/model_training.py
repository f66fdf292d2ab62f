"""
Model Training Module
---------------------
Fits the random forest churn model.

The forest is tuned by grid search over the number of predictors
sampled at each split, scored by accuracy under repeated stratified
k-fold cross-validation (5 folds x 3 repeats by default).

Training takes minutes on the full dataset, so fitted models are cached
on disk with joblib and reloaded on later runs.
"""

import os
import hashlib
import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import GridSearchCV, RepeatedStratifiedKFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder
import joblib
from typing import Dict, List, Any, Optional
import warnings
warnings.filterwarnings('ignore')

from . import config
from .exceptions import ConvergenceError, InsufficientDataError
from .preprocessing import ChurnDataProcessor


class ChurnModel:
    """
    A fitted churn classifier.

    Bundles the feature encoder with the scikit-learn pipeline
    (one-hot encoding + random forest) and the cross-validation
    outcome that selected it. Treat as read-only once trained.
    """

    def __init__(
        self,
        processor: ChurnDataProcessor,
        pipeline: Pipeline,
        cv_accuracy: float,
        best_params: Dict[str, Any],
        cv_results: Optional[pd.DataFrame] = None,
        upsampled: bool = False,
        fingerprint: Optional[Dict[str, Any]] = None
    ):
        self.processor = processor
        self.pipeline = pipeline
        self.cv_accuracy = cv_accuracy
        self.best_params = best_params
        self.cv_results = cv_results
        self.upsampled = upsampled
        # Training settings and data hash, compared before reusing a cached model
        self.fingerprint = fingerprint

    @property
    def feature_names(self) -> List[str]:
        return self.processor.feature_names

    @property
    def forest(self) -> RandomForestClassifier:
        return self.pipeline.named_steps['forest']

    def predict_proba_encoded(self, X: np.ndarray) -> np.ndarray:
        """Class probabilities [P(no churn), P(churn)] for encoded rows."""
        proba = self.pipeline.predict_proba(self.processor.to_frame(X))
        classes = list(self.pipeline.classes_)
        return proba[:, [classes.index(0), classes.index(1)]]

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        """Probability of churn for every row of a cleaned frame."""
        return self.predict_proba_encoded(self.processor.transform(df))[:, 1]

    def __repr__(self) -> str:
        return (f"ChurnModel(best_params={self.best_params}, "
                f"cv_accuracy={self.cv_accuracy:.4f}, upsampled={self.upsampled})")


def mtry_grid(n_predictors: int, tune_length: int = config.TUNE_LENGTH) -> List[int]:
    """
    Candidate numbers of predictors sampled per split.

    Evenly spaced from 2 to the number of predictors, floored and
    de-duplicated, the grid classic random forest tuners search.
    """
    if n_predictors <= 2:
        return [max(n_predictors, 1)]
    grid = np.floor(np.linspace(2, n_predictors, tune_length)).astype(int)
    return sorted(set(int(m) for m in grid))


class ChurnModelTrainer:
    """
    Trains and persists the random forest churn model.

    Every source of randomness (fold assignment, bootstrap samples,
    split candidates) is driven by random_state, so training the same
    data twice gives the same model.
    """

    def __init__(
        self,
        random_state: int = config.RANDOM_SEED,
        n_folds: int = config.CV_FOLDS,
        n_repeats: int = config.CV_REPEATS,
        n_estimators: int = config.N_ESTIMATORS,
        tune_length: int = config.TUNE_LENGTH,
        n_jobs: int = -1
    ):
        self.random_state = random_state
        self.n_folds = n_folds
        self.n_repeats = n_repeats
        self.n_estimators = n_estimators
        self.tune_length = tune_length
        self.n_jobs = n_jobs

    def build_pipeline(self, processor: ChurnDataProcessor) -> Pipeline:
        """One-hot encode the categorical codes, then grow the forest."""
        categories = [
            [float(code) for code in range(len(processor.categories[col]))]
            for col in processor.categorical_cols
        ]
        onehot = ColumnTransformer(
            [('cat', OneHotEncoder(categories=categories, handle_unknown='ignore'),
              processor.categorical_cols)],
            remainder='passthrough',
            sparse_threshold=0
        )
        forest = RandomForestClassifier(
            n_estimators=self.n_estimators,
            random_state=self.random_state,
            n_jobs=1
        )
        return Pipeline([('onehot', onehot), ('forest', forest)])

    def training_fingerprint(
        self,
        train_df: pd.DataFrame,
        target: str = config.TARGET_COLUMN,
        features: Optional[List[str]] = None,
        upsampled: bool = False
    ) -> Dict[str, Any]:
        """
        Everything a trained model depends on: the trainer settings and a
        hash of the training rows (values, index and order).
        """
        columns = (list(features) if features is not None else
                   [c for c in train_df.columns if c != target]) + [target]
        row_hashes = pd.util.hash_pandas_object(train_df[columns], index=True)
        return {
            'random_state': self.random_state,
            'n_folds': self.n_folds,
            'n_repeats': self.n_repeats,
            'n_estimators': self.n_estimators,
            'tune_length': self.tune_length,
            'upsampled': upsampled,
            'target': target,
            'features': columns[:-1],
            'n_rows': len(train_df),
            'data_hash': hashlib.sha256(row_hashes.to_numpy().tobytes()).hexdigest()
        }

    def _check_class_counts(self, y: np.ndarray) -> None:
        counts = np.bincount(y, minlength=2)
        if (counts == 0).any():
            raise InsufficientDataError(
                "Training data contains a single class; cannot fit a churn classifier"
            )
        if counts.min() < self.n_folds:
            raise InsufficientDataError(
                f"Minority class has {counts.min()} rows, fewer than the "
                f"{self.n_folds} cross-validation folds. Use fewer folds or upsample."
            )

    def train_random_forest(
        self,
        train_df: pd.DataFrame,
        target: str = config.TARGET_COLUMN,
        features: Optional[List[str]] = None,
        upsampled: bool = False
    ) -> ChurnModel:
        """
        Tune and fit the random forest on a cleaned training frame.

        Parameters:
        -----------
        train_df : pd.DataFrame
            Cleaned training rows, label included
        target : str
            Label column; every other column is a predictor unless
            `features` narrows them down
        features : List[str], optional
            Predictor columns to use
        upsampled : bool
            Recorded on the model when train_df was class-balanced
        """
        print("\n" + "="*50)
        print("Training Random Forest...")
        print("="*50)

        fingerprint = self.training_fingerprint(train_df, target, features, upsampled)

        if features is not None:
            train_df = train_df[list(features) + [target]]

        processor = ChurnDataProcessor(target=target)
        X, y, _ = processor.fit_transform(train_df)
        self._check_class_counts(y)

        grid = mtry_grid(len(processor.expanded_feature_names), self.tune_length)
        print(f"Resampling: {self.n_folds}-fold cross-validation repeated {self.n_repeats} times")
        print(f"Predictors sampled per split: {grid}")

        cv = RepeatedStratifiedKFold(
            n_splits=self.n_folds,
            n_repeats=self.n_repeats,
            random_state=self.random_state
        )
        grid_search = GridSearchCV(
            self.build_pipeline(processor),
            {'forest__max_features': grid},
            cv=cv,
            scoring='accuracy',
            n_jobs=self.n_jobs
        )

        try:
            grid_search.fit(processor.to_frame(X), y)
        except ValueError as e:
            raise ConvergenceError(f"Random forest training failed: {e}") from e

        if np.isnan(grid_search.best_score_):
            raise ConvergenceError("Cross-validation produced no valid accuracy")

        cv_results = pd.DataFrame({
            'mtry': [p['forest__max_features'] for p in grid_search.cv_results_['params']],
            'accuracy': grid_search.cv_results_['mean_test_score'],
            'accuracy_sd': grid_search.cv_results_['std_test_score']
        })
        best_params = {'max_features': int(grid_search.best_params_['forest__max_features'])}

        print(cv_results.round(4).to_string(index=False))
        print(f"Best parameters: {best_params}")
        print(f"Cross-validated accuracy: {grid_search.best_score_:.4f}")

        return ChurnModel(
            processor=processor,
            pipeline=grid_search.best_estimator_,
            cv_accuracy=float(grid_search.best_score_),
            best_params=best_params,
            cv_results=cv_results,
            upsampled=upsampled,
            fingerprint=fingerprint
        )

    def fit_or_load(
        self,
        train_df: pd.DataFrame,
        model_path: str,
        retrain: bool = False,
        upsampled: bool = False
    ) -> ChurnModel:
        """
        Reuse the model cached at model_path, training and saving it when absent.

        A cached model is only reused when it was trained by the same
        settings on the same rows; otherwise it is retrained and overwritten.
        """
        if os.path.exists(model_path) and not retrain:
            cached = self.load_model(model_path)
            expected = self.training_fingerprint(train_df, upsampled=upsampled)
            if getattr(cached, 'fingerprint', None) == expected:
                return cached
            print(f"Warning: {model_path} was trained with other settings or data, retraining")

        model = self.train_random_forest(train_df, upsampled=upsampled)
        self.save_model(model, model_path)
        return model

    def get_feature_importance(self, model: ChurnModel, top_n: int = 15) -> pd.DataFrame:
        """
        Impurity-based importance per source column.

        One-hot columns are summed back into the feature they came from.
        """
        importance = pd.DataFrame({
            'feature': model.processor.expanded_sources,
            'importance': model.forest.feature_importances_
        }).groupby('feature', sort=False)['importance'].sum().reset_index()

        importance = importance.sort_values('importance', ascending=False)
        importance['importance_pct'] = (
            importance['importance'] / importance['importance'].sum() * 100
        )

        return importance.head(top_n).reset_index(drop=True)

    def save_model(self, model: ChurnModel, filepath: str) -> None:
        """Save trained model to disk."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        joblib.dump(model, filepath)
        print(f"Model saved to {filepath}")

    def load_model(self, filepath: str) -> ChurnModel:
        """Load trained model from disk."""
        model = joblib.load(filepath)
        if not isinstance(model, ChurnModel):
            raise TypeError(f"{filepath} does not contain a ChurnModel")
        print(f"Model loaded from {filepath}")
        return model
