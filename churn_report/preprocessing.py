"""
Data Loading, Cleaning & Splitting
----------------------------------
First half of the churn report pipeline: read the Telco export,
clean it, split it into train/test sets and rebalance the training rows.

Key responsibilities:
- Loading with explicit parse failures
- Missing value handling (row removal, reported)
- Column type coercion for modeling
- Stratified train/test splitting
- Class imbalance handling via random oversampling
- Encoding features for the forest and the local explainer
"""

import os
import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
from imblearn.over_sampling import RandomOverSampler
from typing import Tuple, Dict, List, Optional

from . import config
from .exceptions import ParseError, InvalidArgumentError


def load_data(filepath: str) -> pd.DataFrame:
    """
    Load customer records from a CSV file.

    Raises FileNotFoundError when the path is missing and ParseError when
    the file is not well-formed CSV or lacks the Telco columns.
    """
    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"Data file not found: {filepath}")

    try:
        df = pd.read_csv(filepath)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise ParseError(f"Could not parse {filepath}: {e}") from e

    missing = [c for c in config.REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ParseError(f"{filepath} is missing required columns: {missing}")

    print(f"Loaded {len(df)} records with {len(df.columns)} columns")
    return df


def clean_data(df: pd.DataFrame) -> pd.DataFrame:
    """
    Clean raw data:
    - Remove customerID (not predictive)
    - Drop rows with missing values (blank TotalCharges of new customers)
    - Recast the SeniorCitizen flag and the label to categories
    """
    df = df.copy()

    if config.ID_COLUMN in df.columns:
        df = df.drop(config.ID_COLUMN, axis=1)

    # Blank TotalCharges become NaN
    df['TotalCharges'] = pd.to_numeric(df['TotalCharges'], errors='coerce')

    incomplete = df.isna().any(axis=1)
    n_removed = int(incomplete.sum())

    unexpected = df['TotalCharges'].isna() & (df['tenure'] != 0)
    if unexpected.any():
        print(f"Warning: {int(unexpected.sum())} rows miss TotalCharges despite tenure > 0")

    df = df[~incomplete].reset_index(drop=True)

    removed_fraction = n_removed / max(len(incomplete), 1)
    print(f"Removed {n_removed} rows with missing values ({removed_fraction:.2%})")
    if removed_fraction > config.MAX_DROPPED_FRACTION:
        print(f"Warning: more than {config.MAX_DROPPED_FRACTION:.0%} of rows were incomplete. "
              "Consider imputing instead of dropping them.")

    if config.FLAG_COLUMN in df.columns:
        df[config.FLAG_COLUMN] = df[config.FLAG_COLUMN].astype(int).astype('category')

    for col in config.CATEGORICAL_FEATURES + [config.TARGET_COLUMN]:
        if col in df.columns and col != config.FLAG_COLUMN:
            df[col] = df[col].astype('category')

    return df


def split_data(
    df: pd.DataFrame,
    train_fraction: float = config.TRAIN_FRACTION,
    stratify_col: str = config.TARGET_COLUMN,
    random_state: int = config.RANDOM_SEED
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split data into training and test sets with stratification.

    Stratification keeps the churn proportion of both sets within one row
    of the full dataset, which matters on an imbalanced target.
    """
    if not 0 < train_fraction < 1:
        raise InvalidArgumentError(f"train_fraction must be in (0, 1), got {train_fraction}")

    train_df, test_df = train_test_split(
        df,
        train_size=train_fraction,
        random_state=random_state,
        stratify=df[stratify_col].astype(str)
    )

    print(f"Training set: {len(train_df)} samples")
    print(f"Test set: {len(test_df)} samples")
    if stratify_col == config.TARGET_COLUMN:
        print(f"Training churn rate: {churn_rate(train_df):.2%}")
        print(f"Test churn rate: {churn_rate(test_df):.2%}")

    return train_df, test_df


def upsample_minority(
    df: pd.DataFrame,
    target: str = config.TARGET_COLUMN,
    random_state: int = config.RANDOM_SEED
) -> pd.DataFrame:
    """
    Oversample the minority label until both labels have the same count.

    Minority rows are drawn with replacement and appended to the original
    rows. Only apply to training data, never to test data!
    """
    sampler = RandomOverSampler(random_state=random_state)
    # Resample row positions so mixed column dtypes survive untouched
    sampler.fit_resample(np.zeros((len(df), 1)), df[target].astype(str))
    balanced = df.iloc[sampler.sample_indices_].reset_index(drop=True)

    print(f"\nUpsampling applied:")
    print(f"Before: {len(df)} samples (Churn: {int(encode_labels(df[target]).sum())})")
    print(f"After: {len(balanced)} samples (Churn: {int(encode_labels(balanced[target]).sum())})")

    return balanced


def encode_labels(y) -> np.ndarray:
    """Map labels to 1 for churned and 0 otherwise. 0/1 input passes through."""
    y = pd.Series(y)
    if pd.api.types.is_numeric_dtype(y) and not isinstance(y.dtype, pd.CategoricalDtype):
        return y.astype(int).to_numpy()
    return (y.astype(str) == config.POSITIVE_LABEL).astype(int).to_numpy()


def churn_rate(df: pd.DataFrame, target: str = config.TARGET_COLUMN) -> float:
    """Share of churned customers."""
    return float(encode_labels(df[target]).mean())


class ChurnDataProcessor:
    """
    Encodes a cleaned customer frame into a numeric matrix.

    Categorical columns become integer codes (their categories are kept
    so the local explainer can show readable values), numerical columns
    are passed through. One-hot expansion happens inside the model
    pipeline, so perturbed rows from the explainer can be scored as-is.
    """

    def __init__(self, target: str = config.TARGET_COLUMN):
        self.target = target
        self.categories = {}
        self.feature_names = None
        self.categorical_cols = None
        self.numerical_cols = None
        self._fitted = False

    def identify_column_types(self, df: pd.DataFrame) -> None:
        """Identify categorical and numerical predictors."""
        self.feature_names = [c for c in df.columns if c != self.target]
        self.numerical_cols = [
            c for c in self.feature_names if pd.api.types.is_numeric_dtype(df[c])
        ]
        self.categorical_cols = [
            c for c in self.feature_names if c not in self.numerical_cols
        ]

    def fit(self, df: pd.DataFrame) -> 'ChurnDataProcessor':
        self.identify_column_types(df)
        self.categories = {
            col: sorted(df[col].astype(str).unique().tolist())
            for col in self.categorical_cols
        }
        self._fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> np.ndarray:
        """
        Encode rows using the fitted categories.
        Categories unseen during fit are encoded as -1.
        """
        if not self._fitted:
            raise ValueError("Processor not fitted. Call fit first.")

        missing = [c for c in self.feature_names if c not in df.columns]
        if missing:
            raise ValueError(f"Missing feature columns: {missing}")

        X = np.empty((len(df), len(self.feature_names)), dtype=float)
        for i, col in enumerate(self.feature_names):
            if col in self.categories:
                X[:, i] = pd.Categorical(
                    df[col].astype(str), categories=self.categories[col]
                ).codes
            else:
                X[:, i] = df[col].astype(float).to_numpy()
        return X

    def fit_transform(self, df: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, List[str]]:
        """
        Fit on a cleaned frame and encode it.

        Returns:
        --------
        X : np.ndarray - Encoded features
        y : np.ndarray - Target variable (1 = churned)
        feature_names : List[str] - Names of all features
        """
        self.fit(df)
        return self.transform(df), encode_labels(df[self.target]), self.feature_names

    def to_frame(self, X: np.ndarray) -> pd.DataFrame:
        """Wrap an encoded matrix with the feature names the model expects."""
        return pd.DataFrame(np.atleast_2d(X), columns=self.feature_names)

    @property
    def categorical_indices(self) -> List[int]:
        return [self.feature_names.index(c) for c in self.categorical_cols]

    @property
    def categorical_names(self) -> Dict[int, List[str]]:
        """Category labels keyed by column position, as the explainer expects."""
        return {self.feature_names.index(c): self.categories[c] for c in self.categorical_cols}

    @property
    def expanded_feature_names(self) -> List[str]:
        """Column names after one-hot expansion, in model input order."""
        names = [f"{col}_{value}" for col in self.categorical_cols
                 for value in self.categories[col]]
        return names + list(self.numerical_cols)

    @property
    def expanded_sources(self) -> List[str]:
        """Source column of every expanded column."""
        sources = [col for col in self.categorical_cols for _ in self.categories[col]]
        return sources + list(self.numerical_cols)


def describe_split(
    full_df: pd.DataFrame,
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    target: Optional[str] = None
) -> Dict[str, float]:
    """Churn rate of the full data and of each split."""
    target = target or config.TARGET_COLUMN
    return {
        'full': churn_rate(full_df, target),
        'train': churn_rate(train_df, target),
        'test': churn_rate(test_df, target)
    }
