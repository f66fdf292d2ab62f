"""
LIME Model Explainer
--------------------
Uses LIME (Local Interpretable Model-agnostic Explanations) to explain
individual churn predictions.

For each customer, LIME perturbs the customer's feature values, scores
the perturbed rows with the forest and fits a weighted linear surrogate
around the customer. The surrogate's coefficients rank which features
pushed the churn probability up (supports) or down (contradicts).

Explanations are for people reading the report; they never feed back
into the model or its predictions.
"""

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for batch runs
import matplotlib.pyplot as plt
from lime.lime_tabular import LimeTabularExplainer
from typing import List, Optional
import warnings
warnings.filterwarnings('ignore')

from . import config
from .exceptions import InvalidArgumentError


EXPLANATION_COLUMNS = [
    'case', 'label', 'label_prob', 'model_r2', 'model_intercept',
    'model_prediction', 'feature', 'feature_value', 'feature_weight',
    'feature_desc', 'direction'
]


def _per_label(value, label_idx: int) -> float:
    """LIME stores some fit statistics per label, older releases as scalars."""
    if isinstance(value, dict):
        value = value[label_idx]
    return float(np.ravel(value)[0])


class ChurnExplainer:
    """
    LIME-based local explainer for a fitted ChurnModel.

    The training rows define the perturbation distribution: categorical
    features are resampled by their observed frequencies, continuous
    features are binned into quartiles.
    """

    def __init__(
        self,
        model,
        train_df: pd.DataFrame,
        random_state: int = config.RANDOM_SEED,
        num_samples: int = config.LIME_SAMPLES
    ):
        self.model = model
        self.processor = model.processor
        self.feature_names = model.feature_names
        self.random_state = random_state
        self.num_samples = num_samples
        self.class_names = [config.NEGATIVE_LABEL, config.POSITIVE_LABEL]

        # One extra name per column, at the code unseen values are mapped to
        self.categorical_names = {
            idx: list(names) + [config.UNSEEN_CATEGORY]
            for idx, names in self.processor.categorical_names.items()
        }

        self.explainer = LimeTabularExplainer(
            self.processor.transform(train_df),
            mode='classification',
            feature_names=self.feature_names,
            categorical_features=self.processor.categorical_indices,
            categorical_names=dict(self.categorical_names),
            class_names=self.class_names,
            discretize_continuous=True,
            discretizer='quartile',
            random_state=random_state
        )

    def encode(self, rows: pd.DataFrame) -> np.ndarray:
        """
        Encode rows for LIME.

        The processor codes unseen categories as -1, which LIME would read
        as the last known category. They are moved to the '<unseen>' slot
        instead; the one-hot step ignores that code just like -1.
        """
        encoded = self.processor.transform(rows)
        for idx, names in self.categorical_names.items():
            column = encoded[:, idx]
            column[column < 0] = len(names) - 1
        return encoded

    def explain(
        self,
        rows: pd.DataFrame,
        n_features: int = config.EXPLAIN_FEATURES,
        label: str = config.POSITIVE_LABEL
    ) -> pd.DataFrame:
        """
        Explain the prediction for every row of a cleaned frame.

        Returns one line per (case, feature), the top n_features features
        of each case ordered by absolute weight.
        """
        if n_features < 1:
            raise InvalidArgumentError(f"n_features must be at least 1, got {n_features}")
        if label not in self.class_names:
            raise InvalidArgumentError(f"Unknown label {label!r}, expected one of {self.class_names}")

        label_idx = self.class_names.index(label)
        encoded = self.encode(rows)

        records = []
        for position, (case, row) in enumerate(rows.iterrows()):
            exp = self.explainer.explain_instance(
                encoded[position],
                self.model.predict_proba_encoded,
                labels=(label_idx,),
                num_features=n_features,
                num_samples=self.num_samples
            )

            weights = exp.as_map()[label_idx]
            descriptions = exp.as_list(label=label_idx)
            for (feature_idx, weight), (desc, _) in zip(weights, descriptions):
                feature = self.feature_names[feature_idx]
                records.append({
                    'case': str(case),
                    'label': label,
                    'label_prob': float(exp.predict_proba[label_idx]),
                    'model_r2': _per_label(exp.score, label_idx),
                    'model_intercept': _per_label(exp.intercept, label_idx),
                    'model_prediction': _per_label(exp.local_pred, label_idx),
                    'feature': feature,
                    'feature_value': row[feature],
                    'feature_weight': float(weight),
                    'feature_desc': desc,
                    'direction': 'supports' if weight > 0 else 'contradicts'
                })

        return pd.DataFrame(records, columns=EXPLANATION_COLUMNS)

    def explain_sample(
        self,
        test_df: pd.DataFrame,
        n_cases: int = config.EXPLAIN_CASES,
        n_features: int = config.EXPLAIN_FEATURES,
        label: str = config.POSITIVE_LABEL
    ) -> pd.DataFrame:
        """Explain the first n_cases test rows."""
        if n_cases < 1:
            raise InvalidArgumentError(f"n_cases must be at least 1, got {n_cases}")
        rows = test_df.head(n_cases)
        return self.explain(rows, n_features=n_features, label=label)


def plot_explanations(
    explanations: pd.DataFrame,
    save_path: Optional[str] = None
) -> None:
    """One bar panel per case, red bars support churn, blue bars contradict it."""
    cases = list(dict.fromkeys(explanations['case']))
    if not cases:
        return

    fig, axes = plt.subplots(1, len(cases), figsize=(7 * len(cases), 6), squeeze=False)

    for ax, case in zip(axes[0], cases):
        case_df = explanations[explanations['case'] == case]
        first = case_df.iloc[0]

        colors = ['#e74c3c' if d == 'supports' else '#3498db' for d in case_df['direction']]
        ax.barh(case_df['feature_desc'][::-1], case_df['feature_weight'][::-1],
                color=colors[::-1])
        ax.axvline(x=0, color='black', linewidth=0.5)
        ax.set_xlabel('Weight', fontsize=12)
        ax.set_title(
            f"Case: {case}   Label: {first['label']}\n"
            f"Probability: {first['label_prob']:.2f}   Explanation Fit: {first['model_r2']:.2f}",
            fontsize=12, fontweight='bold'
        )

    axes[0][-1].legend(
        [plt.Rectangle((0, 0), 1, 1, color='#e74c3c'),
         plt.Rectangle((0, 0), 1, 1, color='#3498db')],
        ['Supports', 'Contradicts'],
        loc='lower right'
    )

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Plot saved to {save_path}")

    plt.close(fig)
