"""
Report Figures
--------------
Static matplotlib figures for the churn report: class distributions,
numeric distributions, ROC curve, confusion matrix and feature importance.
Every function writes a PNG when given a save_path and closes its figure.
"""

import math
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for batch runs
import matplotlib.pyplot as plt
from typing import Dict, List, Optional, Any

from . import config


CHURN_COLORS = {config.NEGATIVE_LABEL: '#3498db', config.POSITIVE_LABEL: '#e74c3c'}


def _finish(fig, save_path: Optional[str]) -> None:
    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Plot saved to {save_path}")
    plt.close(fig)


def _grid(n_panels: int, n_cols: int = 3):
    n_rows = max(1, math.ceil(n_panels / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(5 * n_cols, 3.5 * n_rows), squeeze=False)
    flat = axes.ravel()
    # Hide panels past the last column plotted
    for ax in flat[n_panels:]:
        ax.set_visible(False)
    return fig, flat


def plot_categorical_distributions(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    save_path: Optional[str] = None,
    target: str = config.TARGET_COLUMN
) -> None:
    """Bar chart of customer counts per category, split by churn."""
    if columns is None:
        columns = [c for c in config.CATEGORICAL_FEATURES if c in df.columns] + [target]

    fig, axes = _grid(len(columns))
    for ax, col in zip(axes, columns):
        if col == target:
            counts = df[col].astype(str).value_counts().sort_index()
            ax.bar(counts.index, counts.values,
                   color=[CHURN_COLORS.get(k, '#95a5a6') for k in counts.index])
        else:
            counts = pd.crosstab(df[col].astype(str), df[target].astype(str))
            counts.plot(kind='bar', ax=ax, legend=False,
                        color=[CHURN_COLORS.get(k, '#95a5a6') for k in counts.columns])
            ax.tick_params(axis='x', rotation=20)
        ax.set_title(col, fontsize=11, fontweight='bold')
        ax.set_xlabel('')

    fig.legend(
        [plt.Rectangle((0, 0), 1, 1, color=c) for c in CHURN_COLORS.values()],
        [f"{target} = {k}" for k in CHURN_COLORS],
        loc='upper right'
    )
    _finish(fig, save_path)


def plot_numeric_distributions(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    save_path: Optional[str] = None,
    target: str = config.TARGET_COLUMN,
    bins: int = 30
) -> None:
    """Overlaid histograms of each numeric column for churned and retained customers."""
    if columns is None:
        columns = [c for c in config.NUMERICAL_FEATURES if c in df.columns]

    labels = df[target].astype(str)
    fig, axes = _grid(len(columns))
    for ax, col in zip(axes, columns):
        for label, color in CHURN_COLORS.items():
            values = df.loc[labels == label, col].dropna()
            if len(values):
                ax.hist(values, bins=bins, alpha=0.5, color=color, density=True,
                        label=f"{target} = {label}")
        ax.set_title(col, fontsize=11, fontweight='bold')
        ax.legend(fontsize=8)

    _finish(fig, save_path)


def plot_roc_curve(
    roc: Dict[str, Any],
    save_path: Optional[str] = None,
    title: str = 'ROC Curve (Test)'
) -> None:
    """True-positive rate against false-positive rate, AUC in the legend."""
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.plot(roc['fpr'], roc['tpr'], color='#e74c3c', linewidth=2,
            label=f"AUC = {roc['auc']:.3f}")
    ax.plot([0, 1], [0, 1], color='#95a5a6', linestyle='--', linewidth=1)
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1.01)
    ax.set_xlabel('False Positive Rate (1 - Specificity)', fontsize=12)
    ax.set_ylabel('True Positive Rate (Sensitivity)', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(loc='lower right')
    _finish(fig, save_path)


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    save_path: Optional[str] = None
) -> None:
    """Heatmap of the confusion-matrix counts from evaluate_predictions."""
    cm = metrics['confusion_matrix']
    matrix = np.array([
        [cm['true_negatives'], cm['false_positives']],
        [cm['false_negatives'], cm['true_positives']]
    ])

    fig, ax = plt.subplots(figsize=(5, 4.5))
    ax.imshow(matrix, cmap='Blues')
    for (i, j), count in np.ndenumerate(matrix):
        ax.text(j, i, f"{count:,}", ha='center', va='center', fontsize=14,
                color='white' if count > matrix.max() / 2 else 'black')

    ticks = [config.NEGATIVE_LABEL, config.POSITIVE_LABEL]
    ax.set_xticks([0, 1])
    ax.set_xticklabels(ticks)
    ax.set_yticks([0, 1])
    ax.set_yticklabels(ticks)
    ax.set_xlabel('Predicted', fontsize=12)
    ax.set_ylabel('Actual', fontsize=12)
    ax.set_title(f"Confusion Matrix (threshold {metrics['threshold']:.2f})",
                 fontsize=13, fontweight='bold')
    _finish(fig, save_path)


def plot_feature_importance(
    importance_df: pd.DataFrame,
    save_path: Optional[str] = None
) -> None:
    """Create bar chart of forest feature importance."""
    fig, ax = plt.subplots(figsize=(10, 8))

    colors = ['#e74c3c' if i < 5 else '#3498db' if i < 10 else '#95a5a6'
              for i in range(len(importance_df))]

    bars = ax.barh(
        importance_df['feature'][::-1],
        importance_df['importance_pct'][::-1],
        color=colors[::-1]
    )

    ax.set_xlabel('Importance (%)', fontsize=12)
    ax.set_title('Top Factors Driving Customer Churn', fontsize=14, fontweight='bold')

    for bar, val in zip(bars, importance_df['importance_pct'][::-1]):
        ax.text(bar.get_width() + 0.3, bar.get_y() + bar.get_height() / 2,
                f'{val:.1f}%', va='center', fontsize=10)

    _finish(fig, save_path)
