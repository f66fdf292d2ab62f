"""
Churn Report Pipeline
=====================
End-to-end script producing the churn analysis report.

Run this script to:
1. Load (or generate) customer data
2. Clean it and plot its distributions
3. Split it into stratified train/test sets
4. Train random forests on the raw and on the upsampled train set
5. Evaluate them at a decision threshold (confusion matrix, ROC/AUC)
6. Explain individual test predictions with LIME
7. Save models, metrics, explanations and figures

Trained models are cached in the output directory; delete them or pass
--retrain to fit again.

Usage:
    python train_pipeline.py
    python train_pipeline.py --data path/to/WA_Fn-UseC_-Telco-Customer-Churn.csv
    python train_pipeline.py --threshold 0.45 --retrain
"""

import os
import argparse
import json
from datetime import datetime

from churn_report import config
from churn_report.data_generator import generate_telco_dataset
from churn_report.preprocessing import (
    load_data,
    clean_data,
    split_data,
    upsample_minority,
    describe_split
)
from churn_report.model_training import ChurnModelTrainer
from churn_report.evaluation import (
    validate_threshold,
    evaluate_predictions,
    compute_roc,
    threshold_table
)
from churn_report.explainer import ChurnExplainer, plot_explanations
from churn_report import visualization


def run_pipeline(
    data_path=None,
    output_dir='models',
    threshold=config.TUNED_THRESHOLD,
    retrain=False,
    random_state=config.RANDOM_SEED,
    n_explain=config.EXPLAIN_CASES,
    n_explain_features=config.EXPLAIN_FEATURES,
    n_estimators=config.N_ESTIMATORS,
    n_folds=config.CV_FOLDS,
    n_repeats=config.CV_REPEATS,
    lime_samples=config.LIME_SAMPLES,
    make_plots=True
):
    """
    Execute the complete report pipeline.

    Parameters:
    -----------
    data_path : str, optional
        Path to the Telco CSV. If None, generates synthetic data.
    output_dir : str
        Directory for models, metrics, explanations and figures
    threshold : float
        Decision threshold applied to churn probabilities
    retrain : bool
        Ignore cached models and train again
    random_state : int
        Seed for the split, the upsampling, training and LIME

    Returns:
    --------
    dict with the cleaned data, splits, models, metrics and explanations
    """
    # Fail on a bad threshold before any expensive work
    threshold = validate_threshold(threshold)

    print("="*70)
    print("CUSTOMER CHURN REPORT - PIPELINE")
    print("="*70)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print()

    os.makedirs(output_dir, exist_ok=True)
    figures_dir = os.path.join(output_dir, config.FIGURES_DIRNAME)
    if make_plots:
        os.makedirs(figures_dir, exist_ok=True)

    # =========================================================================
    # STEP 1: Load or Generate Data
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 1: DATA LOADING")
    print("="*70)

    if data_path:
        raw_df = load_data(data_path)
        print(f"Loaded data from: {data_path}")
    else:
        print("Generating synthetic Telco customer data...")
        raw_df = generate_telco_dataset(n_samples=7043, random_state=42)

        generated_path = os.path.join(output_dir, 'telco_churn_data.csv')
        raw_df.to_csv(generated_path, index=False)
        print(f"Generated and saved {len(raw_df)} customer records to {generated_path}")

    print(f"\nDataset shape: {raw_df.shape}")

    # =========================================================================
    # STEP 2: Clean Data
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 2: DATA CLEANING")
    print("="*70)

    df = clean_data(raw_df)

    print(f"\nCleaned dataset shape: {df.shape}")
    print(f"Churn distribution:")
    print(df[config.TARGET_COLUMN].value_counts())

    if make_plots:
        visualization.plot_categorical_distributions(
            df, save_path=os.path.join(figures_dir, 'categorical_distributions.png')
        )
        visualization.plot_numeric_distributions(
            df, save_path=os.path.join(figures_dir, 'numeric_distributions.png')
        )

    # =========================================================================
    # STEP 3: Train/Test Split
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 3: TRAIN/TEST SPLIT")
    print("="*70)

    train_df, test_df = split_data(
        df, train_fraction=config.TRAIN_FRACTION, random_state=random_state
    )
    split_rates = describe_split(df, train_df, test_df)
    print(f"Full dataset churn rate: {split_rates['full']:.2%}")

    # =========================================================================
    # STEP 4: Train Models
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 4: MODEL TRAINING")
    print("="*70)

    trainer = ChurnModelTrainer(
        random_state=random_state,
        n_folds=n_folds,
        n_repeats=n_repeats,
        n_estimators=n_estimators
    )

    model = trainer.fit_or_load(
        train_df, os.path.join(output_dir, config.MODEL_FILENAME), retrain=retrain
    )

    train_upsampled = upsample_minority(train_df, random_state=random_state)
    upsampled_model = trainer.fit_or_load(
        train_upsampled,
        os.path.join(output_dir, config.UPSAMPLED_MODEL_FILENAME),
        retrain=retrain,
        upsampled=True
    )

    # =========================================================================
    # STEP 5: Evaluate Models
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 5: MODEL EVALUATION")
    print("="*70)

    y_test = test_df[config.TARGET_COLUMN]
    proba = model.predict_proba(test_df)
    proba_upsampled = upsampled_model.predict_proba(test_df)

    results = {
        'random_forest': evaluate_predictions(
            y_test, proba, config.DEFAULT_THRESHOLD, 'random_forest'
        ),
        'random_forest_tuned': evaluate_predictions(
            y_test, proba, threshold, 'random_forest_tuned'
        ),
        'random_forest_upsampled': evaluate_predictions(
            y_test, proba_upsampled, threshold, 'random_forest_upsampled'
        )
    }
    for key, fitted in (('random_forest', model),
                        ('random_forest_tuned', model),
                        ('random_forest_upsampled', upsampled_model)):
        results[key]['cv_accuracy'] = fitted.cv_accuracy
        results[key]['best_params'] = fitted.best_params
        results[key]['fingerprint'] = fitted.fingerprint

    roc = compute_roc(y_test, proba_upsampled)

    print("\n" + "-"*50)
    print("THRESHOLD SWEEP (upsampled model)")
    print("-"*50)
    sweep = threshold_table(y_test, proba_upsampled)
    print(sweep.round(3).to_string(index=False))

    if make_plots:
        visualization.plot_roc_curve(
            roc, save_path=os.path.join(figures_dir, 'roc_curve.png')
        )
        visualization.plot_confusion_matrix(
            results['random_forest_upsampled'],
            save_path=os.path.join(figures_dir, 'confusion_matrix.png')
        )

    # =========================================================================
    # STEP 6: Feature Importance
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 6: FEATURE IMPORTANCE")
    print("="*70)

    importance_df = trainer.get_feature_importance(upsampled_model, top_n=15)
    print("\nTop 15 Most Important Features:")
    print(importance_df.to_string())
    importance_df.to_csv(os.path.join(output_dir, config.IMPORTANCE_FILENAME), index=False)

    if make_plots:
        visualization.plot_feature_importance(
            importance_df, save_path=os.path.join(figures_dir, 'feature_importance.png')
        )

    # =========================================================================
    # STEP 7: Local Explanations
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 7: LOCAL EXPLANATIONS (LIME)")
    print("="*70)

    explainer = ChurnExplainer(
        upsampled_model, train_df, random_state=random_state, num_samples=lime_samples
    )
    explanations = explainer.explain_sample(
        test_df, n_cases=n_explain, n_features=n_explain_features
    )
    print(explanations[['case', 'label_prob', 'feature_desc', 'feature_weight', 'direction']]
          .round(3).to_string(index=False))

    explanations.to_csv(os.path.join(output_dir, config.EXPLANATIONS_FILENAME), index=False)
    if make_plots:
        plot_explanations(
            explanations, save_path=os.path.join(figures_dir, 'explanations.png')
        )

    # =========================================================================
    # STEP 8: Save Results
    # =========================================================================
    print("\n" + "="*70)
    print("STEP 8: SAVING RESULTS")
    print("="*70)

    results_path = os.path.join(output_dir, config.RESULTS_FILENAME)
    with open(results_path, 'w') as f:
        json.dump({
            'run_date': datetime.now().isoformat(),
            'random_state': random_state,
            'threshold': threshold,
            'n_rows_raw': len(raw_df),
            'n_rows_clean': len(df),
            'churn_rate': split_rates,
            'roc_auc': roc['auc'],
            'models': results
        }, f, indent=2, default=str)
    print(f"Results saved to {results_path}")

    # =========================================================================
    # SUMMARY
    # =========================================================================
    final = results['random_forest_upsampled']
    print("\n" + "="*70)
    print("PIPELINE COMPLETE - SUMMARY")
    print("="*70)

    print(f"""
    Rows: {len(raw_df)} loaded, {len(raw_df) - len(df)} removed, {len(df)} modeled
    Churn rate: full {split_rates['full']:.1%}, train {split_rates['train']:.1%}, test {split_rates['test']:.1%}

    Upsampled random forest (threshold {threshold:.2f}):
    - CV Accuracy: {upsampled_model.cv_accuracy:.3f} (max_features={upsampled_model.best_params['max_features']})
    - Accuracy:    {final['accuracy']:.3f}
    - Recall:      {final['recall']:.3f}
    - Specificity: {final['specificity']:.3f}
    - Precision:   {final['precision']:.3f}
    - ROC-AUC:     {final['roc_auc']:.3f}

    Artifacts saved to: {output_dir}/
    """)

    return {
        'data': df,
        'train': train_df,
        'test': test_df,
        'model': model,
        'upsampled_model': upsampled_model,
        'results': results,
        'roc': roc,
        'threshold_table': sweep,
        'feature_importance': importance_df,
        'explanations': explanations
    }


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Build the customer churn report')
    parser.add_argument('--data', type=str, default=None,
                        help='Path to customer data CSV (optional)')
    parser.add_argument('--output', type=str, default='models',
                        help='Output directory for models and report artifacts')
    parser.add_argument('--threshold', type=float, default=config.TUNED_THRESHOLD,
                        help='Decision threshold on churn probability')
    parser.add_argument('--retrain', action='store_true',
                        help='Retrain even if cached models exist')
    parser.add_argument('--seed', type=int, default=config.RANDOM_SEED,
                        help='Random seed for split, upsampling, training and LIME')
    parser.add_argument('--explain-cases', type=int, default=config.EXPLAIN_CASES,
                        help='Number of test customers to explain')
    parser.add_argument('--explain-features', type=int, default=config.EXPLAIN_FEATURES,
                        help='Features reported per explanation')

    args = parser.parse_args()

    run_pipeline(
        data_path=args.data,
        output_dir=args.output,
        threshold=args.threshold,
        retrain=args.retrain,
        random_state=args.seed,
        n_explain=args.explain_cases,
        n_explain_features=args.explain_features
    )
