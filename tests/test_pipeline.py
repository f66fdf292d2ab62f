import json
import os

import pandas as pd
import pytest

from churn_report import config
from churn_report.exceptions import InvalidThresholdError
from churn_report.model_training import ChurnModelTrainer
from train_pipeline import run_pipeline


FAST = dict(n_estimators=20, n_folds=3, n_repeats=1, lime_samples=200)

TELCO_CSV = os.environ.get(
    'TELCO_CHURN_CSV',
    os.path.join(os.path.dirname(__file__), '..', 'data', 'WA_Fn-UseC_-Telco-Customer-Churn.csv')
)


def test_pipeline_writes_report(csv_path, tmp_path, capsys):
    out = tmp_path / 'report'
    report = run_pipeline(data_path=csv_path, output_dir=str(out), **FAST)

    for name in (config.MODEL_FILENAME, config.UPSAMPLED_MODEL_FILENAME, config.RESULTS_FILENAME,
                 config.EXPLANATIONS_FILENAME, config.IMPORTANCE_FILENAME):
        assert (out / name).exists(), name
    for figure in ('roc_curve.png', 'confusion_matrix.png', 'explanations.png',
                   'feature_importance.png', 'categorical_distributions.png'):
        assert (out / config.FIGURES_DIRNAME / figure).exists(), figure

    with open(out / config.RESULTS_FILENAME) as f:
        saved = json.load(f)
    assert saved['threshold'] == 0.45
    assert set(saved['models']) == {'random_forest', 'random_forest_tuned', 'random_forest_upsampled'}
    assert saved['models']['random_forest']['threshold'] == 0.5

    explanations = pd.read_csv(out / config.EXPLANATIONS_FILENAME)
    assert len(explanations) == 2 * 8

    assert report['upsampled_model'].upsampled
    assert len(report['train']) + len(report['test']) == len(report['data'])

    # Second run reuses both cached models
    capsys.readouterr()
    run_pipeline(data_path=csv_path, output_dir=str(out), make_plots=False, **FAST)
    assert capsys.readouterr().out.count('Model loaded from') == 2


def test_pipeline_rerun_with_other_seed_retrains(csv_path, tmp_path, capsys):
    out = tmp_path / 'report'
    first = run_pipeline(data_path=csv_path, output_dir=str(out), make_plots=False, **FAST)

    capsys.readouterr()
    second = run_pipeline(data_path=csv_path, output_dir=str(out), random_state=7,
                          make_plots=False, **FAST)
    assert capsys.readouterr().out.count('retraining') == 2

    assert set(first['test'].index) != set(second['test'].index)
    for key in ('model', 'upsampled_model'):
        assert second[key].fingerprint['random_state'] == 7

    # Evaluated rows are held out from the model that scores them
    trainer_df = second['train']
    assert set(second['test'].index).isdisjoint(trainer_df.index)
    assert second['model'].fingerprint['data_hash'] == (
        ChurnModelTrainer(random_state=7).training_fingerprint(trainer_df)['data_hash']
    )

    with open(out / config.RESULTS_FILENAME) as f:
        saved = json.load(f)
    assert saved['random_state'] == 7
    assert saved['models']['random_forest']['fingerprint']['random_state'] == 7


def test_pipeline_rejects_threshold_before_loading(tmp_path):
    with pytest.raises(InvalidThresholdError):
        run_pipeline(data_path=str(tmp_path / 'missing.csv'), output_dir=str(tmp_path), threshold=1.5)


def test_pipeline_missing_data_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        run_pipeline(data_path=str(tmp_path / 'missing.csv'), output_dir=str(tmp_path))


@pytest.mark.slow
@pytest.mark.skipif(not os.path.isfile(TELCO_CSV), reason='Telco export not available')
def test_full_telco_report(tmp_path):
    report = run_pipeline(data_path=TELCO_CSV, output_dir=str(tmp_path), make_plots=False)

    assert len(report['data']) == 7032
    train_rate = report['train'][config.TARGET_COLUMN].astype(str).eq('Yes').mean()
    assert train_rate == pytest.approx(0.265, abs=0.01)

    upsampled = report['results']['random_forest_upsampled']
    assert upsampled['threshold'] == 0.45
    assert upsampled['accuracy'] == pytest.approx(0.985, abs=0.03)
    assert upsampled['recall'] == pytest.approx(0.949, abs=0.03)
    assert upsampled['roc_auc'] == pytest.approx(0.992, abs=0.03)
