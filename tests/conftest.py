import pytest

from churn_report.data_generator import generate_telco_dataset
from churn_report.model_training import ChurnModelTrainer
from churn_report.preprocessing import clean_data, split_data


N_NEW_CUSTOMERS = 6


@pytest.fixture(scope='session')
def raw_df():
    return generate_telco_dataset(n_samples=800, random_state=7, n_new_customers=N_NEW_CUSTOMERS)


@pytest.fixture(scope='session')
def clean_df(raw_df):
    return clean_data(raw_df)


@pytest.fixture(scope='session')
def split(clean_df):
    return split_data(clean_df, train_fraction=0.8, random_state=100)


@pytest.fixture(scope='session')
def fast_trainer():
    # Small forest and few folds keep the suite quick
    return ChurnModelTrainer(random_state=100, n_folds=3, n_repeats=1, n_estimators=30, n_jobs=1)


@pytest.fixture(scope='session')
def trained_model(split, fast_trainer):
    train_df, _ = split
    return fast_trainer.train_random_forest(train_df)


@pytest.fixture
def csv_path(raw_df, tmp_path):
    path = tmp_path / 'telco.csv'
    raw_df.to_csv(path, index=False)
    return str(path)
