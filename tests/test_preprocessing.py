import numpy as np
import pandas as pd
import pytest

from churn_report import config
from churn_report.data_generator import generate_telco_dataset
from churn_report.exceptions import ChurnReportError, InvalidArgumentError, ParseError
from churn_report.preprocessing import (
    ChurnDataProcessor,
    churn_rate,
    clean_data,
    encode_labels,
    load_data,
    split_data,
    upsample_minority,
)

from conftest import N_NEW_CUSTOMERS


# --- Loader ---

def test_load_data_reads_csv(csv_path, raw_df):
    df = load_data(csv_path)
    assert df.shape == raw_df.shape


def test_load_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_data(str(tmp_path / 'nope.csv'))


def test_load_data_empty_file(tmp_path):
    path = tmp_path / 'empty.csv'
    path.write_text('')
    with pytest.raises(ParseError):
        load_data(str(path))


def test_load_data_ragged_rows(tmp_path):
    path = tmp_path / 'ragged.csv'
    path.write_text('a,b\n1,2\n1,2,3,4\n')
    with pytest.raises(ParseError):
        load_data(str(path))


def test_load_data_missing_columns(tmp_path):
    path = tmp_path / 'partial.csv'
    pd.DataFrame({'customerID': ['1'], 'tenure': [3]}).to_csv(path, index=False)
    with pytest.raises(ParseError, match='missing required columns'):
        load_data(str(path))


def test_parse_error_is_pipeline_error():
    assert issubclass(ParseError, ChurnReportError)


# --- Cleaner ---

def test_clean_removes_missing_rows_and_identifier(clean_df, raw_df):
    assert config.ID_COLUMN not in clean_df.columns
    assert not clean_df.isna().any().any()
    assert len(clean_df) == len(raw_df) - N_NEW_CUSTOMERS
    assert (clean_df['tenure'] > 0).all()


def test_clean_reports_removed_rows(raw_df, capsys):
    clean_data(raw_df)
    out = capsys.readouterr().out
    assert f"Removed {N_NEW_CUSTOMERS} rows" in out
    assert 'Warning' not in out


def test_clean_recasts_types(clean_df):
    assert isinstance(clean_df['SeniorCitizen'].dtype, pd.CategoricalDtype)
    assert set(clean_df['SeniorCitizen'].cat.categories) <= {0, 1}
    assert isinstance(clean_df['Churn'].dtype, pd.CategoricalDtype)
    assert pd.api.types.is_float_dtype(clean_df['TotalCharges'])
    for col in config.NUMERICAL_FEATURES:
        assert pd.api.types.is_numeric_dtype(clean_df[col])


def test_clean_does_not_mutate_input(raw_df):
    before = raw_df.copy()
    clean_data(raw_df)
    pd.testing.assert_frame_equal(raw_df, before)


def test_clean_after_csv_round_trip(csv_path):
    df = clean_data(load_data(csv_path))
    assert not df.isna().any().any()
    assert len(df) == 800 - N_NEW_CUSTOMERS


def test_clean_warns_on_large_missing_fraction(capsys):
    df = generate_telco_dataset(n_samples=200, random_state=5, n_new_customers=40)
    cleaned = clean_data(df)
    out = capsys.readouterr().out
    assert len(cleaned) == 160
    assert 'Consider imputing' in out


def test_clean_warns_on_missing_total_for_tenured_customer(raw_df, capsys):
    df = raw_df.copy()
    tenured = df.index[df['tenure'] > 0][0]
    df.loc[tenured, 'TotalCharges'] = ' '

    cleaned = clean_data(df)
    out = capsys.readouterr().out

    assert 'Warning: 1 rows miss TotalCharges despite tenure > 0' in out
    assert f"Removed {N_NEW_CUSTOMERS + 1} rows" in out
    assert len(cleaned) == len(raw_df) - N_NEW_CUSTOMERS - 1
    assert not cleaned.isna().any().any()


def test_clean_without_missing_values():
    df = generate_telco_dataset(n_samples=100, random_state=5, n_new_customers=0)
    assert len(clean_data(df)) == 100


# --- Splitter ---

def test_split_is_deterministic(clean_df):
    a_train, a_test = split_data(clean_df, random_state=100)
    b_train, b_test = split_data(clean_df, random_state=100)
    assert list(a_train.index) == list(b_train.index)
    assert list(a_test.index) == list(b_test.index)


def test_split_depends_on_seed(clean_df):
    a_train, _ = split_data(clean_df, random_state=100)
    b_train, _ = split_data(clean_df, random_state=101)
    assert set(a_train.index) != set(b_train.index)


def test_split_partitions_rows(split, clean_df):
    train_df, test_df = split
    assert set(train_df.index).isdisjoint(test_df.index)
    assert len(train_df) + len(test_df) == len(clean_df)
    assert set(train_df.index) | set(test_df.index) == set(clean_df.index)
    assert len(train_df) == int(0.8 * len(clean_df))


def test_split_preserves_churn_proportion(split, clean_df):
    p = churn_rate(clean_df)
    for subset in split:
        n_churned = encode_labels(subset['Churn']).sum()
        assert abs(n_churned - p * len(subset)) <= 1


def test_split_rejects_bad_fraction(clean_df):
    with pytest.raises(InvalidArgumentError):
        split_data(clean_df, train_fraction=1.0)
    with pytest.raises(ValueError):
        split_data(clean_df, train_fraction=0)


# --- Upsampler ---

def test_upsample_balances_labels(split):
    train_df, _ = split
    balanced = upsample_minority(train_df, random_state=100)
    counts = balanced['Churn'].astype(str).value_counts()
    original = train_df['Churn'].astype(str).value_counts()

    assert counts['Yes'] == counts['No'] == original.max()
    assert len(balanced) == 2 * original.max()


def test_upsample_keeps_original_rows(split):
    train_df, _ = split
    balanced = upsample_minority(train_df, random_state=100)
    # Every original row survives: tenure/charges multisets contain the originals
    key = ['tenure', 'MonthlyCharges', 'TotalCharges']
    original = train_df[key].apply(tuple, axis=1).value_counts()
    resampled = balanced[key].apply(tuple, axis=1).value_counts()
    assert (resampled.reindex(original.index) >= original).all()
    assert list(balanced.columns) == list(train_df.columns)
    assert isinstance(balanced['SeniorCitizen'].dtype, pd.CategoricalDtype)


def test_upsample_is_deterministic(split):
    train_df, _ = split
    a = upsample_minority(train_df, random_state=3)
    b = upsample_minority(train_df, random_state=3)
    pd.testing.assert_frame_equal(a, b)


# --- Encoder ---

def test_processor_encodes_categories(split):
    train_df, test_df = split
    processor = ChurnDataProcessor()
    X, y, names = processor.fit_transform(train_df)

    assert X.shape == (len(train_df), len(train_df.columns) - 1)
    assert names == [c for c in train_df.columns if c != 'Churn']
    assert set(processor.numerical_cols) == set(config.NUMERICAL_FEATURES)
    assert 'SeniorCitizen' in processor.categorical_cols
    np.testing.assert_array_equal(y, encode_labels(train_df['Churn']))

    for idx in processor.categorical_indices:
        n_categories = len(processor.categorical_names[idx])
        assert X[:, idx].min() >= 0
        assert X[:, idx].max() < n_categories

    assert processor.transform(test_df).shape == (len(test_df), len(names))


def test_processor_expanded_names(split):
    train_df, _ = split
    processor = ChurnDataProcessor().fit(train_df)
    n_expanded = sum(len(v) for v in processor.categories.values()) + len(processor.numerical_cols)
    assert len(processor.expanded_feature_names) == n_expanded
    assert len(processor.expanded_sources) == n_expanded
    assert 'Contract_Month-to-month' in processor.expanded_feature_names


def test_processor_unseen_category(split):
    train_df, _ = split
    processor = ChurnDataProcessor().fit(train_df)
    row = train_df.head(1).copy()
    row['Contract'] = 'Ten year'
    X = processor.transform(row)
    assert X[0, processor.feature_names.index('Contract')] == -1


def test_processor_requires_fit(clean_df):
    with pytest.raises(ValueError, match='not fitted'):
        ChurnDataProcessor().transform(clean_df)


def test_encode_labels_accepts_strings_and_ints():
    np.testing.assert_array_equal(encode_labels(['Yes', 'No', 'Yes']), [1, 0, 1])
    np.testing.assert_array_equal(encode_labels(np.array([0, 1, 1])), [0, 1, 1])
