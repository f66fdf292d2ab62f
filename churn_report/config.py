"""
Pipeline Configuration
----------------------
Column definitions and run defaults shared by every stage.
The command line of train_pipeline.py overrides the runtime values.
"""

# --- Column Definitions ---
ID_COLUMN = 'customerID'

TARGET_COLUMN = 'Churn'
POSITIVE_LABEL = 'Yes'
NEGATIVE_LABEL = 'No'

NUMERICAL_FEATURES = ['tenure', 'MonthlyCharges', 'TotalCharges']

CATEGORICAL_FEATURES = [
    'gender', 'SeniorCitizen', 'Partner', 'Dependents', 'PhoneService',
    'MultipleLines', 'InternetService', 'OnlineSecurity', 'OnlineBackup',
    'DeviceProtection', 'TechSupport', 'StreamingTV', 'StreamingMovies',
    'Contract', 'PaperlessBilling', 'PaymentMethod'
]

# 0/1 flag that is modeled as a category
FLAG_COLUMN = 'SeniorCitizen'

REQUIRED_COLUMNS = CATEGORICAL_FEATURES + NUMERICAL_FEATURES + [TARGET_COLUMN]

# Column order of the IBM export
RAW_COLUMNS = [
    ID_COLUMN, 'gender', 'SeniorCitizen', 'Partner', 'Dependents', 'tenure',
    'PhoneService', 'MultipleLines', 'InternetService', 'OnlineSecurity',
    'OnlineBackup', 'DeviceProtection', 'TechSupport', 'StreamingTV',
    'StreamingMovies', 'Contract', 'PaperlessBilling', 'PaymentMethod',
    'MonthlyCharges', 'TotalCharges', TARGET_COLUMN
]

# --- Run Defaults ---
RANDOM_SEED = 100
TRAIN_FRACTION = 0.8

CV_FOLDS = 5
CV_REPEATS = 3
N_ESTIMATORS = 500
TUNE_LENGTH = 3

DEFAULT_THRESHOLD = 0.5
TUNED_THRESHOLD = 0.45

# Category label shown by the explainer for values unseen during training
UNSEEN_CATEGORY = '<unseen>'

EXPLAIN_CASES = 2
EXPLAIN_FEATURES = 8
LIME_SAMPLES = 5000

# Row deletion is only defensible when few rows are incomplete
MAX_DROPPED_FRACTION = 0.05

# --- Artifacts ---
MODEL_FILENAME = 'rf_model.joblib'
UPSAMPLED_MODEL_FILENAME = 'rf_model_upsampled.joblib'
RESULTS_FILENAME = 'evaluation_results.json'
EXPLANATIONS_FILENAME = 'explanations.csv'
IMPORTANCE_FILENAME = 'feature_importance.csv'
FIGURES_DIRNAME = 'figures'
