"""
Synthetic Telco Export
Stand-in for the IBM Telco customer file when no CSV is supplied.
Same columns, same value sets, and churn that follows the usual drivers.
"""

import os
import pandas as pd
import numpy as np
from typing import Optional

from . import config


# Share of brand-new customers (tenure 0, blank TotalCharges) in the IBM file: 11 of 7043
NEW_CUSTOMER_RATE = 11 / 7043


def generate_customer_id(rng: np.random.RandomState) -> str:
    """Generate a customer ID in the format XXXX-XXXXX"""
    part1 = ''.join(rng.choice(list('0123456789'), 4))
    part2 = ''.join(rng.choice(list('ABCDEFGHIJKLMNOPQRSTUVWXYZ'), 5))
    return f"{part1}-{part2}"


def generate_telco_dataset(
    n_samples: int = 7043,
    random_state: int = 42,
    n_new_customers: Optional[int] = None
) -> pd.DataFrame:
    """
    Build a raw customer frame in the column order of the IBM export.

    Churn risk rises with short tenure, month-to-month contracts,
    fiber without add-ons and electronic-check payment, and falls with
    partners, dependents and automatic payment.

    Parameters:
    -----------
    n_samples : int
        Rows to generate
    random_state : int
        Seed of the local random generator
    n_new_customers : int, optional
        Customers who joined this month (tenure 0). Their TotalCharges is
        a blank string, as in the IBM file. Defaults to the IBM rate.

    Returns:
    --------
    pd.DataFrame
        Raw records, ready for load/clean
    """
    rng = np.random.RandomState(random_state)

    if n_new_customers is None:
        n_new_customers = int(round(n_samples * NEW_CUSTOMER_RATE))
    if not 0 <= n_new_customers <= n_samples:
        raise ValueError(
            f"n_new_customers must be between 0 and {n_samples}, got {n_new_customers}"
        )

    customer_ids = [generate_customer_id(rng) for _ in range(n_samples)]

    # Demographics
    gender = rng.choice(['Male', 'Female'], n_samples)
    senior_citizen = rng.choice([0, 1], n_samples, p=[0.84, 0.16])
    partner = rng.choice(['Yes', 'No'], n_samples, p=[0.48, 0.52])
    dependents = rng.choice(['Yes', 'No'], n_samples, p=[0.30, 0.70])

    # Tenure (months) - bimodal: recent joiners and long-term loyal customers
    n_recent = int(n_samples * 0.4)
    n_loyal = n_samples - n_recent
    tenure_recent = 1 + rng.exponential(scale=8, size=n_recent)
    tenure_loyal = rng.normal(loc=55, scale=15, size=n_loyal)
    tenure = np.concatenate([tenure_recent, tenure_loyal])
    rng.shuffle(tenure)
    tenure = np.clip(tenure, 1, 72).astype(int)

    new_idx = rng.choice(n_samples, n_new_customers, replace=False)
    tenure[new_idx] = 0

    phone_service = rng.choice(['Yes', 'No'], n_samples, p=[0.90, 0.10])

    has_multiple = rng.choice(['Yes', 'No'], n_samples, p=[0.42, 0.58])
    multiple_lines = np.where(phone_service == 'No', 'No phone service', has_multiple)

    internet_service = rng.choice(
        ['DSL', 'Fiber optic', 'No'],
        n_samples,
        p=[0.34, 0.44, 0.22]
    )

    internet_dependent_cols = ['OnlineSecurity', 'OnlineBackup', 'DeviceProtection',
                               'TechSupport', 'StreamingTV', 'StreamingMovies']

    internet_services = {}
    for col in internet_dependent_cols:
        # Security and support are less common with Fiber optic
        if col in ['OnlineSecurity', 'TechSupport']:
            p_yes = np.where(internet_service == 'Fiber optic', 0.35, 0.50)
        else:
            p_yes = np.full(n_samples, 0.50)
        subscribed = np.where(rng.random_sample(n_samples) < p_yes, 'Yes', 'No')
        internet_services[col] = np.where(
            internet_service == 'No', 'No internet service', subscribed
        )

    contract = rng.choice(
        ['Month-to-month', 'One year', 'Two year'],
        n_samples,
        p=[0.55, 0.21, 0.24]
    )

    paperless_billing = rng.choice(['Yes', 'No'], n_samples, p=[0.59, 0.41])

    payment_method = rng.choice(
        ['Electronic check', 'Mailed check', 'Bank transfer (automatic)', 'Credit card (automatic)'],
        n_samples,
        p=[0.34, 0.23, 0.22, 0.21]
    )

    # Monthly Charges (based on services)
    monthly_charges = np.full(n_samples, 18.0)
    monthly_charges += np.where(phone_service == 'Yes', 2.0, 0.0)
    monthly_charges += np.where(multiple_lines == 'Yes', 5.0, 0.0)
    monthly_charges += np.select(
        [internet_service == 'DSL', internet_service == 'Fiber optic'], [25.0, 45.0], 0.0
    )
    for col in internet_dependent_cols:
        addon = rng.uniform(8, 12, n_samples)
        monthly_charges += np.where(internet_services[col] == 'Yes', addon, 0.0)
    monthly_charges += rng.normal(0, 3, n_samples)
    monthly_charges = np.maximum(18.0, np.round(monthly_charges, 2))

    # Total Charges - slight discount on historical charges plus noise
    historical = tenure * monthly_charges * 0.95 + rng.normal(0, 50, n_samples)
    total_charges = np.maximum(monthly_charges, np.round(historical, 2))

    # Churn probability from known drivers
    prob = np.full(n_samples, 0.15)

    # Tenure effect (biggest driver)
    prob += np.select(
        [tenure <= 6, tenure <= 12, tenure <= 24, tenure >= 48],
        [0.25, 0.15, 0.05, -0.08],
        0.0
    )

    prob += np.select(
        [contract == 'Month-to-month', contract == 'One year'],
        [0.18, -0.05],
        -0.12
    )

    fiber = internet_service == 'Fiber optic'
    prob += np.where(fiber, 0.08, 0.0)
    prob += np.where(fiber & (internet_services['OnlineSecurity'] == 'No'), 0.05, 0.0)
    prob += np.where(fiber & (internet_services['TechSupport'] == 'No'), 0.05, 0.0)

    automatic = np.char.find(payment_method.astype(str), 'automatic') >= 0
    prob += np.where(payment_method == 'Electronic check', 0.10, 0.0)
    prob += np.where(automatic, -0.05, 0.0)

    prob += np.where(senior_citizen == 1, 0.05, 0.0)

    # Social ties reduce churn
    prob += np.where(partner == 'Yes', -0.03, 0.0)
    prob += np.where(dependents == 'Yes', -0.03, 0.0)

    prob += np.where((monthly_charges > 80) & (contract == 'Month-to-month'), 0.08, 0.0)
    prob += np.where(paperless_billing == 'Yes', 0.02, 0.0)

    churn_probs = np.clip(prob, 0.02, 0.85)
    churn = np.where(rng.random_sample(n_samples) < churn_probs, 'Yes', 'No')

    columns = dict(
        internet_services,
        customerID=customer_ids, gender=gender, SeniorCitizen=senior_citizen,
        Partner=partner, Dependents=dependents, tenure=tenure,
        PhoneService=phone_service, MultipleLines=multiple_lines,
        InternetService=internet_service, Contract=contract,
        PaperlessBilling=paperless_billing, PaymentMethod=payment_method,
        MonthlyCharges=monthly_charges, TotalCharges=total_charges, Churn=churn
    )
    df = pd.DataFrame(columns, columns=config.RAW_COLUMNS)

    # New customers have a blank TotalCharges, like in the original export
    if n_new_customers:
        df['TotalCharges'] = df['TotalCharges'].astype(object)
        df.loc[df['tenure'] == 0, 'TotalCharges'] = ' '

    return df


if __name__ == '__main__':
    df = generate_telco_dataset()

    os.makedirs('data', exist_ok=True)
    output_path = os.path.join('data', 'telco_churn_generated.csv')
    df.to_csv(output_path, index=False)

    print(f"Wrote {len(df)} synthetic customers to {output_path}")
    print(f"Churn rate: {(df[config.TARGET_COLUMN] == config.POSITIVE_LABEL).mean():.2%}")
    print(f"New customers (blank TotalCharges): {int((df['tenure'] == 0).sum())}")
