# ==============================================================================
# commission_admin/matrix/export.py
# ------------------------------------------------------------------------------
# Tabular views of commission records, built with pandas, for export.
# ==============================================================================

import pandas as pd

from .schema import ROLE_IDS, role_name

RECORD_COLUMNS = ['commission_id', 'product_id', 'premium_term', 'commission_year',
                  'role_id', 'role_name', 'commission_rate']


def records_frame(records):
    """One row per persisted record, with the role label added."""
    rows = []
    for record in records:
        row = record.to_dict()
        row['role_name'] = role_name(record.role_id)
        rows.append(row)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def matrix_frame(records):
    """
    Pivots records into the matrix layout: one row per (premium term, year),
    one column per role. Cells without a record are left empty. When a
    (term, year, role) is duplicated, the first record is shown.
    """
    df = records_frame(records)
    columns = [role_name(role_id) for role_id in ROLE_IDS]
    if df.empty:
        return pd.DataFrame(columns=['premium_term', 'commission_year'] + columns)

    matrix = df.pivot_table(
        index=['premium_term', 'commission_year'],
        columns='role_name',
        values='commission_rate',
        aggfunc='first',
        sort=False,
    )
    matrix = matrix.reindex(columns=columns).reset_index()
    matrix.columns.name = None
    return matrix.sort_values(['premium_term', 'commission_year'], kind='stable').reset_index(drop=True)
