"""Utility functions for the BLS flat-file loader"""

from .data_transform import (
    period_to_month,
    period_to_date,
    coerce_value,
    add_date_column,
    code_columns_with_partner,
    drop_code_columns,
    drop_columns,
    HOUSEKEEPING_COLUMNS,
)

__all__ = [
    'period_to_month',
    'period_to_date',
    'coerce_value',
    'add_date_column',
    'code_columns_with_partner',
    'drop_code_columns',
    'drop_columns',
    'HOUSEKEEPING_COLUMNS',
]
