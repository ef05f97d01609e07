"""
Utility functions for the analytics engine.

This package contains:
- financial_math: Return metrics (growth, Modified Dietz, TWR, CAGR, allocation)
- datetime_utils: Date normalization and calendar arithmetic
- validation_utils: Lenient coercion for user-entered values
- currency_utils / translation_utils: Babel-based formatting
"""
