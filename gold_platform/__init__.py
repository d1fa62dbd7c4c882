"""
Gold Platform Core

Financial core of a gold-investment platform: exchange rates, currency
conversion, gold pricing with fee schedules, and the KYC verification
workflow with a hash-chained audit trail. All money math uses Decimal.
"""

__version__ = "1.0.0"
