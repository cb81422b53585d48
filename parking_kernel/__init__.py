"""
Parking Kernel

Billing and cash-accounting core of a parking platform:
- Tariff rule evaluation and discounts
- Session lifecycle from check-in to payment
- Append-only shift cash ledger with replayed reconciliation
- Plate debts from forced checkouts and manual charges
"""

__version__ = "0.1.0"
