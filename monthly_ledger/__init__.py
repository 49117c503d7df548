"""Personal finance ledger: expenses, fixed expenses and card installments."""

__version__ = "0.1.0"
