from .catalog import ProductCategory, Product
from .ledger import (
    StockMovement,
    RestockMovement,
    CorrectionMovement,
    DamageMovement,
    ProductEditMovement,
    ProductDeleteMovement,
    RestockRecord,
    DamageRecord,
)
from .sales import Sale, SalePayment, SaleAudit
from .finance import ExpenseCategory, Expense, Deposit

__all__ = [
    'ProductCategory', 'Product',
    'StockMovement', 'RestockMovement', 'CorrectionMovement', 'DamageMovement',
    'ProductEditMovement', 'ProductDeleteMovement',
    'RestockRecord', 'DamageRecord',
    'Sale', 'SalePayment', 'SaleAudit',
    'ExpenseCategory', 'Expense', 'Deposit',
]
