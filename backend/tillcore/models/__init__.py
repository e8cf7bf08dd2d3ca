from .tenancy import Tenant
from .taxes import TaxSlab
from .inventory import Product, StockMovement, MOVEMENT_TYPES
from .sales import (
    Invoice,
    InvoiceItem,
    InvoiceTaxLine,
    InvoiceSequence,
    INVOICE_STATUSES,
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
)

__all__ = [
    'Tenant',
    'TaxSlab',
    'Product', 'StockMovement', 'MOVEMENT_TYPES',
    'Invoice', 'InvoiceItem', 'InvoiceTaxLine', 'InvoiceSequence',
    'INVOICE_STATUSES', 'DISCOUNT_TYPES', 'PAYMENT_METHODS',
]
