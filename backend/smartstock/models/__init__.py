from .catalog import Category, Supplier, Client, Product
from .inventory import StockMovement
from .sales import Sale, SaleItem, ReferenceSequence

__all__ = [
    'Category', 'Supplier', 'Client', 'Product',
    'StockMovement',
    'Sale', 'SaleItem', 'ReferenceSequence',
]
