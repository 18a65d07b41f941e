from .quotations import Quotation, QuotationItem, QuotationStatusHistory
from .orders import Order, OrderLine
from .documents import DocumentSequence

__all__ = [
    'Quotation', 'QuotationItem', 'QuotationStatusHistory',
    'Order', 'OrderLine',
    'DocumentSequence',
]
