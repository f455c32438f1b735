from .catalog import Location, Product, ProductVariant, CustomDutyRate
from .inventory import CentralStock, LocationStock, StockHistory
from .orders import Order, OrderLine
from .accounting import TaxConfiguration, FinancialTransaction, ProductCostBreakdown
from .procurement import ProcurementQueueItem
from .audit import AuditEvent, SettlementTask

__all__ = [
    'Location', 'Product', 'ProductVariant', 'CustomDutyRate',
    'CentralStock', 'LocationStock', 'StockHistory',
    'Order', 'OrderLine',
    'TaxConfiguration', 'FinancialTransaction', 'ProductCostBreakdown',
    'ProcurementQueueItem',
    'AuditEvent', 'SettlementTask',
]
