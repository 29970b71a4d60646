from storefront.inventory.alerts import AlertKind, AlertState, LoggingAlertDispatcher, StockAlert
from storefront.inventory.inventory_store import InventoryStore, Reservation

__all__ = [
    'AlertKind',
    'AlertState',
    'LoggingAlertDispatcher',
    'StockAlert',
    'InventoryStore',
    'Reservation',
]
