"""
Low-stock / out-of-stock alert state machine.

State is per product (aggregated over all sizes) and is persisted as two
flags on the product row:

    alert_low_stock  alert_out_of_stock   state
    ---------------  ------------------   -----------------------
    False            False                NORMAL
    True             False                LOW_STOCK_NOTIFIED
    *                True                 OUT_OF_STOCK_NOTIFIED

After every stock mutation the target state is recomputed from total stock.
An alert is emitted only when entering LOW_STOCK_NOTIFIED from NORMAL, or
when entering OUT_OF_STOCK_NOTIFIED from any other state. Staying in a
state never emits anything, so repeated decrements below the threshold
produce a single alert.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from storefront.utils.logger import get_logger

logger = get_logger("inventory.alerts")


class AlertState(str, Enum):
    NORMAL = "normal"
    LOW_STOCK_NOTIFIED = "low_stock_notified"
    OUT_OF_STOCK_NOTIFIED = "out_of_stock_notified"

    @classmethod
    def from_flags(cls, low_stock: bool, out_of_stock: bool) -> "AlertState":
        if out_of_stock:
            return cls.OUT_OF_STOCK_NOTIFIED
        if low_stock:
            return cls.LOW_STOCK_NOTIFIED
        return cls.NORMAL

    def flags(self) -> Tuple[bool, bool]:
        """(alert_low_stock, alert_out_of_stock) persisted for this state."""
        if self is AlertState.OUT_OF_STOCK_NOTIFIED:
            return True, True
        if self is AlertState.LOW_STOCK_NOTIFIED:
            return True, False
        return False, False


class AlertKind(str, Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@dataclass
class StockAlert:
    """One alert to hand to the notification collaborator."""
    kind: AlertKind
    product_id: str
    product_name: str
    total_stock: int
    threshold: int
    size_stock: Dict[str, int] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind.value,
            "productId": self.product_id,
            "productName": self.product_name,
            "totalStock": self.total_stock,
            "threshold": self.threshold,
            "sizeStock": dict(self.size_stock),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Transition:
    current: AlertState
    target: AlertState
    alert: Optional[AlertKind]

    @property
    def changed(self) -> bool:
        return self.current is not self.target


def target_state(total_stock: int, threshold: int) -> AlertState:
    if total_stock <= 0:
        return AlertState.OUT_OF_STOCK_NOTIFIED
    if total_stock <= threshold:
        return AlertState.LOW_STOCK_NOTIFIED
    return AlertState.NORMAL


def next_transition(current: AlertState, total_stock: int, threshold: int) -> Transition:
    """Where the product moves after a mutation, and which alert (if any) that emits."""
    target = target_state(total_stock, threshold)
    alert = None
    if target is AlertState.OUT_OF_STOCK_NOTIFIED and current is not target:
        alert = AlertKind.OUT_OF_STOCK
    elif target is AlertState.LOW_STOCK_NOTIFIED and current is AlertState.NORMAL:
        alert = AlertKind.LOW_STOCK
    # OUT -> LOW on partial replenishment, and anything -> NORMAL, stay silent.
    return Transition(current, target, alert)


AlertDispatcher = Callable[[StockAlert], None]


class LoggingAlertDispatcher:
    """Default dispatcher: writes alerts to the log for the notification collaborator to pick up."""

    def __call__(self, alert: StockAlert) -> None:
        if alert.kind is AlertKind.OUT_OF_STOCK:
            logger.warning(f"OUT OF STOCK: '{alert.product_name}' ({alert.product_id})")
        else:
            logger.warning(
                f"LOW STOCK: '{alert.product_name}' ({alert.product_id}) has {alert.total_stock} left "
                f"(threshold {alert.threshold})"
            )
