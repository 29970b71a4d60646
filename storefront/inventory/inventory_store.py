"""
Inventory Store: per-product, per-size stock buckets.

Every stock mutation is a single conditional UPDATE executed by the
database ("decrement iff stock_<size> >= qty"), never a read-modify-write
in Python. Two concurrent checkouts against the same bucket are therefore
serialized by the database and can never oversell. The same statement
adjusts total_stock, so total_stock == sum of the size buckets after every
commit.

After a mutation, the alert state machine is advanced in the same
transaction with a compare-and-set on the previous flag values; only the
writer whose compare-and-set succeeds dispatches the alert, after commit.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from storefront.cache.cache import CacheClient
from storefront.cache.cache_policy import product_key
from storefront.data.models import SIZES, Product, reserved_column_name, stock_column_name
from storefront.errors import (
    InsufficientStockError,
    PersistenceError,
    ProductNotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.inventory.alerts import (
    AlertDispatcher,
    AlertState,
    LoggingAlertDispatcher,
    StockAlert,
    next_transition,
)
from storefront.utils.logger import get_logger

logger = get_logger("inventory.store")


@dataclass
class ReservationItem:
    product_id: str
    size: str
    quantity: int

    @classmethod
    def from_mapping(cls, item: Mapping[str, Any]) -> "ReservationItem":
        return cls(
            product_id=item.get("productId", item.get("product_id")),
            size=item.get("size"),
            quantity=item.get("quantity"),
        )


@dataclass
class Reservation:
    product_id: str
    size: str
    quantity: int
    reserved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "size": self.size,
            "quantity": self.quantity,
            "reservedAt": self.reserved_at.isoformat(),
        }


def _validate_size(size: Any) -> str:
    if not isinstance(size, str) or size.upper() not in SIZES:
        raise ValidationError(
            f"Invalid size '{size}'",
            {"size": [f"must be one of {', '.join(SIZES)}"]},
        )
    return size.upper()


def _validate_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(
            f"Invalid quantity '{quantity}'",
            {"quantity": ["must be a positive integer"]},
        )
    return quantity


class InventoryStore:
    """
    Stock operations over the products table.

    Args:
        session_factory: SQLAlchemy sessionmaker; every operation uses its own session.
        cache: CacheClient whose product:{id} entry is deleted after each mutation.
        dispatcher: callable receiving StockAlert objects.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: Optional[CacheClient] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.dispatcher = dispatcher or LoggingAlertDispatcher()

    #
    # Reads
    #

    def _load(self, session: Session, product_id: str) -> Product:
        product = (
            session.query(Product)
            .filter(Product.id == product_id, Product.is_deleted.is_(False))
            .first()
        )
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def _read(self, product_id: str, reader):
        try:
            with self.session_factory() as session:
                return reader(self._load(session, product_id))
        except SQLAlchemyError as e:
            logger.error(f"Stock read failed for product {product_id}: {e}")
            raise PersistenceError(f"Stock read failed for product {product_id}") from e

    def available_stock(self, product_id: str, size: Optional[str] = None) -> int:
        """Single bucket if size is given, otherwise the sum over all buckets."""
        if size is not None:
            size = _validate_size(size)
        return self._read(product_id, lambda product: product.stock_for(size))

    def is_low_stock(self, product_id: str, size: str) -> bool:
        size = _validate_size(size)
        return self._read(product_id, lambda product: product.is_low_stock(size))

    def check_inventory(self, product_id: str, size: str, quantity: int) -> Dict[str, Any]:
        size = _validate_size(size)
        quantity = _validate_quantity(quantity)
        stock = self.available_stock(product_id, size)
        return {"available": stock >= quantity, "availableStock": stock}

    def low_stock_report(self) -> List[Dict[str, Any]]:
        """Active products with at least one size bucket in (0, threshold]."""
        bucket_checks = []
        for size in SIZES:
            column = getattr(Product, stock_column_name(size))
            bucket_checks.append(and_(column > 0, column <= Product.low_stock_threshold))
        try:
            with self.session_factory() as session:
                products = (
                    session.query(Product)
                    .filter(Product.is_deleted.is_(False), Product.is_active.is_(True), or_(*bucket_checks))
                    .order_by(Product.total_stock.asc(), Product.name.asc())
                    .all()
                )
                report = []
                for product in products:
                    report.append({
                        "productId": product.id,
                        "name": product.name,
                        "totalStock": product.total_stock,
                        "lowStockThreshold": product.low_stock_threshold,
                        "lowSizes": {
                            size: stock
                            for size, stock in product.size_stock.items()
                            if product.is_low_stock(size)
                        },
                    })
                return report
        except SQLAlchemyError as e:
            logger.error(f"Low stock report failed: {e}")
            raise PersistenceError("Low stock report failed") from e

    def inventory_report(self) -> Dict[str, Any]:
        """
        Stock, sales and stock value per product (inactive included, deleted
        excluded) plus catalog-wide totals.

        Returns:
            {"summary": {totalProducts, activeProducts, totalInventoryValue,
             totalStock, totalSold}, "products": [...]}
        """
        try:
            with self.session_factory() as session:
                products = (
                    session.query(Product)
                    .options(selectinload(Product.category))
                    .filter(Product.is_deleted.is_(False))
                    .order_by(Product.name.asc(), Product.id.asc())
                    .all()
                )
                rows = [
                    {
                        "productId": product.id,
                        "name": product.name,
                        "category": product.category.name if product.category is not None else "Uncategorized",
                        "price": product.price,
                        "totalStock": product.total_stock,
                        "totalSold": product.sold,
                        "sizeStock": product.size_stock,
                        "reservedStock": product.reserved_stock,
                        "isActive": product.is_active,
                        "value": round(product.total_stock * product.price, 2),
                    }
                    for product in products
                ]
        except SQLAlchemyError as e:
            logger.error(f"Inventory report failed: {e}")
            raise PersistenceError("Inventory report failed") from e

        summary = {
            "totalProducts": len(rows),
            "activeProducts": sum(1 for row in rows if row["isActive"]),
            "totalInventoryValue": round(sum(row["value"] for row in rows), 2),
            "totalStock": sum(row["totalStock"] for row in rows),
            "totalSold": sum(row["totalSold"] for row in rows),
        }
        return {"summary": summary, "products": rows}

    #
    # Atomic mutations
    #

    def decrease_stock(self, product_id: str, size: str, quantity: int) -> bool:
        """Irreversible consumption at order confirmation. False if the bucket is short."""
        size, quantity = _validate_size(size), _validate_quantity(quantity)
        stock = getattr(Product, stock_column_name(size))
        return self._mutate("decrease", product_id, size, quantity, guard=stock, changes={
            stock: stock - quantity,
            Product.total_stock: Product.total_stock - quantity,
            Product.sold: Product.sold + quantity,
        })

    def reserve_stock(self, product_id: str, size: str, quantity: int) -> bool:
        """Soft hold during checkout. Same contract as decrease_stock."""
        return self._reserve(product_id, size, quantity)

    def _reserve(
        self,
        product_id: str,
        size: str,
        quantity: int,
        pending_alerts: Optional[List[StockAlert]] = None,
    ) -> bool:
        size, quantity = _validate_size(size), _validate_quantity(quantity)
        stock = getattr(Product, stock_column_name(size))
        reserved = getattr(Product, reserved_column_name(size))
        return self._mutate("reserve", product_id, size, quantity, guard=stock, changes={
            stock: stock - quantity,
            reserved: reserved + quantity,
            Product.total_stock: Product.total_stock - quantity,
        }, pending_alerts=pending_alerts)

    def release_stock(self, product_id: str, size: str, quantity: int) -> bool:
        """Return a hold to the bucket. False unless at least `quantity` is held."""
        size, quantity = _validate_size(size), _validate_quantity(quantity)
        stock = getattr(Product, stock_column_name(size))
        reserved = getattr(Product, reserved_column_name(size))
        return self._mutate("release", product_id, size, quantity, guard=reserved, changes={
            stock: stock + quantity,
            reserved: reserved - quantity,
            Product.total_stock: Product.total_stock + quantity,
        })

    def confirm_reservation(self, product_id: str, size: str, quantity: int) -> bool:
        """Turn a hold into a sale once payment settles. Buckets are untouched."""
        size, quantity = _validate_size(size), _validate_quantity(quantity)
        reserved = getattr(Product, reserved_column_name(size))
        return self._mutate("confirm", product_id, size, quantity, guard=reserved, changes={
            reserved: reserved - quantity,
            Product.sold: Product.sold + quantity,
        })

    def restock(self, product_id: str, size: str, quantity: int) -> bool:
        size, quantity = _validate_size(size), _validate_quantity(quantity)
        stock = getattr(Product, stock_column_name(size))
        return self._mutate("restock", product_id, size, quantity, guard=None, changes={
            stock: stock + quantity,
            Product.total_stock: Product.total_stock + quantity,
        })

    def _mutate(
        self,
        operation: str,
        product_id: str,
        size: str,
        quantity: int,
        guard,
        changes,
        pending_alerts: Optional[List[StockAlert]] = None,
    ) -> bool:
        """
        Run one conditional UPDATE and advance the alert state.

        With pending_alerts the alert is collected instead of dispatched, for
        callers that may still roll the mutation back.
        """
        alert = None
        try:
            with self.session_factory() as session:
                query = session.query(Product).filter(
                    Product.id == product_id,
                    Product.is_deleted.is_(False),
                )
                if guard is not None:
                    query = query.filter(guard >= quantity)
                updated = query.update(changes, synchronize_session=False)

                if not updated:
                    session.rollback()
                    exists = (
                        session.query(Product.id)
                        .filter(Product.id == product_id, Product.is_deleted.is_(False))
                        .first()
                    )
                    if exists is None:
                        raise ProductNotFoundError(product_id)
                    logger.info(f"{operation} rejected: product {product_id} size {size} qty {quantity}")
                    return False

                alert = self._advance_alert_state(session, product_id)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed for product {product_id} size {size} qty {quantity}: {e}")
            raise PersistenceError(f"Stock {operation} failed for product {product_id}") from e

        logger.debug(f"{operation} ok: product {product_id} size {size} qty {quantity}")
        if pending_alerts is None:
            self._after_commit(product_id, alert)
        else:
            self._after_commit(product_id, None)
            if alert is not None:
                pending_alerts.append(alert)
        return True

    def _advance_alert_state(self, session: Session, product_id: str) -> Optional[StockAlert]:
        """Recompute the alert state inside the mutating transaction."""
        product = (
            session.query(Product)
            .filter(Product.id == product_id)
            .populate_existing()
            .one()
        )
        current = AlertState.from_flags(product.alert_low_stock, product.alert_out_of_stock)
        transition = next_transition(current, product.total_stock, product.low_stock_threshold)
        if not transition.changed:
            return None

        low, out = transition.target.flags()
        claimed = (
            session.query(Product)
            .filter(
                Product.id == product_id,
                Product.alert_low_stock == product.alert_low_stock,
                Product.alert_out_of_stock == product.alert_out_of_stock,
            )
            .update({Product.alert_low_stock: low, Product.alert_out_of_stock: out}, synchronize_session=False)
        )
        if not claimed or transition.alert is None:
            return None
        return StockAlert(
            kind=transition.alert,
            product_id=product.id,
            product_name=product.name,
            total_stock=product.total_stock,
            threshold=product.low_stock_threshold,
            size_stock=product.size_stock,
        )

    def _after_commit(self, product_id: str, alert: Optional[StockAlert]) -> None:
        if self.cache is not None:
            self.cache.delete(product_key(product_id))
        if alert is None:
            return
        try:
            self.dispatcher(alert)
        except Exception:
            # Stock is already committed; a broken notifier must not undo the sale.
            logger.exception(f"Alert dispatch failed for product {product_id}")

    #
    # Multi-item reservation
    #

    def reserve_items(self, items: Iterable[Any]) -> List[Reservation]:
        """
        Reserve several (product, size, quantity) lines.

        Either every line is reserved, or none is: when a line fails, the
        lines already reserved by this call are released in reverse order
        before the error is raised. Stock alerts raised by the lines are sent
        only once every line is reserved; a rolled-back call sends none.

        Raises:
            ValidationError: a line is malformed (nothing is reserved).
            ProductNotFoundError / InsufficientStockError: after rollback.
        """
        requested = []
        for item in items:
            if isinstance(item, Mapping):
                item = ReservationItem.from_mapping(item)
            if not item.product_id:
                raise ValidationError("Missing product id", {"productId": ["is required"]})
            requested.append(
                ReservationItem(item.product_id, _validate_size(item.size), _validate_quantity(item.quantity))
            )
        if not requested:
            raise ValidationError("No items to reserve", {"items": ["must not be empty"]})

        committed: List[Reservation] = []
        pending_alerts: List[StockAlert] = []
        for item in requested:
            try:
                reserved = self._reserve(item.product_id, item.size, item.quantity, pending_alerts)
                if not reserved:
                    product = self._read(item.product_id, lambda p: (p.name, p.stock_for(item.size)))
                    raise InsufficientStockError(
                        item.product_id, item.size, item.quantity, product[1], product_name=product[0]
                    )
            except StorefrontError:
                self._compensate(committed)
                if pending_alerts:
                    logger.info(f"Discarded {len(pending_alerts)} stock alert(s) of a rolled-back reservation")
                raise
            committed.append(Reservation(item.product_id, item.size, item.quantity))

        logger.info(f"Reserved {len(committed)} line(s)")
        for alert in pending_alerts:
            self._after_commit(alert.product_id, alert)
        return committed

    def release_items(self, reservations: Iterable[Any]) -> int:
        """Release reservation lines; returns how many were released."""
        released = 0
        for line in reservations:
            if isinstance(line, Mapping):
                line = ReservationItem.from_mapping(line)
            if self.release_stock(line.product_id, line.size, line.quantity):
                released += 1
        return released

    def _compensate(self, committed: List[Reservation]) -> None:
        for reservation in reversed(committed):
            try:
                if not self.release_stock(reservation.product_id, reservation.size, reservation.quantity):
                    logger.error(f"Rollback could not release {reservation.to_dict()}")
            except StorefrontError as e:
                logger.error(f"Rollback failed for {reservation.to_dict()}: {e}")
        if committed:
            logger.info(f"Rolled back {len(committed)} reservation(s)")
