"""
Inventory lot operations.

Stock is held in lots per (product, product unit, batch, expiry). Sales
consume lots first-expired-first-out; lots without an expiry date are
consumed last. Quantities are expressed in the lot's own unit and converted
to base units with the unit's conversion factor.
"""
import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import DecimalField, ExpressionWrapper, F, Sum, Value
from django.db.models.functions import Coalesce

from .models import Inventory

logger = logging.getLogger('pharmacy.inventory')

ZERO = Decimal('0')
QUANTITY_FIELD = DecimalField(max_digits=16, decimal_places=3)


class InventoryError(Exception):
    """Raised when a stock movement would break inventory invariants"""


class InsufficientStockError(InventoryError):
    def __init__(self, product_unit, requested, available):
        self.product_unit = product_unit
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_unit.product.name} ({product_unit.unit.name}): "
            f"requested {requested}, available {available}"
        )


def _as_decimal(value):
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _normalize_batch(batch_number):
    batch_number = (batch_number or '').strip()
    return batch_number or None


def fefo_ordering():
    """Soonest expiry first, lots without expiry last, then oldest lot first"""
    return [F('expiry_date').asc(nulls_last=True), 'created_at', 'id']


def to_base_quantity(quantity, conversion_factor):
    """Quantity of a unit expressed in base units"""
    return _as_decimal(quantity) * _as_decimal(conversion_factor)


def total_base_quantity(lots):
    """
    Sum lots in base units.

    Each lot is converted with its own unit's factor before summing, so lots
    held in different units of the same product add up correctly.
    """
    return sum(
        (to_base_quantity(lot.quantity, lot.product_unit.conversion_factor) for lot in lots),
        ZERO
    )


def available_quantity(product_unit):
    """Stock on hand for one product unit, in that unit"""
    total = Inventory.objects.filter(product_unit=product_unit).aggregate(total=Sum('quantity'))['total']
    return total or ZERO


def available_quantities_by_unit(product):
    """Mapping of product unit id to stock on hand in that unit"""
    rows = Inventory.objects.filter(product=product).values('product_unit_id').annotate(total=Sum('quantity'))
    return {row['product_unit_id']: row['total'] or ZERO for row in rows}


def base_stock_expression(prefix='inventory_lots__'):
    """Sum of lot quantity times conversion factor, for annotating querysets"""
    return Coalesce(
        Sum(ExpressionWrapper(
            F(f'{prefix}quantity') * F(f'{prefix}product_unit__conversion_factor'),
            output_field=QUANTITY_FIELD
        )),
        Value(ZERO),
        output_field=QUANTITY_FIELD
    )


def annotate_base_stock(product_queryset):
    """Annotate products with stock_base_quantity, their stock in base units"""
    return product_queryset.annotate(stock_base_quantity=base_stock_expression())


def product_stock_summary(product):
    """Per-unit and per-lot stock of a product plus its total in base units"""
    lots = list(
        Inventory.objects.filter(product=product)
        .select_related('product_unit__unit')
        .order_by('product_unit_id', *fefo_ordering())
    )

    units = []
    for product_unit in product.units.select_related('unit').all():
        unit_lots = [lot for lot in lots if lot.product_unit_id == product_unit.id]
        quantity = sum((lot.quantity for lot in unit_lots), ZERO)
        units.append({
            'product_unit_id': product_unit.id,
            'unit_id': product_unit.unit_id,
            'unit_name': product_unit.unit.name,
            'conversion_factor': str(product_unit.conversion_factor),
            'is_base_unit': product_unit.is_base_unit,
            'quantity': str(quantity),
            'base_quantity': str(to_base_quantity(quantity, product_unit.conversion_factor)),
            'lots': [
                {
                    'id': lot.id,
                    'batch_number': lot.batch_number,
                    'expiry_date': lot.expiry_date.isoformat() if lot.expiry_date else None,
                    'quantity': str(lot.quantity),
                }
                for lot in unit_lots
            ],
        })

    base_unit = product.base_unit.name if product.base_unit_id else None
    return {
        'product_id': product.id,
        'product_code': product.code,
        'base_unit': base_unit,
        'total_base_quantity': str(total_base_quantity(lots)),
        'units': units,
    }


def _check_product_unit(product, product_unit):
    if product_unit.product_id != product.id:
        raise InventoryError(f"Unit {product_unit.id} does not belong to product {product.code}")


def _check_positive(quantity):
    quantity = _as_decimal(quantity)
    if quantity <= 0:
        raise InventoryError('Quantity must be greater than 0')
    return quantity


def _find_lot(product, product_unit, batch_number, expiry_date, lock=True):
    queryset = Inventory.objects.filter(
        product=product,
        product_unit=product_unit,
        batch_number=batch_number,
        expiry_date=expiry_date,
    )
    if lock:
        queryset = queryset.select_for_update()
    return queryset.order_by('id').first()


def _create_lot_or_add(product, product_unit, quantity, batch_number, expiry_date):
    """
    Insert a new lot holding quantity.

    When another transaction inserted the same lot first, the unique
    constraint rejects the insert inside a savepoint and the quantity is
    added to the existing lot under a row lock instead.
    """
    try:
        with transaction.atomic():
            return Inventory.objects.create(
                product=product,
                product_unit=product_unit,
                batch_number=batch_number,
                expiry_date=expiry_date,
                quantity=quantity,
            )
    except IntegrityError:
        lot = _find_lot(product, product_unit, batch_number, expiry_date)
        if lot is None:
            raise
        logger.info(f"Lot for {product.code} ({batch_number}, {expiry_date}) was created concurrently, adding to it")
        lot.quantity += quantity
        lot.save(update_fields=['quantity', 'updated_at'])
        return lot


def receive_stock(product, product_unit, quantity, batch_number=None, expiry_date=None):
    """Add received goods to their lot, creating the lot on first receipt"""
    _check_product_unit(product, product_unit)
    quantity = _check_positive(quantity)
    batch_number = _normalize_batch(batch_number)

    with transaction.atomic():
        lot = _find_lot(product, product_unit, batch_number, expiry_date)
        if lot is None:
            lot = _create_lot_or_add(product, product_unit, quantity, batch_number, expiry_date)
        else:
            lot.quantity += quantity
            lot.save(update_fields=['quantity', 'updated_at'])

    logger.debug(f"Received {quantity} x {product_unit.id} into lot {lot.id} (now {lot.quantity})")
    return lot


def remove_received_stock(product, product_unit, quantity, batch_number=None, expiry_date=None):
    """Undo a receipt; refused once the lot no longer holds the received quantity"""
    _check_product_unit(product, product_unit)
    quantity = _check_positive(quantity)
    batch_number = _normalize_batch(batch_number)

    with transaction.atomic():
        lot = _find_lot(product, product_unit, batch_number, expiry_date)
        if lot is None or lot.quantity < quantity:
            held = lot.quantity if lot else ZERO
            raise InventoryError(
                f"Cannot remove {quantity} of {product.code}: the lot only holds {held} (stock already sold)"
            )
        lot.quantity -= quantity
        lot.save(update_fields=['quantity', 'updated_at'])
    return lot


def deduct_stock_fefo(product, product_unit, quantity):
    """
    Consume stock for a sale, first-expired-first-out.

    Lots of the product unit with stock are locked and consumed in FEFO
    order, each giving min(remaining demand, lot quantity). The sale is
    refused before any lot changes when the lots together hold less than
    the demand, so no lot ever goes negative.

    Returns a list of (lot, deducted_quantity) pairs in consumption order.
    """
    _check_product_unit(product, product_unit)
    quantity = _check_positive(quantity)

    with transaction.atomic():
        lots = list(
            Inventory.objects.select_for_update()
            .filter(product=product, product_unit=product_unit, quantity__gt=0)
            .order_by(*fefo_ordering())
        )
        available = sum((lot.quantity for lot in lots), ZERO)
        if available < quantity:
            raise InsufficientStockError(product_unit, quantity, available)

        remaining = quantity
        deductions = []
        for lot in lots:
            if remaining <= 0:
                break
            take = min(remaining, lot.quantity)
            lot.quantity -= take
            lot.save(update_fields=['quantity', 'updated_at'])
            deductions.append((lot, take))
            remaining -= take

    logger.debug(f"Deducted {quantity} x {product_unit.id} from lots {[lot.id for lot, _ in deductions]}")
    return deductions


def restock_returned(product, product_unit, quantity, allocations=None):
    """
    Put sold stock back, e.g. when an invoice is cancelled.

    allocations are the (inventory id, quantity) pairs recorded at sale time;
    each part goes back to its original lot while that lot exists. Anything
    left goes to the product unit's first lot in FEFO order, or to a new lot
    without batch and expiry when none exists.
    """
    _check_product_unit(product, product_unit)
    quantity = _check_positive(quantity)
    remaining = quantity
    touched = []

    with transaction.atomic():
        for inventory_id, allocated in allocations or []:
            if remaining <= 0:
                break
            allocated = min(_as_decimal(allocated), remaining)
            lot = Inventory.objects.select_for_update().filter(
                pk=inventory_id, product=product, product_unit=product_unit
            ).first()
            if lot is None or allocated <= 0:
                continue
            lot.quantity += allocated
            lot.save(update_fields=['quantity', 'updated_at'])
            touched.append((lot, allocated))
            remaining -= allocated

        if remaining > 0:
            lot = (
                Inventory.objects.select_for_update()
                .filter(product=product, product_unit=product_unit)
                .order_by(*fefo_ordering())
                .first()
            )
            if lot is None:
                lot = Inventory.objects.create(
                    product=product,
                    product_unit=product_unit,
                    batch_number=None,
                    expiry_date=None,
                    quantity=remaining,
                )
            else:
                lot.quantity += remaining
                lot.save(update_fields=['quantity', 'updated_at'])
            touched.append((lot, remaining))

    return touched
