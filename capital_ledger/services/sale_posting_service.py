"""Sale posting policy - decides which stock-out sales create payable entries."""
import logging
from typing import Optional

from capital_ledger.exceptions import MissingCostError
from capital_ledger.models import PayableMode, TransactionType
from capital_ledger.services.allocation_service import DebtResult, record_debt

logger = logging.getLogger(__name__)


def _is_cash_mode(product) -> bool:
    mode = getattr(product, 'payable_mode', PayableMode.CREDIT)
    if isinstance(mode, PayableMode):
        return mode == PayableMode.CASH
    return str(mode or 'credit').lower() == PayableMode.CASH.value


def _is_stock_out(sale) -> bool:
    sale_type = sale.type
    if isinstance(sale_type, TransactionType):
        return sale_type == TransactionType.OUT
    return str(sale_type).upper() == TransactionType.OUT.value


def record_sale_debt(ledger, sale, product, timeout: Optional[float] = None) -> Optional[DebtResult]:
    """
    Post the payable entry for a persisted sale when its product is sold on credit.

    Steps:
    1. Only OUT transactions carry a cost owed to the capital fund
    2. Cash-mode products settle immediately: nothing to post
    3. Credit-mode sales must have a known cost
    4. A zero cost owes nothing: nothing to post
    5. record_debt in the product's own store

    Args:
        ledger: LedgerStore handle
        sale: Persisted StockTransaction (id, type, item, qty, cost_price, cost_total)
        product: Sold Product (id, store_id, payable_mode)

    Returns:
        DebtResult, or None when the sale creates no debt.

    Raises:
        MissingCostError: credit-mode sale without cost_price/cost_total
    """
    if not _is_stock_out(sale):
        return None

    if _is_cash_mode(product):
        logger.debug(f"[LEDGER] Sale {sale.id} of cash-mode product {product.id}: no payable entry")
        return None

    if sale.cost_price is None or sale.cost_total is None:
        raise MissingCostError(sale.item)

    if sale.cost_total == 0:
        logger.info(f"[LEDGER] Sale {sale.id} has zero cost: no payable entry")
        return None

    return record_debt(
        ledger,
        transaction_id=sale.id,
        product_id=product.id,
        item=sale.item,
        qty=sale.qty,
        cost_price=sale.cost_price,
        amount=sale.cost_total,
        store_id=product.store_id,
        timeout=timeout
    )
