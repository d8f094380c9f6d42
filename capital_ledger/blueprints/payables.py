"""Payables API - capital payments and payable balances per store (JSON)."""
from flask import Blueprint, request, jsonify, current_app
from typing import Optional

from capital_ledger.database import get_session
from capital_ledger.exceptions import BusinessLogicError, InvalidAmountError, StoreNotFoundError
from capital_ledger.services.ledger_store import SqlLedgerStore
from capital_ledger.services.allocation_service import apply_payment
from capital_ledger.services.balance_service import get_balance, get_product_summary, list_payments
from capital_ledger.utils.formatters import describe_payment
from capital_ledger.utils.number_format import parse_money

payables_bp = Blueprint('payables', __name__, url_prefix='/api/payables')


def _parse_int(value, default: Optional[int] = None) -> Optional[int]:
    """Safely parse integer from string."""
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def _resolve_store(ledger, payload=None) -> int:
    """Read store_id from the JSON body or query string and check it exists."""
    raw = (payload or {}).get('store_id', request.args.get('store_id'))
    store_id = _parse_int(raw)
    if store_id is None:
        raise BusinessLogicError('store_id is required')
    if not ledger.store_exists(store_id):
        raise StoreNotFoundError(store_id)
    return store_id


def _payment_result_dict(result) -> dict:
    return {
        'paymentId': result.payment_id,
        'amount': result.amount,
        'remaining': result.remaining,
        'allocations': [
            {
                'entryId': a.entry_id,
                'item': a.item,
                'qty': str(a.qty),
                'costPrice': a.cost_price,
                'amount': a.amount,
            }
            for a in result.allocations
        ],
    }


@payables_bp.route('/summary')
def summary():
    """Store payable totals."""
    ledger = SqlLedgerStore(get_session())
    store_id = _resolve_store(ledger)
    return jsonify(get_balance(ledger, store_id).to_dict())


@payables_bp.route('/products')
def products():
    """Per-product payable breakdown."""
    ledger = SqlLedgerStore(get_session())
    store_id = _resolve_store(ledger)
    rows = get_product_summary(ledger, store_id)
    return jsonify({'data': [r.to_dict() for r in rows]})


@payables_bp.route('/payments', methods=['GET'])
def payments_list():
    """Recent capital payments."""
    ledger = SqlLedgerStore(get_session())
    store_id = _resolve_store(ledger)
    limit = _parse_int(request.args.get('limit'), current_app.config.get('PAYMENTS_LIST_LIMIT', 50))
    rows = list_payments(ledger, store_id, limit=limit)
    return jsonify({'data': [r.to_dict() for r in rows]})


@payables_bp.route('/payments', methods=['POST'])
def payments_create():
    """Record a capital payment and settle the oldest debts with it."""
    payload = request.get_json(silent=True) or {}
    ledger = SqlLedgerStore(get_session())
    store_id = _resolve_store(ledger, payload)

    decimals = current_app.config.get('CURRENCY_DECIMALS', 0)
    try:
        amount = parse_money(payload.get('amount'), decimals)
    except ValueError:
        raise InvalidAmountError(payload.get('amount'))

    note = str(payload.get('note') or '').strip() or None

    result = apply_payment(
        ledger,
        amount=amount,
        store_id=store_id,
        note=note,
        sender=payload.get('sender'),
        raw=payload.get('raw'),
        timeout=current_app.config.get('LEDGER_TIMEOUT_SECONDS')
    )
    balance = get_balance(ledger, store_id)

    current_app.logger.info(f"Payment {result.payment_id} recorded for store {store_id} via API")

    reply = describe_payment(
        result,
        balance,
        symbol=current_app.config.get('CURRENCY_SYMBOL', 'Rp'),
        decimals=decimals,
        max_lines=current_app.config.get('PAYMENT_REPLY_MAX_LINES', 10)
    )
    return jsonify({
        'result': _payment_result_dict(result),
        'summary': balance.to_dict(),
        'reply': reply,
    }), 201
