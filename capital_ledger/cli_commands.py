"""
Flask CLI commands for ledger maintenance.

Commands:
- flask init-db: Create all tables
- flask backfill-payables: Post payable entries for credit sales recorded without one
"""

import click
from capital_ledger import database
from capital_ledger.exceptions import BusinessLogicError
from capital_ledger.models import PayableEntry, StockTransaction, TransactionType
from capital_ledger.services.ledger_store import SqlLedgerStore
from capital_ledger.services.sale_posting_service import record_sale_debt


def find_unposted_sales(session, store_id=None):
    """OUT transactions with a known cost and no payable entry, oldest first."""
    query = (
        session.query(StockTransaction)
        .outerjoin(PayableEntry, PayableEntry.transaction_id == StockTransaction.id)
        .filter(
            StockTransaction.type == TransactionType.OUT,
            StockTransaction.cost_price.isnot(None),
            StockTransaction.cost_total.isnot(None),
            StockTransaction.product_id.isnot(None),
            PayableEntry.id.is_(None)
        )
    )
    if store_id is not None:
        query = query.filter(StockTransaction.store_id == store_id)
    return query.order_by(StockTransaction.created_at.asc(), StockTransaction.id.asc()).all()


def init_cli_commands(app):
    """Register CLI commands with Flask app."""
    
    @app.cli.command('init-db')
    def init_db_command():
        """Create all ledger tables."""
        database.create_tables()
        click.echo(click.style('✅ Tables created', fg='green'))
    
    @app.cli.command('backfill-payables')
    @click.option('--store-id', type=int, default=None, help='Only backfill this store')
    def backfill_payables(store_id):
        """Create payable entries for credit sales that never got one."""
        session = database.get_session()
        ledger = SqlLedgerStore(session)
        timeout = app.config.get('LEDGER_TIMEOUT_SECONDS')
        
        sales = find_unposted_sales(session, store_id)
        # Detach plain values first: each posting commits and expires the session
        pending = [(sale.id, sale.product_id) for sale in sales]
        
        posted = skipped = 0
        for sale_id, product_id in pending:
            sale = session.get(StockTransaction, sale_id)
            try:
                result = record_sale_debt(ledger, sale, sale.product, timeout=timeout)
            except BusinessLogicError as e:
                skipped += 1
                click.echo(click.style(f'⚠️  Sale #{sale_id}: {e.message}', fg='yellow'))
                continue
            
            if result is None:
                skipped += 1
                continue
            posted += 1
            click.echo(f'   Sale #{sale_id} -> entry #{result.entry_id} (outstanding {result.remaining})')
        
        click.echo(click.style(f'\n✅ Backfill done: {posted} posted, {skipped} skipped', fg='green', bold=True))
