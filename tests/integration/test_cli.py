"""
Integration tests for ledger CLI commands.
"""

from decimal import Decimal
from capital_ledger.models import PayableMode, StockTransaction, TransactionType


class TestBackfillPayables:

    def _sale(self, world, product_id, cost_price, qty=1, sale_type=TransactionType.OUT):
        sale_id = world.add_sale(product_id, qty=qty, cost_price=cost_price)
        if sale_type != TransactionType.OUT:
            sale = world.session.get(StockTransaction, sale_id)
            sale.type = sale_type
            world.session.commit()
        return sale_id

    def test_posts_missing_entries_for_store(self, app, sql_world):
        world = sql_world
        store = world.add_store()
        other = world.add_store('Other')
        product = world.add_product(store, name='Rice')
        cash_product = world.add_product(store, name='Water', mode=PayableMode.CASH)
        self._sale(world, product, 2000, qty=2)
        self._sale(world, cash_product, 500)
        self._sale(world, product, 1000, sale_type=TransactionType.IN)
        self._sale(world, world.add_product(other), 700)

        result = app.test_cli_runner().invoke(args=['backfill-payables', '--store-id', str(store)])

        assert result.exit_code == 0
        assert '1 posted' in result.output
        entries = world.entries(store)
        assert [(e.item, e.amount, e.qty) for e in entries] == [('Rice', 4000, Decimal('2'))]
        assert world.entries(other) == []

    def test_second_run_posts_nothing(self, app, sql_world):
        world = sql_world
        store = world.add_store()
        self._sale(world, world.add_product(store), 1500)
        runner = app.test_cli_runner()

        runner.invoke(args=['backfill-payables', '--store-id', str(store)])
        result = runner.invoke(args=['backfill-payables', '--store-id', str(store)])

        assert '0 posted' in result.output
        assert len(world.entries(store)) == 1

    def test_init_db(self, app):
        result = app.test_cli_runner().invoke(args=['init-db'])
        assert result.exit_code == 0
        assert 'Tables created' in result.output
