from decimal import Decimal

from django.core.exceptions import PermissionDenied
from django.test import TestCase

from trading.models import Agency, Staff, Transaction, Warehouse
from trading.sales import LoadLine, SaleLine, direct_sale, load_to_custody
from trading.services import (
    Line, StockError, TradingError, audit_warehouse, create_staff, delete_agency, delete_product, delete_staff,
    money, post_transaction, record_opening_stock, set_stock, split_payment, stock_level,
    supply_stock, take_stock, toggle_pricing, visible_customers, visible_warehouses,
)

from .factories import (
    make_agency, make_customer, make_product, make_rep, make_staff, make_supplier, make_warehouse, stocked,
)


class PaymentSplitTests(TestCase):
    def test_cash_pays_everything(self):
        self.assertEqual(split_payment(Decimal("120.50"), Transaction.CASH), (Decimal("120.50"), Decimal("0.00")))

    def test_credit_pays_nothing(self):
        self.assertEqual(split_payment(100, Transaction.CREDIT, 40), (Decimal("0.00"), Decimal("100.00")))

    def test_partial_uses_given_amount(self):
        self.assertEqual(split_payment(100, Transaction.PARTIAL, "30.005"), (Decimal("30.01"), Decimal("69.99")))

    def test_unknown_type(self):
        with self.assertRaises(TradingError):
            split_payment(100, "BARTER")

    def test_money_rounds_half_up(self):
        self.assertEqual(money("2.345"), Decimal("2.35"))
        self.assertEqual(money(None), Decimal("0.00"))


class PostTransactionTests(TestCase):
    def setUp(self):
        self.agency = make_agency()

    def test_rejects_broken_amounts(self):
        with self.assertRaises(TradingError):
            post_transaction(type=Transaction.SALE, total_amount=100, paid_amount=60,
                             remaining_amount=30, agency=self.agency)
        self.assertFalse(Transaction.objects.exists())

    def test_saves_items(self):
        product = make_product(self.agency)
        tx = post_transaction(type=Transaction.SALE, total_amount=50, paid_amount=20, remaining_amount=30,
                              agency=self.agency, lines=[Line(product, 5, Decimal("10"), Decimal("6"))])
        self.assertEqual(tx.items.count(), 1)
        self.assertEqual(tx.items.get().line_total, Decimal("50.00"))
        self.assertEqual(tx.paid_amount + tx.remaining_amount, tx.total_amount)


class StockTests(TestCase):
    def setUp(self):
        self.agency = make_agency()
        self.admin = make_staff(Staff.ADMIN)
        self.wh = make_warehouse(self.agency)
        self.product = make_product(self.agency)

    def test_set_stock_logs_adjustments(self):
        set_stock(staff=self.admin, warehouse=self.wh, product=self.product, quantity=5)
        set_stock(staff=self.admin, warehouse=self.wh, product=self.product, quantity=2)
        self.assertEqual(stock_level(self.wh, self.product), 2)

        up, down = Transaction.objects.filter(source=Transaction.STOCK_ADJUSTMENT).order_by("id")
        self.assertEqual((up.type, up.total_amount, up.paid_amount), (Transaction.PURCHASE, Decimal("300.00"), 0))
        self.assertEqual((down.type, down.total_amount, down.remaining_amount),
                         (Transaction.SALE, Decimal("180.00"), Decimal("180.00")))

    def test_set_stock_same_quantity_logs_nothing(self):
        set_stock(staff=self.admin, warehouse=self.wh, product=self.product, quantity=0)
        self.assertFalse(Transaction.objects.exists())

    def test_set_stock_updates_base_prices(self):
        set_stock(staff=self.admin, warehouse=self.wh, product=self.product, quantity=1,
                  factory_price="65", update_base_price=True, retail_price="110")
        self.product.refresh_from_db()
        self.assertEqual(self.product.factory_price, Decimal("65.00"))
        self.assertEqual(self.product.retail_price, Decimal("110.00"))

    def test_supply_adds(self):
        stocked(self.wh, self.product, 4)
        supply_stock(staff=self.admin, warehouse=self.wh, product=self.product, added=6)
        self.assertEqual(stock_level(self.wh, self.product), 10)

    def test_supply_must_be_positive(self):
        with self.assertRaises(StockError):
            supply_stock(staff=self.admin, warehouse=self.wh, product=self.product, added=0)

    def test_take_more_than_held(self):
        stocked(self.wh, self.product, 3)
        with self.assertRaises(StockError):
            take_stock(self.wh, self.product, 4)
        self.assertEqual(stock_level(self.wh, self.product), 3)

    def test_audit_overwrites_counts(self):
        other = make_product(self.agency)
        stocked(self.wh, self.product, 9)
        n = audit_warehouse(self.wh, [(self.product, 7), (other, 2)])
        self.assertEqual(n, 2)
        self.assertEqual(stock_level(self.wh, self.product), 7)
        self.assertEqual(stock_level(self.wh, other), 2)

    def test_opening_stock(self):
        tx = record_opening_stock(staff=self.admin, warehouse=self.wh, product=self.product, quantity=4)
        self.assertEqual(tx.type, Transaction.INITIAL_STOCK)
        self.assertEqual(tx.total_amount, Decimal("240.00"))
        self.assertEqual(tx.remaining_amount, tx.total_amount)
        self.assertEqual(stock_level(self.wh, self.product), 4)


class StaffTests(TestCase):
    def setUp(self):
        self.agency = make_agency()
        self.admin = make_staff(Staff.ADMIN)

    def test_rep_gets_custody_warehouse(self):
        rep = make_rep(self.agency, admin=self.admin)
        custody = Warehouse.objects.get(pk=rep.pk)
        self.assertTrue(custody.is_custody)
        self.assertEqual(custody.agency, self.agency)
        self.assertEqual(rep.agency, self.agency)

    def test_rep_needs_agency(self):
        with self.assertRaises(TradingError):
            create_staff(staff=self.admin, username="lonely", password="x", role=Staff.SALES_REPRESENTATIVE)

    def test_duplicate_username(self):
        make_staff(Staff.ACCOUNTANT, username="taken")
        with self.assertRaises(TradingError):
            create_staff(staff=self.admin, username="taken", password="x", role=Staff.ACCOUNTANT)

    def test_only_privileged_create(self):
        clerk = make_staff(Staff.ACCOUNTANT, agency=self.agency)
        with self.assertRaises(PermissionDenied):
            create_staff(staff=clerk, username="new", password="x", role=Staff.ACCOUNTANT)

    def test_delete_removes_custody(self):
        rep = make_rep(self.agency, admin=self.admin)
        delete_staff(rep, staff=self.admin)
        self.assertFalse(Warehouse.objects.filter(pk=rep.pk).exists())

    def test_toggle_pricing(self):
        rep = make_rep(self.agency, admin=self.admin)
        self.assertEqual(toggle_pricing(rep, staff=self.admin).pricing_type, Staff.WHOLESALE)
        self.assertEqual(toggle_pricing(rep, staff=self.admin).pricing_type, Staff.RETAIL)


class VisibilityTests(TestCase):
    def setUp(self):
        self.a, self.b = make_agency(), make_agency()
        self.admin = make_staff(Staff.ADMIN)
        self.wa, self.wb = make_warehouse(self.a), make_warehouse(self.b)
        self.rep = make_rep(self.a, admin=self.admin)

    def test_custody_hidden(self):
        self.assertEqual(set(visible_warehouses(self.admin)), {self.wa, self.wb})

    def test_keeper_sees_assigned(self):
        second = make_warehouse(self.a)
        keeper = make_staff(Staff.WAREHOUSE_KEEPER, agency=self.a, warehouse=second)
        self.assertEqual(list(visible_warehouses(keeper)), [second])

    def test_restricted_staff_sees_own_agency(self):
        clerk = make_staff(Staff.ACCOUNTANT, agency=self.b)
        self.assertEqual(list(visible_warehouses(clerk)), [self.wb])

    def test_rep_sees_own_customers(self):
        mine = make_customer(self.a, rep=self.rep)
        make_customer(self.a)
        self.assertEqual(list(visible_customers(self.rep)), [mine])


class ProductTests(TestCase):
    def test_product_on_transactions_is_kept(self):
        agency = make_agency()
        admin = make_staff(Staff.ADMIN)
        product = make_product(agency, supplier=make_supplier(agency))
        post_transaction(type=Transaction.SALE, total_amount=10, paid_amount=10, remaining_amount=0,
                         agency=agency, lines=[Line(product, 1, Decimal("10"))])
        with self.assertRaises(TradingError):
            delete_product(product, staff=admin)


class AgencyDeleteTests(TestCase):
    def setUp(self):
        self.admin = make_staff(Staff.ADMIN)
        self.north = make_agency("North")
        self.south = make_agency("South")

    def test_plain_agency_goes(self):
        delete_agency(self.south, staff=self.admin)
        self.assertFalse(Agency.objects.filter(pk=self.south.pk).exists())

    def test_product_sold_to_another_agency_keeps_it(self):
        wh = make_warehouse(self.north)
        product = stocked(wh, make_product(self.north), 20)
        rep = make_rep(self.north, admin=self.admin)
        load_to_custody(staff=self.admin, rep=rep, warehouse=wh, lines=[LoadLine(product, 1, 0)])
        direct_sale(rep=rep, customer=make_customer(self.south), lines=[SaleLine(product, 2)])

        with self.assertRaises(TradingError):
            delete_agency(self.north, staff=self.admin)
        self.assertTrue(Agency.objects.filter(pk=self.north.pk).exists())
