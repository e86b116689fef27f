import unittest
from datetime import date

from kosh.core.constants import BillType, EntityType, TransactionType
from kosh.core.exceptions import InvariantViolation, NotFoundError, OverpaymentError
from kosh.schemas.purchase import PurchaseCreate, PurchaseItemCreate
from kosh.schemas.sales import SaleCreate, SaleItemCreate
from kosh.schemas.transaction import NoteCreate, PaymentCreate
from kosh.services import ledger_service
from kosh.services.purchase_service import create_purchase
from kosh.services.sales_service import create_sale
from store_case import StoreTestCase


class CustomerLedgerTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.customer_id = self.add_customer(phone="9800000001")
        self.product_id = self.add_product("TV-1", quantity=5)
        with self.store.write_session() as db:
            sale = create_sale(
                db,
                SaleCreate(
                    customer_id=self.customer_id,
                    paid_amount=200,
                    sale_date=date(2025, 6, 1),
                    items=[SaleItemCreate(product_id=self.product_id, quantity=1, rate=1000)],
                ),
            )
            self.sale_id = sale.id
        with self.store.write_session() as db:
            self.payment = ledger_service.record_payment(
                db,
                PaymentCreate(
                    type=TransactionType.PAYMENT_IN,
                    amount=300,
                    bill_type=BillType.SALE,
                    bill_id=self.sale_id,
                    transaction_date=date(2025, 6, 5),
                ),
            )
            ledger_service.record_note(
                db,
                NoteCreate(
                    type=TransactionType.CREDIT_NOTE,
                    amount=100,
                    bill_type=BillType.SALE,
                    bill_id=self.sale_id,
                    transaction_date=date(2025, 6, 3),
                ),
            )

    def test_statement_orders_bill_before_same_day_payment(self):
        with self.store.read_session() as db:
            statement = ledger_service.entity_ledger(db, EntityType.CUSTOMER, self.customer_id)

        self.assertEqual(
            [row.kind for row in statement.rows],
            ["sale", "payment_in", "credit_note", "payment_in"],
        )
        self.assertEqual([row.balance for row in statement.rows], [1000, 800, 700, 400])
        self.assertEqual(statement.rows[0].debit, 1000)
        self.assertEqual(statement.rows[1].credit, 200)
        self.assertEqual(statement.closing_balance, 400)

    def test_statement_is_deterministic(self):
        with self.store.read_session() as db:
            first = ledger_service.entity_ledger(db, "customer", self.customer_id)
            second = ledger_service.entity_ledger(db, "customer", self.customer_id)
        self.assertEqual(first, second)

    def test_date_window_carries_opening_balance(self):
        with self.store.read_session() as db:
            statement = ledger_service.entity_ledger(
                db,
                EntityType.CUSTOMER,
                self.customer_id,
                start_date=date(2025, 6, 2),
                end_date=date(2025, 6, 4),
            )
        self.assertEqual(statement.opening_balance, 800)
        self.assertEqual([row.kind for row in statement.rows], ["credit_note"])
        self.assertEqual(statement.closing_balance, 700)

    def test_bill_balance_and_summary_agree(self):
        with self.store.read_session() as db:
            balance = ledger_service.bill_balance(db, BillType.SALE, self.sale_id)
            summary = ledger_service.account_summary(db, EntityType.CUSTOMER, self.customer_id)
            sale_paid = ledger_service.get_bill(db, BillType.SALE, self.sale_id).paid_amount

        self.assertEqual((balance.paid, balance.outstanding), (500, 400))
        self.assertEqual(sale_paid, 500)
        self.assertEqual(summary.total_billed, 1000)
        self.assertEqual(summary.total_bills, 1)
        self.assertEqual(summary.total_paid, 500)
        self.assertEqual(summary.total_credit_notes, 100)
        self.assertEqual(summary.outstanding_balance, 400)

    def test_overpayment_is_rejected(self):
        with self.assertRaises(OverpaymentError) as ctx:
            with self.store.write_session() as db:
                ledger_service.record_payment(
                    db,
                    PaymentCreate(amount=450, bill_type=BillType.SALE, bill_id=self.sale_id),
                )
        self.assertEqual(ctx.exception.outstanding, 400)

        with self.store.write_session() as db:
            ledger_service.record_payment(
                db,
                PaymentCreate(amount=450, bill_type=BillType.SALE, bill_id=self.sale_id, allow_overpayment=True),
            )
        with self.store.read_session() as db:
            self.assertEqual(ledger_service.bill_balance(db, BillType.SALE, self.sale_id).outstanding, -50)

    def test_payment_type_must_match_bill(self):
        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                ledger_service.record_payment(
                    db,
                    PaymentCreate(
                        type=TransactionType.PAYMENT_OUT,
                        amount=10,
                        bill_type=BillType.SALE,
                        bill_id=self.sale_id,
                    ),
                )

    def test_cancelled_payment_drops_out(self):
        with self.store.write_session() as db:
            cancelled = ledger_service.cancel_transaction(db, self.payment.id)
            self.assertEqual(cancelled.status, "cancelled")

        with self.store.read_session() as db:
            statement = ledger_service.entity_ledger(db, EntityType.CUSTOMER, self.customer_id)
            sale_paid = ledger_service.get_bill(db, BillType.SALE, self.sale_id).paid_amount
        self.assertEqual(statement.closing_balance, 700)
        self.assertEqual(sale_paid, 200)

        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                ledger_service.cancel_transaction(db, self.payment.id)

    def test_transaction_references_follow_their_counters(self):
        self.assertTrue(self.payment.reference_no.startswith("RCPT/"))
        self.assertTrue(self.payment.reference_no.endswith("/0000002"))


class SupplierLedgerTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.supplier_id = self.add_supplier()
        self.product_id = self.add_product("BAG-1")
        with self.store.write_session() as db:
            purchase = create_purchase(
                db,
                PurchaseCreate(
                    supplier_id=self.supplier_id,
                    reference_no="SUP-778",
                    date=date(2025, 7, 1),
                    items=[PurchaseItemCreate(product_id=self.product_id, quantity=10, rate=50)],
                ),
            )
            self.purchase_id = purchase.id

    def test_supplier_balance_is_what_the_shop_owes(self):
        with self.store.write_session() as db:
            ledger_service.record_payment(
                db,
                PaymentCreate(
                    type=TransactionType.PAYMENT_OUT,
                    amount=200,
                    bill_type=BillType.PURCHASE,
                    bill_id=self.purchase_id,
                    transaction_date=date(2025, 7, 2),
                ),
            )
            ledger_service.record_note(
                db,
                NoteCreate(
                    type=TransactionType.DEBIT_NOTE,
                    amount=50,
                    entity_type=EntityType.SUPPLIER,
                    entity_id=self.supplier_id,
                    transaction_date=date(2025, 7, 3),
                ),
            )

        with self.store.read_session() as db:
            statement = ledger_service.entity_ledger(db, EntityType.SUPPLIER, self.supplier_id)
            summary = ledger_service.account_summary(db, EntityType.SUPPLIER, self.supplier_id)
            balance = ledger_service.bill_balance(db, BillType.PURCHASE, self.purchase_id)

        self.assertEqual([row.balance for row in statement.rows], [500, 300, 250])
        self.assertEqual(summary.outstanding_balance, 250)
        self.assertEqual(summary.total_debit_notes, 50)
        # the debit note was not raised against the bill
        self.assertEqual(balance.outstanding, 300)

    def test_unknown_account(self):
        with self.store.read_session() as db:
            with self.assertRaises(NotFoundError):
                ledger_service.entity_ledger(db, EntityType.SUPPLIER, 999)

    def test_payment_needs_bill_or_party(self):
        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                ledger_service.record_payment(db, PaymentCreate(type=TransactionType.PAYMENT_OUT, amount=5))


if __name__ == "__main__":
    unittest.main()
