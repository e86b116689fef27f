import unittest
from datetime import date

from sqlalchemy import select

from kosh.core.constants import SerialStatus
from kosh.core.exceptions import (
    ConstraintViolation,
    InsufficientStock,
    InvariantViolation,
    NotFoundError,
    OverpaymentError,
)
from kosh.models.batch import ProductBatch, ProductSerial
from kosh.models.purchase import PurchaseItem
from kosh.models.stock_adjustment import StockAdjustment
from kosh.models.transaction import Transaction
from kosh.schemas.purchase import PurchaseCreate, PurchaseItemCreate, PurchaseUpdate
from kosh.schemas.sales import SaleCreate, SaleItemCreate, SalesReturnCreate, SalesReturnItem, SaleUpdate
from kosh.services import inventory_service, ledger_service, purchase_service, sales_service
from kosh.services.shop_service import ensure_shop
from store_case import StoreTestCase


class LinePriceTest(unittest.TestCase):
    def test_inclusive_prices_ignore_gst(self):
        self.assertEqual(sales_service.line_price(100, 2, 10, 18, inclusive_tax=True), 180)

    def test_exclusive_prices_add_gst(self):
        self.assertEqual(sales_service.line_price(100, 2, 10, 18, inclusive_tax=False), 212.4)


class SaleTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.customer_id = self.add_customer()
        self.product_id = self.add_product("FAN-1", quantity=10)

    def _sale(self, **overrides):
        values = {
            "customer_id": self.customer_id,
            "items": [SaleItemCreate(product_id=self.product_id, quantity=2, rate=1500, gst_rate=18)],
        }
        values.update(overrides)
        with self.store.write_session() as db:
            return sales_service.create_sale(db, SaleCreate(**values))

    def _quantity(self):
        with self.store.read_session() as db:
            return inventory_service.get_product(db, self.product_id).quantity

    def test_sale_deducts_stock_and_numbers_invoice(self):
        sale = self._sale(paid_amount=3000)

        self.assertTrue(sale.reference_no.startswith("INV/"))
        self.assertTrue(sale.reference_no.endswith("/0000001"))
        self.assertEqual(sale.total_amount, 3000)
        self.assertEqual(sale.status, "completed")
        self.assertEqual([item.sr_no for item in sale.items], ["1"])
        self.assertEqual(self._quantity(), 8)
        with self.store.read_session() as db:
            payment = db.execute(select(Transaction)).scalars().one()
        self.assertEqual((payment.type, payment.bill_id, payment.amount), ("payment_in", sale.id, 3000))

    def test_quote_touches_neither_stock_nor_counter(self):
        quote = self._sale(is_quote=True, paid_amount=100)

        self.assertTrue(quote.reference_no.startswith("QUO/"))
        self.assertEqual(quote.status, "draft")
        self.assertEqual(quote.paid_amount, 0)
        self.assertEqual(self._quantity(), 10)
        self.assertTrue(self._sale().reference_no.endswith("/0000001"))

    def test_manual_reference_must_be_unique(self):
        self._sale(reference_no="OLD-17")
        with self.assertRaises(ConstraintViolation):
            self._sale(reference_no="OLD-17")
        self.assertEqual(self._quantity(), 8)

    def test_paid_more_than_total_is_rejected(self):
        with self.assertRaises(OverpaymentError):
            self._sale(paid_amount=5000)
        self.assertEqual(self._quantity(), 10)

    def test_exclusive_pricing_from_shop_profile(self):
        with self.store.write_session() as db:
            ensure_shop(db).inclusive_tax_pricing = False
        self.assertEqual(self._sale().total_amount, 3540)

    def test_backdated_sale_keeps_its_date(self):
        sale = self._sale(sale_date=date(2025, 1, 9))
        self.assertEqual(sale.created_at.date(), date(2025, 1, 9))

    def test_partial_return_restocks_and_issues_credit_note(self):
        sale = self._sale()
        line_id = sale.items[0].id

        with self.store.write_session() as db:
            note = sales_service.process_sales_return(
                db,
                sale.id,
                SalesReturnCreate(items=[SalesReturnItem(sale_item_id=line_id, quantity=1)]),
            )
        self.assertEqual(note.type, "credit_note")
        self.assertEqual(note.amount, 1500)
        self.assertTrue(note.reference_no.startswith("CN/"))
        self.assertEqual(self._quantity(), 9)

        with self.store.read_session() as db:
            self.assertEqual(sales_service.get_sale(db, sale.id).status, "partially_returned")

        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                sales_service.process_sales_return(
                    db,
                    sale.id,
                    SalesReturnCreate(items=[SalesReturnItem(sale_item_id=line_id, quantity=2)]),
                )

    def test_damaged_return_is_not_restocked(self):
        sale = self._sale()
        with self.store.write_session() as db:
            sales_service.process_sales_return(
                db,
                sale.id,
                SalesReturnCreate(
                    items=[SalesReturnItem(sale_item_id=sale.items[0].id, quantity=2, condition="damaged")]
                ),
            )
        self.assertEqual(self._quantity(), 8)
        with self.store.read_session() as db:
            self.assertEqual(sales_service.get_sale(db, sale.id).status, "returned")

    def test_unknown_customer(self):
        with self.assertRaises(NotFoundError):
            self._sale(customer_id=404)

    def test_return_credit_carries_header_discount(self):
        sale = self._sale(
            items=[SaleItemCreate(product_id=self.product_id, quantity=2, rate=100)],
            discount=20,
            paid_amount=180,
        )
        line_id = sale.items[0].id

        credits = []
        for _ in range(2):
            with self.store.write_session() as db:
                note = sales_service.process_sales_return(
                    db,
                    sale.id,
                    SalesReturnCreate(items=[SalesReturnItem(sale_item_id=line_id, quantity=1)]),
                )
                credits.append(note.amount)

        self.assertEqual(credits, [90, 90])
        with self.store.read_session() as db:
            balance = ledger_service.bill_balance(db, "sale", sale.id)
            statement = ledger_service.entity_ledger(db, "customer", self.customer_id)
        # the shop owes back exactly what was paid
        self.assertEqual(balance.outstanding, -180)
        self.assertEqual(statement.closing_balance, -180)

    def test_update_replaces_lines_and_posts_extra_payment(self):
        sale = self._sale(paid_amount=3000)

        with self.store.write_session() as db:
            updated = sales_service.update_sale(
                db,
                sale.id,
                SaleUpdate(
                    customer_id=self.customer_id,
                    paid_amount=4500,
                    items=[SaleItemCreate(product_id=self.product_id, quantity=3, rate=1500)],
                ),
            )
            self.assertEqual(updated.reference_no, sale.reference_no)
            self.assertEqual((updated.total_amount, updated.paid_amount), (4500, 4500))
            self.assertEqual([item.quantity for item in updated.items], [3])

        self.assertEqual(self._quantity(), 7)
        with self.store.read_session() as db:
            payments = db.execute(select(Transaction).order_by(Transaction.id)).scalars().all()
            balance = ledger_service.bill_balance(db, "sale", sale.id)
        self.assertEqual([(p.type, p.amount) for p in payments], [("payment_in", 3000), ("payment_in", 1500)])
        self.assertEqual(balance.outstanding, 0)

    def test_update_refunds_lowered_payment(self):
        sale = self._sale(paid_amount=3000)

        with self.store.write_session() as db:
            updated = sales_service.update_sale(
                db,
                sale.id,
                SaleUpdate(
                    customer_id=self.customer_id,
                    paid_amount=1500,
                    items=[SaleItemCreate(product_id=self.product_id, quantity=1, rate=1500)],
                ),
            )
            self.assertEqual(updated.paid_amount, 1500)

        self.assertEqual(self._quantity(), 9)
        with self.store.read_session() as db:
            refund = db.execute(
                select(Transaction).where(Transaction.type == "payment_out")
            ).scalars().one()
            balance = ledger_service.bill_balance(db, "sale", sale.id)
            statement = ledger_service.entity_ledger(db, "customer", self.customer_id)
        self.assertEqual((refund.amount, refund.bill_id, refund.entity_id), (1500, sale.id, self.customer_id))
        self.assertEqual((balance.paid, balance.outstanding), (1500, 0))
        self.assertEqual(statement.closing_balance, 0)

    def test_failed_update_leaves_sale_and_stock(self):
        sale = self._sale()

        with self.assertRaises(InsufficientStock):
            with self.store.write_session() as db:
                sales_service.update_sale(
                    db,
                    sale.id,
                    SaleUpdate(items=[SaleItemCreate(product_id=self.product_id, quantity=11, rate=1500)]),
                )

        self.assertEqual(self._quantity(), 8)
        with self.store.read_session() as db:
            self.assertEqual(sales_service.get_sale(db, sale.id).items[0].quantity, 2)

    def test_sale_with_returns_cannot_be_edited(self):
        sale = self._sale()
        with self.store.write_session() as db:
            sales_service.process_sales_return(
                db,
                sale.id,
                SalesReturnCreate(items=[SalesReturnItem(sale_item_id=sale.items[0].id, quantity=1)]),
            )

        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                sales_service.update_sale(
                    db,
                    sale.id,
                    SaleUpdate(items=[SaleItemCreate(product_id=self.product_id, quantity=1, rate=1500)]),
                )


class BatchSaleTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.product_id = self.add_product("CURD-1", tracking_type="batch")
        with self.store.write_session() as db:
            product = inventory_service.get_product(db, self.product_id)
            first = inventory_service.receive_batch(db, product, 3, expiry_date=date(2026, 5, 1))
            second = inventory_service.receive_batch(db, product, 3, expiry_date=date(2026, 6, 1))
            self.first_id, self.second_id = first.id, second.id

    def test_sale_spanning_two_lots_records_a_line_per_lot(self):
        with self.store.write_session() as db:
            sale = sales_service.create_sale(
                db, SaleCreate(items=[SaleItemCreate(product_id=self.product_id, quantity=5, rate=100)])
            )
            lines = [(item.sr_no, item.batch_id, item.quantity, item.price) for item in sale.items]
            self.assertEqual(sale.total_amount, 500)

        self.assertEqual(lines, [("1", self.first_id, 3, 300), ("2", self.second_id, 2, 200)])
        with self.store.read_session() as db:
            self.assertEqual(inventory_service.get_product(db, self.product_id).quantity, 1)

        with self.store.write_session() as db:
            sales_service.process_sales_return(
                db,
                sale.id,
                SalesReturnCreate(items=[SalesReturnItem(sale_item_id=sale.items[1].id, quantity=2)]),
            )
        with self.store.read_session() as db:
            self.assertEqual(inventory_service.get_batch(db, self.second_id).quantity, 3)
            self.assertEqual(inventory_service.verify_stock_consistency(db), [])

    def test_split_price_keeps_the_line_total(self):
        self.assertEqual(sales_service.split_price(100, 3, [1, 1, 1]), [33.33, 33.33, 33.34])


class SerialSaleTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.product_id = self.add_product("LAPTOP-1", tracking_type="serial")
        with self.store.write_session() as db:
            product = inventory_service.get_product(db, self.product_id)
            inventory_service.receive_batch(db, product, 2, serial_numbers=["SN-A", "SN-B"], cost_price=40000)
            self.serial_id = inventory_service.list_available_serials(db, self.product_id)[0].id

    def test_serial_sale_and_restocking_return(self):
        with self.store.write_session() as db:
            sale = sales_service.create_sale(
                db,
                SaleCreate(
                    items=[
                        SaleItemCreate(
                            product_id=self.product_id, quantity=1, rate=52000, serial_id=self.serial_id
                        )
                    ]
                ),
            )
        self.assertEqual(sale.items[0].serial_id, self.serial_id)
        self.assertIsNotNone(sale.items[0].batch_id)

        with self.store.read_session() as db:
            traces = inventory_service.trace_serial(db, "SN-A")
        self.assertEqual(traces[0].sale_ref, sale.reference_no)
        self.assertEqual(traces[0].serial.status, SerialStatus.SOLD)

        with self.store.write_session() as db:
            sales_service.process_sales_return(
                db, sale.id, SalesReturnCreate(items=[SalesReturnItem(sale_item_id=sale.items[0].id)])
            )

        with self.store.read_session() as db:
            serial = db.get(ProductSerial, self.serial_id)
            product = inventory_service.get_product(db, self.product_id)
            self.assertEqual(serial.status, "available")
            self.assertEqual(product.quantity, 2)
            self.assertEqual(inventory_service.verify_stock_consistency(db), [])

    def test_update_swaps_the_sold_serial(self):
        with self.store.write_session() as db:
            sale = sales_service.create_sale(
                db,
                SaleCreate(
                    items=[SaleItemCreate(product_id=self.product_id, quantity=1, rate=52000, serial_id=self.serial_id)]
                ),
            )
            other_id = inventory_service.list_available_serials(db, self.product_id)[0].id

        with self.store.write_session() as db:
            updated = sales_service.update_sale(
                db,
                sale.id,
                SaleUpdate(items=[SaleItemCreate(product_id=self.product_id, quantity=1, rate=51000, serial_id=other_id)]),
            )
            self.assertEqual([item.serial_id for item in updated.items], [other_id])

        with self.store.read_session() as db:
            self.assertEqual(db.get(ProductSerial, self.serial_id).status, "available")
            self.assertEqual(db.get(ProductSerial, other_id).status, "sold")
            self.assertEqual(inventory_service.get_product(db, self.product_id).quantity, 1)
            self.assertEqual(inventory_service.verify_stock_consistency(db), [])


class PurchaseTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.supplier_id = self.add_supplier()
        self.plain_id = self.add_product("CABLE-1")
        self.serial_id = self.add_product("ROUTER-1", tracking_type="serial")

    def _purchase(self, **overrides):
        values = {
            "supplier_id": self.supplier_id,
            "reference_no": "SUP-1001",
            "date": date(2025, 8, 1),
            "items": [
                PurchaseItemCreate(product_id=self.plain_id, quantity=10, rate=50),
                PurchaseItemCreate(
                    product_id=self.serial_id,
                    quantity=2,
                    rate=2000,
                    batch_number="LOT-9",
                    serial_numbers="R-1\nR-2",
                ),
            ],
        }
        values.update(overrides)
        with self.store.write_session() as db:
            return purchase_service.create_purchase(db, PurchaseCreate(**values))

    def test_purchase_receives_stock(self):
        purchase = self._purchase(paid_amount=1000)

        self.assertTrue(purchase.internal_ref_no.startswith("BILL/"))
        self.assertEqual(purchase.total_amount, 4500)
        with self.store.read_session() as db:
            plain = inventory_service.get_product(db, self.plain_id)
            tracked = inventory_service.get_product(db, self.serial_id)
            item = db.execute(
                select(PurchaseItem).where(PurchaseItem.product_id == self.serial_id)
            ).scalars().one()
            batch = db.execute(select(ProductBatch)).scalars().one()
        self.assertEqual((plain.quantity, plain.average_purchase_price), (10, 50))
        self.assertEqual(tracked.quantity, 2)
        self.assertEqual(item.batch_uid, batch.batch_uid)
        self.assertEqual(item.serial_numbers, "R-1\nR-2")
        self.assertEqual(batch.purchase_id, purchase.id)
        self.assertEqual(batch.cost_price, 2000)

    def test_caller_supplied_id(self):
        purchase = self._purchase(id=500)
        self.assertEqual(purchase.id, 500)

        with self.assertRaises(ConstraintViolation):
            self._purchase(id=500, items=[PurchaseItemCreate(product_id=self.plain_id, quantity=1, rate=5)])

    def test_delete_keeps_batches_and_cancels_payments(self):
        purchase = self._purchase(paid_amount=1000)

        with self.store.write_session() as db:
            purchase_service.delete_purchase(db, purchase.id)

        with self.store.read_session() as db:
            batch = db.execute(select(ProductBatch)).scalars().one()
            items = db.execute(select(PurchaseItem)).scalars().all()
            payment = db.execute(select(Transaction)).scalars().one()
            with self.assertRaises(NotFoundError):
                purchase_service.get_purchase(db, purchase.id)
        self.assertIsNone(batch.purchase_id)
        self.assertEqual(items, [])
        self.assertEqual(payment.status, "cancelled")

    def test_delete_takes_received_stock_back(self):
        purchase = self._purchase()

        with self.store.write_session() as db:
            purchase_service.delete_purchase(db, purchase.id)

        with self.store.read_session() as db:
            plain = inventory_service.get_product(db, self.plain_id)
            tracked = inventory_service.get_product(db, self.serial_id)
            batch = db.execute(select(ProductBatch)).scalars().one()
            statuses = db.execute(select(ProductSerial.status)).scalars().all()
            entries = db.execute(select(StockAdjustment).order_by(StockAdjustment.id)).scalars().all()
            self.assertEqual(inventory_service.verify_stock_consistency(db), [])
        self.assertEqual((plain.quantity, tracked.quantity), (0, 0))
        self.assertFalse(batch.is_active)
        self.assertEqual(statuses, ["defective", "defective"])
        self.assertEqual(
            [(entry.category, entry.old_quantity, entry.new_quantity) for entry in entries],
            [("purchase_deleted", 10, 0), ("purchase_deleted", 2, 0)],
        )

    def test_delete_after_selling_untracked_units_goes_negative(self):
        purchase = self._purchase()
        with self.store.write_session() as db:
            sales_service.create_sale(
                db, SaleCreate(items=[SaleItemCreate(product_id=self.plain_id, quantity=3, rate=80)])
            )

        with self.store.write_session() as db:
            purchase_service.delete_purchase(db, purchase.id)

        with self.store.read_session() as db:
            self.assertEqual(inventory_service.get_product(db, self.plain_id).quantity, -3)

    def test_update_reenters_lines_and_reuses_lot(self):
        purchase = self._purchase(paid_amount=1000)
        with self.store.read_session() as db:
            lot_id = db.execute(select(ProductBatch.id)).scalar_one()

        with self.store.write_session() as db:
            updated = purchase_service.update_purchase(
                db,
                purchase.id,
                PurchaseUpdate(
                    supplier_id=self.supplier_id,
                    reference_no="SUP-1001A",
                    paid_amount=1300,
                    items=[
                        PurchaseItemCreate(product_id=self.plain_id, quantity=6, rate=50),
                        PurchaseItemCreate(
                            product_id=self.serial_id,
                            quantity=2,
                            rate=2000,
                            batch_number="LOT-9",
                            serial_numbers="R-1\nR-3",
                        ),
                    ],
                ),
            )
            self.assertEqual(updated.internal_ref_no, purchase.internal_ref_no)
            self.assertEqual((updated.reference_no, updated.total_amount), ("SUP-1001A", 4300))
            self.assertEqual(updated.paid_amount, 1300)

        with self.store.read_session() as db:
            batches = db.execute(select(ProductBatch)).scalars().all()
            serials = inventory_service.list_available_serials(db, self.serial_id)
            payments = db.execute(select(Transaction.amount).order_by(Transaction.id)).scalars().all()
            self.assertEqual(inventory_service.get_product(db, self.plain_id).quantity, 6)
            self.assertEqual(inventory_service.get_product(db, self.serial_id).quantity, 2)
            self.assertEqual(inventory_service.verify_stock_consistency(db), [])
        self.assertEqual([batch.id for batch in batches], [lot_id])
        self.assertEqual([serial.serial_number for serial in serials], ["R-1", "R-3"])
        self.assertEqual(payments, [1000, 300])

    def test_update_refused_once_a_serial_is_sold(self):
        purchase = self._purchase()
        with self.store.write_session() as db:
            serial = inventory_service.list_available_serials(db, self.serial_id)[0]
            sales_service.create_sale(
                db,
                SaleCreate(items=[SaleItemCreate(product_id=self.serial_id, quantity=1, rate=2500, serial_id=serial.id)]),
            )

        with self.assertRaises(InvariantViolation):
            with self.store.write_session() as db:
                purchase_service.update_purchase(
                    db,
                    purchase.id,
                    PurchaseUpdate(
                        supplier_id=self.supplier_id,
                        reference_no="SUP-1001",
                        items=[PurchaseItemCreate(product_id=self.plain_id, quantity=10, rate=50)],
                    ),
                )

        with self.store.read_session() as db:
            self.assertEqual(inventory_service.get_product(db, self.serial_id).quantity, 1)
            self.assertEqual(inventory_service.get_product(db, self.plain_id).quantity, 10)

    def test_unknown_supplier(self):
        with self.assertRaises(NotFoundError):
            self._purchase(supplier_id=999)


class BatchPurchaseUpdateTest(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.supplier_id = self.add_supplier()
        self.product_id = self.add_product("OIL-1", tracking_type="batch")
        with self.store.write_session() as db:
            purchase = purchase_service.create_purchase(
                db,
                PurchaseCreate(
                    supplier_id=self.supplier_id,
                    reference_no="OIL-77",
                    items=[PurchaseItemCreate(product_id=self.product_id, quantity=10, rate=120, batch_number="B1")],
                ),
            )
            self.purchase_id = purchase.id
            sales_service.create_sale(
                db, SaleCreate(items=[SaleItemCreate(product_id=self.product_id, quantity=4, rate=150)])
            )

    def _update(self, quantity):
        with self.store.write_session() as db:
            return purchase_service.update_purchase(
                db,
                self.purchase_id,
                PurchaseUpdate(
                    supplier_id=self.supplier_id,
                    reference_no="OIL-77",
                    items=[
                        PurchaseItemCreate(product_id=self.product_id, quantity=quantity, rate=120, batch_number="B1")
                    ],
                ),
            )

    def test_sold_units_stay_out_of_the_lot(self):
        self._update(12)

        with self.store.read_session() as db:
            batch = db.execute(select(ProductBatch)).scalars().one()
            self.assertEqual(batch.quantity, 8)
            self.assertEqual(inventory_service.get_product(db, self.product_id).quantity, 8)

    def test_receiving_fewer_than_were_sold_is_rejected(self):
        with self.assertRaises(InvariantViolation):
            self._update(3)

        with self.store.read_session() as db:
            self.assertEqual(inventory_service.get_product(db, self.product_id).quantity, 6)


if __name__ == "__main__":
    unittest.main()
