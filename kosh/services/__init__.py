from kosh.services.inventory_service import adjust_stock, receive_batch, transition_serial, verify_stock_consistency
from kosh.services.ledger_service import account_summary, entity_ledger, record_payment
from kosh.services.non_gst_service import create_non_gst_sale
from kosh.services.purchase_service import create_purchase, delete_purchase
from kosh.services.reference_service import generate_reference
from kosh.services.sales_service import create_sale, process_sales_return
from kosh.services.user_service import ensure_default_admin

__all__ = [
    "account_summary",
    "adjust_stock",
    "create_non_gst_sale",
    "create_purchase",
    "create_sale",
    "delete_purchase",
    "ensure_default_admin",
    "entity_ledger",
    "generate_reference",
    "process_sales_return",
    "receive_batch",
    "record_payment",
    "transition_serial",
    "verify_stock_consistency",
]
