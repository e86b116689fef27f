from enum import Enum


class TrackingType(str, Enum):
    NONE = "none"
    BATCH = "batch"
    SERIAL = "serial"


class SerialStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    RETURNED = "returned"
    DEFECTIVE = "defective"
    IN_REPAIR = "in_repair"


SERIAL_TRANSITIONS = {
    SerialStatus.AVAILABLE: frozenset(
        {SerialStatus.SOLD, SerialStatus.DEFECTIVE, SerialStatus.IN_REPAIR}
    ),
    SerialStatus.SOLD: frozenset({SerialStatus.RETURNED}),
    SerialStatus.RETURNED: frozenset({SerialStatus.AVAILABLE, SerialStatus.DEFECTIVE}),
    SerialStatus.DEFECTIVE: frozenset(),
    SerialStatus.IN_REPAIR: frozenset(),
}


class UserRole(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class EntityType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class BillType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class TransactionType(str, Enum):
    PAYMENT_IN = "payment_in"
    PAYMENT_OUT = "payment_out"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"


class ReferenceType(str, Enum):
    SALE = "S"
    NON_GST_SALE = "NGS"
    PURCHASE = "P"
    CREDIT_NOTE = "CN"
    DEBIT_NOTE = "DN"
    PAYMENT_IN = "PI"
    PAYMENT_OUT = "PO"


# counter column, fixed prefix (None -> shop.invoice_prefix)
REFERENCE_COUNTERS = {
    ReferenceType.SALE: ("sale_invoice_counter", None),
    ReferenceType.NON_GST_SALE: ("non_gst_sale_counter", "CSH"),
    ReferenceType.PURCHASE: ("purchase_bill_counter", "BILL"),
    ReferenceType.CREDIT_NOTE: ("credit_note_counter", "CN"),
    ReferenceType.DEBIT_NOTE: ("debit_note_counter", "DN"),
    ReferenceType.PAYMENT_IN: ("payment_in_counter", "RCPT"),
    ReferenceType.PAYMENT_OUT: ("payment_out_counter", "PAY"),
}

COUNTER_COLUMNS = tuple(column for column, _prefix in REFERENCE_COUNTERS.values())

TRANSACTION_REFERENCE_TYPES = {
    TransactionType.PAYMENT_IN: ReferenceType.PAYMENT_IN,
    TransactionType.PAYMENT_OUT: ReferenceType.PAYMENT_OUT,
    TransactionType.CREDIT_NOTE: ReferenceType.CREDIT_NOTE,
    TransactionType.DEBIT_NOTE: ReferenceType.DEBIT_NOTE,
}

SHOP_ID = 1
DEFAULT_FINANCIAL_YEAR_START = "01-04"
DEFAULT_INVOICE_PREFIX = "INV"
REFERENCE_PAD_WIDTH = 7
BATCH_UID_PREFIX = "BAT"
DEFAULT_BATCH_NUMBER = "DEFAULT"
DEFAULT_LOCATION = "Store"

STATUS_CANCELLED = "cancelled"
INACTIVE_BILL_STATUSES = ("cancelled", "refunded")

ALL_PERMISSIONS = "*"
