# Overview: Enumerations shared by models, calculators and services.

# =============================================================================
# INVOICES
# =============================================================================

INVOICE_STATUS_PENDING = "pending"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_OVERDUE = "overdue"
INVOICE_STATUS_CANCELLED = "cancelled"

VALID_INVOICE_STATUSES = [
    INVOICE_STATUS_PENDING,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_CANCELLED,
]

DIRECTION_TO_CUSTOMER = "to_customer"
DIRECTION_TO_AGENT = "to_agent"  # company owes the agent
DIRECTION_FROM_AGENT = "from_agent"  # agent owes the company

VALID_DIRECTIONS = [
    DIRECTION_TO_CUSTOMER,
    DIRECTION_TO_AGENT,
    DIRECTION_FROM_AGENT,
]

# =============================================================================
# LINE ITEMS
# =============================================================================

UNIT_TYPE_FIXED = "fixed"
UNIT_TYPE_PERCENT = "percent"
UNIT_TYPE_KG = "kg"

VALID_UNIT_TYPES = [UNIT_TYPE_FIXED, UNIT_TYPE_PERCENT, UNIT_TYPE_KG]

VALID_ITEM_TYPES = [
    "freight",
    "customs",
    "handling",
    "insurance",
    "duty",
    "transit",
    "other",
]

# =============================================================================
# PAYMENTS
# =============================================================================

METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CASH = "cash"
METHOD_MOBILE_MONEY = "mobile_money"
METHOD_CARD = "card"

VALID_PAYMENT_METHODS = [
    METHOD_BANK_TRANSFER,
    METHOD_CASH,
    METHOD_MOBILE_MONEY,
    METHOD_CARD,
]

VERIFICATION_PENDING = "pending"
VERIFICATION_VERIFIED = "verified"
VERIFICATION_REJECTED = "rejected"

VALID_VERIFICATION_STATUSES = [
    VERIFICATION_PENDING,
    VERIFICATION_VERIFIED,
    VERIFICATION_REJECTED,
]

# =============================================================================
# SETTLEMENTS
# =============================================================================

SETTLEMENT_PAYMENT_TO_AGENT = "payment_to_agent"  # settles to_agent invoices
SETTLEMENT_COLLECTION_FROM_AGENT = "collection_from_agent"  # settles from_agent invoices

VALID_SETTLEMENT_TYPES = [SETTLEMENT_PAYMENT_TO_AGENT, SETTLEMENT_COLLECTION_FROM_AGENT]

SETTLEMENT_PENDING = "pending"
SETTLEMENT_APPROVED = "approved"
SETTLEMENT_PAID = "paid"
SETTLEMENT_CANCELLED = "cancelled"

VALID_SETTLEMENT_STATUSES = [
    SETTLEMENT_PENDING,
    SETTLEMENT_APPROVED,
    SETTLEMENT_PAID,
    SETTLEMENT_CANCELLED,
]

# =============================================================================
# ESTIMATES
# =============================================================================

ESTIMATE_PENDING = "pending"
ESTIMATE_APPROVED = "approved"
ESTIMATE_REJECTED = "rejected"
ESTIMATE_CONVERTED = "converted"

VALID_ESTIMATE_STATUSES = [
    ESTIMATE_PENDING,
    ESTIMATE_APPROVED,
    ESTIMATE_REJECTED,
    ESTIMATE_CONVERTED,
]

VALID_ORIGIN_REGIONS = ["europe", "dubai", "china", "india", "usa", "uk"]

# =============================================================================
# JOURNAL ACCOUNTS
# =============================================================================

ACCOUNT_CASH_BASE = "1120"
ACCOUNT_CASH_USD = "1130"
ACCOUNT_CASH_GBP = "1140"
ACCOUNT_RECEIVABLE = "1210"
ACCOUNT_AGENT_PAYABLES = "2120"
ACCOUNT_SHIPPING_REVENUE = "4110"
ACCOUNT_AGENT_COST = "5200"

CASH_ACCOUNT_BY_CURRENCY = {
    "USD": ACCOUNT_CASH_USD,
    "GBP": ACCOUNT_CASH_GBP,
}
