# farmlink/config/constants.py

# -----------------------------
# ROLES
# -----------------------------

ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"

ROLES = (ROLE_BUYER, ROLE_SELLER, ROLE_ADMIN)
SELF_SERVICE_ROLES = (ROLE_BUYER, ROLE_SELLER)   # roles a user may register with
DEFAULT_AVAILABLE_ROLES = [ROLE_BUYER, ROLE_SELLER]

MIN_PASSWORD_LENGTH = 6

# -----------------------------
# CATALOG
# -----------------------------

CATEGORIES = (
    "Grains",
    "Vegetables",
    "Fruits",
    "Pulses",
    "Spices",
    "Dairy",
    "Organic",
    "Seeds",
    "Fertilizers",
    "Equipment",
)

UNITS = ("kg", "g", "quintal", "ton", "liter", "ml", "piece", "dozen", "bundle")
DEFAULT_UNIT = "kg"

# sort key -> mongo sort order
SORT_OPTIONS = {
    "newest": [("created_at", -1)],
    "price_asc": [("price", 1), ("created_at", -1)],
    "price_desc": [("price", -1), ("created_at", -1)],
    "rating": [("average_rating", -1), ("num_reviews", -1)],
    "popular": [("num_reviews", -1), ("average_rating", -1)],
}
DEFAULT_SORT = "newest"

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

# -----------------------------
# ORDERS
# -----------------------------

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

# forward-only progression; position = rank
ORDER_PROGRESSION = (
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
)
ORDER_STATUSES = ORDER_PROGRESSION + (ORDER_CANCELLED,)
ORDER_TERMINAL = (ORDER_DELIVERED, ORDER_CANCELLED)

# goods still with the seller; cancelling from here returns stock
ORDER_RESTOCKABLE = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_PROCESSING)

# statuses that make a buyer eligible to review ("completed" is a legacy value)
REVIEWABLE_ORDER_STATUSES = (ORDER_DELIVERED, "completed")

# -----------------------------
# BULK REQUESTS
# -----------------------------

BULK_PENDING = "pending"
BULK_NEGOTIATING = "negotiating"
BULK_ACCEPTED = "accepted"
BULK_REJECTED = "rejected"

BULK_RESPONSE_STATUSES = (BULK_NEGOTIATING, BULK_ACCEPTED, BULK_REJECTED)

# -----------------------------
# PAYMENTS
# -----------------------------

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

PAYMENT_METHOD_RAZORPAY = "razorpay"
PAYMENT_CURRENCY = "INR"

# -----------------------------
# REVIEWS / ADMIN
# -----------------------------

FLAGGED_REVIEW_MAX_RATING = 2
ADMIN_RECENT_LIMIT = 5
