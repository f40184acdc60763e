# =============================================================================
# lib/collections.py - Table Names
# =============================================================================
# Single source of truth for the tables used as document collections.
# =============================================================================

USERS = "users"
CONVERSATIONS = "conversations"
MESSAGES = "messages"
ORDERS = "orders"

# One row per order at slot "latest"; keyed by (order_id, slot)
ORDER_DELIVERIES = "order_deliveries"
DELIVERY_SLOT_LATEST = "latest"

INSTAGRAM_POSTS = "instagram_posts"

# Intake (append-only)
WAITLIST_BRANDS = "waitlist_brands"
WAITLIST_CREATORS = "waitlist_creators"
QUICK_SIGNUPS = "quick_signups"
EARLY_ACCESS_WAITLIST = "early_access_waitlist"
