# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - users.py: Profile setup and public profiles
# - conversations.py: Conversations, messages and offers
# - orders.py: Orders, dashboard stats and deliveries
# - payments.py: Stripe checkout and webhook
# - instagram.py: Instagram OAuth, media, oEmbed and manual posts
# - intake.py: Landing-page waitlist and signup endpoints
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import users
from . import conversations
from . import orders
from . import payments
from . import instagram
from . import intake

__all__ = [
    "health",
    "users",
    "conversations",
    "orders",
    "payments",
    "instagram",
    "intake",
]
