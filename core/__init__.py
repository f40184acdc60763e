# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the marketplace business logic:
# - models/: Pydantic schemas for data validation
# - services/: Conversations, orders, deliveries, intake, payments, Instagram
#
# Services receive their collaborators (store, storage, HTTP clients) in the
# constructor and raise app.exceptions errors; routers stay thin.
# =============================================================================
