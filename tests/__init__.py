# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Lumo API:
# - conftest.py: In-memory store, fake storage and recording publisher
# - test_models.py: Unit tests for Pydantic model validation
# - test_*_service.py: Service tests against the in-memory fakes
# - test_routes.py / test_websocket.py: HTTP and WebSocket tests via TestClient
#
# Run tests with: pytest
# =============================================================================
