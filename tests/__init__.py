# Back office end-to-end test suite
#
# This package contains:
# - API tests against a live server (pytest + httpx)
# - Stress/load tests (Locust)
#
# Run with: python -m pytest tests/api
# Unit and integration tests live in backend/tests.
