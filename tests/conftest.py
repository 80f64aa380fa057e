# Back office live-server test configuration and fixtures
#
# This module provides:
# - An ephemeral SQLite database per test run
# - A Flask server subprocess bound to that database
# - Seed users, a client and a catalog service, with pre-issued tokens
# - Failure message formatting

import os
import sys
import time
import tempfile
import subprocess
import shutil
from pathlib import Path
from typing import Generator, Optional, Dict, Any
from dataclasses import dataclass, field

import pytest
import httpx


REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"

TEST_PASSWORD = "TestPass123!"


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TestConfig:
    """Test configuration with environment variable overrides."""
    backend_base_url: str = os.environ.get("TEST_BACKEND_URL", "http://127.0.0.1:5001")
    port: int = int(os.environ.get("TEST_BACKEND_PORT", "5001"))

    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))
    server_startup_timeout: float = float(os.environ.get("TEST_SERVER_STARTUP_TIMEOUT", "30"))

    # Concurrency
    concurrent_workers: int = int(os.environ.get("TEST_CONCURRENT_WORKERS", "12"))


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class TestFailure(Exception):
    """
    Exception with a readable failure report.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    5. Code Location: Where to look in the codebase
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {self.likely_cause}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(
    response: httpx.Response,
    expected_status: int,
    scenario: str,
    code_location: str,
    expected_code: Optional[str] = None
):
    """
    Assert HTTP status and, optionally, the error code in the JSON body.
    Raises TestFailure with a detailed message on failure.
    """
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            code_location=code_location,
            response=response
        )

    if expected_code and response.json().get("code") != expected_code:
        raise TestFailure(
            scenario=scenario,
            expected=f"error code {expected_code}",
            actual=f"error code {response.json().get('code')}",
            likely_cause="Wrong ServiceError subclass raised",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    if response.status_code == 401:
        return "Authentication failed - token invalid/missing or session expired"
    elif response.status_code == 403:
        return "Not the sale's attendant and not an admin"
    elif response.status_code == 404:
        return "Resource not found - wrong ID"
    elif response.status_code == 400:
        return "Invalid request - validation, state or balance rule failed"
    elif response.status_code == 409:
        return "Conflict - duplicate resource"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT WITH AUTH HELPERS
# =============================================================================

class APIClient:
    """HTTP client wrapper holding one bearer token."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)
        self.token = token

    def _headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.get(f"{self.base_url}{path}", headers=self._headers(), params=params, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.post(f"{self.base_url}{path}", headers=self._headers(), json=json, **kwargs)

    def put(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.put(f"{self.base_url}{path}", headers=self._headers(), json=json, **kwargs)

    def close(self):
        self.client.close()


# =============================================================================
# SERVER MANAGEMENT
# =============================================================================

@dataclass
class SeedData:
    tokens: Dict[str, str] = field(default_factory=dict)
    client_id: int = 0
    service_id: int = 0


class ServerManager:
    """Manages the Flask server lifecycle for tests."""

    def __init__(self, config: TestConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.db_file: Optional[Path] = None

    @property
    def db_url(self) -> str:
        return f"sqlite:///{self.db_file}"

    def start(self) -> bool:
        temp_dir = tempfile.mkdtemp(prefix="backoffice_test_")
        self.db_file = Path(temp_dir) / "test_backoffice.sqlite3"

        env = os.environ.copy()
        env["DATABASE_URL"] = self.db_url
        env["BCRYPT_ROUNDS"] = "4"

        self.process = subprocess.Popen(
            [sys.executable, "-m", "flask", "--app", "backoffice", "run", "--port", str(self.config.port), "--with-threads"],
            cwd=str(BACKEND_DIR),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        return self._wait_for_server()

    def _wait_for_server(self) -> bool:
        start_time = time.time()
        while time.time() - start_time < self.config.server_startup_timeout:
            try:
                response = httpx.get(f"{self.config.backend_base_url}/health", timeout=2.0)
                if response.status_code in (200, 503):  # 503: running, tables not created yet
                    return True
            except (httpx.ConnectError, httpx.TimeoutException):
                pass
            time.sleep(0.5)
        return False

    def stop(self):
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None

        if self.db_file and self.db_file.parent.exists():
            shutil.rmtree(self.db_file.parent, ignore_errors=True)

    def initialize_db(self) -> SeedData:
        """Create the schema and seed rows directly, then issue session tokens."""
        from backoffice import create_app
        from backoffice.extensions import db
        from backoffice.models import Client, PriceRange, Service, User
        from backoffice.services.auth_service import hash_password
        from backoffice.services.session_service import create_session

        app = create_app({"SQLALCHEMY_DATABASE_URI": self.db_url, "BCRYPT_ROUNDS": 4})
        seed = SeedData()

        with app.app_context():
            db.create_all()

            users = {
                "admin": User(first_name="Admin", email="admin@backoffice.test", is_admin=True),
                "ana": User(first_name="Ana", email="ana@backoffice.test"),
                "bruno": User(first_name="Bruno", email="bruno@backoffice.test"),
            }
            for user in users.values():
                user.last_name = "Test"
                user.password_hash = hash_password(TEST_PASSWORD)
                user.is_active = True
            db.session.add_all(users.values())

            customer = Client(name="Maria Souza", is_active=True)
            service = Service(name="Atraso", pricing_mode="tiered", base_price_cents=0, is_active=True)
            service.price_ranges = [
                PriceRange(sale_type="common", min_quantity=1, max_quantity=5, unit_price_cents=3000),
                PriceRange(sale_type="common", min_quantity=6, max_quantity=None, unit_price_cents=2500),
                PriceRange(sale_type="package_sale", min_quantity=1, max_quantity=None, unit_price_cents=2200),
            ]
            db.session.add_all([customer, service])
            db.session.commit()

            seed.client_id = customer.id
            seed.service_id = service.id
            for key, user in users.items():
                _, token = create_session(user.id)
                seed.tokens[key] = token

            db.session.remove()
            db.engine.dispose()

        return seed


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    return TestConfig()


@pytest.fixture(scope="session")
def server_manager(test_config: TestConfig) -> Generator[ServerManager, None, None]:
    """Server is started once per test session."""
    manager = ServerManager(test_config)
    if not manager.start():
        manager.stop()
        pytest.fail("Failed to start test server")
    yield manager
    manager.stop()


@pytest.fixture(scope="session")
def seed(server_manager: ServerManager) -> SeedData:
    return server_manager.initialize_db()


@pytest.fixture
def make_client(test_config: TestConfig, seed: SeedData):
    """Factory for authenticated clients: make_client("ana")."""
    clients = []

    def _make(user_key: Optional[str] = None) -> APIClient:
        token = seed.tokens[user_key] if user_key else None
        api = APIClient(test_config.backend_base_url, token=token, timeout=test_config.request_timeout)
        clients.append(api)
        return api

    yield _make
    for api in clients:
        api.close()


@pytest.fixture
def admin_client(make_client) -> APIClient:
    return make_client("admin")


@pytest.fixture
def ana_client(make_client) -> APIClient:
    return make_client("ana")


@pytest.fixture
def bruno_client(make_client) -> APIClient:
    return make_client("bruno")


# =============================================================================
# TEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick smoke tests for critical paths")
    config.addinivalue_line("markers", "sales: Sales workflow tests")
    config.addinivalue_line("markers", "packages: Package balance tests")
    config.addinivalue_line("markers", "concurrent: Concurrency tests")
