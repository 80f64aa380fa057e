from datetime import date

from backoffice.extensions import db
from backoffice.models import Holiday, Service, User
from backoffice.services import session_service


def test_health(client, db_session, attendant):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["details"]["users"] == 1
    assert body["checks"]["session_service"]["status"] == "healthy"


def test_unknown_route_is_404(client, db_session):
    assert client.get("/api/nope").status_code == 404


def test_cors_allows_configured_origin(app, client, db_session):
    previous = app.config["CORS_ALLOWED_ORIGINS"]
    app.config["CORS_ALLOWED_ORIGINS"] = {"http://localhost:5173"}
    try:
        allowed = client.get("/health", headers={"Origin": "http://localhost:5173"})
        assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        other = client.get("/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in other.headers
    finally:
        app.config["CORS_ALLOWED_ORIGINS"] = previous


class TestCli:
    def test_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--email", "root@backoffice.test"])
        assert result.exit_code == 0, result.output
        assert "PASS Created admin user" in result.output
        admin = db.session.query(User).filter_by(email="root@backoffice.test").one()
        assert admin.is_admin

        again = runner.invoke(args=["system", "init", "--email", "root@backoffice.test"])
        assert again.exit_code == 0
        assert "already exists" in again.output

    def test_init_rejects_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init", "--password", "weak"])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_seed_catalog_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["system", "seed-catalog"])
        result = runner.invoke(args=["system", "seed-catalog"])

        assert result.exit_code == 0
        names = sorted(s.name for s in db.session.query(Service).all())
        assert names == ["Atraso", "Reclamacao"]
        reclamacao = db.session.query(Service).filter_by(name="Reclamacao").one()
        assert reclamacao.pricing_mode == "progressive"

    def test_token_for_user(self, app, db_session, attendant):
        result = app.test_cli_runner().invoke(args=["users", "token", "--email", attendant.email])
        assert result.exit_code == 0, result.output
        token = result.output.splitlines()[0].strip()
        assert session_service.validate_session(token).user_id == attendant.id

    def test_token_for_unknown_user(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["users", "token", "--email", "ghost@backoffice.test"])
        assert result.exit_code == 1

    def test_holidays(self, app, db_session):
        runner = app.test_cli_runner()
        assert runner.invoke(args=["holidays", "add", "2026-12-25", "Natal"]).exit_code == 0
        assert runner.invoke(args=["holidays", "add", "2026-12-25", "Christmas"]).exit_code == 0
        assert runner.invoke(args=["holidays", "add", "25/12/2026", "Bad"]).exit_code == 1

        holiday = db.session.query(Holiday).one()
        assert holiday.date == date(2026, 12, 25)
        assert holiday.name == "Christmas"
        assert "Christmas" in runner.invoke(args=["holidays", "list"]).output
