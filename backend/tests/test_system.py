"""Health endpoint and CLI commands."""

from backoffice.cli import DEFAULT_ADMIN_EMAIL
from backoffice.extensions import db
from backoffice.models import Inventory, Product, User
from backoffice.time_utils import utcnow


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"]["status"] == "healthy"


class TestCli:
    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        assert first.exit_code == 0
        assert "Created admin" in first.output

        second = runner.invoke(args=["system", "init"])
        assert second.exit_code == 0
        assert "Using existing admin" in second.output

        admins = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).all()
        assert len(admins) == 1
        assert admins[0].role == "ADMIN"

    def test_users_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "users", "create",
            "--name", "Ana", "--email", "ana@example.com", "--password", "secret1", "--role", "MANAGER",
        ])
        assert result.exit_code == 0

        listing = runner.invoke(args=["users", "list"])
        assert "ana@example.com" in listing.output
        assert "MANAGER" in listing.output

    def test_users_create_rejects_short_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--name", "Ana", "--email", "ana@example.com", "--password", "123",
        ])
        assert result.exit_code != 0
        assert "at least 6" in result.output

    def test_low_stock_report(self, app, product):
        db.session.add(Inventory(product_id=product.id, quantity=2, min_stock=5,
                                 reserved_quantity=0, last_update=utcnow()))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert result.exit_code == 0
        assert "PROD-001" in result.output
        assert "1 product(s)" in result.output

    def test_reset_db_with_yes_drops_all_rows(self, app, product, admin_user):
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["system", "reset-db", "--yes"])

        assert result.exit_code == 0
        assert "Database reset complete" in result.output
        assert db.session.query(Product).count() == 0
        assert db.session.query(User).count() == 0

    def test_reset_db_refused_keeps_data(self, app, product):
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")

        assert result.exit_code != 0
        assert "Are you sure?" in result.output
        assert "Database reset complete" not in result.output
        assert db.session.query(Product).count() == 1
