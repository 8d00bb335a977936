"""
CLI command tests (flask <group> <command>).
"""

import pytest

from retailcore.errors import ForbiddenError, LockedError, UnauthorizedError
from retailcore.extensions import db
from retailcore.models import AuditRecord, RefreshToken, User
from retailcore.services import auth_service, inventory_service

from conftest import PASSWORD


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestBranchCommands:

    def test_create_and_list(self, runner):
        result = runner.invoke(args=["branches", "create", "--name", "Mumbai Central", "--code", "mum01"])
        assert result.exit_code == 0, result.output
        assert "OK Branch MUM01" in result.output

        listed = runner.invoke(args=["branches", "list"])
        assert "MUM01" in listed.output

    def test_invalid_code(self, runner):
        result = runner.invoke(args=["branches", "create", "--name", "Bad", "--code", "x"])
        assert result.exit_code != 0

    def test_deactivate_is_audited(self, runner, branch_a):
        result = runner.invoke(args=["branches", "set-active", "B1", "--inactive"])
        assert result.exit_code == 0, result.output

        assert runner.invoke(args=["branches", "list"]).output.strip() == ""
        record = db.session.query(AuditRecord).filter_by(action="branch.deactivate").one()
        assert record.risk_level == "critical"


class TestUserCommands:

    def test_create_cashier(self, runner, branch_a):
        result = runner.invoke(args=[
            "users", "create",
            "--email", "new.cashier@retail.test",
            "--full-name", "New Cashier",
            "--password", PASSWORD,
            "--role", "cashier",
            "--branch-id", str(branch_a.id),
        ])
        assert result.exit_code == 0, result.output
        user = db.session.query(User).filter_by(email="new.cashier@retail.test").one()
        assert user.role == "Cashier"

    def test_create_scoped_user_without_branch_fails(self, runner):
        result = runner.invoke(args=[
            "users", "create",
            "--email", "x@retail.test",
            "--full-name", "X",
            "--password", PASSWORD,
            "--role", "store manager",
        ])
        assert result.exit_code != 0
        assert "branch" in result.output

    def test_unlock(self, runner, cashier_a):
        for _ in range(5):
            with pytest.raises((UnauthorizedError, LockedError)):
                auth_service.login(cashier_a.email, "Wrong123!")

        result = runner.invoke(args=["users", "unlock", cashier_a.email])
        assert result.exit_code == 0, result.output
        auth_service.login(cashier_a.email, PASSWORD)

    def test_set_active(self, runner, cashier_a):
        auth_service.issue_tokens(cashier_a)

        result = runner.invoke(args=["users", "set-active", cashier_a.email, "--inactive"])
        assert result.exit_code == 0, result.output
        assert "deactivated" in result.output
        with pytest.raises(ForbiddenError):
            auth_service.login(cashier_a.email, PASSWORD)
        assert db.session.query(RefreshToken).filter_by(user_id=cashier_a.id).count() == 0

        result = runner.invoke(args=["users", "set-active", cashier_a.email])
        assert result.exit_code == 0, result.output
        auth_service.login(cashier_a.email, PASSWORD)

    def test_set_active_unknown_user(self, runner, app):
        result = runner.invoke(args=["users", "set-active", "nobody@retail.test"])
        assert result.exit_code != 0

    def test_revoke_tokens(self, runner, cashier_a):
        auth_service.issue_tokens(cashier_a)
        result = runner.invoke(args=["users", "revoke-tokens", cashier_a.email])
        assert "OK 1 refresh tokens revoked" in result.output


class TestPermissionCommands:

    def test_list_for_role(self, runner):
        result = runner.invoke(args=["perms", "list", "--role", "cashier"])
        assert result.exit_code == 0
        assert "sales.create" in result.output
        assert "sales.refund" not in result.output

    def test_check(self, runner, cashier_a):
        allow = runner.invoke(args=["perms", "check", cashier_a.email, "sales.create"])
        deny = runner.invoke(args=["perms", "check", cashier_a.email, "sales:refund"])
        assert allow.output.startswith("ALLOW")
        assert deny.output.startswith("DENY")

    def test_migrate_legacy(self, runner, cashier_a):
        db.session.query(User).filter_by(id=cashier_a.id).update(
            {"permissions": ["sales:read"]}, synchronize_session=False,
        )
        db.session.commit()

        result = runner.invoke(args=["perms", "migrate-legacy"])
        assert "OK 1 users migrated" in result.output


class TestInventoryCommands:

    def test_create_product_and_receive(self, runner, branch_a):
        created = runner.invoke(args=["products", "create", "--sku", "abc-1", "--name", "Widget", "--price-cents", "11800"])
        assert created.exit_code == 0, created.output

        received = runner.invoke(args=[
            "inventory", "receive", "--sku", "ABC-1", "--branch-id", str(branch_a.id),
            "--quantity", "4", "--reorder-level", "5",
        ])
        assert received.exit_code == 0, received.output
        assert "quantity=4" in received.output

        stock = runner.invoke(args=["inventory", "stock", "--sku", "ABC-1", "--branch-id", str(branch_a.id)])
        assert "available=4 (reorder)" in stock.output

    def test_receive_adds_to_existing_row(self, runner, branch_a, product):
        runner.invoke(args=["inventory", "receive", "--sku", "WIDGET-1", "--branch-id", str(branch_a.id), "--quantity", "5"])
        db.session.expire_all()
        assert inventory_service.get_available_quantity(product.id, branch_a.id) == 15
