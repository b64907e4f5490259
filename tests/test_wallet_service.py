import threading
import uuid

import pytest
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from reward_engine.db import utcnow
from reward_engine.errors import (
    InsufficientBudgetError,
    IntegrityError,
    ValidationError,
)
from reward_engine.models.budget_reset import BudgetReset
from reward_engine.models.enums import ProgramStatus, TransactionType, WalletRole
from reward_engine.models.point_transaction import PointTransaction
from reward_engine.models.user_wallet import UserWallet
from reward_engine.services import ledger_service, program_service, wallet_service

from conftest import program_payload


def test_manager_wallet_starts_with_default_budget(db, program, manager):
    assert manager.role == WalletRole.MANAGER.value
    assert manager.manager_giving_budget == 100
    assert manager.personal_point == 0


def test_get_or_create_wallet_is_idempotent(db, program):
    first = wallet_service.get_or_create_wallet(db, "emp-1", program.id)
    db.commit()
    second = wallet_service.get_or_create_wallet(db, "emp-1", program.id)

    assert first.id == second.id
    assert db.query(UserWallet).count() == 1


def test_promotion_to_manager_grants_budget_once(db, program, make_employee):
    wallet = make_employee("emp-1")
    assert wallet.manager_giving_budget == 0

    promoted = wallet_service.get_or_create_wallet(db, "emp-1", program.id, role=WalletRole.MANAGER)
    db.commit()
    assert promoted.role == WalletRole.MANAGER.value
    assert promoted.manager_giving_budget == 100


def test_gift_over_budget_changes_nothing(db, program, manager):
    with pytest.raises(InsufficientBudgetError) as exc:
        wallet_service.gift_points(
            db,
            manager.id,
            [{"employee_id": "emp-1", "amount": 40}, {"employee_id": "emp-2", "amount": 70}],
        )

    assert exc.value.details["required"] == 110
    assert exc.value.details["available"] == 100
    assert exc.value.shortfall == 10

    db.expire_all()
    assert wallet_service.get_wallet(db, manager.id).manager_giving_budget == 100
    assert db.query(PointTransaction).count() == 0
    assert db.query(UserWallet).filter(UserWallet.user_id.in_(["emp-1", "emp-2"])).count() == 0


def test_gift_moves_budget_to_recipients(db, program, manager, make_employee):
    make_employee("emp-2", points=5)

    result = wallet_service.gift_points(
        db,
        manager.id,
        [("emp-1", 40), ("emp-2", 30)],
        reason="release week",
    )

    assert result.total_points_deducted == 70
    assert result.remaining_budget == 30
    assert [tx.amount for tx in result.transactions] == [40, 30]
    for tx in result.transactions:
        assert tx.type == TransactionType.GIFT.value
        assert tx.source_wallet_id == manager.id
        assert tx.reason == "release week"

    emp1 = db.query(UserWallet).filter(UserWallet.user_id == "emp-1").one()
    emp2 = db.query(UserWallet).filter(UserWallet.user_id == "emp-2").one()
    assert emp1.personal_point == 40
    assert emp2.personal_point == 35
    assert result.transactions[0].destination_wallet_id == emp1.id

    # gifts never touch the manager's own spendable balance
    assert wallet_service.get_wallet(db, manager.id).personal_point == 0


def test_gift_exactly_the_whole_budget(db, program, manager):
    result = wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 100}])
    assert result.remaining_budget == 0


@pytest.mark.parametrize(
    "recipients",
    [
        [],
        [{"employee_id": "emp-1", "amount": 0}],
        [{"employee_id": "emp-1", "amount": -5}],
        [{"employee_id": "", "amount": 5}],
        [{"employee_id": "emp-1", "amount": 5}, {"employee_id": "emp-1", "amount": 5}],
        [{"employee_id": "mgr-1", "amount": 5}],
    ],
)
def test_gift_rejects_invalid_recipients(db, program, manager, recipients):
    with pytest.raises(ValidationError):
        wallet_service.gift_points(db, manager.id, recipients)

    db.expire_all()
    assert wallet_service.get_wallet(db, manager.id).manager_giving_budget == 100


def test_only_managers_can_gift(db, program, make_employee):
    wallet = make_employee("emp-1", points=50)
    with pytest.raises(ValidationError):
        wallet_service.gift_points(db, wallet.id, [{"employee_id": "emp-2", "amount": 5}])


def test_gift_requires_active_program(db, program, manager):
    program_service.deactivate(db, program.id)
    with pytest.raises(ValidationError):
        wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 5}])


def test_unknown_wallet_is_an_integrity_error(db, program):
    with pytest.raises(IntegrityError):
        wallet_service.get_wallet(db, uuid.uuid4())


def test_credit_rejects_exchange_type(db, program, make_employee):
    wallet = make_employee("emp-1")
    with pytest.raises(ValidationError):
        wallet_service.credit(db, wallet.id, 5, TransactionType.EXCHANGE)


def test_reset_budgets_once_per_period(db, program, manager):
    wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 70}])

    record, applied = wallet_service.reset_budgets(db, program.id, period_key="2026-04")
    assert applied is True
    assert record.wallets_reset == 1
    assert record.budget == 100
    assert wallet_service.get_wallet(db, manager.id).manager_giving_budget == 100

    wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 50}])

    again, applied = wallet_service.reset_budgets(db, program.id, period_key="2026-04")
    assert applied is False
    assert again.id == record.id
    db.expire_all()
    assert wallet_service.get_wallet(db, manager.id).manager_giving_budget == 50

    _, applied = wallet_service.reset_budgets(db, program.id, period_key="2026-05")
    assert applied is True
    db.expire_all()
    assert wallet_service.get_wallet(db, manager.id).manager_giving_budget == 100
    assert db.query(BudgetReset).count() == 2


def test_reset_budgets_defaults_to_current_month(db, program, manager):
    record, applied = wallet_service.reset_budgets(db, program.id)
    assert applied is True
    assert record.period_key == wallet_service.period_key_for(utcnow())


def test_reset_leaves_employee_balances_alone(db, program, manager, make_employee):
    wallet = make_employee("emp-1", points=25)
    wallet_service.reset_budgets(db, program.id, period_key="2026-04")

    db.expire_all()
    refreshed = wallet_service.get_wallet(db, wallet.id)
    assert refreshed.personal_point == 25
    assert refreshed.manager_giving_budget == 0


def test_reset_rejected_for_inactive_program(db, program, manager):
    program_service.deactivate(db, program.id)
    with pytest.raises(ValidationError):
        wallet_service.reset_budgets(db, program.id, period_key="2026-04")


def test_wallets_are_scoped_per_program(db, program):
    other = program_service.create_program(db, program_payload(name="Other", status=ProgramStatus.PENDING))
    a = wallet_service.get_or_create_wallet(db, "emp-1", program.id)
    b = wallet_service.get_or_create_wallet(db, "emp-1", other.id)
    db.commit()

    assert a.id != b.id
    page = wallet_service.list_wallets(db, program.id)
    assert page.total_items == 1
    assert page.items[0].id == a.id


def test_one_wallet_per_user_and_program_is_enforced_by_the_database(db, program, session_factory):
    wallet_service.get_or_create_wallet(db, "emp-1", program.id)
    db.commit()

    other = session_factory()
    try:
        other.add(UserWallet(user_id="emp-1", reward_program_id=program.id))
        with pytest.raises(DBIntegrityError):
            other.flush()
    finally:
        other.rollback()
        other.close()


def test_ledger_matches_wallet_after_gifts(db, program, manager):
    wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 30}])
    wallet_service.gift_points(db, manager.id, [{"employee_id": "emp-1", "amount": 20}])

    emp = db.query(UserWallet).filter(UserWallet.user_id == "emp-1").one()
    stored, derived, ok = ledger_service.reconcile_wallet(db, emp.id)
    assert (stored, derived, ok) == (50, 50, True)


def test_two_concurrent_gifts_cannot_overspend_the_budget(db, program, manager, make_employee, session_factory):
    recipients = [make_employee("emp-1"), make_employee("emp-2")]
    manager_id = manager.id
    barrier = threading.Barrier(len(recipients))
    results = []
    lock = threading.Lock()

    def _worker(employee_id):
        session = session_factory()
        try:
            barrier.wait()
            result = wallet_service.gift_points(session, manager_id, [{"employee_id": employee_id, "amount": 60}])
            outcome = ("ok", result.remaining_budget)
        except InsufficientBudgetError as e:
            outcome = ("budget", e)
        except Exception as e:
            outcome = ("error", e)
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=_worker, args=(w.user_id,)) for w in recipients]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    kinds = sorted(kind for kind, _ in results)
    assert kinds == ["budget", "ok"], results

    db.expire_all()
    assert db.get(UserWallet, manager_id).manager_giving_budget == 40
    gifts = db.query(PointTransaction).filter(PointTransaction.type == TransactionType.GIFT.value).all()
    assert len(gifts) == 1
    assert gifts[0].amount == 60
    for wallet in [manager, *recipients]:
        _, _, ok = ledger_service.reconcile_wallet(db, wallet.id)
        assert ok
