from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from reward_engine.errors import IntegrityError, ValidationError
from reward_engine.models.enums import PolicyType, ProgramStatus
from reward_engine.models.reward_program import RewardProgram
from reward_engine.schemas.program import (
    RewardItemCreate,
    RewardItemUpdate,
    RewardPolicyCreate,
    RewardPolicyUpdate,
    RewardProgramUpdate,
)
from reward_engine.services import program_service
from reward_engine.services.policy_engine import accrue

from conftest import program_payload


def _status(db, program_id):
    db.expire_all()
    return program_service.get_program(db, program_id).status


def test_create_program_with_policies_and_items(db, program):
    assert program.status == ProgramStatus.ACTIVE.value
    assert program.activated_at is not None
    assert [p.policy_type for p in program.policies] == ["OVERTIME", "NOT_LATE"]
    assert [i.name for i in program.items] == ["Mug", "Coffee voucher", "Hoodie"]
    assert program.items[1].unlimited is True
    assert program.items[0].unlimited is False


def test_activating_a_program_deactivates_the_previous_one(db, program):
    second = program_service.create_program(db, program_payload(name="Summer", status=ProgramStatus.PENDING))
    assert second.status == ProgramStatus.PENDING.value

    program_service.activate(db, second.id)

    assert _status(db, program.id) == ProgramStatus.INACTIVE.value
    assert _status(db, second.id) == ProgramStatus.ACTIVE.value
    assert program_service.get_active_program(db).id == second.id
    assert db.query(RewardProgram).filter(RewardProgram.status == "ACTIVE").count() == 1


def test_creating_an_active_program_replaces_the_active_one(db, program):
    second = program_service.create_program(db, program_payload(name="Summer"))

    assert _status(db, program.id) == ProgramStatus.INACTIVE.value
    assert _status(db, second.id) == ProgramStatus.ACTIVE.value


def test_inactive_program_cannot_be_reactivated(db, program):
    program_service.deactivate(db, program.id)
    assert program_service.get_active_program(db) is None

    with pytest.raises(ValidationError):
        program_service.activate(db, program.id)
    with pytest.raises(ValidationError):
        program_service.deactivate(db, program.id)


def test_activate_is_a_no_op_on_the_active_program(db, program):
    again = program_service.activate(db, program.id)
    assert again.status == ProgramStatus.ACTIVE.value


def test_pending_program_can_be_deactivated(db):
    pending = program_service.create_program(db, program_payload(status=ProgramStatus.PENDING))
    program_service.deactivate(db, pending.id)
    assert _status(db, pending.id) == ProgramStatus.INACTIVE.value


def test_database_refuses_a_second_active_program(db, program):
    db.add(RewardProgram(name="Rogue", status=ProgramStatus.ACTIVE.value, default_giving_budget=0))
    with pytest.raises(DBIntegrityError):
        db.flush()
    db.rollback()


def test_program_cannot_be_created_inactive(db):
    with pytest.raises(ValidationError):
        program_service.create_program(db, program_payload(status=ProgramStatus.INACTIVE))


def test_duplicate_policy_types_are_rejected(db):
    payload = program_payload(
        policies=[
            RewardPolicyCreate(policy_type=PolicyType.OVERTIME, unit_value=30, points_per_unit=5),
            RewardPolicyCreate(policy_type=PolicyType.OVERTIME, unit_value=60, points_per_unit=10),
        ]
    )
    with pytest.raises(ValidationError):
        program_service.create_program(db, payload)


def test_add_policy_rejects_a_second_policy_of_the_same_type(db, program):
    with pytest.raises(ValidationError):
        program_service.add_policy(
            db,
            program.id,
            RewardPolicyCreate(policy_type=PolicyType.OVERTIME, unit_value=60, points_per_unit=10),
        )


def test_end_date_must_not_precede_start_date(db, program):
    with pytest.raises(ValidationError):
        program_service.update_program(
            db,
            program.id,
            RewardProgramUpdate(start_date=datetime(2026, 5, 1), end_date=datetime(2026, 4, 1)),
        )


def test_update_program_fields(db, program):
    updated = program_service.update_program(
        db, program.id, RewardProgramUpdate(name="Renamed", default_giving_budget=250)
    )
    assert updated.name == "Renamed"
    assert updated.default_giving_budget == 250


def test_inactive_program_is_read_only(db, program):
    program_service.deactivate(db, program.id)

    with pytest.raises(ValidationError):
        program_service.update_program(db, program.id, RewardProgramUpdate(name="Nope"))
    with pytest.raises(ValidationError):
        program_service.add_item(db, program.id, RewardItemCreate(name="Cap", required_points=10))


def test_policy_is_editable_until_points_accrue(db, program):
    overtime = next(p for p in program.policies if p.policy_type == "OVERTIME")

    edited = program_service.update_policy(db, program.id, overtime.id, RewardPolicyUpdate(points_per_unit=6))
    assert edited.points_per_unit == 6

    tx = accrue(
        db,
        {
            "employee_id": "emp-1",
            "reward_program_id": program.id,
            "policy_type": "OVERTIME",
            "magnitude": 60,
            "period_key": "2026-03-14",
        },
    )
    assert tx.amount == 12

    with pytest.raises(ValidationError):
        program_service.update_policy(db, program.id, overtime.id, RewardPolicyUpdate(points_per_unit=50))

    db.expire_all()
    assert program_service.get_program(db, program.id).policies[0].points_per_unit == 6


def test_add_policy_and_items(db, program):
    policy = program_service.add_policy(
        db,
        program.id,
        RewardPolicyCreate(policy_type=PolicyType.FULL_ATTENDANCE, unit_value=1, points_per_unit=20),
    )
    assert policy.position == 2

    item = program_service.add_item(db, program.id, RewardItemCreate(name="Cap", required_points=15, quantity=10))
    assert item.position == 3

    restocked = program_service.update_item(db, program.id, item.id, RewardItemUpdate(quantity=-1))
    assert restocked.unlimited is True

    assert [i.name for i in program_service.list_items(db, program.id)][-1] == "Cap"


def test_unknown_program_and_item(db, program):
    with pytest.raises(IntegrityError):
        program_service.get_program(db, "00000000-0000-0000-0000-000000000000")
    with pytest.raises(IntegrityError):
        program_service.update_item(
            db, program.id, "00000000-0000-0000-0000-000000000000", RewardItemUpdate(quantity=3)
        )


def test_list_programs(db, program):
    program_service.create_program(db, program_payload(name="Autumn", status=ProgramStatus.PENDING))

    everything = program_service.list_programs(db)
    assert everything.total_items == 2

    pending = program_service.list_programs(db, status=ProgramStatus.PENDING)
    assert [p.name for p in pending.items] == ["Autumn"]

    by_name = program_service.list_programs(db, keyword="spring")
    assert [p.name for p in by_name.items] == ["Spring Rewards"]


def test_list_programs_sorts_by_start_date(db):
    for name, start in [("March", datetime(2026, 3, 1)), ("January", datetime(2026, 1, 1)), ("Undated", None)]:
        program_service.create_program(
            db, program_payload(name=name, status=ProgramStatus.PENDING, start_date=start)
        )

    newest_first = program_service.list_programs(db)
    assert [p.name for p in newest_first.items] == ["March", "January", "Undated"]

    oldest_first = program_service.list_programs(db, sort_direction="ASC")
    assert [p.name for p in oldest_first.items] == ["January", "March", "Undated"]
