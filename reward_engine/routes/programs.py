from uuid import UUID
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from reward_engine.db import get_db
from reward_engine.deps.pagination import PageParams, get_page_params
from reward_engine.models.enums import ProgramStatus
from reward_engine.schemas.budget_reset import BudgetResetCreate, BudgetResetOut
from reward_engine.schemas.program import (
    RewardItemCreate,
    RewardItemOut,
    RewardItemUpdate,
    RewardPolicyCreate,
    RewardPolicyOut,
    RewardPolicyUpdate,
    RewardProgramCreate,
    RewardProgramDetailOut,
    RewardProgramOut,
    RewardProgramUpdate,
)
from reward_engine.schemas.transaction import Page
from reward_engine.services import program_service
from reward_engine.services.wallet_service import reset_budgets


router = APIRouter(prefix="/admin/reward-programs", tags=["admin-reward-programs"])
public_router = APIRouter(prefix="/reward-programs", tags=["reward-programs"])


@router.get("", response_model=Page[RewardProgramOut])
def list_reward_programs(
    status: ProgramStatus | None = None,
    keyword: str | None = None,
    sort_direction: Literal["ASC", "DESC"] = "DESC",
    paging: PageParams = Depends(get_page_params),
    db: Session = Depends(get_db),
):
    return program_service.list_programs(
        db,
        status=status,
        keyword=keyword,
        page=paging.page,
        page_size=paging.page_size,
        sort_direction=sort_direction,
    )


@router.post("", response_model=RewardProgramDetailOut, status_code=201)
def create_reward_program(payload: RewardProgramCreate, db: Session = Depends(get_db)):
    program = program_service.create_program(db, payload)
    db.refresh(program)
    return program


@router.get("/{program_id}", response_model=RewardProgramDetailOut)
def get_reward_program(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.get_program(db, program_id)


@router.patch("/{program_id}", response_model=RewardProgramOut)
def update_reward_program(program_id: UUID, payload: RewardProgramUpdate, db: Session = Depends(get_db)):
    return program_service.update_program(db, program_id, payload)


@router.post("/{program_id}/activate", response_model=RewardProgramOut)
def activate_reward_program(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.activate(db, program_id)


@router.post("/{program_id}/deactivate", response_model=RewardProgramOut)
def deactivate_reward_program(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.deactivate(db, program_id)


@router.post("/{program_id}/policies", response_model=RewardPolicyOut, status_code=201)
def add_reward_policy(program_id: UUID, payload: RewardPolicyCreate, db: Session = Depends(get_db)):
    return program_service.add_policy(db, program_id, payload)


@router.patch("/{program_id}/policies/{policy_id}", response_model=RewardPolicyOut)
def update_reward_policy(
    program_id: UUID,
    policy_id: UUID,
    payload: RewardPolicyUpdate,
    db: Session = Depends(get_db),
):
    return program_service.update_policy(db, program_id, policy_id, payload)


@router.post("/{program_id}/items", response_model=RewardItemOut, status_code=201)
def add_reward_item(program_id: UUID, payload: RewardItemCreate, db: Session = Depends(get_db)):
    return program_service.add_item(db, program_id, payload)


@router.patch("/{program_id}/items/{item_id}", response_model=RewardItemOut)
def update_reward_item(
    program_id: UUID,
    item_id: UUID,
    payload: RewardItemUpdate,
    db: Session = Depends(get_db),
):
    return program_service.update_item(db, program_id, item_id, payload)


@router.post("/{program_id}/budget-resets", response_model=BudgetResetOut)
def reset_program_budgets(
    program_id: UUID,
    payload: BudgetResetCreate | None = None,
    db: Session = Depends(get_db),
):
    record, _ = reset_budgets(db, program_id, period_key=(payload.period_key if payload else None))
    return record


@public_router.get("/active", response_model=RewardProgramDetailOut)
def get_active_reward_program(db: Session = Depends(get_db)):
    program = program_service.get_active_program(db)
    if not program:
        raise HTTPException(status_code=404, detail="No active reward program")
    return program


@public_router.get("/{program_id}/items", response_model=list[RewardItemOut])
def list_reward_items(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.list_items(db, program_id)
