import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reward_engine.db import Base, engine_connect_args, get_db
from reward_engine.main import app
from reward_engine.models.enums import PolicyType, ProgramStatus, TransactionType, WalletRole
from reward_engine.routes.attendance import get_session_factory
from reward_engine.schemas.program import RewardItemCreate, RewardPolicyCreate, RewardProgramCreate
from reward_engine.services import program_service, wallet_service


@pytest.fixture
def engine(tmp_path):
    url = f"sqlite:///{tmp_path / 'reward_engine_test.db'}"
    eng = create_engine(url, connect_args=engine_connect_args(url))
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def program_payload(name="Spring Rewards", status=ProgramStatus.ACTIVE, budget=100, **overrides):
    data = dict(
        name=name,
        status=status,
        default_giving_budget=budget,
        policies=[
            RewardPolicyCreate(policy_type=PolicyType.OVERTIME, unit_value=30, points_per_unit=5),
            RewardPolicyCreate(policy_type=PolicyType.NOT_LATE, unit_value=1, points_per_unit=2),
        ],
        items=[
            RewardItemCreate(name="Mug", required_points=30, quantity=5),
            RewardItemCreate(name="Coffee voucher", required_points=50),
            RewardItemCreate(name="Hoodie", required_points=80, quantity=1),
        ],
    )
    data.update(overrides)
    return RewardProgramCreate(**data)


@pytest.fixture
def program(db):
    return program_service.create_program(db, program_payload())


@pytest.fixture
def items(program):
    return {item.name: item for item in program.items}


@pytest.fixture
def manager(db, program):
    wallet = wallet_service.get_or_create_wallet(db, "mgr-1", program.id, role=WalletRole.MANAGER)
    db.commit()
    return wallet


@pytest.fixture
def make_employee(db, program):
    def _make(user_id, points=0):
        wallet = wallet_service.get_or_create_wallet(db, user_id, program.id)
        if points:
            wallet_service.credit(db, wallet.id, points, TransactionType.POLICY_REWARD)
        db.commit()
        return wallet

    return _make
