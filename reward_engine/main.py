import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reward_engine.db import engine, Base
from reward_engine.errors import RewardEngineError

from reward_engine.models.reward_program import RewardProgram
from reward_engine.models.reward_policy import RewardPolicy
from reward_engine.models.reward_item import RewardItem
from reward_engine.models.user_wallet import UserWallet
from reward_engine.models.point_transaction import PointTransaction, PointTransactionItem
from reward_engine.models.attendance_fact import AttendanceFact
from reward_engine.models.budget_reset import BudgetReset
from reward_engine.models.scheduled_job import ScheduledJob

from reward_engine.routes.programs import router as programs_router, public_router as public_programs_router
from reward_engine.routes.wallets import router as wallets_router
from reward_engine.routes.gifts import router as gifts_router
from reward_engine.routes.exchanges import router as exchanges_router
from reward_engine.routes.attendance import router as attendance_router
from reward_engine.routes.transactions import router as transactions_router
from reward_engine.routes.scheduled_jobs import router as scheduled_jobs_router


logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "https://localhost:3000",
    "http://127.0.0.1:3000",
    "https://127.0.0.1:3000",
]


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS")
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return [o.strip() for o in raw.split(",") if o.strip()]


app = FastAPI(title="Reward Engine")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RewardEngineError)
async def handle_reward_engine_error(request: Request, exc: RewardEngineError):
    if exc.status_code >= 409:
        logger.info(
            "request rejected",
            extra={"path": request.url.path, "code": exc.code, "detail": exc.message},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(programs_router)
app.include_router(public_programs_router)
app.include_router(wallets_router)
app.include_router(gifts_router)
app.include_router(exchanges_router)
app.include_router(attendance_router)
app.include_router(transactions_router)
app.include_router(scheduled_jobs_router)


@app.get("/")
def read_root():
    return {"message": "Reward Engine is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
