import logging
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from config import LOG_LEVEL

from .analysis import PERIODS, df_orders, monthly_carbon_breakdown, summary_carbon
from .auth import ROLE_CHALLENGES_WRITE, require_api_key, require_roles
from .challenges import (
    challenge_progress_report,
    check_completion,
    complete_challenge,
    create_challenge,
    join_challenge,
    list_active_challenges,
    serialize_challenge,
    user_profile,
)
from .db import SessionLocal, ensure_users_version_column, init_db
from .errors import ChallengeActionRefused, ConcurrentUpdateError, MalformedOrder, MissingChallengeOrUser
from .models import Base, User
from .stats import build_checkout_record, build_purchase_record, ingest_order
from .windows import current_time

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
log = logging.getLogger("greenpartner.api")

app = FastAPI(title="Green Partner Challenge API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

# init
init_db(Base)
ensure_users_version_column()


# ----- Errors -----
def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": False, "message": str(exc)})


@app.exception_handler(MissingChallengeOrUser)
async def _not_found(request: Request, exc: MissingChallengeOrUser):
    return _error(404, exc)


@app.exception_handler(ChallengeActionRefused)
async def _refused(request: Request, exc: ChallengeActionRefused):
    return _error(400, exc)


@app.exception_handler(ConcurrentUpdateError)
async def _conflict(request: Request, exc: ConcurrentUpdateError):
    log.warning("Giving up on %s: %s", request.url.path, exc)
    return _error(409, exc)


@app.exception_handler(MalformedOrder)
async def _malformed(request: Request, exc: MalformedOrder):
    return _error(422, exc)


# ----- Schemas -----
class Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RewardBadgeIn(Camel):
    name: str
    description: str = ""
    icon_url: Optional[str] = Field(default=None, alias="iconUrl")


class ChallengeIn(Camel):
    name: str
    description: Optional[str] = None
    frequency: Literal["daily", "weekly", "monthly"]
    type: Optional[str] = None
    target_value: float = Field(default=1.0, alias="targetValue", ge=0)
    is_active: bool = Field(default=True, alias="isActive")
    reward_badge: RewardBadgeIn = Field(alias="rewardBadge")


class UserIn(BaseModel):
    name: str
    email: Optional[str] = None


class ProductIn(Camel):
    # Product snapshot as shown in the catalog at purchase time
    name: str
    price: float = 0.0
    carbon_footprint: float = Field(default=0.0, alias="carbonFootprint")
    eco_score: float = Field(default=0.0, alias="ecoScore")
    is_eco_friendly: Optional[bool] = Field(default=None, alias="isEcoFriendly")
    category: Optional[str] = None


class CartItemIn(ProductIn):
    quantity: float = Field(default=1.0, gt=0)


class CheckoutIn(Camel):
    items: List[CartItemIn] = []
    total_amount: Optional[float] = Field(default=None, alias="totalAmount")
    total_eco_score: Optional[float] = Field(default=None, alias="totalEcoScore")
    total_carbon_saved: Optional[float] = Field(default=None, alias="totalCarbonSaved")
    money_saved: Optional[float] = Field(default=None, alias="moneySaved")


# ----- Challenges -----
@app.get("/challenges")
def get_challenges(db: Session = Depends(get_db)):
    return list_active_challenges(db)


@app.post("/challenges", status_code=status.HTTP_201_CREATED)
def post_challenge(payload: ChallengeIn, db: Session = Depends(get_db), _=Depends(require_roles(ROLE_CHALLENGES_WRITE))):
    fields = payload.model_dump()
    fields["reward_badge"] = payload.reward_badge.model_dump(by_alias=True)
    return serialize_challenge(create_challenge(db, **fields))


# ----- Users -----
@app.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(payload: UserIn, db: Session = Depends(get_db), _=Depends(require_api_key)):
    if payload.email and db.query(User).filter_by(email=payload.email).first():
        raise HTTPException(status_code=400, detail="User already exists")
    user = User(
        name=payload.name,
        email=payload.email,
        current_challenges=[],
        badges=[],
        orders=[],
        carbon_saved=0.0,
        eco_score=0.0,
        money_saved=0.0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return {"id": user.id, "name": user.name, "email": user.email}


@app.get("/users/{user_id}/profile")
def get_profile(user_id: int, db: Session = Depends(get_db), _=Depends(require_api_key)):
    return {"status": True, "user": user_profile(db, user_id, current_time())}


@app.post("/users/{user_id}/challenges/{challenge_id}/join")
def post_join(user_id: int, challenge_id: int, db: Session = Depends(get_db), _=Depends(require_api_key)):
    current = join_challenge(db, user_id, challenge_id)
    return {"status": True, "message": "Challenge joined", "currentChallenges": current}


@app.post("/users/{user_id}/challenges/{challenge_id}/complete")
def post_complete(user_id: int, challenge_id: int, db: Session = Depends(get_db), _=Depends(require_roles(ROLE_CHALLENGES_WRITE))):
    badges = complete_challenge(db, user_id, challenge_id, current_time())
    return {"status": True, "message": "Challenge completed and badge awarded", "badges": badges}


@app.post("/users/{user_id}/challenges/check-completion")
def post_check_completion(user_id: int, db: Session = Depends(get_db), _=Depends(require_api_key)):
    result = check_completion(db, user_id, current_time())
    return {"status": True, **result}


@app.post("/users/{user_id}/challenges/progress")
def post_progress(user_id: int, db: Session = Depends(get_db), _=Depends(require_api_key)):
    return challenge_progress_report(db, user_id, current_time())


# ----- Orders -----
@app.post("/users/{user_id}/purchase", status_code=status.HTTP_201_CREATED)
def post_purchase(user_id: int, payload: ProductIn, db: Session = Depends(get_db), _=Depends(require_api_key)):
    now = current_time()
    record = build_purchase_record(payload.model_dump(by_alias=True), now)
    result = ingest_order(db, user_id, record, now)
    return {"status": True, "message": "Order placed successfully", **result}


@app.post("/users/{user_id}/orders", status_code=status.HTTP_201_CREATED)
def post_checkout(user_id: int, payload: CheckoutIn, db: Session = Depends(get_db), _=Depends(require_api_key)):
    if not payload.items:
        raise HTTPException(status_code=400, detail="Cart is empty")
    now = current_time()
    record = build_checkout_record(
        [item.model_dump(by_alias=True) for item in payload.items],
        now,
        total_amount=payload.total_amount,
        total_eco_score=payload.total_eco_score,
        total_carbon_saved=payload.total_carbon_saved,
        money_saved=payload.money_saved,
    )
    result = ingest_order(db, user_id, record, now)
    return {"status": True, "message": "Order placed successfully", **result}


# ----- Carbon -----
def _user_orders(db: Session, user_id: int) -> list:
    user = db.get(User, user_id)
    if not user:
        raise MissingChallengeOrUser(f"User {user_id} not found")
    return list(user.orders or [])


def json_safe(df):
    if df is None or getattr(df, "empty", True):
        return []
    out = []
    for _, r in df.iterrows():
        out.append({
            "period_start": (r["date"].to_pydatetime() if hasattr(r["date"], "to_pydatetime") else r["date"]).isoformat(),
            "carbon_footprint": float(r["carbon_footprint"]), "item_carbon": float(r["item_carbon"]),
            "eco_orders": int(r["eco_orders"]), "orders": int(r["orders"]),
        })
    return out


@app.get("/users/{user_id}/carbon/monthly")
def get_monthly_carbon(user_id: int, db: Session = Depends(get_db), _=Depends(require_api_key)):
    return monthly_carbon_breakdown(_user_orders(db, user_id), current_time())


@app.get("/users/{user_id}/carbon/summary")
def get_carbon_summary(user_id: int, period: str = "week", db: Session = Depends(get_db), _=Depends(require_api_key)):
    if period not in PERIODS:
        raise HTTPException(status_code=422, detail="period must be one of: " + ", ".join(PERIODS))
    return json_safe(summary_carbon(df_orders(_user_orders(db, user_id)), period))
