from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from config import load_config
from db.database import get_db, utc_now
from models.plan import DailyPlanSettingsPatch
from models.validation import parse_request
from utils.auth import require_user_token
from utils.daily_plan import get_today_plan_cards, refresh_daily_plan, update_plan_settings
from utils.logs import get_request_logger

router = APIRouter()


def _timezone() -> str:
    return load_config()["app"]["timezone"]


@router.post("/setting")
async def update_settings(
    payload: Dict[str, Any] = Body(...),
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    patch = parse_request(DailyPlanSettingsPatch, payload)
    default_target = load_config()["daily_plan"]["default_target"]
    settings = update_plan_settings(conn, user_token, patch, default_target, logger)
    return {
        "dailyActive": settings["daily_active"],
        "dailyTarget": settings["daily_target"],
        "dailySetId": settings["daily_set_id"],
        "defaultSetId": settings["default_set_id"],
    }


@router.get("/inquiry")
async def inquiry(
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    cards = get_today_plan_cards(conn, user_token, utc_now(), _timezone(), logger)
    return [card.model_dump(by_alias=True, mode="json") for card in cards]


@router.post("/refresh")
async def refresh(
    user_token: str = Depends(require_user_token),
    conn=Depends(get_db),
    logger=Depends(get_request_logger),
):
    plan = refresh_daily_plan(conn, user_token, utc_now(), _timezone(), logger)
    return plan.model_dump(by_alias=True, mode="json")
