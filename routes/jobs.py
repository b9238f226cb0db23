from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from config import load_config
from db.database import get_db, utc_now
from models.plan import PlanRunStatus
from utils.auth import require_job_key
from utils.daily_plan import generate_daily_plans
from utils.logs import get_request_logger

router = APIRouter(dependencies=[Depends(require_job_key)])


@router.post("/daily-plans/generate")
async def generate(conn=Depends(get_db), logger=Depends(get_request_logger)):
    run = generate_daily_plans(conn, utc_now(), load_config()["app"]["timezone"], logger)
    code = status.HTTP_200_OK
    if run.status == PlanRunStatus.ALREADY_PLANNED:
        code = status.HTTP_409_CONFLICT
    return JSONResponse(status_code=code, content=run.model_dump(by_alias=True, mode="json"))
