from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DailyPlanSettingsPatch(BaseModel):
    """Daily review settings; unset fields keep their stored value."""

    daily_active: Optional[bool] = Field(default=None, alias="dailyActive")
    daily_target: Optional[int] = Field(default=None, alias="dailyTarget", ge=1)
    daily_set_id: Optional[int] = Field(default=None, alias="dailySetId", gt=0)
    default_set_id: Optional[int] = Field(default=None, alias="defaultSetId", gt=0)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def accept_flag(cls, data):
        if isinstance(data, dict):
            for key in ("dailyActive", "daily_active"):
                value = data.get(key)
                if isinstance(value, str) and value.upper() in {"Y", "N"}:
                    data = {**data, key: value.upper() == "Y"}
        return data

    @model_validator(mode="after")
    def require_change(self):
        if not self.model_fields_set:
            raise ValueError("at least one setting is required")
        for name in ("daily_active", "daily_target"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} must not be null")
        return self

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class PlanRunStatus(str, Enum):
    PLANNED = "planned"
    ALREADY_PLANNED = "already_planned"


class DailyPlanRun(BaseModel):
    status: PlanRunStatus
    plan_date: date = Field(serialization_alias="planDate")
    users_planned: int = Field(default=0, serialization_alias="usersPlanned")
    cards_planned: int = Field(default=0, serialization_alias="cardsPlanned")


class DailyPlan(BaseModel):
    id: int
    user_token: str = Field(serialization_alias="userToken")
    plan_date: date = Field(serialization_alias="planDate")
    card_ids: List[int] = Field(default_factory=list, serialization_alias="cardIds")


class DailyPlanCard(BaseModel):
    daily_plan_id: int = Field(serialization_alias="dailyPlanId")
    id: int
    front: str
    back: str
    choices: List[str] = Field(default_factory=list)
    seq: int
    box: Optional[int] = None
