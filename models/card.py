from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional


class CardBase(BaseModel):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    choices: List[str] = Field(default_factory=list)

    @field_validator("front", "back")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CardCreate(CardBase):
    pass


class Card(CardBase):
    id: int
    set_id: int
    seq: int
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class CardPatch(BaseModel):
    """Mutable card fields. Only fields that are set are written."""

    front: Optional[str] = None
    back: Optional[str] = None
    choices: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("front", "back")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def require_change(self):
        if not self.model_fields_set:
            raise ValueError("at least one of front, back or choices is required")
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} must not be null")
        return self

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class FlashcardSetCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cards: List[CardCreate] = Field(default_factory=list)


class FlashcardSet(BaseModel):
    id: int
    owner_token: str
    name: str
    description: Optional[str] = None
    created_at: str

    model_config = ConfigDict(from_attributes=True)
