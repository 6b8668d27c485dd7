from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date


GenderValue = Literal["MALE", "FEMALE", "OTHER"]
MaritalStatusValue = Literal["SINGLE", "MARRIED", "DIVORCED", "WIDOWED"]


# --------------------------------------------------
# CREATE
# --------------------------------------------------
class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1)
    gender: GenderValue
    generation: int
    child_order: Optional[int] = Field(None, ge=1)

    email: Optional[str] = None
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    marriage_date: Optional[date] = None

    occupation: Optional[str] = None
    custom_occupation: Optional[str] = None
    hometown: Optional[str] = None
    current_address: Optional[str] = None
    marital_status: Optional[MaritalStatusValue] = None
    bio: Optional[str] = None

    father_id: Optional[str] = None
    mother_id: Optional[str] = None
    spouse_id: Optional[str] = None

    # Link the new member to the requesting user
    is_me: bool = False


# --------------------------------------------------
# UPDATE (only the fields sent are applied)
# --------------------------------------------------
class MemberUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    gender: Optional[GenderValue] = None
    generation: Optional[int] = None
    child_order: Optional[int] = Field(None, ge=1)

    email: Optional[str] = None
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    marriage_date: Optional[date] = None

    occupation: Optional[str] = None
    custom_occupation: Optional[str] = None
    hometown: Optional[str] = None
    current_address: Optional[str] = None
    marital_status: Optional[MaritalStatusValue] = None
    bio: Optional[str] = None

    father_id: Optional[str] = None
    mother_id: Optional[str] = None
    spouse_id: Optional[str] = None


# --------------------------------------------------
# FILTERS
# --------------------------------------------------
class MemberFilters(BaseModel):
    status: Optional[Literal["alive", "deceased"]] = None
    generation: Optional[int] = None
    gender: Optional[GenderValue] = None
    search: Optional[str] = None


# --------------------------------------------------
# ACHIEVEMENTS
# --------------------------------------------------
class AchievementCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str
    custom_category: Optional[str] = None
    achieved_at: date
    images: List[str] = []


class AchievementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    custom_category: Optional[str] = None
    achieved_at: Optional[date] = None
    images: Optional[List[str]] = None

