"""Request bodies.

Clients send camelCase (`plantType`, `careDate`); snake_case names are accepted as
well. Partial updates look at `model_fields_set` / `exclude_unset`, so an omitted
field is left alone while an explicit null clears it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def supplied(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# -----------------------------
# Auth
# -----------------------------


class RegisterRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UpgradeRequest(CamelModel):
    anonymous_user_id: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: Optional[str] = None
    new_password: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class ChangeEmailRequest(CamelModel):
    new_email: Optional[str] = None


class ProfileUpdate(CamelModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


# -----------------------------
# Pots
# -----------------------------


class PotCreate(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None
    plant_type: Optional[str] = None
    note: Optional[str] = None
    plant_date: Optional[str] = None
    image_url: Optional[str] = None
    last_care: Optional[str] = None


class PotUpdate(CamelModel):
    name: Optional[str] = None
    plant_type: Optional[str] = None
    note: Optional[str] = None
    plant_date: Optional[str] = None
    image_url: Optional[str] = None
    last_care: Optional[str] = None


class ReorderRequest(CamelModel):
    pot_ids: List[str]


# -----------------------------
# Care records / timelines / schedules
# -----------------------------


class CareRecordCreate(CamelModel):
    pot_id: Optional[str] = None
    type: Optional[str] = None
    types: Optional[List[str]] = None
    action: Optional[str] = None
    actions: Optional[List[str]] = None
    care_date: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: Optional[List[str]] = None


class CareRecordUpdate(CamelModel):
    type: Optional[str] = None
    action: Optional[str] = None
    care_date: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: Optional[List[str]] = None


class TimelineCreate(CamelModel):
    pot_id: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    images: Optional[List[str]] = None
    video: Optional[str] = None
    created_at: Optional[str] = None


class TimelineUpdate(CamelModel):
    date: Optional[str] = None
    description: Optional[str] = None
    images: Optional[List[str]] = None
    video: Optional[str] = None


class ScheduleCreate(CamelModel):
    pot_id: Optional[str] = None
    care_type: Optional[str] = None
    interval_days: Optional[int] = None
    custom_action: Optional[str] = None
    enabled: Optional[bool] = None


class ScheduleUpdate(CamelModel):
    interval_days: Optional[int] = None
    custom_action: Optional[str] = None
    enabled: Optional[bool] = None


class CareAdviceRequest(CamelModel):
    weather: Optional[Dict[str, Any]] = None


# -----------------------------
# Admin
# -----------------------------


class PlantUpdate(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    care_difficulty: Optional[str] = None
    basic_info: Optional[Dict[str, Any]] = None
    ornamental_features: Optional[Dict[str, Any]] = None
    care_guide: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    synonyms: Optional[List[str]] = None


class IdsRequest(CamelModel):
    ids: List[str]


class AdminUserUpdate(CamelModel):
    is_disabled: Optional[bool] = None
    max_pots: Optional[int] = None
    display_name: Optional[str] = None
    email_verified: Optional[bool] = None
