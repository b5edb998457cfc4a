from typing import Any, Dict

from pydantic import BaseModel

# key: (label, max length, required)
SETTING_RULES = {
    "site_name": ("Site name", 100, True),
    "site_short_name": ("Site short name", 50, True),
    "site_description": ("Site description", 500, False),
    "hero_image_url": ("Hero image URL", 500, False),
}


class SettingUpdateRequest(BaseModel):
    value: str = ""


class SeedResponse(BaseModel):
    message: str
    demo_accounts: Dict[str, Any]


class CleanupResponse(BaseModel):
    message: str
    deleted: int
