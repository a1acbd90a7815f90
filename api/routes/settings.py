# SPDX-License-Identifier: Apache-2.0

"""
Site settings stored as a single document.
"""

import copy
import logging
from typing import Any, Dict, Optional

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag

from middleware.auth import optional_auth, require_admin, require_super_admin
from middleware.error_handler import ValidationException
from middleware.validation import parse_json_body
from models.entities import UserContext
from models.requests import UpdateSettingsRequest
from routes.content import is_staff
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)

COLLECTION = "settings"
SETTINGS_ID = "site"
PUBLIC_SECTIONS = ("siteInfo", "contactInfo", "socialMedia", "theme")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "siteInfo": {
        "barangayName": "Barangay Culiat",
        "city": "Quezon City",
        "province": "Metro Manila",
        "tagline": "Building a Better Community Together",
        "description": "Official Website of Barangay Culiat",
        "logo": "",
    },
    "contactInfo": {
        "officeAddress": "",
        "phoneNumber": "",
        "mobileNumber": "",
        "emailAddress": "",
        "officeHours": "Monday - Friday, 8:00 AM - 5:00 PM",
    },
    "socialMedia": {"facebook": "", "twitter": "", "instagram": "", "youtube": ""},
    "theme": {"primaryColor": "#1e40af", "secondaryColor": "#f59e0b"},
    "system": {"maintenanceMode": False, "allowRegistration": True, "termsVersion": "1.0"},
}

settings_tag = Tag(name="Settings", description="Site settings")
settings_bp = APIBlueprint(
    'settings',
    __name__,
    url_prefix='/api/settings',
    abp_tags=[settings_tag]
)


def load_settings() -> Dict[str, Any]:
    """Stored settings over the defaults, section by section."""
    stored = current_app.mongodb_service.find_one(COLLECTION, {"_id": SETTINGS_ID}) or {}
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    for section, values in stored.items():
        if isinstance(values, dict) and isinstance(settings.get(section), dict):
            settings[section].update(values)
        elif section != "id":
            settings[section] = values
    return settings


@settings_bp.get('')
@optional_auth
def get_settings(user_context: Optional[UserContext]):
    """Public callers see only the site-facing sections."""
    settings = load_settings()
    if not is_staff(user_context):
        settings = {section: settings[section] for section in PUBLIC_SECTIONS}
    return ResponseBuilder.success(settings)


@settings_bp.put('')
@require_admin
def update_settings(user_context: UserContext):
    body = parse_json_body(UpdateSettingsRequest)
    sections = body.model_dump(by_alias=True, exclude_none=True)
    if not sections:
        raise ValidationException("No settings sections provided")

    current = load_settings()
    updates = {}
    for section, values in sections.items():
        merged = dict(current.get(section) or {})
        merged.update(values)
        updates[section] = merged

    current_app.mongodb_service.update_one(
        COLLECTION, {"_id": SETTINGS_ID}, {"$set": {**updates, "updatedBy": user_context.user_id}}, upsert=True
    )
    current_app.audit_middleware.log_action(
        "SETTINGS_UPDATED",
        f"Updated settings sections: {', '.join(sorted(updates))}",
        entity="Settings",
        entity_id=SETTINGS_ID,
        user_context=user_context
    )
    return ResponseBuilder.success(load_settings(), message="Settings updated successfully")


@settings_bp.post('/reset')
@require_super_admin
def reset_settings(user_context: UserContext):
    current_app.mongodb_service.update_one(
        COLLECTION,
        {"_id": SETTINGS_ID},
        {"$set": {**copy.deepcopy(DEFAULT_SETTINGS), "updatedBy": user_context.user_id}},
        upsert=True
    )
    current_app.audit_middleware.log_action(
        "SETTINGS_RESET",
        "Settings reset to default",
        entity="Settings",
        entity_id=SETTINGS_ID,
        user_context=user_context
    )
    return ResponseBuilder.success(load_settings(), message="Settings reset to default successfully")
