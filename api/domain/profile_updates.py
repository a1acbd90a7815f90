# SPDX-License-Identifier: Apache-2.0

"""
Reviewed profile changes.

A resident proposes new values for one group of profile fields; staff
approve (the values are applied to the user) or reject the proposal.
"""

from datetime import date, datetime
from typing import Any, Dict, List

from models.enums import ProfileUpdateType


UPDATE_FIELDS = {
    ProfileUpdateType.PERSONAL_INFO.value: (
        "firstName", "lastName", "middleName", "suffix", "dateOfBirth", "placeOfBirth",
        "gender", "civilStatus", "nationality", "occupation",
    ),
    ProfileUpdateType.CONTACT_INFO.value: ("email", "phoneNumber"),
    ProfileUpdateType.ADDRESS.value: ("address",),
    ProfileUpdateType.EMERGENCY_CONTACT.value: ("emergencyContact",),
    ProfileUpdateType.ADDITIONAL_INFO.value: ("salutation", "occupation", "validID", "photo1x1"),
}


def describe_type(update_type: str) -> str:
    return update_type.replace("_", " ")


def snapshot_old_data(update_type: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """Current values of the fields an update of this type may change."""
    snapshot = {}
    for name in UPDATE_FIELDS.get(update_type, ()):
        value = user.get(name)
        if isinstance(value, dict):
            value = dict(value)
        snapshot[name] = value
    return snapshot


def filter_new_data(update_type: str, new_data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop proposed values outside the update type's field group."""
    allowed = UPDATE_FIELDS.get(update_type, ())
    return {name: value for name, value in new_data.items() if name in allowed}


def _comparable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def find_changed_fields(old_data: Dict[str, Any], new_data: Dict[str, Any], prefix: str = "") -> List[Dict[str, Any]]:
    """
    List the leaf fields whose proposed value differs from the current one.

    Nested objects are compared key by key; the path uses dot notation,
    e.g. ``address.street``.
    """
    changes = []
    for name, new_value in new_data.items():
        if new_value is None:
            continue
        path = f"{prefix}.{name}" if prefix else name
        old_value = (old_data or {}).get(name)

        if isinstance(new_value, dict):
            changes.extend(find_changed_fields(old_value if isinstance(old_value, dict) else {}, new_value, path))
        elif _comparable(old_value) != _comparable(new_value):
            changes.append({
                "fieldName": name,
                "fieldPath": path,
                "oldValue": old_value,
                "newValue": new_value,
            })
    return changes


def build_user_changes(user: Dict[str, Any], new_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Field updates that apply an approved proposal to the user.

    Nested objects are merged into the stored ones; ``None`` values are skipped.
    """
    changes = {}
    for name, value in new_data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            merged = dict(user.get(name) or {})
            merged.update(value)
            changes[name] = merged
        else:
            changes[name] = value
    return changes


def summarize_by_status(rows: List[Dict[str, Any]]) -> Dict[str, int]:
    """Fold ``$group`` rows keyed by status into pending/approved/rejected/total counts."""
    stats = {"pending": 0, "approved": 0, "rejected": 0, "total": 0}
    for row in rows:
        stats[row["_id"]] = row["count"]
        stats["total"] += row["count"]
    return stats
