# SPDX-License-Identifier: Apache-2.0

"""
Terms and conditions acceptance records.
"""

import logging

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag

from middleware.auth import require_admin, require_auth
from middleware.validation import parse_json_body, parse_query_params
from models.entities import TermsAcceptance, UserContext
from models.requests import AcceptTermsRequest, PaginationParams
from routes.settings import load_settings
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)

COLLECTION = "terms_acceptances"
WITHOUT_SIGNATURE = {"signature": 0}

terms_tag = Tag(name="Terms", description="Terms and conditions acceptance")
terms_bp = APIBlueprint(
    'terms',
    __name__,
    url_prefix='/api/terms',
    abp_tags=[terms_tag]
)


def current_terms_version() -> str:
    return str(load_settings()["system"].get("termsVersion", "1.0"))


@terms_bp.post('/accept')
@require_auth
def accept_terms(user_context: UserContext):
    body = parse_json_body(AcceptTermsRequest, allow_empty=True)
    acceptance = TermsAcceptance(
        user_id=user_context.user_id,
        terms_version=body.terms_version or current_terms_version(),
        signature=body.signature,
        ip_address=user_context.ip_address,
        user_agent=user_context.user_agent
    )

    current_app.mongodb_service.create(COLLECTION, acceptance.to_document(), user_context.user_id)
    current_app.audit_middleware.log_action(
        "TERMS_ACCEPTED",
        f"User accepted terms and conditions v{acceptance.terms_version}",
        entity="TermsAcceptance",
        entity_id=acceptance.id,
        user_context=user_context
    )
    return ResponseBuilder.success(
        {"acceptedAt": acceptance.accepted_at, "version": acceptance.terms_version},
        message="Terms acceptance recorded successfully",
        status_code=201
    )


@terms_bp.get('/status')
@require_auth
def acceptance_status(user_context: UserContext):
    """Whether the caller has accepted the current terms version."""
    version = current_terms_version()
    latest = current_app.mongodb_service.find(
        COLLECTION,
        {"userId": user_context.user_id, "termsVersion": version},
        sort_by="acceptedAt",
        limit=1,
        projection=WITHOUT_SIGNATURE
    )
    acceptance = latest[0] if latest else None
    return ResponseBuilder.success({
        "hasAccepted": acceptance is not None,
        "currentVersion": version,
        "acceptedAt": acceptance.get("acceptedAt") if acceptance else None,
        "acceptanceId": acceptance.get("id") if acceptance else None,
    })


@terms_bp.get('/history')
@require_auth
def acceptance_history(user_context: UserContext):
    history = current_app.mongodb_service.find(
        COLLECTION, {"userId": user_context.user_id}, sort_by="acceptedAt", projection=WITHOUT_SIGNATURE
    )
    return ResponseBuilder.success({"count": len(history), "history": history})


@terms_bp.get('/all-acceptances')
@require_admin
def all_acceptances(user_context: UserContext):
    pagination = parse_query_params(PaginationParams)
    result = current_app.mongodb_service.paginate(
        COLLECTION,
        page=pagination.page,
        page_size=pagination.limit,
        sort_by="acceptedAt",
        projection=WITHOUT_SIGNATURE
    )
    return ResponseBuilder.paginated(result.items, result.to_dict())
