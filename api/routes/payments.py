# SPDX-License-Identifier: Apache-2.0

"""
Payment endpoints for document requests.

Online payment goes through a PayMongo payment link; staff can also record a
walk-in payment or waive the fee. The gateway webhook is signature-checked
before anything is touched.
"""

import json
import logging

from flask import request, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain import document_requests as request_domain
from domain import payments as payment_domain
from middleware.auth import require_auth, require_admin
from middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    UpstreamServiceException,
    ValidationException,
)
from middleware.validation import parse_json_body, parse_query_params
from models.entities import UserContext
from models.enums import PaymentStatus
from models.requests import (
    ConfirmPaymentRequest,
    CreatePaymentLinkRequest,
    PaginationParams,
    RequestIdPath,
    WaivePaymentRequest,
)
from routes.document_requests import COLLECTION, load_document_request, present
from services.payments import PaymentGatewayError
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NO_FEE_REASON = "No fee required for this document type"
UNPAID = {"paymentStatus": PaymentStatus.UNPAID.value}

payments_tag = Tag(name="Payments", description="Document request payments")
payments_bp = APIBlueprint(
    'payments',
    __name__,
    url_prefix='/api/payments',
    abp_tags=[payments_tag]
)


def _load_visible(request_id: str, user_context: UserContext):
    document = load_document_request(request_id)
    if not request_domain.can_view(document, user_context):
        raise AuthorizationException("Not authorized to access this request")
    return document


def _status_payload(document, **extra):
    data = {
        "requestId": document.get("id"),
        "paymentStatus": document.get("paymentStatus"),
        "paymentReference": document.get("paymentReference"),
        "paymentAmount": document.get("paymentAmount"),
        "paidAt": document.get("paidAt"),
    }
    data.update(extra)
    return data


@payments_bp.post('/create-link')
@require_auth
def create_payment_link(user_context: UserContext):
    """
    Create a gateway payment link for a document request.

    Documents without a fee are waived instead and no link is created.
    """
    with tracer.start_as_current_span("payment.create_link") as span:
        body = parse_json_body(CreatePaymentLinkRequest)
        request_id = body.request_id
        span.set_attribute("document_request.id", request_id)

        document = _load_visible(request_id, user_context)

        check = payment_domain.check_can_create_link(document)
        if not check.allowed:
            raise ConflictException(check.reason)

        base_fee = document.get("fees") or 0
        total = request_domain.gateway_total(base_fee)

        if total <= 0:
            current_app.mongodb_service.update_by_id(
                COLLECTION,
                request_id,
                payment_domain.build_waived_update(NO_FEE_REASON, None),
                conditions=UNPAID
            )
            logger.info("Zero-fee request waived", extra={"request_id": request_id})
            return ResponseBuilder.success(
                {"requestId": request_id, "paymentStatus": PaymentStatus.WAIVED.value, "amount": 0},
                message="No payment required for this document"
            )

        try:
            link = current_app.payment_client.create_link(payment_domain.build_link_payload(document, request_id))
        except PaymentGatewayError as e:
            span.set_status(Status(StatusCode.ERROR, e.message))
            raise UpstreamServiceException("Failed to create payment link", e.payload)

        current_app.mongodb_service.update_by_id(
            COLLECTION,
            request_id,
            {
                "paymentReference": link["id"],
                "paymentLink": link["checkout_url"],
                "paymentAmount": total,
            },
            user_context.user_id
        )

        current_app.audit_middleware.log_action(
            "PAYMENT_LINK_CREATED",
            f"Created payment link for request {request_id} amounting to {total:.2f}",
            entity="DocumentRequest",
            entity_id=request_id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success({
            "requestId": request_id,
            "checkoutUrl": link["checkout_url"],
            "paymentReference": link["id"],
            "baseFee": base_fee,
            "amount": total,
            "commission": round(total - base_fee, 2)
        }, message="Payment link created successfully")


@payments_bp.get('/verify/<request_id>')
@require_auth
def verify_payment(user_context: UserContext, path: RequestIdPath):
    """Poll the gateway for the request's payment link and record a completed payment."""
    with tracer.start_as_current_span("payment.verify") as span:
        document = _load_visible(path.request_id, user_context)
        status = document.get("paymentStatus")
        span.set_attribute("payment.status", status or "")

        if status == PaymentStatus.PAID.value:
            return ResponseBuilder.success(_status_payload(document), message="Payment already confirmed")
        if status == PaymentStatus.WAIVED.value:
            return ResponseBuilder.success(_status_payload(document), message="Payment has been waived")

        reference = document.get("paymentReference")
        if not reference:
            raise ValidationException("No payment link found for this request")

        try:
            link = current_app.payment_client.retrieve_link(reference)
        except PaymentGatewayError as e:
            raise UpstreamServiceException("Failed to verify payment", e.payload)

        if link.get("status") != PaymentStatus.PAID.value:
            return ResponseBuilder.success(
                _status_payload(document, gatewayStatus=link.get("status")),
                message="Payment not yet completed"
            )

        amount = document.get("paymentAmount") or request_domain.gateway_total(document.get("fees") or 0)
        current_app.mongodb_service.update_by_id(
            COLLECTION,
            path.request_id,
            payment_domain.build_paid_update(amount, "paymongo", reference=reference),
            conditions=UNPAID
        )

        current_app.audit_middleware.log_action(
            "PAYMENT_VERIFIED",
            f"Online payment verified for request {path.request_id}",
            entity="DocumentRequest",
            entity_id=path.request_id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            _status_payload(load_document_request(path.request_id)),
            message="Payment verified successfully"
        )


@payments_bp.post('/confirm/<request_id>')
@require_admin
def confirm_payment(user_context: UserContext, path: RequestIdPath):
    """Record a walk-in payment (staff only)."""
    body = parse_json_body(ConfirmPaymentRequest, allow_empty=True)
    document = load_document_request(path.request_id)

    check = payment_domain.check_can_settle(document)
    if not check.allowed:
        raise ConflictException(check.reason)

    update = payment_domain.build_paid_update(
        document.get("fees") or 0,
        body.payment_method,
        confirmed_by=user_context.user_id,
        reference=body.reference_number
    )
    if body.notes:
        update["paymentNotes"] = body.notes

    updated = current_app.mongodb_service.update_by_id(
        COLLECTION, path.request_id, update, user_context.user_id, conditions=UNPAID
    )
    if not updated:
        raise ConflictException("Payment status changed, please retry")

    current_app.audit_middleware.log_action(
        "PAYMENT_CONFIRMED",
        f"Confirmed {body.payment_method} payment for request {path.request_id}",
        entity="DocumentRequest",
        entity_id=path.request_id,
        user_context=user_context
    )

    return ResponseBuilder.success(
        present(load_document_request(path.request_id)),
        message="Payment confirmed successfully"
    )


@payments_bp.post('/waive/<request_id>')
@require_admin
def waive_payment(user_context: UserContext, path: RequestIdPath):
    """Waive the fee for a request (staff only)."""
    body = parse_json_body(WaivePaymentRequest)
    document = load_document_request(path.request_id)

    check = payment_domain.check_can_settle(document)
    if not check.allowed:
        raise ConflictException(check.reason)

    updated = current_app.mongodb_service.update_by_id(
        COLLECTION,
        path.request_id,
        payment_domain.build_waived_update(body.reason, user_context.user_id),
        user_context.user_id,
        conditions=UNPAID
    )
    if not updated:
        raise ConflictException("Payment status changed, please retry")

    current_app.audit_middleware.log_action(
        "PAYMENT_WAIVED",
        f"Waived payment for request {path.request_id}: {body.reason}",
        entity="DocumentRequest",
        entity_id=path.request_id,
        user_context=user_context
    )

    return ResponseBuilder.success(
        present(load_document_request(path.request_id)),
        message="Payment waived successfully"
    )


@payments_bp.post('/webhook')
def payment_webhook():
    """
    Gateway webhook.

    Unsigned or mis-signed calls are rejected with 400. Paid events for an
    unknown or already settled request are acknowledged without changes.
    """
    with tracer.start_as_current_span("payment.webhook") as span:
        raw_body = request.get_data()
        signature = request.headers.get("Paymongo-Signature")

        if not payment_domain.verify_signature(signature, raw_body, current_app.config['PAYMONGO_WEBHOOK_SECRET']):
            span.set_attribute("payment.webhook.signature", "invalid")
            logger.warning("Webhook signature verification failed", extra={"remote_addr": request.remote_addr})
            raise ValidationException("Invalid webhook signature", error="invalid_signature")

        try:
            event = json.loads(raw_body or b"{}")
        except ValueError:
            raise ValidationException("Invalid webhook payload")

        event_type = payment_domain.get_event_type(event)
        span.set_attribute("payment.webhook.event", event_type or "")

        if not payment_domain.is_paid_event(event):
            return ResponseBuilder.success(message="Event ignored", received=True)

        mongo = current_app.mongodb_service
        document = None
        references = payment_domain.extract_references(event)
        if references:
            document = mongo.find_one(COLLECTION, {"paymentReference": {"$in": references}})
        if not document:
            request_id = payment_domain.extract_request_id(event)
            if request_id:
                document = mongo.find_by_id(COLLECTION, request_id)

        if not document:
            logger.warning("Webhook references no known request", extra={"references": references})
            return ResponseBuilder.success(message="No matching request", received=True)

        if document.get("paymentStatus") != PaymentStatus.UNPAID.value:
            return ResponseBuilder.success(
                message=f"Request already {document.get('paymentStatus')}",
                received=True
            )

        amount = document.get("paymentAmount") or request_domain.gateway_total(document.get("fees") or 0)
        mongo.update_by_id(
            COLLECTION,
            document["id"],
            payment_domain.build_paid_update(amount, "paymongo", reference=document.get("paymentReference")),
            conditions=UNPAID
        )

        current_app.audit_middleware.log_action(
            "PAYMENT_RECEIVED",
            f"Gateway payment received for request {document['id']} ({event_type})",
            entity="DocumentRequest",
            entity_id=document["id"]
        )
        logger.info("Webhook marked request paid", extra={"request_id": document["id"], "event_type": event_type})
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(message="Payment recorded", received=True)


@payments_bp.get('/history')
@require_admin
def payment_history(user_context: UserContext):
    """Paid requests with revenue summary and per-type breakdown (staff only)."""
    pagination = parse_query_params(PaginationParams)
    mongo = current_app.mongodb_service
    paid = {"paymentStatus": PaymentStatus.PAID.value}
    amount = {"$ifNull": ["$paymentAmount", "$fees"]}

    summary_rows = mongo.aggregate(COLLECTION, [
        {"$match": paid},
        {"$group": {"_id": None, "totalRevenue": {"$sum": amount}, "totalTransactions": {"$sum": 1}}}
    ])
    breakdown_rows = mongo.aggregate(COLLECTION, [
        {"$match": paid},
        {"$group": {"_id": "$documentType", "count": {"$sum": 1}, "revenue": {"$sum": amount}}},
        {"$sort": {"revenue": -1}}
    ])
    result = mongo.paginate(
        COLLECTION,
        page=pagination.page,
        page_size=pagination.limit,
        filters=paid,
        sort_by="paidAt"
    )

    report = payment_domain.summarize_payments(summary_rows, breakdown_rows)
    return ResponseBuilder.success(
        [present(doc) for doc in result.items],
        summary=report["summary"],
        breakdown=report["breakdown"],
        pagination=result.to_dict()
    )
