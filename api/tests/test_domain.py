# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the domain rules: fees, transitions, payments, verification
tokens, attachments and reviewed profile changes.
"""

import hashlib
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from domain import document_requests as requests_domain
from domain import files as files_domain
from domain import payments as payments_domain
from domain import profile_updates as updates_domain
from domain import profile_verification as rules_domain
from domain import verification as verification_domain
from models.entities import UserContext
from models.enums import DocumentType, Role

from conftest import ADMIN_ID, OTHER_RESIDENT_ID, RESIDENT_ID, make_document_request, make_user, photo_attachment


def resident(user_id=RESIDENT_ID):
    return UserContext(user_id=user_id, role=Role.RESIDENT.value)


def admin():
    return UserContext(user_id=ADMIN_ID, role=Role.ADMIN.value)


class TestFees:

    def test_fee_table(self):
        assert requests_domain.get_fee("residency") == 50
        assert requests_domain.get_fee("clearance") == 100
        assert requests_domain.get_fee("indigency") == 0

    @pytest.mark.parametrize("document_type,fee", [
        ("indigency", 0),
        ("residency", 50),
        ("clearance", 100),
        ("business_permit", 500),
        ("business_clearance", 200),
        ("good_moral", 75),
        ("barangay_id", 150),
        ("liquor_permit", 300),
        ("missionary", 50),
        ("rehab", 50),
        ("ctc", 50),
        ("building_permit", 500),
    ])
    def test_every_type_has_a_fee(self, document_type, fee):
        assert requests_domain.get_fee(document_type) == fee

    def test_fee_table_is_total_and_non_negative(self):
        assert set(requests_domain.FEE_TABLE) == {t.value for t in DocumentType}
        assert all(requests_domain.get_fee(t.value) >= 0 for t in DocumentType)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Invalid document type: passport"):
            requests_domain.get_fee("passport")

    @pytest.mark.parametrize("base_fee,expected", [
        (100, 102.5),
        (500, 512.5),
        (50, 51.25),
        (20, 50.0),
        (0, 0.0),
    ])
    def test_gateway_total(self, base_fee, expected):
        assert requests_domain.gateway_total(base_fee) == expected

    def test_to_centavos(self):
        assert requests_domain.to_centavos(102.5) == 10250
        assert requests_domain.to_centavos(51.25) == 5125


class TestTransitions:

    @pytest.mark.parametrize("current,target", [
        ("pending", "approved"),
        ("pending", "rejected"),
        ("pending", "cancelled"),
        ("pending", "completed"),
        ("approved", "completed"),
        ("approved", "cancelled"),
    ])
    def test_allowed(self, current, target):
        assert requests_domain.check_transition(current, target).allowed

    @pytest.mark.parametrize("current,target", [
        ("approved", "pending"),
        ("approved", "rejected"),
        ("completed", "pending"),
        ("rejected", "approved"),
        ("cancelled", "pending"),
    ])
    def test_refused(self, current, target):
        check = requests_domain.check_transition(current, target)
        assert not check.allowed
        assert check.reason == f"Cannot change status from {current} to {target}"

    def test_same_status(self):
        check = requests_domain.check_transition("pending", "pending")
        assert check.reason == "Request is already pending"

    def test_unknown_status(self):
        check = requests_domain.check_transition("pending", "archived")
        assert check.reason == "Invalid status: archived"

    def test_issuance_only_once(self):
        assert requests_domain.needs_issuance({"status": "pending"}, "approved")
        assert requests_domain.needs_issuance({"status": "pending"}, "completed")
        assert not requests_domain.needs_issuance({"controlNumber": "RES-2025-00001"}, "completed")
        assert not requests_domain.needs_issuance({}, "rejected")

    def test_control_number(self):
        assert requests_domain.format_control_number("indigency", 2025, 1) == "IND-2025-00001"
        assert requests_domain.format_control_number("business_permit", 2025, 123) == "BUS-2025-00123"

    def test_status_update_fields(self):
        now = datetime(2025, 3, 1)
        update = requests_domain.build_status_update(
            {}, "rejected", admin(), rejection_reason="Incomplete", remarks="See note", now=now
        )
        assert update == {
            "status": "rejected",
            "processedBy": ADMIN_ID,
            "processedAt": now,
            "updatedAt": now,
            "rejectionReason": "Incomplete",
            "remarks": "See note",
        }


class TestOwnership:

    def test_owner_edit_while_pending(self):
        assert requests_domain.check_owner_edit(make_document_request(), resident()).allowed

    def test_owner_edit_after_approval(self):
        check = requests_domain.check_owner_edit(make_document_request(status="approved"), resident())
        assert check.reason == "Cannot update a request that is approved"

    def test_non_owner_edit(self):
        check = requests_domain.check_owner_edit(make_document_request(), resident(OTHER_RESIDENT_ID))
        assert not check.allowed

    def test_walk_in_request_has_no_owner(self):
        assert not requests_domain.is_owner(make_document_request(applicant=None), resident())

    def test_admin_deletes_any_request(self):
        assert requests_domain.check_delete(make_document_request(status="completed"), admin()).allowed

    def test_owner_cannot_delete_processed_request(self):
        assert not requests_domain.check_delete(make_document_request(status="rejected"), resident()).allowed

    def test_protected_fields(self):
        document = make_document_request()
        check = requests_domain.check_protected_fields(document, {"documentType": "clearance", "status": "pending"})
        assert check.errors == ["documentType cannot be changed"]


class TestRequestAssembly:

    def test_profile_auto_fill(self):
        request = requests_domain.build_request_document(
            {"documentType": "residency", "purposeOfRequest": "Scholarship"},
            RESIDENT_ID,
            profile=make_user(),
            use_stored_valid_id=True
        )
        assert request.first_name == "Juan"
        assert request.contact_number == "09171234567"
        assert request.fees == 50
        assert request.status == "pending"
        assert request.payment_status == "unpaid"
        assert request.address.barangay == "Culiat"

    def test_payload_overrides_profile(self):
        request = requests_domain.build_request_document(
            {"documentType": "residency", "firstName": "Jose"},
            RESIDENT_ID,
            profile=make_user(),
            use_stored_valid_id=True
        )
        assert request.first_name == "Jose"

    def test_business_requirements(self):
        with pytest.raises(ValidationError) as exc_info:
            requests_domain.build_request_document(
                {"documentType": "business_permit", "photo1x1": photo_attachment()},
                RESIDENT_ID,
                profile=make_user(),
                use_stored_valid_id=True
            )
        message = str(exc_info.value)
        assert "Business name is required" in message
        assert "Nature of business is required" in message

    def test_merge_update_ignores_protected_fields(self):
        merged = requests_domain.merge_update(
            make_document_request(), {"purposeOfRequest": "Employment", "documentType": "clearance"}
        )
        assert merged.purpose_of_request == "Employment"
        assert merged.document_type == "residency"

    def test_stats(self):
        stats = requests_domain.summarize_stats(
            [{"_id": "pending", "count": 3}, {"_id": "completed", "count": 2}],
            [{"_id": "residency", "count": 5}]
        )
        assert stats["total"] == 5
        assert stats["byStatus"]["approved"] == 0
        assert stats["byType"] == {"residency": 5}


class TestWebhookSignature:

    SECRET = "whsk_test"
    BODY = b'{"data":{"id":"evt_1"}}'

    def test_parse_header(self):
        assert payments_domain.parse_signature_header("t=1496734173,te=abc,li=") == {
            "t": "1496734173", "te": "abc", "li": ""
        }
        assert payments_domain.parse_signature_header(None) == {}

    def test_test_mode_signature(self):
        signature = payments_domain.compute_signature(self.SECRET, "1700000000", self.BODY)
        header = f"t=1700000000,te={signature},li="
        assert payments_domain.verify_signature(header, self.BODY, self.SECRET)

    def test_live_mode_signature(self):
        signature = payments_domain.compute_signature(self.SECRET, "1700000000", self.BODY)
        header = f"t=1700000000,te=,li={signature}"
        assert payments_domain.verify_signature(header, self.BODY, self.SECRET)

    def test_tampered_body(self):
        signature = payments_domain.compute_signature(self.SECRET, "1700000000", self.BODY)
        header = f"t=1700000000,te={signature},li="
        assert not payments_domain.verify_signature(header, self.BODY + b" ", self.SECRET)

    def test_missing_timestamp_or_secret(self):
        assert not payments_domain.verify_signature("te=abc", self.BODY, self.SECRET)
        assert not payments_domain.verify_signature("t=1,te=abc", self.BODY, "")

    def test_non_ascii_signature_is_a_mismatch(self):
        assert not payments_domain.verify_signature("t=1,li=\u00e9", self.BODY, self.SECRET)
        assert not payments_domain.verify_signature("t=1,te=\u00e9abc,li=", self.BODY, self.SECRET)


class TestPaymentEvents:

    def _event(self, event_type="link.payment.paid", resource=None):
        return {"data": {"attributes": {"type": event_type, "data": resource or {}}}}

    def test_paid_event_types(self):
        assert payments_domain.is_paid_event(self._event("payment.paid"))
        assert payments_domain.is_paid_event(self._event("checkout_session.payment.paid"))
        assert not payments_domain.is_paid_event(self._event("payment.failed"))

    def test_references_are_unique_and_ordered(self):
        event = self._event(resource={
            "id": "link_abc",
            "attributes": {
                "reference_number": "REF123",
                "external_reference_number": "link_abc",
                "metadata": {"paymentReference": "link_abc", "requestId": "req-1"}
            }
        })
        assert payments_domain.extract_references(event) == ["link_abc", "REF123"]
        assert payments_domain.extract_request_id(event) == "req-1"

    def test_settle_rules(self):
        assert payments_domain.check_can_settle({"paymentStatus": "unpaid"}).allowed
        assert payments_domain.check_can_settle({"paymentStatus": "paid"}).reason == "This request is already paid"
        assert not payments_domain.check_can_create_link({"paymentStatus": "waived"}).allowed

    def test_link_payload(self):
        payload = payments_domain.build_link_payload({"fees": 100, "documentType": "clearance"}, "req-1")
        attributes = payload["data"]["attributes"]
        assert attributes["amount"] == 10250
        assert attributes["description"] == "Payment for Barangay Clearance - Request #req-1"

    def test_summary(self):
        summary = payments_domain.summarize_payments(
            [{"totalRevenue": 300, "totalTransactions": 4}],
            [{"_id": "clearance", "count": 3, "revenue": 300}]
        )
        assert summary["summary"]["averageTransaction"] == 75.0
        assert summary["summary"]["topDocument"] == "Barangay Clearance"

    def test_empty_summary(self):
        summary = payments_domain.summarize_payments([], [])
        assert summary["summary"]["totalRevenue"] == 0
        assert summary["summary"]["topDocument"] == "N/A"


class TestVerificationTokens:

    def test_token_structure(self):
        token = verification_domain.generate_token("RES-2025-00001", now_ms=36)
        prefix, control, unique_id, timestamp = token.split("-")
        assert prefix == "VRF"
        assert control == "RES202500001"
        assert len(unique_id) == 8
        assert timestamp == "10"
        assert verification_domain.is_valid_token_structure(token)

    @pytest.mark.parametrize("token", [None, "", "VRF-RES-abc", "vrf-RES202500001-0123abcd-k5", "garbage"])
    def test_malformed_tokens(self, token):
        assert not verification_domain.is_valid_token_structure(token)

    def test_parse_token(self):
        parsed = verification_domain.parse_token("VRF-CLE202500042-0123abcd-m5x2k1")
        assert parsed.control_number == "CLE-2025-00042"
        assert parsed.prefix == "CLE"
        assert parsed.year == "2025"
        assert parsed.sequence == "00042"

    def test_parse_rejects_short_tokens(self):
        assert verification_domain.parse_token("VRF-CLE-x") is None

    def test_base36(self):
        assert verification_domain.to_base36(0) == "0"
        assert verification_domain.to_base36(35) == "z"
        assert verification_domain.to_base36(1295) == "zz"

    def test_security_hash(self):
        digest = verification_domain.generate_security_hash("RES-2025-00001", "VRF-x", "secret")
        assert digest == hashlib.sha256(b"RES-2025-00001:VRF-x:secret").hexdigest()[:16]

    def test_issuance_fields(self):
        fields = verification_domain.build_issuance_fields("IND-2025-00003", "secret")
        assert fields["controlNumber"] == "IND-2025-00003"
        assert fields["verificationToken"].startswith("VRF-IND202500003-")
        assert len(fields["securityHash"]) == 16

    def test_resident_name(self):
        assert verification_domain.resident_name({"firstName": "Ana", "lastName": "Reyes", "suffix": "Jr."}) == \
            "Ana Reyes Jr."
        assert verification_domain.resident_name({}) == "Unknown"


class TestAttachments:

    def test_valid_upload(self):
        assert files_domain.validate_upload("image/png", 1024, "photo.PNG").is_valid

    def test_upload_errors(self):
        result = files_domain.validate_upload("application/pdf", 6 * 1024 * 1024, "scan.pdf")
        assert result.errors == [
            files_domain.INVALID_TYPE_MESSAGE,
            files_domain.TOO_LARGE_MESSAGE,
            files_domain.INVALID_EXTENSION_MESSAGE,
        ]

    def test_size_limit_is_inclusive(self):
        assert files_domain.validate_upload("image/jpeg", files_domain.MAX_FILE_SIZE).is_valid

    def test_oversized_allowed_type(self):
        result = files_domain.validate_upload("image/jpeg", files_domain.MAX_FILE_SIZE + 1, "id.jpg")
        assert result.errors == [files_domain.TOO_LARGE_MESSAGE]

    def test_disallowed_type_small_size(self):
        result = files_domain.validate_upload("image/gif", 1024, "id.jpg")
        assert result.errors == [files_domain.INVALID_TYPE_MESSAGE]

    @pytest.mark.parametrize("url", [
        "https://cdn.example.com/a.jpg",
        "/uploads/validID-1.jpg",
        "/images/id.png",
    ])
    def test_attachment_urls(self, url):
        assert files_domain.validate_attachment({"url": url, "mimeType": "image/jpeg", "fileSize": 10}).is_valid

    def test_attachment_bad_url(self):
        result = files_domain.validate_attachment({"url": "ftp://x/a.jpg", "mimeType": "image/jpeg", "fileSize": 10})
        assert result.errors == [files_domain.INVALID_URL_MESSAGE]

    def test_missing_attachment(self):
        assert files_domain.validate_attachment(None).errors == [files_domain.NO_FILE_MESSAGE]


class TestProfileUpdates:

    def test_changed_fields_use_dot_paths(self):
        changes = updates_domain.find_changed_fields(
            {"address": {"street": "Mapayapa St.", "houseNumber": "12"}},
            {"address": {"street": "Tandang Sora Ave.", "houseNumber": "12"}}
        )
        assert changes == [{
            "fieldName": "street",
            "fieldPath": "address.street",
            "oldValue": "Mapayapa St.",
            "newValue": "Tandang Sora Ave.",
        }]

    def test_dates_compare_by_value(self):
        changes = updates_domain.find_changed_fields(
            {"dateOfBirth": datetime(1990, 5, 1)}, {"dateOfBirth": "1990-05-01T00:00:00"}
        )
        assert changes == []

    def test_filter_new_data(self):
        assert updates_domain.filter_new_data("contact_info", {"email": "a@b.co", "firstName": "X"}) == {
            "email": "a@b.co"
        }

    def test_build_user_changes_merges_nested(self):
        changes = updates_domain.build_user_changes(
            {"address": {"street": "Old", "houseNumber": "12"}},
            {"address": {"street": "New"}, "phoneNumber": None}
        )
        assert changes == {"address": {"street": "New", "houseNumber": "12"}}

    def test_summarize_by_status(self):
        assert updates_domain.summarize_by_status([{"_id": "rejected", "count": 2}]) == {
            "pending": 0, "approved": 0, "rejected": 2, "total": 2
        }


class TestProfileVerificationRules:

    NOW = datetime(2025, 3, 1, 12, 0, 0)

    def _user(self, days, **psa):
        return make_user(psaCompletion={"deadline": self.NOW + timedelta(days=days), **psa})

    @pytest.mark.parametrize("certificate,complete", [
        (None, False),
        ({"registryNumber": "2001-1128-0042"}, True),
        ({"yourInfo": {"firstName": "Juan", "lastName": "Dela Cruz", "dateOfBirth": "2001-05-01"}}, True),
        ({"yourInfo": {"firstName": "Juan"}}, False),
        ({"mother": {"maidenName": {"firstName": "Maria"}}, "father": {"name": {"firstName": "Pedro"}}}, True),
        ({"mother": {"maidenName": {"firstName": "Maria"}}}, False),
    ])
    def test_profile_completeness(self, certificate, complete):
        assert rules_domain.is_profile_complete(make_user(birthCertificate=certificate)) is complete

    @pytest.mark.parametrize("delta,expected", [
        (timedelta(days=10), 10),
        (timedelta(days=9, hours=1), 10),
        (timedelta(hours=-1), 0),
        (timedelta(days=-3), -3),
    ])
    def test_days_until_deadline_rounds_up(self, delta, expected):
        user = make_user(psaCompletion={"deadline": self.NOW + delta})
        assert rules_domain.days_until_deadline(user, self.NOW) == expected

    def test_no_deadline(self):
        assert rules_domain.days_until_deadline(make_user(), self.NOW) is None
        assert not rules_domain.is_deadline_approaching(None)
        assert not rules_domain.is_deadline_passed(None)

    def test_deadline_windows(self):
        assert rules_domain.is_deadline_approaching(14)
        assert not rules_domain.is_deadline_approaching(15)
        assert not rules_domain.is_deadline_approaching(0)
        assert rules_domain.is_deadline_passed(0)

    def test_initial_deadline(self):
        assert rules_domain.initial_deadline(self.NOW) == self.NOW + timedelta(days=90)

    def test_missing_required_fields(self):
        assert rules_domain.missing_required_fields({"registryNumber": " "}) == list(rules_domain.REQUIRED_FIELDS)

    @pytest.mark.parametrize("days,psa,expected", [
        (30, {}, "first"),
        (15, {}, "first"),
        (14, {}, "second"),
        (7, {}, "final"),
        (1, {}, "final"),
        (31, {}, None),
        (0, {}, None),
        (20, {"firstReminderSent": True}, None),
        (5, {"isComplete": True}, None),
    ])
    def test_due_reminder(self, days, psa, expected):
        due = rules_domain.due_reminder(self._user(days, **psa), self.NOW)
        assert (due[0] if due else None) == expected

    def test_rejection_state(self):
        state = rules_domain.verification_state("rejected", reviewed_by=ADMIN_ID,
                                                rejection_reason="Blurry scan", now=self.NOW)
        assert state["reviewedAt"] == self.NOW
        assert state["reviewedBy"] == ADMIN_ID
        assert state["rejectionReason"] == "Blurry scan"

        pending = rules_domain.verification_state("pending", reviewed_by=ADMIN_ID, now=self.NOW)
        assert pending["reviewedAt"] is None
        assert pending["reviewedBy"] is None
