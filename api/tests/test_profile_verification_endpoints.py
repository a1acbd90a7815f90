# SPDX-License-Identifier: Apache-2.0

"""
Tests for PSA birth certificate submission and review.
"""

import io
from datetime import datetime, timedelta

from bson import ObjectId

from domain.files import ValidationResult
from models.enums import Role
from services.email import EmailDeliveryError
from services.mongodb import DuplicateDocumentError, PaginationResult
from services.storage import FileRejectedError

from conftest import ADMIN_ID, RESIDENT_ID, auth_headers, make_user


CERTIFICATE_FIELDS = {
    "certificateNumber": "PSA-2001-0042",
    "registryNumber": "2001-1128-0042",
    "dateIssued": "2001-05-14T00:00:00",
    "placeOfRegistration": "Quezon City",
    "fatherFirstName": "Pedro",
    "fatherLastName": "Dela Cruz",
    "motherFirstName": "Maria",
    "motherMaidenLastName": "Santos",
}


def make_verification(**overrides):
    verification = {
        "id": str(ObjectId()),
        "user": RESIDENT_ID,
        "submittedData": {**CERTIFICATE_FIELDS, "documentUrl": "/uploads/birthCertificate-1.jpg"},
        "userDataSnapshot": {"firstName": "Juan", "lastName": "Dela Cruz"},
        "status": "pending",
        "createdAt": datetime(2025, 2, 1, 9, 0, 0),
    }
    verification.update(overrides)
    return verification


class TestCompletionStatus:
    """Test cases for GET /api/profile-verification/status."""

    def test_resident_with_deadline(self, client, mock_services):
        deadline = datetime.utcnow() + timedelta(days=10, hours=1)
        mock_services['mongo'].find_by_id.return_value = make_user(psaCompletion={"deadline": deadline})

        response = client.get('/api/profile-verification/status', headers=auth_headers())

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["requiresCompletion"] is True
        assert data["isComplete"] is False
        assert data["daysLeft"] == 11
        assert data["isApproaching"] is True
        assert data["isPassed"] is False
        assert data["verificationStatus"] == "none"
        assert data["hasPendingVerification"] is False

    def test_pending_submission_is_reported(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user(
            profileVerification={"status": "pending"}
        )
        mock_services['mongo'].find_one.return_value = make_verification()

        data = client.get('/api/profile-verification/status', headers=auth_headers()).get_json()["data"]

        assert data["hasPendingVerification"] is True
        assert data["verificationStatus"] == "pending"
        assert mock_services['mongo'].find_one.call_args[0][1] == {"user": RESIDENT_ID, "status": "pending"}

    def test_staff_are_exempt(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user(id=ADMIN_ID, role=Role.ADMIN.value)

        data = client.get('/api/profile-verification/status', headers=auth_headers('admin-token')).get_json()["data"]

        assert data == {"requiresCompletion": False, "message": "PSA completion not required for admin users"}

    def test_requires_authentication(self, client, mock_services):
        assert client.get('/api/profile-verification/status').status_code == 401


class TestSubmitVerification:
    """Test cases for POST /api/profile-verification/submit."""

    def test_multipart_submission(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['storage'].save.return_value = {
            "url": "/uploads/birthCertificate-1700000000000-3.jpg",
            "filename": "birthCertificate-1700000000000-3.jpg",
        }

        response = client.post(
            '/api/profile-verification/submit',
            data={**CERTIFICATE_FIELDS,
                  "birthCertificate": (io.BytesIO(b"\xff\xd8\xff"), "psa.jpg", "image/jpeg")},
            content_type='multipart/form-data',
            headers=auth_headers()
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "PSA verification submitted successfully. Please wait for admin review."
        assert body["data"]["status"] == "pending"
        assert mock_services['storage'].save.call_args[0][1] == "birthCertificate"

        collection, stored = mock_services['mongo'].create.call_args[0][:2]
        assert collection == "profile_verifications"
        assert stored["user"] == RESIDENT_ID
        assert stored["submittedData"]["documentUrl"] == "/uploads/birthCertificate-1700000000000-3.jpg"
        assert stored["submittedData"]["documentFilename"] == "birthCertificate-1700000000000-3.jpg"
        assert stored["userDataSnapshot"]["firstName"] == "Juan"

        user_id, updates = mock_services['mongo'].update_by_id.call_args[0][1:3]
        assert user_id == RESIDENT_ID
        assert updates["profileVerification"]["status"] == "pending"
        certificate = updates["birthCertificate"]
        assert certificate["mother"]["maidenName"]["lastName"] == "Santos"
        assert certificate["father"]["citizenship"] == "Filipino"
        assert mock_services['audit'].log_action.call_args[0][0] == "PROFILE_VERIFICATION_SUBMITTED"

    def test_json_submission_with_uploaded_url(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.post(
            '/api/profile-verification/submit',
            json={**CERTIFICATE_FIELDS, "documentUrl": "/uploads/birthCertificate-1.jpg"},
            headers=auth_headers()
        )

        assert response.status_code == 201
        mock_services['storage'].save.assert_not_called()

    def test_missing_required_fields(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        fields = {key: value for key, value in CERTIFICATE_FIELDS.items() if key != "motherMaidenLastName"}

        response = client.post(
            '/api/profile-verification/submit',
            json={**fields, "documentUrl": "/uploads/birthCertificate-1.jpg"},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "All required PSA fields must be provided"
        mock_services['mongo'].create.assert_not_called()

    def test_document_is_required(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.post('/api/profile-verification/submit', json=CERTIFICATE_FIELDS,
                               headers=auth_headers())

        assert response.status_code == 400
        assert response.get_json()["message"] == "Birth certificate document is required"

    def test_rejected_scan(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['storage'].save.side_effect = FileRejectedError(
            ValidationResult(is_valid=False, errors=["File size must not exceed 5MB"])
        )

        response = client.post(
            '/api/profile-verification/submit',
            data={**CERTIFICATE_FIELDS,
                  "birthCertificate": (io.BytesIO(b"\xff\xd8\xff"), "psa.jpg", "image/jpeg")},
            content_type='multipart/form-data',
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "birthCertificate"

    def test_second_pending_submission_conflicts(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['mongo'].find_one.return_value = make_verification()

        response = client.post(
            '/api/profile-verification/submit',
            json={**CERTIFICATE_FIELDS, "documentUrl": "/uploads/birthCertificate-1.jpg"},
            headers=auth_headers()
        )

        assert response.status_code == 409
        mock_services['mongo'].create.assert_not_called()

    def test_concurrent_submission_conflicts(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['mongo'].create.side_effect = DuplicateDocumentError("duplicate")

        response = client.post(
            '/api/profile-verification/submit',
            json={**CERTIFICATE_FIELDS, "documentUrl": "/uploads/birthCertificate-1.jpg"},
            headers=auth_headers()
        )

        assert response.status_code == 409
        mock_services['mongo'].update_by_id.assert_not_called()

    def test_staff_cannot_submit(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user(id=ADMIN_ID, role=Role.ADMIN.value)

        response = client.post(
            '/api/profile-verification/submit',
            json={**CERTIFICATE_FIELDS, "documentUrl": "/uploads/birthCertificate-1.jpg"},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 403
        assert response.get_json()["message"] == "PSA verification is only for residents"


class TestDismissWarning:

    def test_dismiss_records_timestamp(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.post('/api/profile-verification/dismiss-warning', headers=auth_headers())

        assert response.status_code == 200
        assert response.get_json()["message"] == "Warning dismissed"
        updates = mock_services['mongo'].update_by_id.call_args[0][2]
        assert isinstance(updates["psaCompletion.warningDismissedAt"], datetime)

    def test_unknown_user(self, client, mock_services):
        response = client.post('/api/profile-verification/dismiss-warning', headers=auth_headers())

        assert response.status_code == 404


class TestAdminQueues:
    """Test cases for the staff listing endpoints."""

    def test_pending_count(self, client, mock_services):
        mock_services['mongo'].count.return_value = 4

        response = client.get('/api/profile-verification/admin/count', headers=auth_headers('admin-token'))

        assert response.status_code == 200
        assert response.get_json()["data"] == {"count": 4}
        mock_services['mongo'].count.assert_called_once_with("profile_verifications", {"status": "pending"})

    def test_pending_list_includes_submitter(self, client, mock_services):
        mock_services['mongo'].paginate.return_value = PaginationResult([make_verification()], 1, 1, 10)
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.get('/api/profile-verification/admin/pending', headers=auth_headers('admin-token'))

        assert response.status_code == 200
        body = response.get_json()
        assert body["data"][0]["submittedBy"]["username"] == "juandc"
        assert "passwordHash" not in body["data"][0]["submittedBy"]
        assert mock_services['mongo'].paginate.call_args.kwargs["filters"] == {"status": "pending"}

    def test_history_filter(self, client, mock_services):
        mock_services['mongo'].paginate.return_value = PaginationResult([], 0, 1, 10)

        client.get('/api/profile-verification/admin/history?status=rejected', headers=auth_headers('admin-token'))
        assert mock_services['mongo'].paginate.call_args.kwargs["filters"] == {"status": "rejected"}

        client.get('/api/profile-verification/admin/history?status=all', headers=auth_headers('admin-token'))
        assert mock_services['mongo'].paginate.call_args.kwargs["filters"] == {}

    def test_detail_not_found(self, client, mock_services):
        response = client.get(f'/api/profile-verification/admin/{ObjectId()}', headers=auth_headers('admin-token'))

        assert response.status_code == 404
        assert response.get_json()["message"] == "Verification request not found"

    def test_residents_are_refused(self, client, mock_services):
        response = client.get('/api/profile-verification/admin/pending', headers=auth_headers())

        assert response.status_code == 403


class TestReviewVerification:
    """Test cases for approve and reject."""

    def test_approve_completes_profile(self, client, mock_services):
        verification = make_verification()
        mock_services['mongo'].find_by_id.side_effect = [
            verification, make_user(), make_verification(id=verification["id"], status="approved")
        ]

        response = client.put(
            f'/api/profile-verification/admin/{verification["id"]}/approve',
            json={"adminNotes": "Matches registry"},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 200
        assert response.get_json()["message"] == "Profile verification approved successfully"

        claim, user_update = mock_services['mongo'].update_by_id.call_args_list
        assert claim[0][0] == "profile_verifications"
        assert claim[0][2]["status"] == "approved"
        assert claim[0][2]["reviewedBy"] == ADMIN_ID
        assert claim[0][2]["adminNotes"] == "Matches registry"
        assert claim[1]["conditions"] == {"status": "pending"}

        updates = user_update[0][2]
        assert updates["profileVerification"]["status"] == "approved"
        assert updates["profileVerification"]["submittedAt"] == verification["createdAt"]
        assert updates["psaCompletion.isComplete"] is True
        mock_services['email'].send_profile_verification_result.assert_called_once_with(
            "juan@example.com", True, name="Juan", reason=None
        )
        assert mock_services['audit'].log_action.call_args[0][0] == "PROFILE_VERIFICATION_APPROVED"

    def test_already_processed(self, client, mock_services):
        verification = make_verification(status="approved")
        mock_services['mongo'].find_by_id.return_value = verification

        response = client.put(
            f'/api/profile-verification/admin/{verification["id"]}/approve',
            json={},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "This verification has already been processed"
        mock_services['mongo'].update_by_id.assert_not_called()

    def test_concurrent_review_conflicts(self, client, mock_services):
        verification = make_verification()
        mock_services['mongo'].find_by_id.return_value = verification
        mock_services['mongo'].update_by_id.return_value = False

        response = client.put(
            f'/api/profile-verification/admin/{verification["id"]}/approve',
            json={},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 409
        mock_services['email'].send_profile_verification_result.assert_not_called()

    def test_reject_clears_certificate(self, client, mock_services):
        verification = make_verification()
        mock_services['mongo'].find_by_id.side_effect = [
            verification, make_user(), make_verification(id=verification["id"], status="rejected")
        ]
        mock_services['email'].send_profile_verification_result.side_effect = EmailDeliveryError("smtp down")

        response = client.put(
            f'/api/profile-verification/admin/{verification["id"]}/reject',
            json={"rejectionReason": "  Registry number does not match  "},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 200
        assert response.get_json()["message"] == "Profile verification rejected"

        claim, user_update = mock_services['mongo'].update_by_id.call_args_list
        assert claim[0][2]["rejectionReason"] == "Registry number does not match"
        assert user_update[0][2]["birthCertificate"] is None
        assert user_update[0][2]["profileVerification"]["rejectionReason"] == "Registry number does not match"

    def test_reject_requires_reason(self, client, mock_services):
        response = client.put(
            f'/api/profile-verification/admin/{ObjectId()}/reject',
            json={"rejectionReason": "   "},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Rejection reason is required"
        mock_services['mongo'].find_by_id.assert_not_called()


class TestDeadlineReminders:
    """Test cases for POST /api/profile-verification/admin/send-reminders."""

    def test_reminders_are_sent_once_per_window(self, client, mock_services):
        now = datetime.utcnow()
        mock_services['mongo'].find.return_value = [
            make_user(psaCompletion={"deadline": now + timedelta(days=20)}),
            make_user(id=str(ObjectId()), email="ana@example.com",
                      psaCompletion={"deadline": now + timedelta(days=20), "firstReminderSent": True}),
            make_user(id=str(ObjectId()), email="ben@example.com",
                      psaCompletion={"deadline": now + timedelta(days=3)}),
        ]

        response = client.post('/api/profile-verification/admin/send-reminders',
                               headers=auth_headers('super-admin-token'))

        assert response.status_code == 200
        assert response.get_json()["data"] == {"remindersSent": 2}

        sent = [call[0][:3] for call in mock_services['email'].send_psa_reminder.call_args_list]
        assert sent == [("juan@example.com", 20, "first"), ("ben@example.com", 3, "final")]
        flags = [call[0][2] for call in mock_services['mongo'].update_by_id.call_args_list]
        assert flags == [{"psaCompletion.firstReminderSent": True}, {"psaCompletion.finalReminderSent": True}]

    def test_failed_email_is_not_flagged(self, client, mock_services):
        mock_services['mongo'].find.return_value = [
            make_user(psaCompletion={"deadline": datetime.utcnow() + timedelta(days=10)})
        ]
        mock_services['email'].send_psa_reminder.side_effect = EmailDeliveryError("smtp down")

        response = client.post('/api/profile-verification/admin/send-reminders',
                               headers=auth_headers('super-admin-token'))

        assert response.get_json()["data"] == {"remindersSent": 0}
        mock_services['mongo'].update_by_id.assert_not_called()

    def test_admins_cannot_send(self, client, mock_services):
        response = client.post('/api/profile-verification/admin/send-reminders',
                               headers=auth_headers('admin-token'))

        assert response.status_code == 403
