# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the account endpoints: registration, login, logout and approval.
"""

from datetime import datetime

from models.enums import Role
from services.email import EmailDeliveryError
from services.mongodb import PaginationResult

from conftest import TOKEN_PAYLOADS, auth_headers, make_user


REGISTRATION = {
    "username": "juandc",
    "email": "Juan@Example.com",
    "password": "secret123",
    "firstName": "Juan",
    "lastName": "Dela Cruz",
    "phoneNumber": "09171234567"
}


def _login_token():
    return {"token": "signed.jwt.token", "token_type": "Bearer", "expires_at": "2025-02-09T08:00:00"}


class TestRegister:
    """Test cases for POST /api/auth/register."""

    def test_register_creates_pending_resident(self, client, mock_services):
        mock_services['auth'].hash_password.return_value = "$2b$12$hashed"

        response = client.post('/api/auth/register', json=REGISTRATION)

        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Registration submitted. Please wait for admin approval."
        assert body["data"]["registrationStatus"] == "pending"
        assert body["data"]["roleName"] == "Resident"
        assert body["data"]["email"] == "juan@example.com"
        assert "passwordHash" not in body["data"]

        collection, stored = mock_services['mongo'].create.call_args[0][:2]
        assert collection == "users"
        assert stored["passwordHash"] == "$2b$12$hashed"
        assert stored["role"] == Role.RESIDENT.value
        assert stored["psaCompletion"]["deadline"] > datetime.utcnow()
        mock_services['auth'].hash_password.assert_called_once_with("secret123")

    def test_register_duplicate(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user()

        response = client.post('/api/auth/register', json=REGISTRATION)

        assert response.status_code == 409
        assert response.get_json()["message"] == "User with this username or email already exists"
        mock_services['mongo'].create.assert_not_called()

    def test_register_short_password(self, client, mock_services):
        response = client.post('/api/auth/register', json={**REGISTRATION, "password": "abc"})

        assert response.status_code == 400
        assert response.get_json()["success"] is False


class TestLogin:
    """Test cases for POST /api/auth/login."""

    def test_login_success(self, client, mock_services):
        user = make_user()
        mock_services['mongo'].find_one.return_value = user
        mock_services['auth'].verify_password.return_value = True
        mock_services['auth'].generate_token.return_value = _login_token()

        response = client.post('/api/auth/login', json={"username": "juandc", "password": "secret123"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["message"] == "Login successful"
        assert body["token"] == "signed.jwt.token"
        assert body["data"]["tokenType"] == "Bearer"
        assert "passwordHash" not in body["data"]["user"]

        user_id, updates = mock_services['mongo'].update_by_id.call_args[0][1:3]
        assert user_id == user["id"]
        assert "lastLogin" in updates

    def test_login_by_email(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user()
        mock_services['auth'].verify_password.return_value = True
        mock_services['auth'].generate_token.return_value = _login_token()

        response = client.post('/api/auth/login', json={"email": "Juan@Example.com", "password": "secret123"})

        assert response.status_code == 200
        query = mock_services['mongo'].find_one.call_args[0][1]
        assert {"email": "juan@example.com"} in query["$or"]

    def test_login_missing_credentials(self, client, mock_services):
        response = client.post('/api/auth/login', json={"username": "juandc"})

        assert response.status_code == 400
        assert response.get_json()["message"] == "Please provide username/email and password"

    def test_login_wrong_password(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user()
        mock_services['auth'].verify_password.return_value = False

        response = client.post('/api/auth/login', json={"username": "juandc", "password": "wrong"})

        assert response.status_code == 401
        assert response.get_json()["message"] == "Invalid credentials"
        mock_services['auth'].generate_token.assert_not_called()

    def test_login_unknown_user(self, client, mock_services):
        response = client.post('/api/auth/login', json={"username": "nobody", "password": "secret123"})

        assert response.status_code == 401

    def test_login_pending_registration(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user(registrationStatus="pending")
        mock_services['auth'].verify_password.return_value = True

        response = client.post('/api/auth/login', json={"username": "juandc", "password": "secret123"})

        assert response.status_code == 403
        assert response.get_json()["error"] == "registration_pending"

    def test_login_rejected_registration_shows_reason(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user(
            registrationStatus="rejected", rejectionReason="Blurry ID"
        )
        mock_services['auth'].verify_password.return_value = True

        response = client.post('/api/auth/login', json={"username": "juandc", "password": "secret123"})

        assert response.status_code == 403
        body = response.get_json()
        assert body["error"] == "registration_rejected"
        assert body["message"] == "Your registration has been rejected: Blurry ID"

    def test_login_inactive_account(self, client, mock_services):
        mock_services['mongo'].find_one.return_value = make_user(isActive=False)
        mock_services['auth'].verify_password.return_value = True

        response = client.post('/api/auth/login', json={"username": "juandc", "password": "secret123"})

        assert response.status_code == 403
        assert response.get_json()["error"] == "account_inactive"


class TestCurrentUser:
    """Test cases for /api/auth/me, profile and password changes."""

    def test_me_requires_token(self, client, mock_services):
        response = client.get('/api/auth/me')

        assert response.status_code == 401

    def test_me_rejects_invalid_token(self, client, mock_services):
        response = client.get('/api/auth/me', headers=auth_headers('forged-token'))

        assert response.status_code == 401

    def test_me_returns_profile(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.get('/api/auth/me', headers=auth_headers())

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["username"] == "juandc"
        assert "passwordHash" not in data

    def test_update_profile_without_fields(self, client, mock_services):
        response = client.put('/api/auth/profile', json={}, headers=auth_headers())

        assert response.status_code == 400
        assert response.get_json()["message"] == "No profile fields provided"

    def test_update_profile(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user(occupation="Teacher")

        response = client.put('/api/auth/profile', json={"occupation": "Teacher"}, headers=auth_headers())

        assert response.status_code == 200
        updates = mock_services['mongo'].update_by_id.call_args[0][2]
        assert updates == {"occupation": "Teacher"}

    def test_change_password_too_short(self, client, mock_services):
        response = client.put(
            '/api/auth/change-password',
            json={"currentPassword": "secret123", "newPassword": "abc"},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.get_json()["message"] == "Password must be at least 6 characters"

    def test_change_password_wrong_current(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['auth'].verify_password.return_value = False

        response = client.put(
            '/api/auth/change-password',
            json={"currentPassword": "wrong", "newPassword": "newsecret"},
            headers=auth_headers()
        )

        assert response.status_code == 401
        assert response.get_json()["message"] == "Current password is incorrect"
        mock_services['mongo'].update_by_id.assert_not_called()

    def test_change_password(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()
        mock_services['auth'].verify_password.return_value = True
        mock_services['auth'].hash_password.return_value = "$2b$12$new"

        response = client.put(
            '/api/auth/change-password',
            json={"currentPassword": "secret123", "newPassword": "newsecret"},
            headers=auth_headers()
        )

        assert response.status_code == 200
        updates = mock_services['mongo'].update_by_id.call_args[0][2]
        assert updates == {"passwordHash": "$2b$12$new"}


class TestLogout:
    """Test cases for POST /api/auth/logout."""

    def test_logout_blocks_token(self, client, mock_services):
        payload = {**TOKEN_PAYLOADS['resident-token'], "exp": 1900000000}
        mock_services['auth'].validate_token.side_effect = lambda token: payload
        mock_services['redis'].add_to_blocklist.return_value = True

        response = client.post('/api/auth/logout', headers=auth_headers())

        assert response.status_code == 200
        assert response.get_json()["message"] == "Logged out successfully"
        mock_services['redis'].add_to_blocklist.assert_called_once_with("jti-resident", 1900000000)

    def test_logout_succeeds_when_blocklist_unavailable(self, client, mock_services):
        payload = {**TOKEN_PAYLOADS['resident-token'], "exp": 1900000000}
        mock_services['auth'].validate_token.side_effect = lambda token: payload
        mock_services['redis'].add_to_blocklist.return_value = False

        response = client.post('/api/auth/logout', headers=auth_headers())

        assert response.status_code == 200

    def test_revoked_token_is_refused(self, client, mock_services):
        mock_services['redis'].is_available.return_value = True
        mock_services['redis'].is_token_blocked.return_value = True
        mock_services['auth'].extract_token_id.return_value = "jti-resident"

        response = client.get('/api/auth/me', headers=auth_headers())

        assert response.status_code == 401
        assert response.get_json()["error"] == "token_revoked"


class TestStaffAccounts:
    """Test cases for staff account creation and listings."""

    def test_admin_register_requires_super_admin(self, client, mock_services):
        response = client.post(
            '/api/auth/admin/register',
            json={**REGISTRATION, "role": Role.ADMIN.value},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 403

    def test_admin_register_creates_approved_account(self, client, mock_services):
        mock_services['auth'].hash_password.return_value = "$2b$12$hashed"

        response = client.post(
            '/api/auth/admin/register',
            json={**REGISTRATION, "username": "kagawad1", "role": Role.ADMIN.value},
            headers=auth_headers('super-admin-token')
        )

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["registrationStatus"] == "approved"
        assert data["role"] == Role.ADMIN.value

    def test_list_users_is_staff_only(self, client, mock_services):
        response = client.get('/api/auth/users', headers=auth_headers())

        assert response.status_code == 403

    def test_list_users(self, client, mock_services):
        mock_services['mongo'].paginate.return_value = PaginationResult([make_user()], 1, 1, 20)

        response = client.get('/api/auth/users?status=pending&search=juan', headers=auth_headers('admin-token'))

        assert response.status_code == 200
        body = response.get_json()
        assert body["total"] == 1
        assert body["data"][0]["roleName"] == "Resident"
        filters = mock_services['mongo'].paginate.call_args.kwargs["filters"]
        assert filters["registrationStatus"] == "pending"
        assert "$or" in filters

    def test_pending_registrations(self, client, mock_services):
        mock_services['mongo'].find.return_value = [make_user(registrationStatus="pending")]

        response = client.get('/api/auth/pending-registrations', headers=auth_headers('admin-token'))

        assert response.status_code == 200
        assert response.get_json()["count"] == 1


class TestRegistrationReview:
    """Test cases for approving and rejecting registrations."""

    def test_approve_registration(self, client, mock_services):
        pending = make_user(registrationStatus="pending")
        mock_services['mongo'].find_by_id.side_effect = [pending, {**pending, "registrationStatus": "approved"}]

        response = client.put(f'/api/auth/approve-registration/{pending["id"]}', headers=auth_headers('admin-token'))

        assert response.status_code == 200
        assert response.get_json()["message"] == "Registration approved"
        updates = mock_services['mongo'].update_by_id.call_args[0][2]
        assert updates["registrationStatus"] == "approved"
        mock_services['email'].send_registration_result.assert_called_once()

    def test_approve_registration_not_pending(self, client, mock_services):
        mock_services['mongo'].find_by_id.return_value = make_user()

        response = client.put(f'/api/auth/approve-registration/{make_user()["id"]}', headers=auth_headers('admin-token'))

        assert response.status_code == 400
        assert response.get_json()["message"] == "Registration is not pending"

    def test_reject_registration_when_email_fails(self, client, mock_services):
        pending = make_user(registrationStatus="pending")
        mock_services['mongo'].find_by_id.return_value = pending
        mock_services['email'].send_registration_result.side_effect = EmailDeliveryError("SMTP down")

        response = client.put(
            f'/api/auth/reject-registration/{pending["id"]}',
            json={"reason": "ID does not match name"},
            headers=auth_headers('admin-token')
        )

        assert response.status_code == 200
        assert response.get_json()["message"] == "Registration rejected"
        updates = mock_services['mongo'].update_by_id.call_args[0][2]
        assert updates == {"registrationStatus": "rejected", "rejectionReason": "ID does not match name"}

    def test_review_unknown_user(self, client, mock_services):
        response = client.put('/api/auth/approve-registration/64b000000000000000000000', headers=auth_headers('admin-token'))

        assert response.status_code == 404

    def test_resident_cannot_review(self, client, mock_services):
        response = client.put(
            '/api/auth/approve-registration/64b000000000000000000000',
            headers=auth_headers(),
        )

        assert response.status_code == 403
