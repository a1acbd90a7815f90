# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for API utilities.
"""

from datetime import datetime
from flask import Flask

from utils.request import RequestParser, ResponseBuilder, build_date_range, build_search_filter


class TestRequestParser:
    """Test request parser functionality."""

    def setup_method(self):
        self.app = Flask(__name__)

    def test_get_pagination_params_defaults(self):
        with self.app.test_request_context('/test'):
            params = RequestParser.get_pagination_params()

        assert params == {'page': 1, 'limit': 10}

    def test_get_pagination_params_custom(self):
        with self.app.test_request_context('/test?page=3&limit=50'):
            params = RequestParser.get_pagination_params()

        assert params == {'page': 3, 'limit': 50}

    def test_get_pagination_params_invalid(self):
        with self.app.test_request_context('/test?page=invalid&limit=abc'):
            params = RequestParser.get_pagination_params(default_limit=20)

        assert params == {'page': 1, 'limit': 20}

    def test_get_pagination_params_clamped(self):
        with self.app.test_request_context('/test?page=-2&limit=500'):
            params = RequestParser.get_pagination_params(max_limit=100)

        assert params == {'page': 1, 'limit': 100}

    def test_get_bool_arg(self):
        with self.app.test_request_context('/test?isActive=false&featured=yes'):
            assert RequestParser.get_bool_arg('isActive', True) is False
            assert RequestParser.get_bool_arg('featured') is True
            assert RequestParser.get_bool_arg('missing', True) is True

    def test_get_search_term(self):
        with self.app.test_request_context('/test?search=%20clearance%20'):
            assert RequestParser.get_search_term() == 'clearance'


class TestFilterBuilders:

    def test_search_filter_escapes_term(self):
        assert build_search_filter(" cruz(jr) ", ["firstName", "lastName"]) == {
            "$or": [
                {"firstName": {"$regex": r"cruz\(jr\)", "$options": "i"}},
                {"lastName": {"$regex": r"cruz\(jr\)", "$options": "i"}},
            ]
        }

    def test_blank_search(self):
        assert build_search_filter("  ", ["title"]) == {}
        assert build_search_filter(None, ["title"]) == {}

    def test_date_range(self):
        start = datetime(2025, 1, 1)

        assert build_date_range(start, None) == {"$gte": start}
        assert build_date_range(None, None) == {}


class TestResponseBuilder:
    """Test response builder functionality."""

    def test_success(self):
        body, status = ResponseBuilder.success({"id": "1"}, "Created", 201, emailSent=True)

        assert status == 201
        assert body == {"success": True, "message": "Created", "data": {"id": "1"}, "emailSent": True}

    def test_success_without_data(self):
        body, status = ResponseBuilder.success(message="Deleted")

        assert status == 200
        assert "data" not in body

    def test_paginated(self):
        pagination = {"total": 25, "page": 2, "limit": 10, "totalPages": 3, "hasNext": True, "hasPrev": True}

        body, status = ResponseBuilder.paginated([{"id": "a"}], pagination)

        assert status == 200
        assert body["count"] == 1
        assert body["total"] == 25
        assert body["totalPages"] == 3
        assert body["pagination"] is pagination
