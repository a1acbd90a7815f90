# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request utilities for extracting query data and building responses.
"""

import re
from datetime import datetime
from flask import request
from typing import Dict, Any, Optional, List, Iterable
import logging

logger = logging.getLogger(__name__)


class RequestParser:
    """Utility for parsing and extracting request data."""

    @staticmethod
    def get_pagination_params(
        default_page: int = 1,
        default_limit: int = 10,
        max_limit: int = 100
    ) -> Dict[str, int]:
        """
        Extract ``page`` and ``limit`` from the query string.

        Invalid values fall back to the defaults; ``limit`` is clamped to
        ``max_limit``.
        """
        try:
            page = max(1, int(request.args.get('page', default_page)))
        except (ValueError, TypeError):
            page = default_page

        try:
            limit = int(request.args.get('limit', default_limit))
            limit = max(1, min(limit, max_limit))
        except (ValueError, TypeError):
            limit = default_limit

        return {
            'page': page,
            'limit': limit
        }

    @staticmethod
    def get_search_term() -> str:
        return request.args.get('search', '').strip()

    @staticmethod
    def get_bool_arg(name: str, default: bool = False) -> bool:
        value = request.args.get(name)
        if value is None:
            return default
        return value.lower() in ['true', '1', 'yes', 'on']


def build_search_filter(term: Optional[str], fields: Iterable[str]) -> Dict[str, Any]:
    """Case-insensitive substring match over ``fields``; empty when ``term`` is blank."""
    if not term or not term.strip():
        return {}
    pattern = re.escape(term.strip())
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}


def build_date_range(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    """Mongo range operator for an optional ``[start, end]`` window."""
    date_range = {}
    if start:
        date_range["$gte"] = start
    if end:
        date_range["$lte"] = end
    return date_range


class ResponseBuilder:
    """Utility for building consistent API responses."""

    @staticmethod
    def success(
        data: Any = None,
        message: Optional[str] = None,
        status_code: int = 200,
        **extra: Any
    ) -> tuple:
        """
        Build a ``{success: true, message?, data, ...}`` response.

        Returns:
            Tuple of (response_data, status_code)
        """
        response = {'success': True}

        if message:
            response['message'] = message

        if data is not None:
            response['data'] = data

        response.update(extra)
        return response, status_code

    @staticmethod
    def paginated(items: List[Any], pagination: Dict[str, Any], message: Optional[str] = None) -> tuple:
        """
        Build a list response with the page window.

        Args:
            items: Items for the current page
            pagination: Output of ``PaginationResult.to_dict()``
        """
        response = {
            'success': True,
            'count': len(items),
            'total': pagination.get('total', len(items)),
            'page': pagination.get('page', 1),
            'totalPages': pagination.get('totalPages', 1),
            'data': items,
            'pagination': pagination
        }

        if message:
            response['message'] = message

        return response, 200
