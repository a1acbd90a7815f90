# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Barangay Records API.

This package contains pure business rules with no side effects: file
validation, the document request lifecycle, payments and verification tokens.
"""
