"""
Storefront backend package.

This package provides a FastAPI application for user accounts and store
aggregates, with session issuance (JWT + double-submit CSRF cookies) and
race-free mutation of a store's nested item/review collections.
"""
