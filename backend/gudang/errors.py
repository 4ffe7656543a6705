# backend/gudang/errors.py
"""
Approval workflow error taxonomy.

Routes map these to HTTP status codes:
- ApprovalNotFoundError      -> 404 (unknown token, unknown record, or already resolved)
- ApprovalTokenExpiredError  -> 400 (token past its expiry; record stays pending)
- UpstreamFailure            -> 500 (data store or provider call failed)

Input problems are gudang.validation.ValidationError (400).
"""


class ApprovalError(Exception):
    """Base class for approval workflow errors."""


class ApprovalNotFoundError(ApprovalError):
    """No pending approval record matches the request (or it was already resolved)."""


class ApprovalTokenExpiredError(ApprovalError):
    """The approval link token exists but is past token_expires_at."""


class UpstreamFailure(ApprovalError):
    """A data-store or email-provider call failed while processing an action."""
