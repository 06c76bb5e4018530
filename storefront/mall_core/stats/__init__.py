"""
Aggregation for Mall Core back-office views.
"""

from .approvals import ApprovalSummary, compute_approval_stats

__all__ = [
    "ApprovalSummary",
    "compute_approval_stats",
]
