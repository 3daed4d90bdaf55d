"""Lead ownership routing."""

from .matcher import StaffAssignmentMatcher, StaffCandidate, AssignmentResult, match_score

__all__ = ["StaffAssignmentMatcher", "StaffCandidate", "AssignmentResult", "match_score"]
