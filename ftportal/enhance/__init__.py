"""Deadline/priority scoring and detail enrichment."""

from .scoring import deadline_info, keyword_score, priority_score, urgency_score, value_score

__all__ = ['deadline_info', 'keyword_score', 'priority_score', 'urgency_score', 'value_score']
