"""Interest overlap scoring."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import AbstractSet, Optional

HIGH_SCORE = 0.8
MEDIUM_SCORE = 0.5


def round_half_up(value: float, places: int) -> float:
	"""Round to ``places`` decimals with ties away from zero."""
	quantum = Decimal(1).scaleb(-places)
	return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def interest_overlap(interests_a: AbstractSet[int], interests_b: AbstractSet[int]) -> float:
	"""Jaccard similarity of two interest id sets, rounded to two decimals.

	An empty side carries no signal and scores 0.0.
	"""
	if not interests_a or not interests_b:
		return 0.0
	union = interests_a | interests_b
	return round_half_up(len(interests_a & interests_b) / len(union), 2)


def score_level(score: Optional[float]) -> str:
	if not score:
		return "Unknown"
	if score >= HIGH_SCORE:
		return "High"
	if score >= MEDIUM_SCORE:
		return "Medium"
	return "Low"


def score_display(score: Optional[float]) -> str:
	if not score:
		return "N/A"
	return f"{round(score * 100)}%"
