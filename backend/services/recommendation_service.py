"""Read-side ranking of free rooms and desks by distance and usage affinity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional, Sequence

import numpy as np

from backend.domain.constraints import (
    RecommendationWeights,
    ensure_utc,
    interval_is_free,
    required_capacity,
    validate_recommendation_weights,
)
from backend.domain.errors import ValidationError
from backend.domain.models import (
    FloorPlan,
    RankedCandidate,
    Resource,
    ResourceKind,
    TimeInterval,
    UsageEntry,
)
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

# Building entrance: floor 0, planar origin.
ORIGIN_FLOOR = 0
ORIGIN_X = 0.0
ORIGIN_Y = 0.0


@dataclass(frozen=True)
class _Candidate:
    floor: FloorPlan
    resource: Resource
    usage_count: int


def _collect_candidates(
    *,
    kind: ResourceKind,
    interval: TimeInterval,
    min_capacity: int,
    floor_plans: Sequence[FloorPlan],
    usage: Mapping[str, UsageEntry],
    floor_number: Optional[int],
) -> list[_Candidate]:
    needed = required_capacity(kind, min_capacity)
    candidates: list[_Candidate] = []
    for plan in floor_plans:
        if floor_number is not None and plan.floor_number != floor_number:
            continue
        for resource in plan.resources(kind):
            if resource.capacity < needed:
                continue
            if not interval_is_free(interval, (b.interval for b in resource.bookings)):
                continue
            entry = usage.get(resource.resource_id)
            candidates.append(
                _Candidate(
                    floor=plan,
                    resource=resource,
                    usage_count=entry.count if entry is not None else 0,
                )
            )
    return candidates


def rank_candidates(
    *,
    kind: ResourceKind,
    interval: TimeInterval,
    min_capacity: int,
    floor_plans: Sequence[FloorPlan],
    usage: Mapping[str, UsageEntry],
    weights: RecommendationWeights,
    floor_number: Optional[int] = None,
) -> list[RankedCandidate]:
    """Pure ranking: filter, score, then stable-sort descending by score.

    score = max(0, base - distance + usage_count * usage_weight), where
    distance is the Euclidean distance from the entrance with one floor
    counted as `vertical_penalty` planar units. Ties keep encounter order
    (floor order, then resource order within the floor).
    """
    validate_recommendation_weights(weights)
    candidates = _collect_candidates(
        kind=kind,
        interval=interval,
        min_capacity=min_capacity,
        floor_plans=floor_plans,
        usage=usage,
        floor_number=floor_number,
    )
    if not candidates:
        return []

    dx = np.array([c.resource.coordinates.x - ORIGIN_X for c in candidates], dtype=float)
    dy = np.array([c.resource.coordinates.y - ORIGIN_Y for c in candidates], dtype=float)
    dz = np.array(
        [(c.floor.floor_number - ORIGIN_FLOOR) * weights.vertical_penalty for c in candidates],
        dtype=float,
    )
    usage_counts = np.array([c.usage_count for c in candidates], dtype=float)

    distances = np.sqrt(dx * dx + dy * dy + dz * dz)
    scores = np.maximum(0.0, weights.base_score - distances + usage_counts * weights.usage_weight)
    order = np.argsort(-scores, kind="stable")

    ranked: list[RankedCandidate] = []
    for index in order:
        candidate = candidates[int(index)]
        ranked.append(
            RankedCandidate(
                resource_id=candidate.resource.resource_id,
                display_name=candidate.resource.display_name,
                kind=candidate.resource.kind,
                floor_id=candidate.floor.floor_id,
                floor_name=candidate.floor.name,
                floor_number=candidate.floor.floor_number,
                capacity=candidate.resource.capacity,
                distance=float(distances[index]),
                usage_count=candidate.usage_count,
                score=float(scores[index]),
            )
        )
    return ranked


class RecommendationService:
    """Loads a committed snapshot and the caller's usage, then ranks."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    @property
    def weights(self) -> RecommendationWeights:
        return RecommendationWeights(
            base_score=self._settings.recommendation_base_score,
            vertical_penalty=self._settings.recommendation_vertical_penalty,
            usage_weight=self._settings.recommendation_usage_weight,
        )

    def recommend(
        self,
        *,
        kind: ResourceKind,
        start_time: datetime,
        end_time: datetime,
        min_capacity: int,
        user_id: str,
        floor_number: Optional[int] = None,
    ) -> list[RankedCandidate]:
        interval = TimeInterval(start=ensure_utc(start_time), end=ensure_utc(end_time))
        if interval.end <= interval.start:
            raise ValidationError("End time must be after start time", field="end_time")
        if min_capacity < 1:
            raise ValidationError("min_capacity must be >= 1", field="min_capacity")

        with self._repository.read_snapshot() as conn:
            floor_plans = self._repository.load_floor_plans(conn)
            usage = self._repository.get_usage_history(conn, user_id)

        ranked = rank_candidates(
            kind=kind,
            interval=interval,
            min_capacity=min_capacity,
            floor_plans=floor_plans,
            usage=usage,
            weights=self.weights,
            floor_number=floor_number,
        )
        logger.debug(
            "Recommendations computed | user_id=%s | kind=%s | floors=%s | candidates=%s",
            user_id,
            kind.value,
            len(floor_plans),
            len(ranked),
        )
        return ranked
