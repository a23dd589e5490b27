"""Prometheus collectors exported on ``/metrics``."""

from __future__ import annotations

from prometheus_client import Counter

ENTITY_ID_ALLOCATIONS = Counter(
    "business_entity_id_allocations_total",
    "Business entity id allocation results.",
    ["outcome"],
)

ENTITY_ID_COLLISIONS = Counter(
    "business_entity_id_collisions_total",
    "Candidate ids rejected because they already existed, by detection point.",
    ["stage"],
)
