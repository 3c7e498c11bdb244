"""Domain models and DTOs."""

from timeblock.domain.activity import Activity, Partition, sorted_partition
from timeblock.domain.create_models import ActivityCreate
from timeblock.domain.update_models import ActivityEdit, ActivityPatch


__all__ = [
    "Activity",
    "ActivityCreate",
    "ActivityEdit",
    "ActivityPatch",
    "Partition",
    "sorted_partition",
]
