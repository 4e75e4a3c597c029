"""Progress module for tracking and synchronizing resource completion."""

from progress_sync.progress.cache import ProgressCache
from progress_sync.progress.client import ProgressClient
from progress_sync.progress.guard import InFlightGuard
from progress_sync.progress.hierarchy import HierarchyRecalculator, aggregate_progress
from progress_sync.progress.identity import IdentitySnapshot, resolve_effective_user_id
from progress_sync.progress.models import (
    CandidateResource,
    ProgressRecord,
    ProgressStatus,
    ResourceType,
)
from progress_sync.progress.mutator import ProgressMutator
from progress_sync.progress.optimistic import FailurePolicy, MutationResult, apply_mutation
from progress_sync.progress.preloader import BulkPreloader
from progress_sync.progress.resolver import ExistenceResolver
from progress_sync.progress.session import ProgressSession


__all__ = [
    "BulkPreloader",
    "CandidateResource",
    "ExistenceResolver",
    "FailurePolicy",
    "HierarchyRecalculator",
    "IdentitySnapshot",
    "InFlightGuard",
    "MutationResult",
    "ProgressCache",
    "ProgressClient",
    "ProgressMutator",
    "ProgressRecord",
    "ProgressSession",
    "ProgressStatus",
    "ResourceType",
    "aggregate_progress",
    "apply_mutation",
    "resolve_effective_user_id",
]
