# Public surface of the sync agent package.
from ..id_map import RemoteIds, MatchKey, matches, matches_ids
from ._batching import CatalogFetchError
from ._progress import ProgressChannel, ProgressEvent, ProgressStatus
from ._types import ApiResult, LocalCatalogClient, ProviderPolicy, RemoteTrackerClient, SearchIdType
from .facade import ProcessResult, SyncAgent

__all__ = [
    "SyncAgent", "ProcessResult", "CatalogFetchError",
    "ProgressChannel", "ProgressEvent", "ProgressStatus",
    "ApiResult", "LocalCatalogClient", "RemoteTrackerClient", "ProviderPolicy", "SearchIdType",
    "RemoteIds", "MatchKey", "matches", "matches_ids",
]
