"""Track merging and export."""

from take_recorder.merge.track_merger import (
    ExportOperation,
    ExportStatus,
    MergeOutcome,
    MergeRequest,
    TrackMerger,
)

__all__ = ["ExportOperation", "ExportStatus", "MergeOutcome", "MergeRequest", "TrackMerger"]
