# ============================================================================
# PIPELINE MODULE
# ============================================================================
# STATUS: Core - Event write path
# PURPOSE: Export aggregator, encoder, sink, archiver and pipeline wiring
# CREATED: 12 OCT 2026
# ============================================================================

from pipeline.aggregator import EventAggregator
from pipeline.archiver import Archiver
from pipeline.encoder import decode_record, encode_event
from pipeline.runner import EventPipeline, build_pipeline
from pipeline.sink import RotatingSink

__all__ = [
    "EventAggregator",
    "Archiver",
    "decode_record",
    "encode_event",
    "EventPipeline",
    "build_pipeline",
    "RotatingSink",
]
