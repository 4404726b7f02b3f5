from video_merger.models.job import MediaInput, PipelineJob, ValidationPolicy, create_job
from video_merger.render.audio_muxer import AudioMuxer
from video_merger.render.concatenator import Concatenator
from video_merger.render.normalizer import Normalizer
from video_merger.render.pipeline import MergePipeline, MergeProgress, PipelineStage

__all__ = [
    "MergePipeline",
    "MergeProgress",
    "PipelineStage",
    "Normalizer",
    "Concatenator",
    "AudioMuxer",
    "MediaInput",
    "PipelineJob",
    "ValidationPolicy",
    "create_job",
]
