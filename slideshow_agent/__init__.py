"""Assemble narrated image slideshows into MP4 videos and burn word-timed subtitles into them."""

from .config import PipelineConfig
from .pipeline import VideoAssemblyAgent

__all__ = ["VideoAssemblyAgent", "PipelineConfig"]
