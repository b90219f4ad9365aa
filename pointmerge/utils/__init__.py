"""Shared utilities."""

from .pipeline_logger import PipelineLogger

__all__ = ["PipelineLogger"]
