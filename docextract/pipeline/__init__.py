from .builder import PipelineBuilder
from .registry import ParserRegistry

__all__ = ["PipelineBuilder", "ParserRegistry"]
