from clipcaption.render.ffmpeg_runner import RenderProcessDriver
from clipcaption.render.filter_graph import FilterChainSynthesizer, FilterGraph
from clipcaption.render.pipeline import ComposeJob, ComposeResult, CompositionPipeline
from clipcaption.render.text_renderer import SubtitleRasterizer

__all__ = [
    "CompositionPipeline",
    "ComposeJob",
    "ComposeResult",
    "FilterChainSynthesizer",
    "FilterGraph",
    "RenderProcessDriver",
    "SubtitleRasterizer",
]
