"""
FFmpeg encode command for a compiled filter graph.
"""

from pathlib import Path
from typing import List, Union

from .filter_graph import FilterGraph
from .schemas import RenderConfig


def build_encode_command(
    source_path: Union[str, Path],
    graph: FilterGraph,
    output_path: Union[str, Path],
    config: RenderConfig,
) -> List[str]:
    """
    Build the full ffmpeg argument list.

    Args:
        source_path: Single source input; graph nodes read [0:v] / [0:a]
        graph: Compiled filter graph
        output_path: File to write (overwritten)
        config: Encode options

    Returns:
        Command as list of arguments for subprocess
    """
    return [
        config.ffmpeg_path,
        "-y",
        "-hide_banner",
        "-loglevel", "error",
        "-i", str(source_path),
        "-filter_complex", graph.render(),
        "-map", graph.video_out,
        "-map", graph.audio_out,
        "-r", str(config.frame_rate),
        "-c:v", config.video_codec,
        "-preset", config.preset,
        "-crf", str(config.crf),
        "-pix_fmt", "yuv420p",
        "-c:a", config.audio_codec,
        "-b:a", config.audio_bitrate,
        "-threads", str(config.threads),
        "-movflags", "+faststart",
        str(output_path),
    ]
