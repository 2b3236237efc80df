"""
Result types shared by the image and video pipelines.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class PipelineResult:
    """Files written to scratch space by one pipeline run"""
    target_type: str
    original: Path
    rel_height: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    # {'compressed': {'jpeg': Path, ...}, 'thumbnail': {...}}
    created_files: dict = field(default_factory=dict)

    def iter_files(self):
        """Yield (category, extension, path) for every rendition"""
        for category, files in self.created_files.items():
            for ext, path in files.items():
                yield category, ext, path


def relative_height(width, height):
    """Height as a percentage of width, for layout placeholders"""
    return round(height / width * 100, 4)
