from canvas_app.repositories.project import ProjectRepository
from canvas_app.repositories.operation import OpRepository
from canvas_app.repositories.element import ElementRepository
from canvas_app.repositories.snapshot import SnapshotRepository
from canvas_app.repositories.media import MediaRepository

__all__ = [
    "ProjectRepository",
    "OpRepository",
    "ElementRepository",
    "SnapshotRepository",
    "MediaRepository",
]
