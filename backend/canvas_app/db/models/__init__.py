from canvas_app.db.models.project import CanvasProject, ProjectCollaborator, ProjectRole, ROLE_HIERARCHY
from canvas_app.db.models.operation import CanvasOp, CanvasOpCounter
from canvas_app.db.models.element import CanvasElement
from canvas_app.db.models.snapshot import CanvasSnapshot
from canvas_app.db.models.media import CanvasMedia, MediaOrigin

__all__ = [
    "CanvasProject",
    "ProjectCollaborator",
    "ProjectRole",
    "ROLE_HIERARCHY",
    "CanvasOp",
    "CanvasOpCounter",
    "CanvasElement",
    "CanvasSnapshot",
    "CanvasMedia",
    "MediaOrigin",
]
