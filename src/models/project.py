"""
Project data model.

A project owns reviews and their analyses. Status transitions are driven by
the progress tracker only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProjectStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class Project:
    id: str
    name: str
    owner: str
    description: Optional[str] = None
    total_reviews: int = 0
    analyzed_reviews: int = 0
    filtered_reviews: int = 0  # left unanalyzed by the ingestion filter
    status: ProjectStatus = ProjectStatus.PENDING
    created_at: str = ""
    updated_at: str = ""
    last_error: Optional[str] = None

    def __post_init__(self):
        if self.analyzed_reviews > self.total_reviews:
            raise ValueError(
                f"analyzed_reviews ({self.analyzed_reviews}) exceeds "
                f"total_reviews ({self.total_reviews})"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        """Create Project from JSON dict."""
        return cls(
            id=data["id"],
            name=data["name"],
            owner=data.get("owner", ""),
            description=data.get("description"),
            total_reviews=data.get("total_reviews", 0),
            analyzed_reviews=data.get("analyzed_reviews", 0),
            filtered_reviews=data.get("filtered_reviews", 0),
            status=ProjectStatus(data.get("status", "pending")),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            last_error=data.get("last_error"),
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "description": self.description,
            "total_reviews": self.total_reviews,
            "analyzed_reviews": self.analyzed_reviews,
            "filtered_reviews": self.filtered_reviews,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_error": self.last_error,
        }


@dataclass
class ProgressSnapshot:
    """What a polling client sees for a project."""
    project_id: str
    status: ProjectStatus
    total_reviews: int
    analyzed_reviews: int
    filtered_reviews: int = 0

    @classmethod
    def from_project(cls, project: Project) -> "ProgressSnapshot":
        return cls(
            project_id=project.id,
            status=project.status,
            total_reviews=project.total_reviews,
            analyzed_reviews=project.analyzed_reviews,
            filtered_reviews=project.filtered_reviews,
        )

    @property
    def percent_complete(self) -> float:
        if self.total_reviews == 0:
            return 100.0 if self.status == ProjectStatus.COMPLETED else 0.0
        return round(100.0 * self.analyzed_reviews / self.total_reviews, 1)

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "status": self.status.value,
            "total_reviews": self.total_reviews,
            "analyzed_reviews": self.analyzed_reviews,
            "filtered_reviews": self.filtered_reviews,
            "percent_complete": self.percent_complete,
        }
