"""Shared domain models for tagdeploy."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from tagdeploy.constants import DEFAULT_MANIFEST_FILE, DEFAULT_VERSION_FILE


@dataclass(frozen=True)
class ReleaseConfig:
    """Per-repository deployment settings resolved from the projects file."""

    working_path: str
    manifest_file: str = DEFAULT_MANIFEST_FILE
    version_file: str = DEFAULT_VERSION_FILE
    clone_url: Optional[str] = None


@dataclass(frozen=True)
class RevisionRecord:
    """State captured before checkout; the only input to rollback."""

    previous_revision: str
    previous_version_tag: Optional[str]
    new_version_tag: str


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    state: str
    health: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.state == "running" and self.health in (None, "", "healthy")


@dataclass(frozen=True)
class ReleaseTrigger:
    repository: str
    tag: str
    config: ReleaseConfig


class PipelineStage(IntEnum):
    INIT = 0
    CLONED = 1
    CHECKED_OUT = 2
    SHADOW_UP = 3
    SHADOW_HEALTHY = 4
    PROMOTED = 5


@dataclass
class PipelineState:
    """Progress of a single run; never shared between runs."""

    stage: PipelineStage = PipelineStage.INIT
    status: str = "pending"
    error: Optional[str] = None
