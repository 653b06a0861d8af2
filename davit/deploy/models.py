"""Value objects shared across the deploy flow"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from davit.core.config import Environment


@dataclass(frozen=True)
class Service:
    """A deployable container discovered in an environment's YAML root"""
    name: str
    environment: str
    path: Path
    container: str
    image: str
    namespace: str = "default"
    kind: str = "Deployment"
    selector: str = ""
    replicas: int = 1
    workload: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.environment}:{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Target:
    environment: Environment
    service: Service


@dataclass(frozen=True)
class ImageCandidate:
    registry_path: str
    tag: str
    digest: str
    updated: datetime

    @property
    def reference(self) -> str:
        return f"{self.registry_path}:{self.tag}"


@dataclass(frozen=True)
class DeploymentIntent:
    environment: Environment
    service: Service
    image: ImageCandidate
    dry_run: bool = False

    @property
    def commit_message(self) -> str:
        return (f"feat(deploy): update {self.service.name} "
                f"to {self.image.tag} in {self.environment.name}")


@dataclass(frozen=True)
class PodEvent:
    """One pod observation from the cluster watch"""
    pod: str
    kind: str
    phase: str
    ready: bool = False
    reason: Optional[str] = None
    image: Optional[str] = None
    terminating: bool = False

    @property
    def deleted(self) -> bool:
        return self.kind == "DELETED"


class LogSide(Enum):
    OLD = "old"
    NEW = "new"


class LogKind(Enum):
    LINE = "line"
    DROPPED = "dropped"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class LogEvent:
    side: LogSide
    pod: str
    kind: LogKind = LogKind.LINE
    message: str = ""
    level: Optional[str] = None
    timestamp: Optional[str] = None
    dropped: int = 0
    arrival: int = field(default=0, compare=False)
