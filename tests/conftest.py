"""Shared fixtures for davit tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Iterator

import pytest

from davit.core.colors import Colors
from davit.core.config import DavitConfig, Defaults, Environment, RolloutPolicy
from davit.core.logger import Logger
from davit.deploy.models import PodEvent

REGISTRY = "gcr.io/my-project"
OLD_IMAGE = f"{REGISTRY}/payment-service:v1.4.0"
NEW_IMAGE = f"{REGISTRY}/payment-service:v1.5.0"

PAYMENT_MANIFEST = f"""\
# Payment service, owned by the billing team
apiVersion: apps/v1
kind: Deployment
metadata:
  name: payment-service
  namespace: payments
spec:
  replicas: 1
  selector:
    matchLabels:
      app: payment-service
  template:
    metadata:
      labels:
        app: payment-service
    spec:
      containers:
        - name: payment-service
          image: {OLD_IMAGE}  # bumped by CI
          ports:
            - containerPort: 8080
        - name: cloud-sql-proxy
          image: gcr.io/cloudsql-docker/gce-proxy:1.33.2
"""

USER_MANIFEST = f"""\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: user-service
spec:
  template:
    spec:
      containers:
        - name: user-service
          image: "{REGISTRY}/user-service:v2.0.0"
---
apiVersion: v1
kind: Service
metadata:
  name: user-service
spec:
  ports:
    - port: 80
"""


@pytest.fixture(autouse=True)
def plain_output(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip ANSI colors and verbose logging so output assertions stay readable."""
    for name in ("RED", "GREEN", "YELLOW", "BLUE", "MAGENTA", "CYAN", "DIM", "BOLD", "RESET"):
        monkeypatch.setattr(Colors, name, "")
    monkeypatch.setattr(Logger, "verbose", False)


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    """A staging YAML root with two services."""
    root = tmp_path / "staging"
    (root / "payments").mkdir(parents=True)
    (root / "payments" / "payment-service.yaml").write_text(PAYMENT_MANIFEST)
    (root / "user-service.yml").write_text(USER_MANIFEST)
    return root


@pytest.fixture
def production_root(tmp_path: Path) -> Path:
    root = tmp_path / "production"
    root.mkdir()
    (root / "payment-service.yaml").write_text(PAYMENT_MANIFEST)
    return root


@pytest.fixture
def environments(staging_root: Path, production_root: Path) -> tuple[Environment, ...]:
    return (
        Environment("staging", staging_root, "gke_staging"),
        Environment("production", production_root, "gke_production", protected=True),
    )


@pytest.fixture
def config(environments: tuple[Environment, ...]) -> DavitConfig:
    return DavitConfig(
        environments=environments,
        defaults=Defaults(interactive=True, registry=REGISTRY),
        rollout=RolloutPolicy(timeout_seconds=5.0),
    )


@pytest.fixture
def pod_event() -> Callable[..., PodEvent]:
    """Factory for pod observations with sensible defaults."""

    def make(pod: str, image: str = NEW_IMAGE, phase: str = "Running", ready: bool = True,
             kind: str = "MODIFIED", reason: str | None = None,
             terminating: bool = False) -> PodEvent:
        return PodEvent(pod=pod, kind=kind, phase=phase, ready=ready,
                        reason=reason, image=image, terminating=terminating)

    return make


@pytest.fixture
def scripted_watch() -> Callable[..., Callable[[threading.Event], Iterator[PodEvent]]]:
    """
    Factory for watch sources that replay a list of events.

    With hold=True the source then stays open until cancelled, like a live
    watch; with hold=False it ends, which the controller treats as a failure.
    Entries that are callables are invoked instead of yielded, to inject
    side effects (e.g. a user interrupt) at a precise point.
    """

    def make(events: list, hold: bool = True):
        calls: list[int] = []

        def watch(cancel) -> Iterator[PodEvent]:
            calls.append(1)
            for item in events:
                if callable(item):
                    item()
                    continue
                yield item
            while hold and not cancel.is_set():
                cancel.wait(0.01)

        watch.calls = calls  # type: ignore[attr-defined]
        return watch

    return make
