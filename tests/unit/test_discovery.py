"""Unit tests for service discovery in YAML roots."""

from __future__ import annotations

from pathlib import Path

from davit.core.config import Environment
from davit.deploy.discovery import (discover_all, discover_services, find_manifests,
                                    references_registry, selector_for)

from conftest import OLD_IMAGE, REGISTRY


class TestFindManifests:
    def test_skips_hidden_paths(self, tmp_path: Path) -> None:
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config.yaml").write_text("a: 1\n")
        (tmp_path / "apps").mkdir()
        (tmp_path / "apps" / "api.yaml").write_text("a: 1\n")
        (tmp_path / "web.yml").write_text("a: 1\n")
        (tmp_path / "README.md").write_text("# docs\n")

        found = find_manifests(tmp_path)

        assert [p.relative_to(tmp_path).as_posix() for p in found] == ["apps/api.yaml", "web.yml"]

    def test_missing_root(self, tmp_path: Path) -> None:
        assert find_manifests(tmp_path / "missing") == []


class TestDiscoverServices:
    """Tests for discover_services()."""

    def test_finds_registry_containers(self, environments) -> None:
        staging = environments[0]

        services = {s.name: s for s in discover_services(staging, REGISTRY)}

        assert set(services) == {"payment-service", "user-service"}
        payment = services["payment-service"]
        assert payment.container == "payment-service"
        assert payment.image == OLD_IMAGE
        assert payment.namespace == "payments"
        assert payment.selector == "app=payment-service"
        assert payment.environment == "staging"
        assert payment.path.name == "payment-service.yaml"

    def test_namespace_falls_back_to_environment(self, staging_root: Path) -> None:
        env = Environment("staging", staging_root, "ctx", namespace="apps")

        user = [s for s in discover_services(env, REGISTRY) if s.name == "user-service"][0]

        assert user.namespace == "apps"
        assert user.selector == "app=user-service"
        assert user.replicas == 1

    def test_other_registries_ignored(self, environments) -> None:
        """The sidecar from another registry is not a deployable service."""
        services = discover_services(environments[0], REGISTRY)

        assert all(s.container != "cloud-sql-proxy" for s in services)

    def test_no_registry_takes_every_container(self, environments) -> None:
        services = discover_services(environments[0], None)

        assert {s.name for s in services} == {
            "payment-service/payment-service", "payment-service/cloud-sql-proxy", "user-service"}
        assert {s.workload for s in services} == {"payment-service", "user-service"}

    def test_invalid_yaml_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "broken.yaml").write_text("kind: [Deployment\n")
        (tmp_path / "ok.yaml").write_text(
            "kind: StatefulSet\nmetadata:\n  name: db\nspec:\n  replicas: 3\n"
            "  template:\n    spec:\n      containers:\n"
            f"        - name: db\n          image: {REGISTRY}/db:15\n")

        services = discover_services(Environment("dev", tmp_path, "ctx"), REGISTRY)

        assert [(s.name, s.kind, s.replicas) for s in services] == [("db", "StatefulSet", 3)]

    def test_discover_all_spans_environments(self, environments) -> None:
        services = discover_all(environments, REGISTRY)

        assert sorted((s.environment, s.name) for s in services) == [
            ("production", "payment-service"),
            ("staging", "payment-service"),
            ("staging", "user-service"),
        ]


class TestHelpers:
    def test_selector_from_match_labels(self) -> None:
        workload = {"spec": {"selector": {"matchLabels": {"tier": "web", "app": "api"}}}}

        assert selector_for(workload, "api") == "app=api,tier=web"

    def test_selector_fallback(self) -> None:
        assert selector_for({}, "api") == "app=api"

    def test_references_registry(self) -> None:
        assert references_registry("gcr.io/my-project/api:v1", "gcr.io/my-project")
        assert references_registry("gcr.io/my-project/api:v1", "gcr.io/my-project/")
        assert not references_registry("gcr.io/my-project-2/api:v1", "gcr.io/my-project")
        assert not references_registry(None, "gcr.io/my-project")
        assert references_registry("nginx:1.25", None)
