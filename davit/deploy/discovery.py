"""Discover deployable services by scanning an environment's YAML root"""
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from davit.core.config import Environment
from davit.core.logger import Logger
from davit.deploy.models import Service
from davit.utils.validators import validate_label_selector, validate_resource_name

WORKLOAD_KINDS = {"Deployment", "StatefulSet", "DaemonSet", "ReplicaSet"}
PATTERNS = ["*.yaml", "*.yml"]


def find_manifests(root: Path) -> List[Path]:
    """Find YAML manifest files below root, skipping hidden paths"""
    if not root.exists():
        Logger.warn(f"YAML root not found: {root}")
        return []

    manifest_files = set()
    for pattern in PATTERNS:
        for file in root.rglob(pattern):
            relative = file.relative_to(root)
            if any(part.startswith('.') for part in relative.parts):
                continue
            manifest_files.add(file)

    return sorted(manifest_files)


def selector_for(workload: dict, name: str) -> str:
    """Label selector for the workload's pods, falling back to app=<name>"""
    match_labels = ((workload.get("spec") or {}).get("selector") or {}).get("matchLabels") or {}
    if match_labels:
        selector = ",".join(f"{k}={v}" for k, v in sorted(match_labels.items()))
        valid, _ = validate_label_selector(selector)
        if valid:
            return selector
    return f"app={name}"


def references_registry(image: Optional[str], registry: Optional[str]) -> bool:
    if not image:
        return False
    if not registry:
        return True
    return image.startswith(registry.rstrip('/') + '/') or image.startswith(registry + ':')


def services_in_document(doc: dict, path: Path, environment: Environment,
                         registry: Optional[str]) -> List[Service]:
    if not isinstance(doc, dict) or doc.get("kind") not in WORKLOAD_KINDS:
        return []

    metadata = doc.get("metadata") or {}
    name = metadata.get("name")
    valid, reason = validate_resource_name(name if isinstance(name, str) else "")
    if not valid:
        Logger.verbose_log(f"Skipping workload in {path}: {reason}")
        return []

    spec = doc.get("spec") or {}
    pod_spec = (spec.get("template") or {}).get("spec") or {}
    containers = [c for c in pod_spec.get("containers") or []
                  if isinstance(c, dict) and references_registry(c.get("image"), registry)]

    replicas = spec.get("replicas", 1)
    if not isinstance(replicas, int) or isinstance(replicas, bool):
        replicas = 1

    services = []
    for container in containers:
        # One registry container keeps the workload name; several get qualified
        service_name = name if len(containers) == 1 else f"{name}/{container.get('name')}"
        services.append(Service(
            name=service_name,
            environment=environment.name,
            path=path,
            container=str(container.get("name")),
            image=container["image"],
            namespace=metadata.get("namespace") or environment.namespace,
            kind=doc["kind"],
            selector=selector_for(doc, name),
            replicas=replicas,
            workload=name,
        ))
    return services


def discover_services(environment: Environment, registry: Optional[str] = None) -> List[Service]:
    """Scan an environment's YAML root for container specs that reference the registry"""
    services = []

    for file in find_manifests(environment.yaml_root_dir):
        try:
            with open(file, encoding="utf-8") as f:
                docs = list(yaml.safe_load_all(f))
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            Logger.verbose_log(f"Skipping {file}: {e}")
            continue

        for doc in docs:
            services.extend(services_in_document(doc, file, environment, registry))

    Logger.verbose_log(
        f"Discovered {len(services)} service(s) in {environment.name}")
    return services


def discover_all(environments: Iterable[Environment], registry: Optional[str] = None) -> List[Service]:
    services = []
    for environment in environments:
        services.extend(discover_services(environment, registry))
    return services
