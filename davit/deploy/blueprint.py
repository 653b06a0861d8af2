"""
Targeted image patching for Kubernetes manifests

The manifest is parsed structurally with PyYAML's composer, which keeps the
source position of every node. Only the character span of the one matching
container's ``image`` scalar is rewritten, so comments, key order, quoting
and every sidecar stay byte-identical.
"""
import difflib
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from davit.core.colors import Colors
from davit.core.errors import PatchError, PatchErrorKind

CONTEXT_LINES = 3


@dataclass(frozen=True)
class DiffHunk:
    """One group of changed lines plus surrounding context"""
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: Tuple[Tuple[str, str], ...]

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"

    @property
    def before(self) -> str:
        return "".join(text for tag, text in self.lines if tag in (" ", "-"))

    @property
    def after(self) -> str:
        return "".join(text for tag, text in self.lines if tag in (" ", "+"))


@dataclass(frozen=True)
class PatchResult:
    original: bytes
    patched: bytes
    hunks: Tuple[DiffHunk, ...] = field(default_factory=tuple)
    old_image: str = ""
    new_image: str = ""

    @property
    def changed(self) -> bool:
        return self.original != self.patched


def _find_containers(node: Node, name: str, found: list, seen: set):
    if id(node) in seen:
        return
    seen.add(id(node))

    if isinstance(node, MappingNode):
        for key, value in node.value:
            if (isinstance(key, ScalarNode) and key.value == "containers"
                    and isinstance(value, SequenceNode)):
                for item in value.value:
                    if isinstance(item, MappingNode) and _scalar(item, "name") == name:
                        if id(item) not in {id(f) for f in found}:
                            found.append(item)
            _find_containers(value, name, found, seen)
    elif isinstance(node, SequenceNode):
        for item in node.value:
            _find_containers(item, name, found, seen)


def _entry(mapping: MappingNode, key: str) -> Optional[Node]:
    for key_node, value in mapping.value:
        if isinstance(key_node, ScalarNode) and key_node.value == key:
            return value
    return None


def _scalar(mapping: MappingNode, key: str) -> Optional[str]:
    node = _entry(mapping, key)
    return node.value if isinstance(node, ScalarNode) else None


def _compose(text: str) -> List[Node]:
    try:
        return [doc for doc in yaml.compose_all(text, Loader=yaml.SafeLoader) if doc is not None]
    except yaml.YAMLError as e:
        raise PatchError(PatchErrorKind.PARSE_FAILURE, f"Invalid YAML: {e}") from e


def _is_workload(doc: Node, kind: Optional[str], workload: Optional[str]) -> bool:
    if kind is None and workload is None:
        return True
    if not isinstance(doc, MappingNode):
        return False
    if kind is not None and _scalar(doc, "kind") != kind:
        return False
    metadata = _entry(doc, "metadata")
    name = _scalar(metadata, "name") if isinstance(metadata, MappingNode) else None
    return workload is None or name == workload


def locate_image(text: str, container: str, kind: Optional[str] = None,
                 workload: Optional[str] = None) -> ScalarNode:
    """
    Find the image scalar of the single container with the given name

    With kind and workload set, only that workload's document is searched,
    so other workloads in the same file may reuse the container name.
    """
    found: list = []
    seen: set = set()
    where = f"{kind or 'workload'} '{workload}'" if workload else "the manifest"
    for doc in _compose(text):
        if _is_workload(doc, kind, workload):
            _find_containers(doc, container, found, seen)

    if not found:
        raise PatchError(
            PatchErrorKind.TARGET_NOT_FOUND,
            f"No container named '{container}' in {where}")
    if len(found) > 1:
        raise PatchError(
            PatchErrorKind.AMBIGUOUS_TARGET,
            f"{len(found)} containers named '{container}' in {where}")

    image = _entry(found[0], "image")
    if image is None:
        raise PatchError(
            PatchErrorKind.TARGET_NOT_FOUND,
            f"Container '{container}' has no image field")
    if not isinstance(image, ScalarNode) or image.style in ("|", ">"):
        raise PatchError(
            PatchErrorKind.PARSE_FAILURE,
            f"Image of container '{container}' is not a single-line scalar")
    return image


def render_scalar(value: str, style: Optional[str]) -> str:
    """Render value with the same quoting style as the scalar it replaces"""
    if style == "'":
        return "'" + value.replace("'", "''") + "'"
    if style == '"':
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def compute_hunks(original: str, patched: str, context: int = CONTEXT_LINES) -> Tuple[DiffHunk, ...]:
    """Unified-diff style hunks between two texts"""
    a = original.splitlines(keepends=True)
    b = patched.splitlines(keepends=True)
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)

    hunks = []
    for group in matcher.get_grouped_opcodes(context):
        if all(tag == "equal" for tag, *_ in group):
            continue

        lines = []
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                lines.extend((" ", line) for line in a[i1:i2])
                continue
            if tag in ("replace", "delete"):
                lines.extend(("-", line) for line in a[i1:i2])
            if tag in ("replace", "insert"):
                lines.extend(("+", line) for line in b[j1:j2])

        first, last = group[0], group[-1]
        old_count = last[2] - first[1]
        new_count = last[4] - first[3]
        hunks.append(DiffHunk(
            old_start=first[1] + 1 if old_count else first[1],
            old_count=old_count,
            new_start=first[3] + 1 if new_count else first[3],
            new_count=new_count,
            lines=tuple(lines),
        ))
    return tuple(hunks)


def patch(original: Union[bytes, str], target_container_name: str,
          new_image_reference: str, kind: Optional[str] = None,
          workload: Optional[str] = None) -> PatchResult:
    """
    Replace the image of one container, preserving every other byte

    kind and workload (metadata.name) narrow the search to one document of
    a multi-document file. Raises PatchError when the document does not
    parse, or when zero or several containers in scope carry the target name.
    """
    if isinstance(original, str):
        original = original.encode("utf-8")

    try:
        text = original.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PatchError(PatchErrorKind.PARSE_FAILURE, f"Manifest is not UTF-8: {e}") from e

    image = locate_image(text, target_container_name, kind, workload)
    start, end = image.start_mark.index, image.end_mark.index
    patched_text = text[:start] + render_scalar(new_image_reference, image.style) + text[end:]

    # The edit must read back as exactly the requested image
    check = locate_image(patched_text, target_container_name, kind, workload)
    if check.value != new_image_reference:
        raise PatchError(
            PatchErrorKind.PARSE_FAILURE,
            f"Patched image reads back as '{check.value}', expected '{new_image_reference}'")

    return PatchResult(
        original=original,
        patched=patched_text.encode("utf-8"),
        hunks=compute_hunks(text, patched_text),
        old_image=image.value,
        new_image=new_image_reference,
    )


def render_diff(result: PatchResult, filename: str, unified: bool = True) -> List[str]:
    """Colored diff lines for review, unified or full-file"""
    out = [
        f"{Colors.DIM}---{Colors.RESET} {Colors.BOLD}{filename}{Colors.RESET}",
        f"{Colors.DIM}+++{Colors.RESET} {Colors.BOLD}{filename}{Colors.RESET}",
    ]

    def styled(tag: str, text: str) -> str:
        text = text.rstrip("\r\n")
        if tag == "-":
            return f"{Colors.RED}-{text}{Colors.RESET}"
        if tag == "+":
            return f"{Colors.GREEN}+{text}{Colors.RESET}"
        return f"{Colors.DIM} {text}{Colors.RESET}"

    if unified:
        for hunk in result.hunks:
            out.append(f"{Colors.CYAN}{hunk.header}{Colors.RESET}")
            out.extend(styled(tag, text) for tag, text in hunk.lines)
        return out

    old = result.original.decode("utf-8").splitlines(keepends=True)
    new = result.patched.decode("utf-8").splitlines(keepends=True)
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            out.extend(styled(" ", line) for line in old[i1:i2])
            continue
        out.extend(styled("-", line) for line in old[i1:i2])
        out.extend(styled("+", line) for line in new[j1:j2])
    return out
