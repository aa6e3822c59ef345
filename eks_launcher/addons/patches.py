"""
Manifest patches applied to rendered chart manifests

Each patch is a pure function of the manifest returning a modified copy. Patches
are keyed by kind; a patch without a kind applies to every manifest.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

Manifest = Dict[str, Any]


@dataclass(frozen=True)
class ManifestPatch:
    name: str
    kind: Optional[str]
    transform: Callable[[Manifest], None]

    def matches(self, manifest: Manifest) -> bool:
        return self.kind is None or manifest.get("kind") == self.kind

    def __call__(self, manifest: Manifest) -> Manifest:
        patched = copy.deepcopy(manifest)
        if self.matches(patched):
            self.transform(patched)
        return patched


def set_namespace(namespace: str, kind: Optional[str] = None) -> ManifestPatch:
    """Force metadata.namespace, for charts that ignore the release namespace"""
    def transform(manifest: Manifest) -> None:
        manifest.setdefault("metadata", {})["namespace"] = namespace

    return ManifestPatch(name="set-namespace", kind=kind, transform=transform)


def append_container_command(arguments: Sequence[str], kind: str = "Deployment",
                             container: int = 0) -> ManifestPatch:
    """
    Append flags to a container command

    Helm values maps cannot carry a repeated flag, so repeated flags are
    appended after rendering.
    """
    def transform(manifest: Manifest) -> None:
        containers = manifest["spec"]["template"]["spec"]["containers"]
        containers[container].setdefault("command", []).extend(arguments)

    return ManifestPatch(name="append-container-command", kind=kind, transform=transform)


def apply_patches(manifest: Manifest, patches: Iterable[ManifestPatch]) -> Manifest:
    for patch in patches:
        manifest = patch(manifest)
    return manifest


def as_transformation(patches: Sequence[ManifestPatch]) -> Callable[..., None]:
    """Adapt patches to the in-place transformation signature helm.v3.Chart expects"""
    def transformation(obj: Manifest, opts: Any = None) -> None:
        if not isinstance(obj, dict) or not any(patch.matches(obj) for patch in patches):
            return
        patched = apply_patches(obj, patches)
        obj.clear()
        obj.update(patched)

    return transformation
