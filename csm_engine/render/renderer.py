"""
Rendering turns a versioned template into typed objects: read the raw text,
substitute tokens, then deserialize the yaml.
"""

# Standard
from typing import List
import abc

# Third Party
import yaml

# First Party
import alog

# Local
from ..exceptions import RenderError, assert_render
from ..managed_object import ManagedObject
from ..versions import VersionSpec
from .substitution import Substitutions
from .template_store import TemplateStore

log = alog.use_channel("RENDR")


class TemplateRenderer(abc.ABC):
    """Interface for turning template text plus substitutions into rendered
    text. Callers only depend on this interface so that a structured template
    engine can replace the flat token implementation.
    """

    @abc.abstractmethod
    def render(self, text: str, substitutions: Substitutions) -> str:
        """Render template text

        Args:
            text:  str
                The raw template text
            substitutions:  Substitutions
                The ordered placeholder values

        Returns:
            rendered:  str
                The rendered text
        """


class TokenRenderer(TemplateRenderer):
    """Flat literal replacement of each placeholder, in order. Placeholder
    namespaces are disjoint, so no value ever contains another placeholder.
    """

    def render(self, text: str, substitutions: Substitutions) -> str:
        for placeholder, value in substitutions:
            text = text.replace(placeholder, value)
        return text


class ModuleRenderer:
    """Reads module artifacts from a TemplateStore and renders them into
    objects, containers or volume lists
    """

    def __init__(self, store: TemplateStore, renderer: TemplateRenderer = None):
        self.store = store
        self.renderer = renderer or TokenRenderer()

    def render_text(
        self,
        version_spec: VersionSpec,
        artifact: str,
        substitutions: Substitutions,
    ) -> str:
        """Read and render a versioned artifact to text"""
        text = self.store.read(version_spec, artifact)
        log.debug2(
            "Rendering %s/%s/%s with %d substitutions",
            version_spec.module.value,
            version_spec.version,
            artifact,
            len(substitutions),
        )
        return self.renderer.render(text, substitutions)

    def render_objects(
        self,
        version_spec: VersionSpec,
        artifact: str,
        substitutions: Substitutions,
    ) -> List[ManagedObject]:
        """Render a (possibly multi-document) manifest into objects"""
        return parse_objects(
            self.render_text(version_spec, artifact, substitutions),
            source=artifact,
        )

    def render_shared_objects(
        self,
        substitutions: Substitutions,
        *path_parts: str,
    ) -> List[ManagedObject]:
        """Render a manifest that lives outside any version directory"""
        text = self.renderer.render(self.store.read_shared(*path_parts), substitutions)
        return parse_objects(text, source="/".join(path_parts))

    def render_container(
        self,
        version_spec: VersionSpec,
        artifact: str,
        substitutions: Substitutions,
    ) -> dict:
        """Render an artifact holding a single container definition"""
        container = _load_single(
            self.render_text(version_spec, artifact, substitutions), artifact
        )
        assert_render(
            isinstance(container, dict) and container.get("name"),
            f"{artifact} does not hold a named container",
        )
        return container

    def render_volumes(
        self,
        version_spec: VersionSpec,
        artifact: str,
        substitutions: Substitutions,
    ) -> List[dict]:
        """Render an artifact holding a list of pod volumes"""
        volumes = _load_single(
            self.render_text(version_spec, artifact, substitutions), artifact
        )
        if volumes is None:
            return []
        assert_render(
            isinstance(volumes, list)
            and all(isinstance(vol, dict) and vol.get("name") for vol in volumes),
            f"{artifact} does not hold a list of named volumes",
        )
        return volumes

    def render_list(
        self,
        version_spec: VersionSpec,
        artifact: str,
        substitutions: Substitutions,
    ) -> List[dict]:
        """Render an artifact holding a plain list of mappings (e.g. RBAC
        rules)
        """
        items = _load_single(
            self.render_text(version_spec, artifact, substitutions), artifact
        )
        if items is None:
            return []
        assert_render(
            isinstance(items, list) and all(isinstance(item, dict) for item in items),
            f"{artifact} does not hold a list of mappings",
        )
        return items


## Deserialization #############################################################


def parse_objects(text: str, source: str = "<string>") -> List[ManagedObject]:
    """Deserialize multi-document yaml into ManagedObjects. Empty documents are
    skipped.

    Raises:
        RenderError: if the yaml cannot be parsed or a document is not a valid
            kubernetes object
    """
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as err:
        raise RenderError(f"failed to deserialize {source}: {err}") from err

    objects = []
    for idx, document in enumerate(documents):
        if document is None:
            continue
        assert_render(
            isinstance(document, dict),
            f"document {idx} of {source} is not a mapping",
        )
        metadata = document.get("metadata")
        assert_render(
            document.get("kind")
            and document.get("apiVersion")
            and isinstance(metadata, dict)
            and metadata.get("name"),
            f"document {idx} of {source} is missing kind, apiVersion or name",
        )
        objects.append(ManagedObject(document))
    log.debug3("Parsed %d objects from %s", len(objects), source)
    return objects


def _load_single(text: str, source: str):
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise RenderError(f"failed to deserialize {source}: {err}") from err
