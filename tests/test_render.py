"""
Tests for the template store, token substitution and the module renderer
"""

# Standard
import os
import tempfile

# Third Party
import pytest

# Local
from csm_engine.custom_resource import Component, CustomResource, EnvVar
from csm_engine.exceptions import RenderError, TemplateIOError
from csm_engine.registry import ModuleName
from csm_engine.render import (
    FileTemplateStore,
    ModuleRenderer,
    Substitutions,
    TemplateRenderer,
    TemplateStore,
    Token,
    TokenRenderer,
    common_substitutions,
    parse_objects,
    resolve_tokens,
)
from csm_engine.test_helpers.helpers import TEST_CONFIG_ROOT, setup_cr
from csm_engine.versions import VersionSpec

## Helpers #####################################################################

PROXY_SPEC = VersionSpec(ModuleName.REVERSE_PROXY, "v2.13.0")


def make_renderer(renderer=None):
    return ModuleRenderer(FileTemplateStore(TEST_CONFIG_ROOT), renderer)


def proxy_subs():
    return Substitutions(
        [
            ("<DriverDefaultReleaseNamespace>", "powermax"),
            ("<DriverDefaultReleaseName>", "pmax"),
            ("<X_CSI_REVPROXY_PORT>", "2222"),
        ]
    )


## Substitutions ###############################################################


def test_substitutions_keep_order_and_replace_in_place():
    subs = Substitutions([("<A>", "a"), ("<B>", "b")])
    subs.add("<A>", "z").add("<C>", 3).add("<D>", None)
    assert list(subs) == [("<A>", "z"), ("<B>", "b"), ("<C>", "3"), ("<D>", "")]
    assert subs.get("<C>") == "3"
    assert subs.get("<missing>") is None
    assert len(subs) == 4


def test_resolve_tokens_env_overrides_default():
    """A component env with the token's name wins over the default"""
    component = Component(
        name="sidecar",
        envs=[EnvVar("LOG_LEVEL", "debug"), EnvVar("UNRELATED", "x")],
    )
    subs = resolve_tokens(
        [Token.env("LOG_LEVEL", "info"), Token.env("REPLICAS", "1")], component
    )
    assert list(subs) == [("<LOG_LEVEL>", "debug"), ("<REPLICAS>", "1")]


def test_resolve_tokens_empty_env_is_an_override():
    """An env that is present but empty still replaces the default"""
    component = Component(name="sidecar", envs=[EnvVar("LOG_LEVEL", "")])
    subs = resolve_tokens([Token.env("LOG_LEVEL", "info")], component)
    assert subs.get("<LOG_LEVEL>") == ""


def test_resolve_tokens_without_component_uses_defaults():
    subs = resolve_tokens([Token("<Custom>", None, "dflt")])
    assert subs.get("<Custom>") == "dflt"


def test_common_substitutions():
    cr = CustomResource.from_manifest(
        setup_cr(
            name="isilon",
            namespace="isilon-ns",
            driver={
                "common": {"envs": [{"name": "KUBELET_CONFIG_DIR", "value": "/k"}]}
            },
        )
    )
    subs = common_substitutions(cr)
    assert subs.get("<DriverDefaultReleaseName>") == "isilon"
    assert subs.get("<DriverDefaultReleaseNamespace>") == "isilon-ns"
    assert subs.get("<NAMESPACE>") == "isilon-ns"
    assert subs.get("<KUBELET_CONFIG_DIR>") == "/k"


def test_common_substitutions_default_kubelet_dir():
    cr = CustomResource.from_manifest(setup_cr())
    assert common_substitutions(cr).get("<KUBELET_CONFIG_DIR>") == "/var/lib/kubelet"


## TemplateStore ###############################################################


def test_file_store_read():
    store = FileTemplateStore(TEST_CONFIG_ROOT)
    assert "<X_CSI_REVPROXY_PORT>" in store.read(PROXY_SPEC, "service.yaml")


def test_file_store_read_shared():
    store = FileTemplateStore(TEST_CONFIG_ROOT)
    text = store.read_shared("common", "cert-manager", "cert-manager.yaml")
    assert "<CERT_MANAGER_WEBHOOK_IMAGE>" in text


class DictTemplateStore(TemplateStore):
    """In-memory store keyed by artifact name or shared path"""

    def __init__(self, artifacts):
        self.artifacts = artifacts

    def read(self, version_spec, artifact):
        return self.artifacts[artifact]

    def read_shared(self, *path_parts):
        return self.artifacts["/".join(path_parts)]


def test_custom_store_only_needs_reads():
    manifest = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: <NAME>\n"
    renderer = ModuleRenderer(
        DictTemplateStore({"cm.yaml": manifest, "common/cm.yaml": manifest})
    )
    subs = Substitutions([("<NAME>", "foo")])
    objects = renderer.render_objects(PROXY_SPEC, "cm.yaml", subs)
    assert [obj.name for obj in objects] == ["foo"]
    shared = renderer.render_shared_objects(subs, "common", "cm.yaml")
    assert [obj.name for obj in shared] == ["foo"]


def test_file_store_missing_artifact_is_io_error():
    store = FileTemplateStore(TEST_CONFIG_ROOT)
    with pytest.raises(TemplateIOError):
        store.read(PROXY_SPEC, "nope.yaml")


## ModuleRenderer ##############################################################


def test_render_objects_substitutes_and_parses():
    objects = make_renderer().render_objects(PROXY_SPEC, "service.yaml", proxy_subs())
    assert len(objects) == 1
    service = objects[0]
    assert service.kind == "Service"
    assert service.namespace == "powermax"
    assert service.definition["spec"]["ports"][0]["port"] == 2222
    assert service.definition["spec"]["selector"]["app"] == "pmax-controller"


def test_render_is_deterministic():
    """Rendering the same inputs twice yields identical objects"""
    renderer = make_renderer()
    first = renderer.render_objects(PROXY_SPEC, "controller.yaml", proxy_subs())
    second = renderer.render_objects(PROXY_SPEC, "controller.yaml", proxy_subs())
    assert [obj.definition for obj in first] == [obj.definition for obj in second]
    assert renderer.render_text(
        PROXY_SPEC, "controller.yaml", proxy_subs()
    ) == renderer.render_text(PROXY_SPEC, "controller.yaml", proxy_subs())


def test_render_container():
    container = make_renderer().render_container(
        PROXY_SPEC, "container.yaml", proxy_subs()
    )
    assert container["name"] == "reverseproxy"
    assert {"name": "X_CSI_REVPROXY_WATCH_NAMESPACE", "value": "powermax"} in (
        container["env"]
    )


def test_render_container_requires_name():
    """A volume list is not a container"""
    spec = VersionSpec(ModuleName.AUTHORIZATION, "v2.0.0")
    with pytest.raises(RenderError):
        make_renderer().render_container(spec, "volumes.yaml", Substitutions())


def test_render_volumes_and_list():
    renderer = make_renderer()
    volumes = renderer.render_volumes(
        VersionSpec(ModuleName.AUTHORIZATION, "v2.0.0"), "volumes.yaml", Substitutions()
    )
    assert [vol["name"] for vol in volumes] == [
        "karavi-authorization-config",
        "proxy-server-root-certificate",
        "proxy-authz-tokens",
    ]
    rules = renderer.render_list(
        VersionSpec(ModuleName.REPLICATION, "v1.10.0"), "rules.yaml", Substitutions()
    )
    assert len(rules) == 2
    assert rules[0]["apiGroups"] == ["replication.storage.dell.com"]


def test_render_shared_objects():
    objects = make_renderer().render_shared_objects(
        Substitutions([("<OBSERVABILITY_SECRET_PREFIX>", "karavi-topology")]),
        "observability",
        "selfsigned-cert.yaml",
    )
    assert [obj.name for obj in objects] == [
        "karavi-topology-selfsigned",
        "karavi-topology-selfsigned",
    ]
    assert objects[1].definition["spec"]["secretName"] == "karavi-topology-tls"


def test_custom_template_renderer_is_used():
    """Callers only depend on the TemplateRenderer interface"""

    class UpperNamespaceRenderer(TemplateRenderer):
        def render(self, text, substitutions):
            text = TokenRenderer().render(text, substitutions)
            return text.replace("namespace: powermax", "namespace: POWERMAX")

    objects = make_renderer(UpperNamespaceRenderer()).render_objects(
        PROXY_SPEC, "service.yaml", proxy_subs()
    )
    assert objects[0].namespace == "POWERMAX"


def test_render_invalid_yaml_is_render_error():
    with tempfile.TemporaryDirectory() as workdir:
        version_dir = os.path.join(workdir, "moduleconfig", "replication", "v1.0.0")
        os.makedirs(version_dir)
        with open(os.path.join(version_dir, "controller.yaml"), "w") as handle:
            handle.write("kind: [unterminated\n")
        renderer = ModuleRenderer(FileTemplateStore(workdir))
        with pytest.raises(RenderError):
            renderer.render_objects(
                VersionSpec(ModuleName.REPLICATION, "v1.0.0"),
                "controller.yaml",
                Substitutions(),
            )


## parse_objects ###############################################################


def test_parse_objects_skips_empty_documents():
    text = "---\napiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: a\n---\n"
    objects = parse_objects(text)
    assert [obj.name for obj in objects] == ["a"]


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "apiVersion: v1\nmetadata:\n  name: no-kind\n",
        "apiVersion: v1\nkind: ConfigMap\nmetadata: {}\n",
    ],
)
def test_parse_objects_rejects_non_objects(text):
    with pytest.raises(RenderError):
        parse_objects(text)
