"""
Tests for the observability handler
"""

# Third Party
import pytest

# Local
from csm_engine.exceptions import (
    ConfigError,
    MissingPrerequisiteError,
    UnsupportedDriverError,
)
from csm_engine.modules import ReconcileOptions
from csm_engine.modules.observability import ObservabilityHandler
from csm_engine.test_helpers.helpers import (
    OBSERVABILITY_NAMESPACE,
    MockDeployManager,
    container_names,
    env_dict,
    get_container,
    make_secret,
    make_secrets,
    setup_component,
    setup_context,
    setup_cr,
    setup_module,
)

## Helpers #####################################################################

AUTH_SECRETS = [
    "karavi-authorization-config",
    "proxy-authz-tokens",
    "proxy-server-root-certificate",
]


def make_handler(
    components=None,
    driver_type="powerscale",
    resources=None,
    deploy_manager=None,
    enabled=True,
    extra_modules=None,
    driver=None,
):
    modules = [
        setup_module("observability", enabled=enabled, components=components)
    ] + (extra_modules or [])
    cr_dict = setup_cr(driver_type=driver_type, modules=modules, driver=driver)
    if resources is None:
        resources = make_secrets("test-instance-creds", "test-instance-config")
    return ObservabilityHandler(
        setup_context(cr_dict, deploy_manager=deploy_manager, resources=resources)
    )


def auth_module(envs=None):
    envs = {"PROXY_HOST": "csm-authorization.com"} if envs is None else envs
    return setup_module(
        "authorization",
        components=[setup_component("karavi-authorization-proxy", envs)],
    )


def names(objects, kind=None):
    return [obj.name for obj in objects if kind is None or obj.kind == kind]


def metrics_deployment(objects, driver="powerscale"):
    for obj in objects:
        if obj.kind == "Deployment" and obj.name == f"karavi-metrics-{driver}":
            return obj.definition
    raise AssertionError(f"No metrics Deployment for {driver}")


def pod_volumes(deployment):
    return {
        vol["name"]: vol
        for vol in deployment["spec"]["template"]["spec"].get("volumes") or []
    }


## Components ##################################################################


def test_default_components():
    handler = make_handler()
    components = handler.components()
    assert [comp.name for comp in components] == [
        "topology",
        "otel-collector",
        "cert-manager",
        "metrics-powerscale",
    ]
    assert [comp.enabled for comp in components] == [True, True, False, True]
    assert components[1].get_env("NGINX_PROXY_IMAGE") == (
        "nginxinc/nginx-unprivileged:1.27"
    )


def test_listed_components_take_precedence():
    handler = make_handler(
        components=[setup_component("topology", enabled=False)],
        driver_type="vxflexos",
    )
    components = handler.components()
    assert [comp.name for comp in components] == [
        "topology",
        "otel-collector",
        "cert-manager",
        "metrics-powerflex",
    ]
    assert components[0].enabled is False


def test_disabled_module_gets_no_defaults():
    handler = make_handler(
        components=[setup_component("topology", enabled=True)], enabled=False
    )
    assert [comp.name for comp in handler.components()] == ["topology"]


## Precheck ####################################################################


@pytest.mark.parametrize("driver_type", ["powerscale", "powerflex", "powermax"])
def test_precheck_supported_drivers(driver_type):
    make_handler(driver_type=driver_type).precheck(ReconcileOptions())


def test_precheck_unsupported_driver():
    with pytest.raises(UnsupportedDriverError):
        make_handler(driver_type="powerstore").precheck(ReconcileOptions())


@pytest.mark.parametrize("is_deleting", [False, True])
def test_render_unsupported_driver(is_deleting):
    """Rendering without a precheck still rejects the driver"""
    with pytest.raises(UnsupportedDriverError):
        make_handler(driver_type="powerstore").render(
            ReconcileOptions(), is_deleting=is_deleting
        )


## Render ######################################################################


def test_render_defaults_in_order():
    """Topology and the collector come first, then their certificates, then
    the metrics exporter with its copied secret ahead of its Deployment
    """
    objects = make_handler().render(ReconcileOptions())
    assert [(obj.kind, obj.name) for obj in objects] == [
        ("ServiceAccount", "karavi-topology"),
        ("Service", "karavi-topology"),
        ("Deployment", "karavi-topology"),
        ("ConfigMap", "otel-collector-config"),
        ("Service", "otel-collector"),
        ("Deployment", "otel-collector"),
        ("Issuer", "karavi-topology-selfsigned"),
        ("Certificate", "karavi-topology-selfsigned"),
        ("Issuer", "otel-collector-selfsigned"),
        ("Certificate", "otel-collector-selfsigned"),
        ("ServiceAccount", "karavi-metrics-powerscale-controller"),
        ("Service", "karavi-metrics-powerscale"),
        ("Secret", "test-instance-creds"),
        ("Deployment", "karavi-metrics-powerscale"),
    ]
    for obj in objects:
        assert obj.namespace == OBSERVABILITY_NAMESPACE


def test_render_images_and_tokens():
    components = [
        setup_component(
            "metrics-powerscale",
            envs={"POWERSCALE_LOG_LEVEL": "DEBUG"},
            enabled=True,
            image="my/metrics:1",
        )
    ]
    objects = make_handler(components=components).render(ReconcileOptions())

    topology = [
        obj.definition
        for obj in objects
        if obj.kind == "Deployment" and obj.name == "karavi-topology"
    ][0]
    assert get_container(topology, "karavi-topology")["image"] == (
        "dellemc/csm-topology:v1.10.0"
    )
    otel = [
        obj.definition
        for obj in objects
        if obj.kind == "Deployment" and obj.name == "otel-collector"
    ][0]
    assert get_container(otel, "otel-collector")["image"] == (
        "otel/opentelemetry-collector:0.42.0"
    )
    assert get_container(otel, "nginx-proxy")["image"] == (
        "nginxinc/nginx-unprivileged:1.27"
    )

    metrics = get_container(metrics_deployment(objects), "karavi-metrics-powerscale")
    assert metrics["image"] == "my/metrics:1"
    envs = env_dict(metrics)
    assert envs["POWERSCALE_LOG_LEVEL"] == "DEBUG"
    assert envs["POWERSCALE_MAX_CONCURRENT_QUERIES"] == "10"
    assert envs["COLLECTOR_ADDR"] == "otel-collector:55680"


def test_render_skips_other_drivers_metrics():
    components = [setup_component("metrics-powerflex", enabled=True)]
    objects = make_handler(components=components).render(ReconcileOptions())
    deployments = names(objects, "Deployment")
    assert "karavi-metrics-powerflex" not in deployments
    assert "karavi-metrics-powerscale" in deployments


def test_render_disabled_components():
    components = [
        setup_component("topology", enabled=False),
        setup_component("otel-collector", enabled=False),
        setup_component("metrics-powerscale", enabled=False),
    ]
    assert make_handler(components=components).render(ReconcileOptions()) == []


def test_render_cert_manager_first():
    components = [setup_component("cert-manager", enabled=True)]
    objects = make_handler(components=components).render(ReconcileOptions())
    assert [obj.kind for obj in objects][:3] == ["CustomResourceDefinition"] * 3


def test_render_custom_certificate():
    components = [
        setup_component(
            "topology", enabled=True, certificate="Y2VydA==", privateKey="a2V5"
        )
    ]
    objects = make_handler(components=components).render(ReconcileOptions())
    assert "karavi-topology-selfsigned" not in names(objects, "Certificate")
    assert "otel-collector-selfsigned" in names(objects, "Certificate")
    secret = [obj for obj in objects if obj.name == "karavi-topology-tls"][0]
    assert secret.definition["type"] == "kubernetes.io/tls"
    assert secret.definition["data"] == {"tls.crt": "Y2VydA==", "tls.key": "a2V5"}


def test_render_partial_certificate():
    components = [setup_component("otel-collector", enabled=True, privateKey="a2V5")]
    with pytest.raises(ConfigError, match="otel-collector"):
        make_handler(components=components).render(ReconcileOptions())


## Copied secrets ##############################################################


def test_copied_driver_secret():
    secret = make_secret("test-instance-creds", data={"config": "Y29uZmln"})
    objects = make_handler(resources=[secret]).render(ReconcileOptions())
    copied = [obj for obj in objects if obj.kind == "Secret"]
    assert len(copied) == 1
    assert copied[0].namespace == OBSERVABILITY_NAMESPACE
    assert copied[0].definition["type"] == "Opaque"
    assert copied[0].definition["data"] == {"config": "Y29uZmln"}


def test_missing_driver_secret():
    handler = make_handler(resources=[])
    with pytest.raises(MissingPrerequisiteError) as exc_info:
        handler.render(ReconcileOptions())
    assert exc_info.value.resource_name == "test-instance-creds"


def test_powerflex_auth_secret():
    """A named driver secret is copied and mounted by the metrics exporter"""
    handler = make_handler(
        driver_type="powerflex",
        driver={"authSecret": "my-vxflexos-config"},
        resources=make_secrets("my-vxflexos-config"),
    )
    objects = handler.render(ReconcileOptions())
    assert names(objects, "Secret") == ["my-vxflexos-config"]
    volumes = pod_volumes(metrics_deployment(objects, "powerflex"))
    assert volumes["vxflexos-config"]["secret"]["secretName"] == "my-vxflexos-config"


def test_delete_secret_stubs_skip_lookup():
    """Deleting needs only the identity of each copied secret"""
    dm = MockDeployManager()
    handler = make_handler(deploy_manager=dm, extra_modules=[auth_module()])
    objects = handler.render(ReconcileOptions(), is_deleting=True)
    secrets = [obj for obj in objects if obj.kind == "Secret"]
    assert [obj.name for obj in secrets] == [
        "test-instance-creds",
        "powerscale-karavi-authorization-config",
        "powerscale-proxy-authz-tokens",
        "powerscale-proxy-server-root-certificate",
    ]
    for secret in secrets:
        assert "data" not in secret.definition
    dm.get_object_current_state.assert_not_called()


## Authorization ###############################################################


def test_metrics_with_authorization():
    """With authorization enabled the exporter gets the sidecar and every
    authorization secret is copied under a driver prefix
    """
    handler = make_handler(
        extra_modules=[auth_module()],
        resources=make_secrets("test-instance-creds", *AUTH_SECRETS),
    )
    objects = handler.render(ReconcileOptions())
    assert names(objects, "Secret") == [
        "test-instance-creds",
        "powerscale-karavi-authorization-config",
        "powerscale-proxy-authz-tokens",
        "powerscale-proxy-server-root-certificate",
    ]

    deployment = metrics_deployment(objects)
    assert container_names(deployment) == [
        "karavi-metrics-powerscale",
        "karavi-authorization-proxy",
    ]
    volumes = pod_volumes(deployment)
    for name in AUTH_SECRETS:
        assert volumes[name]["secret"]["secretName"] == f"powerscale-{name}"
    # The driver credentials volume is not an authorization secret
    assert volumes["isilon-creds"]["secret"]["secretName"] == "isilon-creds"

    sidecar = get_container(deployment, "karavi-authorization-proxy")
    token_refs = [
        env["valueFrom"]["secretKeyRef"]["name"]
        for env in sidecar["env"]
        if "valueFrom" in env
    ]
    assert token_refs == ["powerscale-proxy-authz-tokens"] * 2


def test_metrics_with_insecure_authorization():
    """Skipping certificate validation drops the root certificate copy"""
    handler = make_handler(
        extra_modules=[
            auth_module({"PROXY_HOST": "csm-authorization.com", "INSECURE": "true"})
        ],
        resources=make_secrets("test-instance-creds", *AUTH_SECRETS[:2]),
    )
    objects = handler.render(ReconcileOptions())
    assert "powerscale-proxy-server-root-certificate" not in names(objects, "Secret")
    volumes = pod_volumes(metrics_deployment(objects))
    assert "proxy-server-root-certificate" not in volumes
