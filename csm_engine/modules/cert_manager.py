"""
Shared cert-manager install used by modules that issue their own certificates
"""

# Standard
from typing import List, Optional

# First Party
import alog

# Local
from .. import constants
from ..managed_object import ManagedObject
from ..render import ModuleRenderer, Substitutions
from ..versions import VersionSpec

log = alog.use_channel("CRTMG")

CERT_MANAGER_COMPONENT = "cert-manager"
CERT_MANAGER_DIR = "cert-manager"
CERT_MANAGER_MANIFEST = "cert-manager.yaml"
CERT_MANAGER_CRDS_MANIFEST = "cert-manager-crds.yaml"

# placeholder -> (images.yaml key, default image)
CERT_MANAGER_IMAGES = {
    "<CERT_MANAGER_CAINJECTOR_IMAGE>": (
        "cert-manager-cainjector",
        "quay.io/jetstack/cert-manager-cainjector:v1.11.0",
    ),
    "<CERT_MANAGER_CONTROLLER_IMAGE>": (
        "cert-manager-controller",
        "quay.io/jetstack/cert-manager-controller:v1.11.0",
    ),
    "<CERT_MANAGER_WEBHOOK_IMAGE>": (
        "cert-manager-webhook",
        "quay.io/jetstack/cert-manager-webhook:v1.11.0",
    ),
}


def render_cert_manager(
    module_renderer: ModuleRenderer,
    substitutions: Substitutions,
    version_spec: Optional[VersionSpec] = None,
    is_deleting: bool = False,
) -> List[ManagedObject]:
    """Render the cert-manager objects

    The CRDs come first on install. They are never part of the delete set so
    that certificates owned by other installs survive.

    Args:
        module_renderer:  ModuleRenderer
            Renderer bound to the template store
        substitutions:  Substitutions
            The calling module's common substitutions
        version_spec:  Optional[VersionSpec]
            The calling module's version, whose image map may pin the
            cert-manager images
        is_deleting:  bool
            Whether the objects are being rendered for removal

    Returns:
        objects:  List[ManagedObject]
            The cert-manager objects in apply order
    """
    images = version_spec.images if version_spec is not None else {}
    subs = Substitutions(substitutions)
    for placeholder, (image_key, default) in CERT_MANAGER_IMAGES.items():
        subs.add(placeholder, images.get(image_key) or default)

    objects = []
    if not is_deleting:
        objects.extend(
            module_renderer.render_shared_objects(
                Substitutions(),
                constants.COMMON_CONFIG_DIR,
                CERT_MANAGER_DIR,
                CERT_MANAGER_CRDS_MANIFEST,
            )
        )
    objects.extend(
        obj
        for obj in module_renderer.render_shared_objects(
            subs,
            constants.COMMON_CONFIG_DIR,
            CERT_MANAGER_DIR,
            CERT_MANAGER_MANIFEST,
        )
        if not (is_deleting and obj.is_crd)
    )
    log.debug2("Rendered %d cert-manager objects", len(objects))
    return objects
