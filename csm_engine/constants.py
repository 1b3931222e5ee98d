"""
Shared module to hold constant values for the library
"""

# Top level directory under the config root holding all module templates
MODULE_CONFIG_DIR = "moduleconfig"

# Directory (under moduleconfig) holding artifacts shared across modules
COMMON_CONFIG_DIR = "common"

# File holding the default module version per driver config version
VERSION_VALUES_FILE = "version-values.yaml"

# Optional per-version file mapping image names to image overrides
IMAGES_FILE = "images.yaml"

# Reserved name of the principal driver container in driver workloads
DRIVER_CONTAINER_NAME = "driver"

# Annotation stamped on workloads that carry the authorization sidecar
AUTHORIZATION_INJECTED_ANNOTATION = "com.dell.karavi-authorization-proxy"

# Default kubelet directory used when the driver does not override it
DEFAULT_KUBELET_CONFIG_DIR = "/var/lib/kubelet"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Kinds whose pod spec lives at spec.template.spec
POD_TEMPLATE_WORKLOAD_KINDS = [
    "Deployment",
    "DaemonSet",
    "StatefulSet",
    "ReplicaSet",
    "Job",
]
