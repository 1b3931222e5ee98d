"""
Token substitution tables. Templates embed angle-bracket placeholders; each
placeholder is replaced by a component env override when one is present and by
a built-in default otherwise.
"""

# Standard
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

# First Party
import alog

# Local
from .. import constants
from ..custom_resource import Component, CustomResource

log = alog.use_channel("SUBST")


@dataclass(frozen=True)
class Token:
    """A template placeholder, the component env var that may override it and
    the value used when it is not overridden
    """

    placeholder: str
    env_name: Optional[str] = None
    default: str = ""

    @classmethod
    def env(cls, env_name: str, default: str = "") -> "Token":
        """Shorthand for the common case where the placeholder is the env name
        wrapped in angle brackets
        """
        return cls(placeholder=f"<{env_name}>", env_name=env_name, default=default)


class Substitutions:
    """Ordered placeholder -> value pairs. Adding a placeholder that is already
    present replaces its value in place.
    """

    def __init__(self, pairs: Optional[Iterable[Tuple[str, str]]] = None):
        self._pairs: List[Tuple[str, str]] = []
        for placeholder, value in pairs or []:
            self.add(placeholder, value)

    def add(self, placeholder: str, value) -> "Substitutions":
        value = "" if value is None else str(value)
        for idx, (existing, _) in enumerate(self._pairs):
            if existing == placeholder:
                self._pairs[idx] = (placeholder, value)
                return self
        self._pairs.append((placeholder, value))
        return self

    def extend(self, other: "Substitutions") -> "Substitutions":
        for placeholder, value in other:
            self.add(placeholder, value)
        return self

    def get(self, placeholder: str) -> Optional[str]:
        for existing, value in self._pairs:
            if existing == placeholder:
                return value
        return None

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._pairs))

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"Substitutions({self._pairs})"


## Public ######################################################################


def resolve_tokens(
    tokens: Iterable[Token],
    component: Optional[Component] = None,
) -> Substitutions:
    """Resolve each token against a component's env list

    Args:
        tokens:  Iterable[Token]
            The tokens in the order they should be substituted
        component:  Optional[Component]
            The component whose envs may override the defaults

    Returns:
        substitutions:  Substitutions
            The resolved placeholder values in token order
    """
    substitutions = Substitutions()
    for token in tokens:
        value = token.default
        if component is not None and token.env_name:
            override = component.get_env(token.env_name)
            if override is not None:
                log.debug3("Overriding %s from env", token.placeholder)
                value = override
        substitutions.add(token.placeholder, value)
    return substitutions


def common_substitutions(cr: CustomResource) -> Substitutions:
    """Substitutions every module template may use, derived from the custom
    resource identity and the driver's common settings
    """
    kubelet_dir = (
        cr.driver.common.get_env("KUBELET_CONFIG_DIR")
        or constants.DEFAULT_KUBELET_CONFIG_DIR
    )
    return Substitutions(
        [
            ("<DriverDefaultReleaseName>", cr.name),
            ("<DriverDefaultReleaseNamespace>", cr.namespace),
            ("<NAMESPACE>", cr.namespace),
            ("<CSM_NAMESPACE>", cr.namespace),
            ("<NAME>", cr.name),
            ("<KUBELET_CONFIG_DIR>", kubelet_dir),
        ]
    )
