"""
Helper object to represent a rendered kubernetes object that the engine applies
or deletes
"""


class ManagedObject:
    """Basic struct to represent a rendered kubernetes object. It carries no
    record of which module produced it beyond its own identity.
    """

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata") or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"
        assert self.name is not None, "No name found"

    @property
    def is_crd(self) -> bool:
        """Whether this object is a CustomResourceDefinition"""
        return self.kind == "CustomResourceDefinition"

    def __str__(self):
        if self.namespace:
            return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"
        return f"{self.api_version}/{self.kind}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash explicitly excludes the definition so that the object's
        identifier in a map is based only on its identity in the cluster
        """
        return hash(str(self))

    def __eq__(self, other):
        return isinstance(other, ManagedObject) and str(self) == str(other)
