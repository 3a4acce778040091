"""
The finalized, fully-resolved output of a synthesis run.

Attribute references appear as `ref:<resource>.<attribute>` strings,
concatenations as `{"concat": [...]}` and deploy-time secrets as
`secret:<config-key>`, the same notation the Pulumi program resolves.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

import yaml

REF_PREFIX = "ref:"
SECRET_PREFIX = "secret:"
CONCAT_KEY = "concat"


def ref_token(resource: str, attribute: str) -> str:
    return f"{REF_PREFIX}{resource}.{attribute}"


def parse_ref(token: str) -> Tuple[str, str]:
    """Split `ref:<resource>.<attribute>`; a bare `ref:<resource>` stands for its id."""
    body = token[len(REF_PREFIX):]
    if "." not in body:
        return body, "id"
    resource, attribute = body.rsplit(".", 1)
    return resource, attribute


@dataclass(frozen=True)
class ManifestResource:
    name: str
    type: str
    category: str
    kind: str
    properties: Dict[str, Any]
    depends_on: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "category": self.category,
            "kind": self.kind,
            "properties": self.properties,
            "depends_on": list(self.depends_on),
        }


@dataclass
class Manifest:
    name: str
    account: str
    region: str
    resources: List[ManifestResource] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def resource(self, name: str) -> ManifestResource:
        for resource in self.resources:
            if resource.name == name:
                return resource
        raise KeyError(name)

    def by_kind(self, kind: str) -> List[ManifestResource]:
        return [r for r in self.resources if r.kind == kind]

    def names(self) -> List[str]:
        return [r.name for r in self.resources]

    def references(self) -> Iterator[str]:
        """Yield every `ref:` token found in resource properties and outputs."""
        for resource in self.resources:
            yield from _tokens(resource.properties)
        yield from _tokens(self.outputs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "account": self.account,
            "region": self.region,
            "resources": [r.to_dict() for r in self.resources],
            "outputs": self.outputs,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=True, default_flow_style=False)

    def write(self, path: str) -> None:
        with open(path, "w") as file:
            file.write(self.to_yaml())


def _tokens(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for item in value.values():
            yield from _tokens(item)
    elif isinstance(value, list):
        for item in value:
            yield from _tokens(item)
    elif isinstance(value, str) and value.startswith(REF_PREFIX):
        yield value
