"""
Hands a synthesized manifest to Pulumi.

Each manifest resource becomes an instance of the matching `pulumi_aws` or
`pulumi_random` class, created in manifest order. `ref:` tokens are swapped
for the outputs of resources created earlier, and `depends_on` becomes
`pulumi.ResourceOptions(depends_on=...)`.
"""

from typing import Any, Dict

import pulumi
import pulumi_aws as aws
import pulumi_random as random

from .catalog import lookup
from .manifest import CONCAT_KEY, REF_PREFIX, SECRET_PREFIX, Manifest, ManifestResource, parse_ref


def resource_class(token: str):
    module_name, class_name = token.rsplit(".", 1)
    if module_name == "random":
        module = random
    else:
        module = getattr(aws, module_name, None)
        if module is None:
            raise ValueError(f"AWS module '{module_name}' not found for '{token}'.")
    try:
        return getattr(module, class_name)
    except AttributeError:
        raise ValueError(f"Resource class '{class_name}' not found in module '{module_name}'.") from None


def resolve_value(value: Any, resources: Dict[str, Any]) -> Any:
    if isinstance(value, dict):
        if set(value) == {CONCAT_KEY}:
            parts = [
                pulumi.Output.from_input(resolve_value(part, resources)).apply(str)
                for part in value[CONCAT_KEY]
            ]
            return pulumi.Output.concat(*parts)
        return {k: resolve_value(v, resources) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_value(item, resources) for item in value]
    elif isinstance(value, str):
        if value.startswith(SECRET_PREFIX):
            # Fetch secret from Pulumi config
            secret_key = value[len(SECRET_PREFIX):]
            config = pulumi.Config()
            return config.require_secret(secret_key)
        elif value.startswith(REF_PREFIX):
            ref_res, ref_attr = parse_ref(value)
            if ref_res not in resources:
                raise ValueError(f"Referenced resource '{ref_res}' not found.")
            resource_obj = resources[ref_res]
            attr_val = getattr(resource_obj, ref_attr, None)
            if attr_val is None:
                raise ValueError(f"Attribute '{ref_attr}' not found on resource '{ref_res}'")
            return attr_val
        else:
            return value
    else:
        return value


class ManifestDeployer:
    def __init__(self, manifest: Manifest):
        self.manifest = manifest
        self.resources: Dict[str, Any] = {}

    def resource_args(self, resource: ManifestResource) -> Dict[str, Any]:
        json_properties = lookup(resource.kind).json_properties
        args = {}
        for key, value in resource.properties.items():
            resolved = resolve_value(value, self.resources)
            if key in json_properties:
                resolved = pulumi.Output.json_dumps(resolved)
            args[key] = resolved
        return args

    def deploy(self) -> Dict[str, Any]:
        for resource in self.manifest.resources:
            ResourceClass = resource_class(resource.type)
            resolved_args = self.resource_args(resource)
            opts = pulumi.ResourceOptions(depends_on=[self.resources[d] for d in resource.depends_on])
            pulumi.log.debug(f"Arguments for '{resource.name}': {sorted(resolved_args)}")
            self.resources[resource.name] = ResourceClass(resource.name, opts=opts, **resolved_args)
            pulumi.log.info(f"Created resource: {resource.name} ({resource.type})")
        return self.resources

    def export_outputs(self) -> None:
        for key, value in self.manifest.outputs.items():
            try:
                pulumi.export(key, resolve_value(value, self.resources))
            except ValueError as e:
                pulumi.log.warn(f"Failed to export output '{key}': {e}")
