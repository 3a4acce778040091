"""
This module defines the data structures for our configuration.

The YAML file is parsed into plain dataclasses and checked as a whole
before synthesis starts, so a defective configuration never produces a
half-built graph.
"""

import dataclasses
import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

import yaml

from .errors import ConfigurationError
from .naming import camel, default_prefix, sanitize

REQUIRED_KEYS = ["account", "region", "team", "service", "environment", "image"]
SOURCE_SECRET_FIELDS = ["Owner", "Repo", "Branch", "OAuthToken"]
MAX_RULE_PRIORITY = 50000
# values a single listener rule condition accepts
PATH_PATTERNS_PER_RULE = 5

_MODE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


@dataclass
class ZoneConfig:
    name: str
    public_cidr: str
    private_cidr: str


def _default_zones() -> List[ZoneConfig]:
    return [
        ZoneConfig("a", "10.0.111.0/24", "10.0.221.0/24"),
        ZoneConfig("b", "10.0.112.0/24", "10.0.222.0/24"),
    ]


@dataclass
class NetworkConfig:
    vpc_cidr: str = "10.0.0.0/16"
    zones: List[ZoneConfig] = field(default_factory=_default_zones)
    # one NAT gateway per zone instead of a single shared one
    nat_per_zone: bool = False


@dataclass
class VariantConfig:
    mode: str
    priority: int
    port: int = 80
    container_name: Optional[str] = None
    environment: Dict[str, str] = field(default_factory=dict)

    @property
    def path_pattern(self) -> str:
        return f"/{self.mode}*"

    @property
    def health_check_path(self) -> str:
        return f"/{self.mode}/api/v1/messenger/healthcheck"


@dataclass
class BalancerConfig:
    listener_port: int = 80
    loading_priority: int = 50
    # put an internet-facing network balancer in front of the application balancer
    network_frontend: bool = True


@dataclass
class DatabaseConfig:
    username: str = "messenger"
    instance_class: str = "db.t3.medium"
    family: str = "docdb5.0"


@dataclass
class MessagingConfig:
    queue_name: Optional[str] = None
    topic_name: Optional[str] = None


def _default_source_secrets() -> Dict[str, str]:
    return {
        "Owner": "github_owner",
        "Repo": "github_repo",
        "Branch": "github_branch",
        "OAuthToken": "github_oauth_token",
    }


@dataclass
class PipelineConfig:
    source_secrets: Dict[str, str] = field(default_factory=_default_source_secrets)
    image_tag: str = "latest"
    retain_count: int = 5
    tag_prefix: str = "prod"
    build_image: str = "aws/codebuild/standard:7.0"


@dataclass
class TopologyConfig:
    account: str
    region: str
    team: str
    service: str
    environment: str
    image: str
    prefix: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    variants: List[VariantConfig] = field(default_factory=list)
    balancer: BalancerConfig = field(default_factory=BalancerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    messaging: MessagingConfig = field(default_factory=MessagingConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @property
    def naming_prefix(self) -> str:
        if self.prefix:
            return self.prefix
        return default_prefix(self.team, self.service, self.environment, self.region)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopologyConfig":
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping")
        for key in REQUIRED_KEYS:
            if key not in data or data[key] in (None, ""):
                raise ConfigurationError(f"Missing required configuration key: {key}")

        data = dict(data)
        network = dict(data.pop("network", None) or {})
        if "zones" in network:
            network["zones"] = [_build(ZoneConfig, z, "network.zones") for z in network["zones"] or []]
        data["network"] = _build(NetworkConfig, network, "network")
        data["variants"] = [_build(VariantConfig, v, "variants") for v in data.get("variants") or []]
        data["balancer"] = _build(BalancerConfig, data.get("balancer") or {}, "balancer")
        data["database"] = _build(DatabaseConfig, data.get("database") or {}, "database")
        data["messaging"] = _build(MessagingConfig, data.get("messaging") or {}, "messaging")
        data["pipeline"] = _build(PipelineConfig, data.get("pipeline") or {}, "pipeline")
        data["tags"] = {str(k): str(v) for k, v in (data.get("tags") or {}).items()}
        for key in ("account", "region", "team", "service", "environment", "image"):
            data[key] = str(data[key])

        config = _build(cls, data, "configuration")
        config.validate()
        return config

    def validate(self) -> None:
        _check_types(self, "")
        if not sanitize(self.naming_prefix):
            raise ConfigurationError(f"Naming prefix '{self.naming_prefix}' has no usable characters")
        if not (self.account.isdigit() and len(self.account) == 12):
            raise ConfigurationError(f"Account id must be 12 digits, got '{self.account}'")
        self._validate_network()
        self._validate_variants()
        if self.pipeline.retain_count < 1:
            raise ConfigurationError("pipeline.retain_count must be at least 1")
        missing = [f for f in SOURCE_SECRET_FIELDS if f not in self.pipeline.source_secrets]
        if missing:
            raise ConfigurationError(f"pipeline.source_secrets is missing {missing}")

    def _validate_network(self) -> None:
        zones = self.network.zones
        if not zones:
            raise ConfigurationError("At least one availability zone is required")
        names = [z.name for z in zones]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate availability zone names: {names}")
        for name in names:
            if not re.match(r"^[a-z0-9]+$", name):
                raise ConfigurationError(f"Invalid availability zone suffix '{name}'")

        vpc = _network(self.network.vpc_cidr, "network.vpc_cidr")
        blocks = []
        for zone in zones:
            for direction, cidr in (("public", zone.public_cidr), ("private", zone.private_cidr)):
                label = f"zone {zone.name} {direction}"
                block = _network(cidr, label)
                if not block.subnet_of(vpc):
                    raise ConfigurationError(f"{label} block {cidr} is outside VPC {vpc}")
                for other_label, other in blocks:
                    if block.overlaps(other):
                        raise ConfigurationError(f"{label} block {cidr} overlaps {other_label} block {other}")
                blocks.append((label, block))

    def _validate_variants(self) -> None:
        modes = [v.mode for v in self.variants]
        if len(set(modes)) != len(modes):
            raise ConfigurationError(f"Duplicate service variant modes: {modes}")
        priorities = [v.priority for v in self.variants]
        if len(set(priorities)) != len(priorities):
            raise ConfigurationError(f"Duplicate listener rule priorities: {priorities}")
        for variant in self.variants:
            if not _MODE.match(variant.mode):
                raise ConfigurationError(f"Invalid service variant mode '{variant.mode}'")
            if not 1 <= variant.priority <= MAX_RULE_PRIORITY:
                raise ConfigurationError(f"Priority {variant.priority} of '{variant.mode}' is out of range")
            if not 1 <= variant.port <= 65535:
                raise ConfigurationError(f"Port {variant.port} of '{variant.mode}' is out of range")
        # output keys drop the dashes, so `send-2` and `send2` would report under one key
        suffixes: Dict[str, str] = {}
        for mode in modes:
            suffix = camel(mode)
            if suffix in suffixes:
                raise ConfigurationError(f"Modes '{suffixes[suffix]}' and '{mode}' both report as '{suffix}'")
            suffixes[suffix] = mode
        if not 1 <= self.balancer.listener_port <= 65535:
            raise ConfigurationError(f"Listener port {self.balancer.listener_port} is out of range")
        loading = self.balancer.loading_priority
        if priorities and loading <= max(priorities):
            raise ConfigurationError(
                f"Loading rule priority {loading} must be greater than every variant priority {priorities}"
            )
        last = loading + max(len(modes) - 1, 0) // PATH_PATTERNS_PER_RULE
        if last > MAX_RULE_PRIORITY:
            raise ConfigurationError(f"Loading rule priority {last} is out of range")


def load_config(file_path: str) -> TopologyConfig:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        config_data = yaml.safe_load(file)
    return TopologyConfig.from_dict(config_data or {})


def _build(cls, data: Any, section: str):
    if isinstance(data, cls):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError(f"'{section}' must be a mapping")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{section}': {unknown}")
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{section}': {e}") from e


def _check_types(config: Any, section: str) -> None:
    """Compare every field of a config dataclass, recursively, with its annotation."""
    hints = get_type_hints(type(config))
    for f in dataclasses.fields(config):
        label = f"{section}.{f.name}" if section else f.name
        _check_value(getattr(config, f.name), hints[f.name], label)


def _check_value(value: Any, expected: Any, label: str) -> None:
    if get_origin(expected) is Union:
        if value is None:
            return
        expected = next(t for t in get_args(expected) if t is not type(None))
    origin = get_origin(expected)
    if dataclasses.is_dataclass(expected):
        if not isinstance(value, expected):
            raise ConfigurationError(f"'{label}' must be a mapping")
        _check_types(value, label)
    elif origin is list:
        if not isinstance(value, list):
            raise ConfigurationError(f"'{label}' must be a list, got {value!r}")
        item_type, = get_args(expected)
        for index, item in enumerate(value):
            _check_value(item, item_type, f"{label}[{index}]")
    elif origin is dict:
        if not isinstance(value, dict):
            raise ConfigurationError(f"'{label}' must be a mapping, got {value!r}")
        key_type, value_type = get_args(expected)
        for key, item in value.items():
            _check_value(key, key_type, label)
            _check_value(item, value_type, f"{label}.{key}")
    elif expected is int:
        # bool is an int subclass, but `priority: yes` is still a mistake
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"'{label}' must be an integer, got {value!r}")
    elif not isinstance(value, expected):
        raise ConfigurationError(f"'{label}' must be a {expected.__name__}, got {value!r}")


def _network(cidr: str, label: str) -> ipaddress.IPv4Network:
    try:
        return ipaddress.IPv4Network(cidr)
    except ValueError as e:
        raise ConfigurationError(f"Invalid CIDR block for {label}: {cidr}") from e
