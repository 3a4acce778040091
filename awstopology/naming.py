import re
from typing import Dict, Optional

from .errors import ConfigurationError, NamingCollision

AWS_REGION_ABBREVIATIONS = {
    "us-east-1": "use1",
    "us-east-2": "use2",
    "us-west-1": "usw1",
    "us-west-2": "usw2",
    "af-south-1": "afs1",
    "ap-east-1": "ape1",
    "ap-south-1": "aps1",
    "ap-northeast-1": "apne1",
    "ap-northeast-2": "apne2",
    "ap-northeast-3": "apne3",
    "ap-southeast-1": "apse1",
    "ap-southeast-2": "apse2",
    "ca-central-1": "cac1",
    "eu-central-1": "euc1",
    "eu-west-1": "euw1",
    "eu-west-2": "euw2",
    "eu-west-3": "euw3",
    "eu-north-1": "eun1",
    "eu-south-1": "eus1",
    "me-south-1": "mes1",
    "sa-east-1": "sae1",
    "us-gov-east-1": "usge1",
    "us-gov-west-1": "usgw1",
    "cn-north-1": "cnn1",
    "cn-northwest-1": "cnnw1",
}

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")


def get_abbreviation(region: str) -> str:
    return AWS_REGION_ABBREVIATIONS.get(region.lower(), region.split("-")[0].lower())


def default_prefix(team: str, service: str, environment: str, region: str) -> str:
    """Build the `<team>-<service>-<env>-<region>` prefix used when none is configured."""
    parts = [team, service, environment, get_abbreviation(region)]
    return "-".join(sanitize(part) for part in parts)


def sanitize(value: str) -> str:
    return _INVALID_CHARS.sub("-", str(value).strip().lower()).strip("-")


def camel(label: str) -> str:
    """`send-2` -> `Send2`, the form used inside output keys."""
    return "".join(part.capitalize() for part in sanitize(label).split("-"))


class NamingContext:
    """
    Issues `<prefix>-<category>[-<qualifier>...]` identifiers for one synthesis run.

    Every identifier is remembered together with the declaration that asked
    for it, so a second declaration landing on the same identifier fails
    with both sides named instead of surfacing later as a provider error.
    """

    def __init__(self, prefix: str):
        self.prefix = sanitize(prefix)
        if not self.prefix:
            raise ConfigurationError(f"Naming prefix {prefix!r} is empty once sanitized")
        self._issued: Dict[str, str] = {}

    def format(self, category: str, *qualifiers: Optional[str]) -> str:
        parts = [self.prefix, sanitize(category)]
        parts.extend(sanitize(q) for q in qualifiers if q is not None and str(q) != "")
        return "-".join(parts)

    def name(self, category: str, *qualifiers: Optional[str], declaration: Optional[str] = None) -> str:
        identifier = self.format(category, *qualifiers)
        if declaration is None:
            shown = [str(q) for q in qualifiers if q is not None]
            declaration = f"{category}({', '.join(shown)})"
        if identifier in self._issued:
            raise NamingCollision(identifier, self._issued[identifier], declaration)
        self._issued[identifier] = declaration
        return identifier

    def issued(self) -> Dict[str, str]:
        return dict(self._issued)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._issued
