"""Gateway configuration state held by the registry."""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Self


@dataclass(frozen=True)
class GatewayConfig:
    """Per-vendor configuration. Options are opaque to everything but the adapter."""

    vendor: str
    is_active: bool = False
    is_default: bool = False
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @property
    def secret_key(self) -> str:
        return self.options.get("secret_key", "")

    @property
    def webhook_secret(self) -> str:
        return self.options.get("webhook_secret", "")

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def merge(self, patch: "GatewayConfigPatch") -> Self:
        options = dict(self.options)
        options.update(patch.options or {})
        return replace(
            self,
            is_active=self.is_active if patch.is_active is None else patch.is_active,
            is_default=self.is_default if patch.is_default is None else patch.is_default,
            options=options,
        )


@dataclass(frozen=True)
class GatewayConfigPatch:
    """Partial update; None leaves the field unchanged."""

    is_active: bool | None = None
    is_default: bool | None = None
    options: Mapping[str, str] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            is_active=data.get("is_active"),
            is_default=data.get("is_default"),
            options=data.get("options"),
        )


@dataclass(frozen=True)
class VendorStatus:
    name: str
    is_active: bool
    is_default: bool
    is_configured: bool
    is_loaded: bool


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable, versioned view of every vendor's configuration."""

    version: int
    configs: tuple[GatewayConfig, ...]

    @property
    def default_vendor(self) -> str | None:
        for config in self.configs:
            if config.is_default:
                return config.vendor
        return None
