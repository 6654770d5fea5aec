"""Gateway registry: vendor configuration and adapter lifecycle.

One registry instance serves the whole process. Configuration changes are
rare administrative actions, so the configuration map and the adapter cache
sit behind a reader/writer lock. Services receive the registry explicitly
and never read the process-wide instance themselves.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, Mapping

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from payments.domain import GatewayConfig, GatewayConfigPatch, RegistrySnapshot, VendorStatus
from payments.domain.errors import ConfigurationError, PaymentError, UnknownVendorError
from payments.gateways import PaymentGateway, SquareGateway, StripeGateway
from payments.locks import ReadWriteLock

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[GatewayConfig], PaymentGateway]


class GatewayRegistry:
    """Tracks vendor configuration and lazily builds cached adapters."""

    def __init__(
        self,
        configs: Iterable[GatewayConfig],
        factories: Mapping[str, GatewayFactory],
    ) -> None:
        self._configs = {config.vendor: config for config in configs}
        self._factories = dict(factories)
        self._providers: dict[str, PaymentGateway] = {}
        self._version = 0
        self._lock = ReadWriteLock()

        missing = set(self._configs) - set(self._factories)
        if missing:
            raise ImproperlyConfigured(f"No adapter for payment vendors: {sorted(missing)}")
        defaults = [c.vendor for c in self._configs.values() if c.is_default]
        if len(defaults) > 1:
            raise ImproperlyConfigured(f"More than one default payment vendor: {defaults}")

    def _config(self, vendor: str) -> GatewayConfig:
        try:
            return self._configs[vendor]
        except KeyError:
            raise UnknownVendorError(vendor) from None

    def _instantiate(self, config: GatewayConfig) -> PaymentGateway:
        try:
            return self._factories[config.vendor](config)
        except PaymentError:
            raise
        except Exception as exc:
            logger.exception("Failed to load payment provider %s", config.vendor)
            raise ConfigurationError(
                config.vendor, f"Failed to load payment provider: {config.vendor}"
            ) from exc

    def snapshot(self) -> RegistrySnapshot:
        with self._lock.read():
            return RegistrySnapshot(version=self._version, configs=tuple(self._configs.values()))

    def get_provider(self, vendor: str) -> PaymentGateway:
        """Return the cached adapter for `vendor`, building it if the vendor is active.

        Raises:
            UnknownVendorError: If the vendor is not registered.
            ConfigurationError: If the vendor is inactive or its adapter cannot be built.
        """
        with self._lock.read():
            provider = self._providers.get(vendor)
            if provider is not None:
                return provider
            config = self._config(vendor)

        if not config.is_active:
            raise ConfigurationError(vendor, f"Payment provider {vendor} is not configured or not active")

        with self._lock.write():
            provider = self._providers.get(vendor)
            if provider is not None:
                return provider
            config = self._config(vendor)
            if not config.is_active:
                raise ConfigurationError(vendor, f"Payment provider {vendor} is not configured or not active")
            provider = self._instantiate(config)
            self._providers[vendor] = provider
            logger.info("Payment provider %s loaded", vendor)
            return provider

    def resolve_active(self) -> tuple[str, PaymentGateway]:
        """Return the default vendor's name together with its adapter."""
        vendor = self.snapshot().default_vendor
        if vendor is None:
            raise ConfigurationError("none", "No default payment provider configured")
        return vendor, self.get_provider(vendor)

    def get_active_provider(self) -> PaymentGateway:
        return self.resolve_active()[1]

    def update_config(self, vendor: str, patch: GatewayConfigPatch) -> GatewayConfig:
        """Merge `patch` into the vendor's configuration.

        Setting a vendor as default clears the flag on every other vendor in
        the same write. Deactivating or changing credentials evicts the cached
        adapter.
        """
        with self._lock.write():
            current = self._config(vendor)
            updated = current.merge(patch)
            if current.is_default and not updated.is_active:
                raise ConfigurationError(
                    vendor, "The default payment provider cannot be deactivated; activate another first"
                )
            if updated.is_default and not updated.is_active:
                raise ConfigurationError(vendor, "An inactive payment provider cannot be the default")

            self._configs[vendor] = updated
            if updated.is_default:
                for other, config in self._configs.items():
                    if other != vendor and config.is_default:
                        self._configs[other] = replace(config, is_default=False)
            if not updated.is_active or updated.options != current.options:
                if self._providers.pop(vendor, None) is not None:
                    logger.info("Evicted cached payment provider %s", vendor)
            self._version += 1

        logger.info(
            "Updated payment provider %s: active=%s default=%s",
            vendor,
            updated.is_active,
            updated.is_default,
        )
        return updated

    def set_active_provider(self, vendor: str) -> GatewayConfig:
        """Make `vendor` the single active/default vendor.

        The adapter is built and probed before any flag changes, so a failed
        activation leaves every vendor's configuration untouched.
        """
        with self._lock.read():
            config = self._config(vendor)
        if not config.is_configured:
            raise ConfigurationError(vendor, f"Payment provider {vendor} has no credentials configured")

        candidate = replace(config, is_active=True, is_default=True)
        provider = self._instantiate(candidate)
        provider.check_connection()

        with self._lock.write():
            if self._configs.get(vendor) is not config:
                raise ConfigurationError(
                    vendor, "Payment provider configuration changed during activation; retry"
                )
            for other, other_config in self._configs.items():
                if other != vendor and other_config.is_default:
                    self._configs[other] = replace(other_config, is_default=False)
            self._configs[vendor] = candidate
            self._providers[vendor] = provider
            self._version += 1

        logger.info("Set %s as active payment provider", vendor)
        return candidate

    def is_available(self, vendor: str) -> bool:
        """Report whether an adapter for `vendor` can be obtained. Never raises."""
        try:
            self.get_provider(vendor)
        except PaymentError as exc:
            logger.info("Payment provider %s is not available: %s", vendor, exc)
            return False
        return True

    def list_vendors(self) -> list[VendorStatus]:
        with self._lock.read():
            return [
                VendorStatus(
                    name=config.vendor,
                    is_active=config.is_active,
                    is_default=config.is_default,
                    is_configured=config.is_configured,
                    is_loaded=config.vendor in self._providers,
                )
                for config in self._configs.values()
            ]

    def clear_cache(self) -> None:
        with self._lock.write():
            self._providers.clear()
        logger.info("Payment provider cache cleared")


def default_factories(timeout: float) -> dict[str, GatewayFactory]:
    return {
        StripeGateway.name: lambda config: StripeGateway(config, timeout=timeout),
        SquareGateway.name: lambda config: SquareGateway(config, timeout=timeout),
    }


def build_registry_from_settings() -> GatewayRegistry:
    gateways = settings.PAYMENT_GATEWAYS
    active = settings.PAYMENT_ACTIVE_GATEWAY
    if active not in gateways:
        raise ImproperlyConfigured(f"PAYMENT_ACTIVE_GATEWAY {active!r} is not a known vendor")

    configs = [
        GatewayConfig(
            vendor=name,
            is_active=bool(entry.get("ACTIVE")) or name == active,
            is_default=name == active,
            options=entry.get("OPTIONS", {}),
        )
        for name, entry in gateways.items()
    ]
    return GatewayRegistry(configs, default_factories(settings.PAYMENT_GATEWAY_TIMEOUT))


_registry: GatewayRegistry | None = None
_registry_lock = threading.Lock()


def get_registry() -> GatewayRegistry:
    """Return the process-wide registry, building it from settings once."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = build_registry_from_settings()
    return _registry


def reset_registry() -> None:
    global _registry
    with _registry_lock:
        _registry = None
