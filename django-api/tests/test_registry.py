"""Tests for the gateway registry.

Run with: pytest tests/test_registry.py -v
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.core.exceptions import ImproperlyConfigured

from payments.domain import GatewayConfig, GatewayConfigPatch
from payments.domain.errors import (
    ConfigurationError,
    UnknownVendorError,
    VendorUnavailableError,
)
from payments.gateways import SquareGateway, StripeGateway
from payments.registry import GatewayRegistry, build_registry_from_settings, get_registry
from tests.fakes import FakeGateway


class CountingFactory:
    """Builds FakeGateways and remembers every instance."""

    def __init__(self) -> None:
        self.built: list[FakeGateway] = []
        self.lock = threading.Lock()
        self.error: Exception | None = None

    def __call__(self, config: GatewayConfig) -> FakeGateway:
        if self.error is not None:
            raise self.error
        gateway = FakeGateway(config)
        with self.lock:
            self.built.append(gateway)
        return gateway


def _configs(default: str = "alpha") -> list[GatewayConfig]:
    return [
        GatewayConfig(
            vendor=name,
            is_active=name == default,
            is_default=name == default,
            options={"secret_key": f"sk_{name}"},
        )
        for name in ("alpha", "beta")
    ] + [GatewayConfig(vendor="gamma")]


@pytest.fixture
def factories():
    return {name: CountingFactory() for name in ("alpha", "beta", "gamma")}


@pytest.fixture
def vendors(factories) -> GatewayRegistry:
    return GatewayRegistry(_configs(), factories)


def _defaults(registry: GatewayRegistry) -> list[str]:
    return [c.vendor for c in registry.snapshot().configs if c.is_default]


class TestConstruction:
    def test_missing_factory_fails_at_startup(self):
        with pytest.raises(ImproperlyConfigured):
            GatewayRegistry([GatewayConfig(vendor="alpha")], {})

    def test_two_defaults_fail_at_startup(self, factories):
        configs = [
            GatewayConfig(vendor="alpha", is_active=True, is_default=True),
            GatewayConfig(vendor="beta", is_active=True, is_default=True),
        ]
        with pytest.raises(ImproperlyConfigured):
            GatewayRegistry(configs, factories)


class TestGetProvider:
    def test_adapter_is_built_once_and_cached(self, vendors, factories):
        first = vendors.get_provider("alpha")
        assert vendors.get_provider("alpha") is first
        assert len(factories["alpha"].built) == 1

    def test_unknown_vendor(self, vendors):
        with pytest.raises(UnknownVendorError):
            vendors.get_provider("nope")

    def test_inactive_vendor_is_a_configuration_error(self, vendors, factories):
        with pytest.raises(ConfigurationError):
            vendors.get_provider("beta")
        assert factories["beta"].built == []

    def test_factory_failure_becomes_configuration_error(self, vendors, factories):
        factories["alpha"].error = RuntimeError("boom")
        with pytest.raises(ConfigurationError):
            vendors.get_provider("alpha")

    def test_get_active_provider_follows_default(self, vendors):
        assert vendors.get_active_provider().name == "alpha"
        assert vendors.resolve_active()[0] == "alpha"

    def test_no_default_vendor(self, factories):
        registry = GatewayRegistry([GatewayConfig(vendor="alpha", is_active=True)], factories)
        with pytest.raises(ConfigurationError):
            registry.get_active_provider()

    def test_is_available_never_raises(self, vendors):
        assert vendors.is_available("alpha")
        assert not vendors.is_available("beta")
        assert not vendors.is_available("nope")


class TestUpdateConfig:
    def test_setting_default_clears_other_defaults(self, vendors):
        vendors.update_config("beta", GatewayConfigPatch(is_active=True, is_default=True))
        assert _defaults(vendors) == ["beta"]

    def test_version_increases_on_every_change(self, vendors):
        before = vendors.snapshot().version
        vendors.update_config("beta", GatewayConfigPatch(is_active=True))
        assert vendors.snapshot().version == before + 1

    def test_deactivating_evicts_cached_adapter(self, vendors, factories):
        vendors.update_config("beta", GatewayConfigPatch(is_active=True))
        vendors.get_provider("beta")
        vendors.update_config("beta", GatewayConfigPatch(is_active=False))
        with pytest.raises(ConfigurationError):
            vendors.get_provider("beta")

    def test_changed_options_rebuild_adapter(self, vendors, factories):
        old = vendors.get_provider("alpha")
        vendors.update_config("alpha", GatewayConfigPatch(options={"secret_key": "sk_rotated"}))
        new = vendors.get_provider("alpha")
        assert new is not old
        assert new.config.secret_key == "sk_rotated"

    def test_default_vendor_cannot_be_deactivated(self, vendors):
        with pytest.raises(ConfigurationError):
            vendors.update_config("alpha", GatewayConfigPatch(is_active=False))
        [alpha] = [status for status in vendors.list_vendors() if status.name == "alpha"]
        assert alpha.is_active

    def test_inactive_vendor_cannot_become_default(self, vendors):
        with pytest.raises(ConfigurationError):
            vendors.update_config("beta", GatewayConfigPatch(is_default=True))
        assert _defaults(vendors) == ["alpha"]

    def test_unknown_vendor(self, vendors):
        with pytest.raises(UnknownVendorError):
            vendors.update_config("nope", GatewayConfigPatch(is_active=True))


class TestSetActiveProvider:
    def test_switches_default_and_keeps_previous_vendor_usable(self, vendors):
        vendors.set_active_provider("beta")
        assert _defaults(vendors) == ["beta"]
        assert vendors.get_active_provider().name == "beta"
        # In-flight enrollments still confirm through the previous vendor.
        assert vendors.get_provider("alpha").name == "alpha"

    def test_requires_credentials(self, vendors):
        with pytest.raises(ConfigurationError):
            vendors.set_active_provider("gamma")
        assert _defaults(vendors) == ["alpha"]

    def test_failed_probe_changes_nothing(self, vendors, factories):
        class Unreachable(FakeGateway):
            def check_connection(self) -> None:
                raise VendorUnavailableError("beta")

        vendors._factories["beta"] = Unreachable
        before = vendors.snapshot()
        with pytest.raises(VendorUnavailableError):
            vendors.set_active_provider("beta")
        after = vendors.snapshot()
        assert after.version == before.version
        assert _defaults(vendors) == ["alpha"]

    def test_list_vendors(self, vendors):
        vendors.get_provider("alpha")
        statuses = {s.name: s for s in vendors.list_vendors()}
        assert statuses["alpha"].is_loaded and statuses["alpha"].is_default
        assert not statuses["beta"].is_active and statuses["beta"].is_configured
        assert not statuses["gamma"].is_configured

    def test_clear_cache_forces_rebuild(self, vendors, factories):
        vendors.get_provider("alpha")
        vendors.clear_cache()
        vendors.get_provider("alpha")
        assert len(factories["alpha"].built) == 2


class TestConcurrency:
    def test_concurrent_first_use_builds_one_adapter(self, vendors, factories):
        with ThreadPoolExecutor(max_workers=16) as pool:
            adapters = list(pool.map(lambda _: vendors.get_provider("alpha"), range(64)))
        assert len(factories["alpha"].built) == 1
        assert all(a is adapters[0] for a in adapters)

    def test_readers_never_observe_two_defaults(self, vendors):
        stop = threading.Event()
        observed: list[int] = []

        def flip():
            for i in range(200):
                target = "beta" if i % 2 == 0 else "alpha"
                vendors.update_config(target, GatewayConfigPatch(is_active=True, is_default=True))
            stop.set()

        def read():
            while True:
                observed.append(len(_defaults(vendors)))
                if stop.is_set():
                    return

        readers = [threading.Thread(target=read) for _ in range(4)]
        writer = threading.Thread(target=flip)
        for thread in readers:
            thread.start()
        writer.start()
        writer.join()
        for thread in readers:
            thread.join()

        assert observed
        assert set(observed) == {1}


class TestSettingsRegistry:
    def test_builds_adapters_for_configured_vendors(self, settings):
        settings.PAYMENT_ACTIVE_GATEWAY = "stripe"
        settings.PAYMENT_GATEWAYS = {
            "stripe": {"ACTIVE": True, "OPTIONS": {"secret_key": "sk_test", "webhook_secret": "whsec"}},
            "square": {"ACTIVE": False, "OPTIONS": {"secret_key": "", "environment": "sandbox"}},
        }
        registry = build_registry_from_settings()
        assert registry.snapshot().default_vendor == "stripe"
        assert isinstance(registry.get_provider("stripe"), StripeGateway)
        assert not registry.is_available("square")

    def test_active_vendor_must_exist(self, settings):
        settings.PAYMENT_ACTIVE_GATEWAY = "paypal"
        with pytest.raises(ImproperlyConfigured):
            build_registry_from_settings()

    def test_get_registry_is_a_singleton(self, settings):
        settings.PAYMENT_ACTIVE_GATEWAY = "square"
        settings.PAYMENT_GATEWAYS = {
            "square": {"OPTIONS": {"secret_key": "sq_test", "environment": "sandbox"}},
        }
        assert get_registry() is get_registry()
        assert isinstance(get_registry().get_active_provider(), SquareGateway)
