import unittest
from typing import Protocol
from unittest.mock import MagicMock

from flexbind import Container, Inject, Lifetime


class Contains:  # noqa: PLW1641
    def __init__(self, substring):
        self.substring = substring

    def __repr__(self):
        return f"Contains({self.substring!r})"

    def __eq__(self, other):
        return isinstance(other, str) and self.substring in other


class PaymentClient(Protocol):
    def charge(self, order_id: str, amount_cents: int) -> None: ...


class InfoLogger(Protocol):
    def info(self, msg: object, *args: object) -> None: ...


class NullLogger:
    def info(self, msg: object, *args: object) -> None:
        pass


class StripeSdk:
    def pay(self, amount_usd: float, reference: str) -> bool:
        return True


class StripeAdapter:
    logger: InfoLogger = Inject(name="payments")

    def __init__(self, sdk: StripeSdk, usd_per_cent: float = 0.01) -> None:
        self._sdk = sdk
        self._usd_per_cent = usd_per_cent

    def charge(self, order_id: str, amount_cents: int) -> None:
        self.logger.info("adapting to stripe sdk api")
        amount_usd = amount_cents * self._usd_per_cent
        ok = self._sdk.pay(amount_usd, reference=order_id)
        if not ok:
            msg = "Stripe payment failed"
            raise RuntimeError(msg)


class TestWiringAdapterThirdPartySDK(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.register(PaymentClient, StripeAdapter)
        self.stripe_sdk = StripeSdk()
        self.stripe_sdk.pay = MagicMock(wraps=self.stripe_sdk.pay)
        self.cont.register_instance(StripeSdk, self.stripe_sdk)
        self.logger = NullLogger()
        self.logger.info = MagicMock(wraps=self.logger.info)
        self.cont.register_instance(InfoLogger, self.logger, name="payments")

    def test_adapter_calls_adaptee(self):
        client: PaymentClient = self.cont.resolve(PaymentClient)
        client.charge("order-123", 5000)

        assert self.stripe_sdk.pay.call_count == 1
        assert self.stripe_sdk.pay.call_args[0][0] == 0.01 * 5000
        assert self.stripe_sdk.pay.call_args[1]["reference"] == "order-123"

        assert self.logger.info.call_args[0][0] == Contains("stripe sdk")

    def test_adapter_uses_registered_conversion_rate(self):
        self.cont.register_instance(float, 0.0125)

        client: PaymentClient = self.cont.resolve(PaymentClient)
        client.charge("order-123", 5000)

        assert self.stripe_sdk.pay.call_args[0][0] == 0.0125 * 5000


class TestScopedAdapterThirdPartySDK(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.register(PaymentClient, StripeAdapter, lifetime=Lifetime.SCOPED)
        self.cont.register(StripeSdk, StripeSdk, lifetime=Lifetime.SINGLETON)
        self.cont.register(InfoLogger, NullLogger, name="payments")

    def test_adapter_per_scope_shares_sdk(self):
        with self.cont.open_scope() as first:
            a = first.resolve(PaymentClient)
        with self.cont.open_scope() as second:
            b = second.resolve(PaymentClient)

        a.charge("order-1", 100)
        assert a is not b
        assert a._sdk is b._sdk
