from payments.gateways.interfaces import PaymentGateway
from payments.gateways.square_gateway import SquareGateway
from payments.gateways.stripe_gateway import StripeGateway

__all__ = ["PaymentGateway", "SquareGateway", "StripeGateway"]
