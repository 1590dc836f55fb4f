from decimal import Decimal

import stripe
from flask import current_app

from services.errors import ProviderFailure
from services.pricing import to_cents


class StripeGateway:
    """
    Thin wrapper around Stripe PaymentIntents and Refunds.

    Stripe errors and timeouts come back as ProviderFailure so the caller can
    decide whether to retry. Nothing is retried here.
    """

    def __init__(self, api_key=None, timeout_seconds: int = 10):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._configured = False

    def _configure(self):
        if not self.api_key:
            raise ProviderFailure("Stripe secret key missing (STRIPE_SECRET_KEY)")
        if not self._configured:
            stripe.api_key = self.api_key
            stripe.max_network_retries = 0
            stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout_seconds)
            self._configured = True

    def create_intent(self, amount: Decimal, currency: str, metadata: dict) -> dict:
        self._configure()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_cents(amount),
                currency=currency,
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                payment_method_types=["card"],
            )
        except stripe.StripeError as exc:
            current_app.logger.warning("Stripe create_intent failed: %s", exc)
            raise ProviderFailure("Payment provider error while creating payment intent") from exc

        return {
            "id": intent["id"],
            "amount": Decimal(intent["amount"]) / 100,
            "currency": intent["currency"],
            "client_secret": intent.get("client_secret"),
            "status": intent["status"],
        }

    def get_intent_status(self, intent_id: str) -> str:
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as exc:
            current_app.logger.warning("Stripe retrieve intent %s failed: %s", intent_id, exc)
            raise ProviderFailure("Payment provider error while checking payment status") from exc
        return intent["status"]

    def refund(self, intent_id: str, amount=None) -> dict:
        self._configure()
        params = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_cents(amount)
        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as exc:
            current_app.logger.warning("Stripe refund for %s failed: %s", intent_id, exc)
            raise ProviderFailure("Payment provider error while issuing refund") from exc

        return {
            "id": refund["id"],
            "amount": Decimal(refund["amount"]) / 100,
            "status": refund["status"],
        }


def get_payment_gateway():
    return current_app.extensions["payment_gateway"]
