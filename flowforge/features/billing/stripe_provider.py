"""
Stripe billing provider implementation.

Implements BillingProvider protocol using the Stripe API.
Handles webhook signature verification and subscription management.
"""
import json
import os
from typing import Dict, Any, List, Optional
import stripe

from flowforge.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY env var)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET env var)
        """
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY")
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def construct_event(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, signature, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        # Handlers and the event ledger work on plain JSON, not StripeObjects
        return json.loads(body)

    def retrieve_subscription(self, subscription_id: str, expand_latest_invoice: bool = False) -> Dict[str, Any]:
        expand = ["latest_invoice"] if expand_latest_invoice else []
        try:
            return stripe.Subscription.retrieve(subscription_id, expand=expand)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription lookup failed: {e}")

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create Stripe checkout session."""
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        # Stripe rejects customer and customer_email together
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        try:
            return stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        try:
            return stripe.checkout.Session.retrieve(
                session_id,
                expand=["line_items", "subscription", "invoice"],
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session lookup failed: {e}")

    def create_customer(self, email: str, metadata: Optional[Dict[str, str]] = None) -> str:
        try:
            customer = stripe.Customer.create(email=email, metadata=metadata or {})
            return customer["id"]
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer creation failed: {e}")

    def list_card_payment_methods(self, customer_id: str) -> List[str]:
        try:
            methods = stripe.PaymentMethod.list(customer=customer_id, type="card")
            return [method["id"] for method in methods["data"]]
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe payment method lookup failed: {e}")

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            return stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                default_payment_method=payment_method_id,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription creation failed: {e}")

    def change_subscription_price(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        try:
            existing = stripe.Subscription.retrieve(subscription_id)
            item_id = existing["items"]["data"][0]["id"]
            return stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                proration_behavior="create_prorations",
            )
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription update failed: {e}")

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            return stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription cancellation failed: {e}")
