"""
Billing provider protocol.

Defines the interface the billing and webhook code needs from the payment
processor. StripeProvider implements it; tests substitute fakes.
Objects are returned as dict-like mappings in the processor's own shape.
"""
from typing import Protocol, Dict, Any, List, Optional

from flowforge.core.errors import AppError


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Webhook signature verification and parsing
    - Subscription and invoice lookups
    - Checkout session creation and retrieval
    - Customer, payment method and subscription management
    """

    def construct_event(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or payload malformed
        """
        ...

    def retrieve_subscription(self, subscription_id: str, expand_latest_invoice: bool = False) -> Dict[str, Any]:
        """
        Fetch a subscription, optionally with its latest invoice expanded.

        Raises:
            BillingProviderError: If the lookup fails
        """
        ...

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Create a subscription-mode checkout session.

        Returns:
            Session object (at least "id" and "url")
        """
        ...

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        ...

    def create_customer(self, email: str, metadata: Optional[Dict[str, str]] = None) -> str:
        """Create a customer and return its id."""
        ...

    def list_card_payment_methods(self, customer_id: str) -> List[str]:
        """Ids of the customer's card payment methods."""
        ...

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        ...

    def change_subscription_price(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        """Swap the subscription's single item to a new price with proration."""
        ...

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...


class BillingProviderError(AppError):
    """Base exception for billing provider errors."""
    code = "billing_provider_error"
    status_code = 500


class BillingWebhookError(BillingProviderError):
    """Exception for webhook verification errors."""
    code = "webhook_error"
    status_code = 400
