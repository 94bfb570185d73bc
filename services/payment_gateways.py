"""
Simulated payment gateways, one per payment method.

Gateways share a single capability, ``process(amount, reference)``, so the
payment coordinator never needs to know which method it is charging.
"""
import logging
import random
import string
import time
from typing import Dict, Optional

from pydantic import BaseModel

from models.billing import PaymentMethod
from utils.config import CARD_DECLINE_RATE

logger = logging.getLogger(__name__)

PaymentMethodType = PaymentMethod

FEE_RATES = {
    PaymentMethod.CARD: 0.029,
    PaymentMethod.UPI: 0.005,
    PaymentMethod.WALLET: 0.02,
    PaymentMethod.CASH: 0.0,
    PaymentMethod.BANK_TRANSFER: 0.01,
}


class GatewayResult(BaseModel):
    success: bool
    gateway_transaction_id: Optional[str] = None
    error: Optional[str] = None


def calculate_payment_fee(amount: float, method: PaymentMethod) -> float:
    return round(amount * FEE_RATES.get(method, 0.0), 2)


def _random_suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def generate_transaction_id(method: PaymentMethod) -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    return f"{method.value.upper()[:3]}{timestamp}{_random_suffix()}"


class PaymentGateway:
    method: PaymentMethod
    provider = "simulator"

    def process(self, amount: float, reference: str) -> GatewayResult:
        raise NotImplementedError

    def _approved(self) -> GatewayResult:
        millis = int(time.time() * 1000)
        return GatewayResult(
            success=True,
            gateway_transaction_id=f"{self.method.value}_{millis}_{_random_suffix().lower()}",
        )


class CardGateway(PaymentGateway):
    method = PaymentMethod.CARD
    provider = "card-simulator"

    def __init__(self, decline_rate: float = CARD_DECLINE_RATE):
        self.decline_rate = decline_rate

    def process(self, amount: float, reference: str) -> GatewayResult:
        if amount <= 0:
            return GatewayResult(success=False, error="Amount must be positive")
        if random.random() < self.decline_rate:
            logger.warning(f"Card payment declined for {reference}")
            return GatewayResult(success=False, error="Card payment declined. Please try a different card.")
        return self._approved()


class UPIGateway(PaymentGateway):
    method = PaymentMethod.UPI
    provider = "upi-simulator"

    def process(self, amount: float, reference: str) -> GatewayResult:
        if amount <= 0:
            return GatewayResult(success=False, error="Amount must be positive")
        return self._approved()


class WalletGateway(PaymentGateway):
    method = PaymentMethod.WALLET
    provider = "wallet-simulator"

    def process(self, amount: float, reference: str) -> GatewayResult:
        if amount <= 0:
            return GatewayResult(success=False, error="Amount must be positive")
        return self._approved()


class CashGateway(PaymentGateway):
    """Cash is collected by staff; the gateway only records it."""
    method = PaymentMethod.CASH
    provider = "counter"

    def process(self, amount: float, reference: str) -> GatewayResult:
        return GatewayResult(success=True, gateway_transaction_id=f"cash_{reference}")


class BankTransferGateway(PaymentGateway):
    method = PaymentMethod.BANK_TRANSFER
    provider = "bank-simulator"

    def process(self, amount: float, reference: str) -> GatewayResult:
        if amount <= 0:
            return GatewayResult(success=False, error="Amount must be positive")
        return self._approved()


def default_gateways(card_decline_rate: float = CARD_DECLINE_RATE) -> Dict[PaymentMethod, PaymentGateway]:
    return {
        PaymentMethod.CARD: CardGateway(decline_rate=card_decline_rate),
        PaymentMethod.UPI: UPIGateway(),
        PaymentMethod.WALLET: WalletGateway(),
        PaymentMethod.CASH: CashGateway(),
        PaymentMethod.BANK_TRANSFER: BankTransferGateway(),
    }
