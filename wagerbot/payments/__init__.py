from .gate import PaymentGate
from .models import PaymentResult

__all__ = ["PaymentGate", "PaymentResult"]
