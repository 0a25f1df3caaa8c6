from .counterparty import Counterparty

__all__ = ["Counterparty"]
