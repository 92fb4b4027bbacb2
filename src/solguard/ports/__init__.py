from solguard.ports.ledger import AnyTransaction, LedgerPort, RawSimulation

__all__ = ["AnyTransaction", "LedgerPort", "RawSimulation"]
