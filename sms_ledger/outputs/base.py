# sms_ledger/outputs/base.py
from abc import ABC, abstractmethod


class BaseOutput(ABC):
    @abstractmethod
    def append(self, transactions, wallets=None, items=None):
        """Write transactions to the chosen sink.

        ``wallets`` and ``items`` are optional Wallet/CategoryItem rows used
        to print names instead of ids.
        """
        pass
