# sms_ledger/sources/base.py
from abc import ABC, abstractmethod


class BaseSource(ABC):
    @abstractmethod
    def load(self, file_path: str):
        """
        Yield SmsMessage instances read from file_path, in file order.
        Order does not matter: backfill sorts by receipt time.
        """
        pass
