from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from decimal import Decimal

from errors import AccountLocked, BalanceOverflow, DuplicateTransaction
from models import Account, LedgerEntry


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client_id: int) -> Optional[Account]:
        """Get an account. Returns None if the account doesn't exist."""
        pass

    @abstractmethod
    def get_or_create(self, client_id: int) -> Account:
        """Get an account, creating a zero-balance unlocked one if needed."""
        pass

    @abstractmethod
    def apply_delta(self, client_id: int, available_delta: Decimal, held_delta: Decimal) -> None:
        """Adjust available and held balances of an unlocked account."""
        pass

    @abstractmethod
    def lock(self, client_id: int) -> None:
        """Lock an account against further balance changes."""
        pass

    @abstractmethod
    def all(self) -> List[Account]:
        """All accounts, in creation order."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of accounts."""
        pass


class LedgerRepository(ABC):
    @abstractmethod
    def get(self, tx_id: int) -> Optional[LedgerEntry]:
        """Get a recorded deposit or withdrawal by transaction id."""
        pass

    @abstractmethod
    def add(self, entry: LedgerEntry) -> None:
        """Record a new entry. Transaction ids are never reused."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of recorded entries."""
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, max_balance: Optional[Decimal] = None):
        self.accounts: Dict[int, Account] = {}
        self.max_balance = max_balance

    def get(self, client_id: int) -> Optional[Account]:
        return self.accounts.get(client_id)

    def get_or_create(self, client_id: int) -> Account:
        account = self.accounts.get(client_id)
        if account is None:
            account = Account(client_id=client_id)
            self.accounts[client_id] = account
        return account

    def apply_delta(self, client_id: int, available_delta: Decimal, held_delta: Decimal) -> None:
        account = self.get_or_create(client_id)
        if account.locked:
            raise AccountLocked(client_id)

        available = account.available + available_delta
        held = account.held + held_delta
        if self.max_balance is not None and max(abs(available), abs(held)) > self.max_balance:
            raise BalanceOverflow(client_id, self.max_balance)

        account.available = available
        account.held = held

    def lock(self, client_id: int) -> None:
        self.get_or_create(client_id).locked = True

    def all(self) -> List[Account]:
        return list(self.accounts.values())

    def count(self) -> int:
        return len(self.accounts)


class InMemoryLedgerRepository(LedgerRepository):
    def __init__(self):
        self.entries: Dict[int, LedgerEntry] = {}

    def get(self, tx_id: int) -> Optional[LedgerEntry]:
        return self.entries.get(tx_id)

    def add(self, entry: LedgerEntry) -> None:
        if entry.tx_id in self.entries:
            raise DuplicateTransaction(entry.tx_id, entry.client_id)
        self.entries[entry.tx_id] = entry

    def count(self) -> int:
        return len(self.entries)
