"""
Chart of accounts service.

Owns the account registry and its hierarchy rules:
1. Account codes are unique and stable
2. A child has the same type as its parent
3. The parent chain never cycles
4. An account referenced by a posted line is never deleted
   and never changes type; it can only be deactivated

Every change to the chart clears the balance cache, since it can
move lines in or out of any rollup.

ChartTree is the read-side view the balance and reporting
services use to walk parents and children.
"""

import logging
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.exceptions import AccountNotFoundError, ChartOfAccountsError
from rental_ledger.models.account import Account
from rental_ledger.models.enums import AccountType
from rental_ledger.models.transaction_entry import EntryLine
from rental_ledger.schemas.account import AccountCreate, AccountUpdate
from rental_ledger.services.balance_cache import BalanceCache

logger = logging.getLogger(__name__)

# Prefix links already reported in this process.
_reported_prefix_links: set[str] = set()


# (code, name, type, category, parent_code, is_cash)
DEFAULT_CHART: list[tuple[str, str, AccountType, str, str | None, bool]] = [
    ("1000", "Cash and Cash Equivalents", AccountType.ASSET, "Current Assets", None, True),
    ("1001", "Bank Account", AccountType.ASSET, "Current Assets", "1000", True),
    ("1002", "Cash on Hand", AccountType.ASSET, "Current Assets", "1000", True),
    ("1003", "Ecocash Wallet", AccountType.ASSET, "Current Assets", "1000", True),
    ("1011", "Admin Petty Cash", AccountType.ASSET, "Current Assets", "1000", True),
    ("1100", "Accounts Receivable - Tenants", AccountType.ASSET, "Current Assets", None, False),
    ("1130", "Prepaid Expenses", AccountType.ASSET, "Current Assets", None, False),
    ("1200", "Land & Buildings", AccountType.ASSET, "Non-Current Assets", None, False),
    ("1210", "Furniture & Fixtures", AccountType.ASSET, "Non-Current Assets", None, False),
    ("1220", "Office Equipment & Tools", AccountType.ASSET, "Non-Current Assets", None, False),
    ("2000", "Accounts Payable", AccountType.LIABILITY, "Current Liabilities", None, False),
    ("2020", "Tenant Deposits Held", AccountType.LIABILITY, "Current Liabilities", None, False),
    ("2030", "Deferred Income - Tenant Advances", AccountType.LIABILITY, "Current Liabilities", None, False),
    ("2110", "Accrued Expenses", AccountType.LIABILITY, "Current Liabilities", None, False),
    ("2200", "Long-Term Loans", AccountType.LIABILITY, "Non-Current Liabilities", None, False),
    ("3000", "Owner's Capital", AccountType.EQUITY, "Equity", None, False),
    ("3100", "Retained Earnings", AccountType.EQUITY, "Equity", None, False),
    ("4000", "Rental Income", AccountType.INCOME, "Operating Revenue", None, False),
    ("4001", "Rental Income - Student Accommodation", AccountType.INCOME, "Operating Revenue", "4000", False),
    ("4002", "Other Income", AccountType.INCOME, "Operating Revenue", None, False),
    ("4100", "Administrative Fees", AccountType.INCOME, "Operating Revenue", None, False),
    ("5000", "Utilities", AccountType.EXPENSE, "Operating Expenses", None, False),
    ("5001", "Utilities - Water", AccountType.EXPENSE, "Operating Expenses", "5000", False),
    ("5002", "Utilities - Electricity", AccountType.EXPENSE, "Operating Expenses", "5000", False),
    ("5003", "Internet & Wi-Fi", AccountType.EXPENSE, "Operating Expenses", "5000", False),
    ("5007", "Property Maintenance", AccountType.EXPENSE, "Operating Expenses", None, False),
    ("5008", "Maintenance Supplies", AccountType.EXPENSE, "Operating Expenses", None, False),
    ("5010", "Cleaning & Security", AccountType.EXPENSE, "Operating Expenses", None, False),
    ("5099", "Other Operating Expenses", AccountType.EXPENSE, "Operating Expenses", None, False),
]


class ChartTree:
    """
    In-memory view of the account hierarchy.

    Children are discovered through the explicit parent link. An
    account without a parent link whose code looks like
    "<P>-<suffix>" for one of the configured legacy parents P is
    attached to P as well; those links are kept in `prefix_links`
    so they can be audited and migrated.

    Inactive accounts are detached from their parent and become
    roots, so their history still shows up in statements without
    counting toward the parent's rollup.
    """

    def __init__(self, accounts: list[Account], prefix_parents: tuple[str, ...] = ()):
        self.by_code: dict[str, Account] = {a.code: a for a in accounts}
        self.prefix_links: dict[str, str] = {}
        self._children: dict[str, list[Account]] = defaultdict(list)
        self._roots: list[Account] = []

        by_id = {a.id: a for a in accounts}
        for account in sorted(accounts, key=lambda a: a.code):
            parent = self._find_parent(account, by_id, prefix_parents)
            if parent is not None and account.is_active:
                self._children[parent.code].append(account)
            else:
                self._roots.append(account)

        self._attach_unreachable()

    def _find_parent(self, account, by_id, prefix_parents) -> Account | None:
        if account.parent_id is not None:
            parent = by_id.get(account.parent_id)
            if parent is not None and parent.account_type != account.account_type:
                logger.warning(
                    "Account %s (%s) sits under %s (%s); reporting it as a root",
                    account.code, account.account_type.value,
                    parent.code, parent.account_type.value,
                )
                return None
            return parent

        for prefix in prefix_parents:
            parent = self.by_code.get(prefix)
            if (
                parent is not None
                and account.code.startswith(prefix + "-")
                and parent.account_type == account.account_type
            ):
                self.prefix_links[account.code] = prefix
                if account.code not in _reported_prefix_links:
                    _reported_prefix_links.add(account.code)
                    logger.warning(
                        "Account %s rolls up into %s by code prefix only; "
                        "set an explicit parent",
                        account.code, prefix,
                    )
                return parent
        return None

    def _attach_unreachable(self) -> None:
        # A parent cycle in legacy data would hide accounts from every
        # statement. Promote anything not reachable from a root.
        reachable: set[str] = set()
        for root in self._roots:
            reachable.update(self.subtree_codes(root.code))
        for code, account in sorted(self.by_code.items()):
            if code not in reachable:
                logger.warning(
                    "Account %s is not reachable from any root account, "
                    "check its parent chain for a cycle", code,
                )
                for siblings in self._children.values():
                    if account in siblings:
                        siblings.remove(account)
                self._roots.append(account)
                reachable.update(self.subtree_codes(code))

    def account(self, code: str) -> Account:
        account = self.by_code.get(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def children(self, code: str) -> list[Account]:
        return list(self._children.get(code, []))

    def roots(self, account_type: AccountType | None = None) -> list[Account]:
        if account_type is None:
            return list(self._roots)
        return [a for a in self._roots if a.account_type == account_type]

    def subtree_codes(self, code: str) -> list[str]:
        """The account's code followed by every descendant code."""
        codes = []
        seen: set[str] = set()
        stack = [code]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            codes.append(current)
            stack.extend(
                child.code for child in reversed(self._children.get(current, []))
            )
        return codes

    def owner_of(self, code: str, root_code: str) -> str:
        """
        The direct child of root_code whose subtree contains code,
        or root_code itself for lines posted straight to the root.
        """
        for child in self._children.get(root_code, []):
            if code in self.subtree_codes(child.code):
                return child.code
        return root_code


class ChartService:

    def __init__(self, db: Session, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache
        self.settings = get_settings()

    def _chart_changed(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_on_commit(self.db)

    def create_account(self, request: AccountCreate) -> Account:
        """
        Create a new account.

        Raises ChartOfAccountsError if the code already exists or
        the parent has a different type.
        """
        existing = self.db.execute(
            select(Account).where(Account.code == request.code)
        ).scalar_one_or_none()

        if existing:
            raise ChartOfAccountsError(
                f"Account with code '{request.code}' already exists",
                {"account_code": request.code},
            )

        parent = None
        if request.parent_code is not None:
            parent = self.get_account(request.parent_code)
            self._check_parent_type(request.account_type, parent)

        account = Account(
            code=request.code,
            name=request.name,
            account_type=request.account_type,
            category=request.category,
            parent=parent,
            is_cash=request.is_cash,
        )
        self.db.add(account)
        self.db.flush()
        self._chart_changed()
        logger.info("Created account %s (%s)", account.code, account.account_type.value)
        return account

    def get_account(self, code: str) -> Account:
        account = self.db.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
        if not account:
            raise AccountNotFoundError(code)
        return account

    def list_accounts(
        self,
        account_type: AccountType | None = None,
        active_only: bool = False,
    ) -> list[Account]:
        stmt = select(Account).order_by(Account.code)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == account_type)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def grouped_accounts(self) -> dict[AccountType, list[Account]]:
        grouped: dict[AccountType, list[Account]] = {t: [] for t in AccountType}
        for account in self.list_accounts():
            grouped[account.account_type].append(account)
        return grouped

    def update_account(self, code: str, request: AccountUpdate) -> Account:
        """
        Apply a partial update.

        The type of a referenced account is frozen. Reparenting is
        checked for type consistency and cycles.
        """
        account = self.get_account(code)
        fields = request.model_fields_set

        if "name" in fields and request.name is not None:
            account.name = request.name
        if "category" in fields and request.category is not None:
            account.category = request.category
        if "is_cash" in fields and request.is_cash is not None:
            account.is_cash = request.is_cash

        if (
            "account_type" in fields
            and request.account_type is not None
            and request.account_type != account.account_type
        ):
            if self.is_referenced(account):
                raise ChartOfAccountsError(
                    f"Account {code} has posted entries; its type cannot change",
                    {"account_code": code},
                )
            if account.children:
                raise ChartOfAccountsError(
                    f"Account {code} has child accounts; its type cannot change",
                    {"account_code": code},
                )
            account.account_type = request.account_type

        if "parent_code" in fields:
            if request.parent_code is None:
                account.parent = None
            else:
                parent = self.get_account(request.parent_code)
                self._check_parent_type(account.account_type, parent)
                self._check_no_cycle(account, parent)
                account.parent = parent
        elif account.parent is not None:
            self._check_parent_type(account.account_type, account.parent)

        self.db.flush()
        self._chart_changed()
        return account

    def deactivate_account(self, code: str) -> Account:
        """Stop new postings to an account. History is kept."""
        account = self.get_account(code)
        account.is_active = False
        self.db.flush()
        self._chart_changed()
        logger.info("Deactivated account %s", code)
        return account

    def delete_account(self, code: str) -> None:
        """Delete an account that nothing references."""
        account = self.get_account(code)
        if self.is_referenced(account):
            raise ChartOfAccountsError(
                f"Account {code} has posted entries; deactivate it instead",
                {"account_code": code},
            )
        if account.children:
            raise ChartOfAccountsError(
                f"Account {code} has child accounts",
                {"account_code": code},
            )
        self.db.delete(account)
        self.db.flush()
        self._chart_changed()

    def is_referenced(self, account: Account) -> bool:
        return self.db.execute(
            select(EntryLine.id).where(EntryLine.account_id == account.id).limit(1)
        ).first() is not None

    def get_or_create_sub_account(
        self, parent_code: str, suffix: str, name: str
    ) -> Account:
        """
        Return the dedicated sub-account "<parent>-<suffix>", creating
        it under the parent when a new debtor or vendor needs one.
        """
        code = f"{parent_code}-{suffix}"
        existing = self.db.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
        if existing:
            return existing

        parent = self.get_account(parent_code)
        return self.create_account(AccountCreate(
            code=code,
            name=name,
            account_type=parent.account_type,
            category=parent.category,
            parent_code=parent.code,
            is_cash=parent.is_cash,
        ))

    def seed_default_chart(self) -> list[Account]:
        """Create any account of the default rental chart that is missing."""
        created = []
        for code, name, account_type, category, parent_code, is_cash in DEFAULT_CHART:
            exists = self.db.execute(
                select(Account.id).where(Account.code == code)
            ).first()
            if exists:
                continue
            created.append(self.create_account(AccountCreate(
                code=code,
                name=name,
                account_type=account_type,
                category=category,
                parent_code=parent_code,
                is_cash=is_cash,
            )))
        return created

    def build_tree(self) -> ChartTree:
        accounts = list(self.db.execute(select(Account)).scalars().all())
        return ChartTree(accounts, self.settings.PREFIX_ROLLUP_PARENTS)

    def audit_prefix_children(self) -> list[tuple[Account, str]]:
        """
        Accounts whose rollup depends on code-prefix matching.

        Each of these would silently drop out of its parent's
        balance if the prefix fallback were removed.
        """
        tree = self.build_tree()
        return [
            (tree.by_code[code], parent_code)
            for code, parent_code in sorted(tree.prefix_links.items())
        ]

    @staticmethod
    def _check_parent_type(account_type: AccountType, parent: Account) -> None:
        if parent.account_type != account_type:
            raise ChartOfAccountsError(
                f"Account of type {account_type.value} cannot sit under "
                f"{parent.code} ({parent.account_type.value})",
                {"parent_code": parent.code},
            )

    @staticmethod
    def _check_no_cycle(account: Account, new_parent: Account) -> None:
        current = new_parent
        while current is not None:
            if current.id == account.id:
                raise ChartOfAccountsError(
                    f"Making {new_parent.code} the parent of {account.code} "
                    f"would create a cycle",
                    {"account_code": account.code, "parent_code": new_parent.code},
                )
            current = current.parent
