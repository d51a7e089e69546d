"""Domain models used by the financial snapshot and operation engine."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .errors import InvalidMovementError
from .money import ZERO


class MovementKind(str, Enum):
    TRADE = "TRADE"
    OPTION_TRADE = "OPTION_TRADE"
    DIVIDEND = "DIVIDEND"
    DIVIDEND_TAX = "DIVIDEND_TAX"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    CONVERSION = "CONVERSION"
    FEE = "FEE"
    INTEREST = "INTEREST"
    INTEREST_PAID = "INTEREST_PAID"


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OptionAction(str, Enum):
    BUY_TO_OPEN = "BUY_TO_OPEN"
    SELL_TO_OPEN = "SELL_TO_OPEN"
    BUY_TO_CLOSE = "BUY_TO_CLOSE"
    SELL_TO_CLOSE = "SELL_TO_CLOSE"
    EXPIRED = "EXPIRED"
    ASSIGNED = "ASSIGNED"
    EXERCISED = "EXERCISED"

    @property
    def is_opening(self) -> bool:
        return self in (OptionAction.BUY_TO_OPEN, OptionAction.SELL_TO_OPEN)

    @property
    def folds_into_underlying(self) -> bool:
        return self in (OptionAction.ASSIGNED, OptionAction.EXERCISED)


class OptionType(str, Enum):
    CALL = "CALL"
    PUT = "PUT"


TICKER_KINDS = frozenset(
    {MovementKind.TRADE, MovementKind.OPTION_TRADE, MovementKind.DIVIDEND, MovementKind.DIVIDEND_TAX}
)


@dataclass(frozen=True)
class OptionContract:
    """Identity of a listed option series within one currency."""

    ticker: str
    currency: str
    option_type: OptionType
    strike: Decimal
    expiration: date


@dataclass(frozen=True)
class Movement:
    """A single brokerage account event.

    ``amount`` is the signed gross premium for option trades (positive when
    collected), the gross dividend, the withheld tax, the cash moved for
    deposits/withdrawals/income, the charge for stand-alone fees and the
    credited amount for conversions.
    """

    account_id: str
    sequence: int
    timestamp: datetime
    kind: MovementKind
    currency: str = "USD"
    ticker: Optional[str] = None
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    commission: Decimal = ZERO
    fee: Decimal = ZERO
    amount: Decimal = ZERO
    side: Optional[TradeSide] = None
    option_action: Optional[OptionAction] = None
    option_type: Optional[OptionType] = None
    strike: Optional[Decimal] = None
    expiration: Optional[date] = None
    multiplier: Optional[Decimal] = None
    from_currency: Optional[str] = None
    from_amount: Decimal = ZERO

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def net_premium(self) -> Decimal:
        """Option premium after commissions and fees."""

        return self.amount - self.commission - self.fee

    def contract(self) -> OptionContract:
        if self.ticker is None or self.option_type is None or self.strike is None or self.expiration is None:
            raise InvalidMovementError(
                "Option movement needs a ticker, option type, strike and expiration",
                account_id=self.account_id,
                sequence=self.sequence,
                kind=getattr(self.kind, "value", self.kind),
            )
        return OptionContract(
            ticker=self.ticker,
            currency=self.currency,
            option_type=self.option_type,
            strike=self.strike,
            expiration=self.expiration,
        )


@dataclass(frozen=True)
class BrokerFinancialSnapshot:
    """Cumulative account state for one currency as of the end of a day.

    ``movement_counter`` counts the movements folded into this currency's
    stream. A conversion touches two streams and is counted in both, so for a
    multi-currency account the per-currency counters can sum to more than the
    number of movements. For a single-currency account it is the account-wide
    count.
    """

    account_id: str
    currency: str
    date: date
    movement_counter: int
    realized_gains: Decimal
    realized_percentage: Decimal
    unrealized_gains: Decimal
    unrealized_gains_percentage: Decimal
    invested: Decimal
    commissions: Decimal
    fees: Decimal
    deposited: Decimal
    withdrawn: Decimal
    dividends_received: Decimal
    options_income: Decimal
    other_income: Decimal
    open_trades: bool
    net_cash_flow: Decimal
    cash: Decimal

    @property
    def natural_key(self) -> tuple[str, str, date]:
        return (self.account_id, self.currency, self.date)


@dataclass(frozen=True)
class TickerCurrencySnapshot:
    """Running position state for one ticker in one currency as of a day."""

    account_id: str
    ticker: str
    currency: str
    date: date
    movement_counter: int
    quantity: Decimal
    average_cost: Decimal
    cost_basis: Decimal
    realized: Decimal
    unrealized: Decimal
    unrealized_percentage: Decimal
    dividends: Decimal
    dividend_taxes: Decimal
    options: Decimal
    commissions: Decimal
    fees: Decimal
    latest_price: Optional[Decimal]
    open_trades: bool

    @property
    def natural_key(self) -> tuple[str, str, str, date]:
        return (self.account_id, self.ticker, self.currency, self.date)


@dataclass(frozen=True)
class AutoImportOperation:
    """Consolidated strategy lifecycle on one ticker."""

    account_id: str
    ticker: str
    currency: str
    opening_sequence: int
    open_date: datetime
    close_date: Optional[datetime]
    is_open: bool
    realized: Decimal
    realized_today: Decimal
    commissions: Decimal
    fees: Decimal
    premium: Decimal
    dividends: Decimal
    dividend_taxes: Decimal
    capital_deployed: Decimal
    capital_deployed_today: Decimal
    performance: Decimal
    is_consistent: bool = True

    @property
    def natural_key(self) -> tuple[str, str, int]:
        return (self.account_id, self.ticker, self.opening_sequence)


__all__ = [
    "ZERO",
    "MovementKind",
    "TradeSide",
    "OptionAction",
    "OptionType",
    "OptionContract",
    "TICKER_KINDS",
    "Movement",
    "BrokerFinancialSnapshot",
    "TickerCurrencySnapshot",
    "AutoImportOperation",
]
