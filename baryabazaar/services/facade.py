"""Per-unit-of-work composition of the ledger services."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import Session

from baryabazaar.core.config import Settings, get_settings
from baryabazaar.models import TransactionType, utcnow
from baryabazaar.services.analytics import AnalyticsService
from baryabazaar.services.audit import AuditLogService
from baryabazaar.services.balances import BalanceProjector
from baryabazaar.services.end_of_day import EndOfDayService
from baryabazaar.services.events import EventBus, get_event_bus
from baryabazaar.services.exchange_rates import (
    SOURCE_FALLBACK,
    ExchangeRateService,
    ReferenceRate,
    get_exchange_rate_service,
    preferred_rate,
)
from baryabazaar.services.ledger import Clock, TransactionStore
from baryabazaar.services.profit import ProfitService
from baryabazaar.services.registry import RegistryService
from baryabazaar.services.sessions import SessionLogService
from baryabazaar.services.system_settings import SystemSettingsService
from baryabazaar.services.transfers import TransferService
from baryabazaar.services.validation import ValidationResult, ValidationRules, validate_trade


class Ledger:
    """Wires every service to one session so they share a single unit of work.

    Nothing here commits; the caller owns the transaction boundary.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        rates: ExchangeRateService | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.bus = bus or get_event_bus()
        self.rates = rates or get_exchange_rate_service()
        self.clock = clock

        self.audit = AuditLogService(session)
        self.system_settings = SystemSettingsService(session, audit=self.audit, settings=self.settings)
        record = self.system_settings.get()
        self.tz = self.system_settings.zone()
        self.reset_time = self.system_settings.reset_time()

        self.balances = BalanceProjector(session, audit=self.audit, bus=self.bus)
        self.transactions = TransactionStore(
            session,
            projector=self.balances,
            audit=self.audit,
            bus=self.bus,
            clock=clock,
            tz=self.tz,
        )
        self.profit = ProfitService(self.transactions, reset_time=self.reset_time, tz=self.tz, clock=clock)
        self.analytics = AnalyticsService(
            session,
            self.transactions,
            tz=self.tz,
            total_invested_funds=record.total_invested_funds,
            clock=clock,
            bus=self.bus,
        )
        self.registry = RegistryService(session, audit=self.audit)
        self.transfers = TransferService(session, self.transactions, self.balances)
        self.end_of_day = EndOfDayService(
            session,
            store=self.transactions,
            projector=self.balances,
            profit=self.profit,
            audit=self.audit,
            bus=self.bus,
        )
        self.hr = SessionLogService(session, clock=clock)

    def reference_rate(self) -> ReferenceRate:
        """Stored refresher rate or this process's own, whichever is current."""
        return preferred_rate(self.rates.current(), self.system_settings.stored_reference_rate())

    def refresh_reference_rate(self) -> ReferenceRate:
        fetched = self.rates.refresh()
        if fetched.source != SOURCE_FALLBACK:
            self.system_settings.record_reference_rate(fetched)
        return self.reference_rate()

    @property
    def validation_rules(self) -> ValidationRules:
        return ValidationRules.from_settings(self.settings)

    def validate_trade(self, form: Mapping[str, Any], transaction_type: TransactionType) -> ValidationResult:
        user_id = form.get("user_id")
        return validate_trade(
            form,
            transaction_type,
            self.balances.snapshot(str(user_id) if user_id else None),
            rules=self.validation_rules,
            reference_rate=self.reference_rate().rate,
        )


__all__ = ["Ledger"]
