# scanner.py
import asyncio
import logging
from typing import Optional

from analysis import normalizer, profit
from analysis.models import AmountBasis, CycleResult, RatePair, Trigger
from analysis.reporter import OpportunityReporter
from config import AppConfig
from constants import BASE_SYMBOL, C_BLUE, C_RED, C_RESET, C_YELLOW, QUOTE_SYMBOL
from services.errors import GasQueryFailed, VenueUnavailable
from services.gas_estimator import GasEstimator

logger = logging.getLogger(__name__)

# Scan cycle states. Every cycle starts and ends in IDLE.
IDLE = 'Idle'
FETCHING = 'Fetching'
NORMALIZING = 'Normalizing'
ESTIMATING = 'Estimating'
DECIDING = 'Deciding'


class _CycleProgress:
    """Tracks the state of a single in-flight cycle so failures can name where they happened."""

    def __init__(self, sequence: int):
        self.sequence = sequence
        self.state = IDLE

    def advance(self, state: str) -> None:
        logger.debug("Block %s: %s -> %s", self.sequence, self.state, state)
        self.state = state


class ScanCoordinator:
    """Runs one fetch -> normalize -> estimate -> decide pass per block.

    Cycles are independent and may overlap; each owns its quotes, rates and profits.
    Any failure returns the cycle to Idle without reporting a partial opportunity.
    """

    def __init__(
        self,
        config: AppConfig,
        basis: AmountBasis,
        venue_a,
        venue_b,
        gas_estimator: GasEstimator,
        reporter: OpportunityReporter,
    ):
        self.config = config
        self.basis = basis
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.gas_estimator = gas_estimator
        self.reporter = reporter
        self._latest_reported: Optional[int] = None

    async def run_cycle(self, trigger: Trigger) -> CycleResult:
        """Scans once for the given block. Never raises; failures come back as CycleResult.error."""
        print(f"New block received. Block # {trigger.block_number}")
        progress = _CycleProgress(trigger.block_number)
        try:
            result = await asyncio.wait_for(
                self._scan(trigger, progress),
                timeout=self.config.cycle_timeout,
            )
        except (VenueUnavailable, GasQueryFailed) as e:
            message = f"{type(e).__name__}: {e}"
        except asyncio.TimeoutError:
            message = f"cycle exceeded {self.config.cycle_timeout:.1f}s"
        except Exception as e:
            logger.exception("Unexpected error in scan cycle for block %s", trigger.block_number)
            message = f"unexpected error: {e}"
        else:
            # Alerts are sent outside the cycle timeout.
            await self._send_alert(result, trigger.block_number)
            return result

        failed_in = progress.state
        progress.advance(IDLE)
        print(f"{C_RED}Scan for block {trigger.block_number} abandoned during {failed_in}: {message}{C_RESET}")
        return CycleResult(sequence=trigger.block_number, state=failed_in, error=message)

    async def _scan(self, trigger: Trigger, progress: _CycleProgress) -> CycleResult:
        progress.advance(FETCHING)
        await self._refresh_venues(trigger.block_number)
        quotes_a, quotes_b = await asyncio.gather(
            self.venue_a.fetch_quotes(self.basis),
            self.venue_b.fetch_quotes(self.basis),
        )

        progress.advance(NORMALIZING)
        rates_a = normalizer.normalize(quotes_a, self.venue_a.kind, self.basis, self.venue_a.name)
        rates_b = normalizer.normalize(quotes_b, self.venue_b.kind, self.basis, self.venue_b.name)
        self._print_rates(self.venue_a.name, rates_a)
        self._print_rates(self.venue_b.name, rates_b)

        progress.advance(ESTIMATING)
        gas = await self.gas_estimator.estimate()

        progress.advance(DECIDING)
        profit1, profit2 = profit.compute(rates_a, rates_b, gas, self.basis.base_amount)

        if self._is_superseded(trigger.block_number):
            print(f"{C_YELLOW}Dropping result for block {trigger.block_number}; block {self._latest_reported} already reported.{C_RESET}")
            progress.advance(IDLE)
            return CycleResult(sequence=trigger.block_number, state=DECIDING, superseded=True)

        outcome = self.reporter.report(profit1, profit2, rates_a, rates_b)

        progress.advance(IDLE)
        return CycleResult(sequence=trigger.block_number, state=DECIDING, outcome=outcome)

    async def _send_alert(self, result: CycleResult, block_number: int) -> None:
        if not self.config.telegram_enabled or result.outcome is None or result.outcome.opportunity is None:
            return
        await self.reporter.send_telegram_notification(result.outcome.opportunity, block_number)

    async def _refresh_venues(self, block_number: int) -> None:
        """Reloads cached venue state (the pool snapshot) when its refresh cadence is due."""
        for venue in (self.venue_a, self.venue_b):
            needs_refresh = getattr(venue, 'needs_refresh', None)
            if needs_refresh and needs_refresh(block_number, self.config.pool_refresh_blocks):
                print(f"Refreshing {C_BLUE}{venue.name}{C_RESET} snapshot at block {block_number}...")
                await venue.refresh(block_number)

    def _is_superseded(self, sequence: int) -> bool:
        if not self.config.supersede_stale_cycles:
            return False
        if self._latest_reported is not None and sequence < self._latest_reported:
            return True
        self._latest_reported = sequence
        return False

    @staticmethod
    def _print_rates(venue_name: str, rates: RatePair) -> None:
        print(f"{venue_name} {BASE_SYMBOL}/{QUOTE_SYMBOL.upper()}")
        print({'buy': rates.buy, 'sell': rates.sell})
