#!/usr/bin/env python3
import time
from typing import Dict, Optional

from analysis.models import A_TO_B, B_TO_A, Opportunity, RatePair, ReportedOutcome
from constants import BASE_SYMBOL, C_GREEN, C_RED, C_RESET, C_YELLOW, QUOTE_SYMBOL


class OpportunityReporter:
    """Turns the two directional profits into a decision and renders it."""

    def __init__(
        self,
        venue_a_name: str,
        venue_b_name: str,
        bot=None,
        chat_id: Optional[str] = None,
        alert_cooldown: int = 0,
    ):
        self.venue_a_name = venue_a_name
        self.venue_b_name = venue_b_name
        self.bot = bot
        self.chat_id = chat_id
        self.alert_cooldown = alert_cooldown
        self.alert_cache: Dict[str, float] = {}

    def decide(self, profit1: float, profit2: float, venue_a: RatePair, venue_b: RatePair) -> ReportedOutcome:
        """A->B wins whenever profit1 is positive, even if profit2 is larger. Zero is not an opportunity."""
        opportunity = None
        if profit1 > 0:
            opportunity = Opportunity(
                direction=A_TO_B,
                buy_venue=self.venue_a_name,
                sell_venue=self.venue_b_name,
                buy_price=venue_a.buy,
                sell_price=venue_b.sell,
                expected_profit=profit1,
            )
        elif profit2 > 0:
            opportunity = Opportunity(
                direction=B_TO_A,
                buy_venue=self.venue_b_name,
                sell_venue=self.venue_a_name,
                buy_price=venue_b.buy,
                sell_price=venue_a.sell,
                expected_profit=profit2,
            )
        return ReportedOutcome(opportunity=opportunity, profit1=profit1, profit2=profit2)

    def report(self, profit1: float, profit2: float, venue_a: RatePair, venue_b: RatePair) -> ReportedOutcome:
        outcome = self.decide(profit1, profit2, venue_a, venue_b)
        self._print_outcome(outcome)
        return outcome

    def _print_outcome(self, outcome: ReportedOutcome) -> None:
        opp = outcome.opportunity
        if opp is None:
            print('Arb not found')
            return
        print(f"{C_GREEN}Arb opportunity found!{C_RESET}")
        print(f"Buy {BASE_SYMBOL} on {opp.buy_venue} at {opp.buy_price} {QUOTE_SYMBOL}")
        print(f"Sell {BASE_SYMBOL} on {opp.sell_venue} at {opp.sell_price} {QUOTE_SYMBOL}")
        print(f"Expected profit: {opp.expected_profit} {QUOTE_SYMBOL}")

    async def send_telegram_notification(self, opp: Opportunity, block_number: int) -> bool:
        """Sends an HTML alert unless the same direction was alerted within the cooldown."""
        if self.bot is None or not self.chat_id:
            return False

        now = time.time()
        self._prune_alert_cache(now)
        if opp.direction in self.alert_cache:
            print(f"{C_YELLOW}Skipping notification for {opp.buy_venue} -> {opp.sell_venue} (cooldown).{C_RESET}")
            return False

        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=self.format_signal_message(opp, block_number),
                parse_mode='HTML'
            )
        except Exception as e:
            print(f"{C_RED}Error sending Telegram notification: {e}{C_RESET}")
            return False

        self.alert_cache[opp.direction] = now
        return True

    def _prune_alert_cache(self, now: float) -> None:
        """Removes expired entries from the alert cache."""
        self.alert_cache = {k: v for k, v in self.alert_cache.items() if (now - v) < self.alert_cooldown}

    @staticmethod
    def format_signal_message(opp: Opportunity, block_number: int) -> str:
        message_lines = [
            f"⚡ <b>Arb opportunity: {BASE_SYMBOL}/{QUOTE_SYMBOL.upper()}</b>",
            "",
            f"<b>Block:</b> {block_number}",
            f"<b>Route:</b> Buy {opp.buy_venue} @ {opp.buy_price:.4f} -> Sell {opp.sell_venue} @ {opp.sell_price:.4f}",
            f"<b>Expected profit:</b> {opp.expected_profit:.2f} {QUOTE_SYMBOL.upper()}",
            "",
            "<i>Detection only; no transaction was submitted.</i>",
        ]
        return "\n".join(message_lines)
