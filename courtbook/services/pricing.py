"""Per-court slot pricing."""
import logging
from typing import Optional

from courtbook.core.config import settings
from courtbook.schemas.court import Court, PricingRule

logger = logging.getLogger(__name__)

WEEKDAY = "weekday"
WEEKEND = "weekend"


def day_of_week(target_date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (target_date.weekday() + 1) % 7


def day_type_for(target_date) -> str:
    return WEEKEND if day_of_week(target_date) in (0, 6) else WEEKDAY


def parse_minutes(value: Optional[str]) -> Optional[int]:
    """Parse "HH:MM" (or "HH") to minutes after midnight; None if invalid."""
    if not value:
        return None
    try:
        parts = value.strip().split(":")
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None
    return hour * 60 + minute


def _has_rate(rule: PricingRule) -> bool:
    return rule.price_per_hour is not None and rule.price_per_hour > 0


class PricingPolicy:
    """Resolves the hourly price of a slot for one court."""

    def __init__(
        self,
        weekday_fallback: Optional[float] = None,
        weekend_fallback: Optional[float] = None,
    ):
        self.weekday_fallback = (
            settings.WEEKDAY_FALLBACK_PRICE if weekday_fallback is None else weekday_fallback
        )
        self.weekend_fallback = (
            settings.WEEKEND_FALLBACK_PRICE if weekend_fallback is None else weekend_fallback
        )

    def fallback_price(self, day_type: str) -> float:
        return self.weekend_fallback if day_type == WEEKEND else self.weekday_fallback

    def price_for(self, court: Court, start: str, end: str, day_type: str) -> float:
        """
        Resolve a court's price for the slot ``[start, end)``.

        Fallback chain:
            1. active rule for the day type whose window contains the slot
            2. any active rule for the day type with a positive rate
            3. any active rule with a positive rate
            4. the first rule, if it has a positive rate
            5. the configured fallback for the day type

        Args:
            court: Court whose pricing rules apply
            start: Slot start "HH:MM"
            end: Slot end "HH:MM"
            day_type: "weekday" or "weekend"

        Returns:
            Hourly price
        """
        rules = court.pricing
        slot_start = parse_minutes(start)
        slot_end = parse_minutes(end)

        for rule in rules:
            if not rule.is_active or rule.day_type != day_type or not _has_rate(rule):
                continue
            window = rule.time_slot
            rule_start = parse_minutes(window.start) if window else None
            rule_end = parse_minutes(window.end) if window else None
            if rule_start is None or rule_end is None or rule_start >= rule_end:
                continue
            if rule_start <= slot_start and rule_end >= slot_end:
                return rule.price_per_hour

        for rule in rules:
            if rule.is_active and rule.day_type == day_type and _has_rate(rule):
                return rule.price_per_hour

        for rule in rules:
            if rule.is_active and _has_rate(rule):
                return rule.price_per_hour

        if rules and _has_rate(rules[0]):
            return rules[0].price_per_hour

        logger.debug(f"No usable pricing rule for court {court.id}, using {day_type} fallback")
        return self.fallback_price(day_type)


# Singleton instance
pricing_policy = PricingPolicy()
