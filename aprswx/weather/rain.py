"""Rain accumulation windows.

Turns individual rain updates into the three totals an APRS weather report
carries:

- rain_1h: rolling sum of the events in the last 60 minutes
- rain_24h: sum of 24 hourly buckets indexed by UTC hour
- rain_today: sum since local midnight in the station's timezone

The 24-hour buckets use UTC hours while "today" follows the local civil
day. The two boundaries are kept apart; unifying them would change the
reported totals.

State is saved to a KeyValueStore under three keys after every change so a
restart picks up where the windows left off. Each blob carries a version
and is checked on load; a blob that does not validate is dropped and that
window starts empty.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo

from aprswx.constants import HOURS_PER_DAY, RAIN_STATE_VERSION, RAIN_WINDOW
from aprswx.store import KeyValueStore
from aprswx.utils import print_debug, print_warning

KEY_RAIN_1H = "rain1h"
KEY_RAIN_24H = "rain24h"
KEY_RAIN_TODAY = "rainToday"


class AggregationError(ValueError):
    """Persisted rain state is corrupt or has an unknown layout."""


def round_tenth(value: float) -> float:
    """Round to the 0.1 mm resolution of a rain gauge."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def hour_index(when: datetime) -> int:
    """Absolute UTC hour number (hours since the epoch)."""
    return int(_utc(when).timestamp() // 3600)


@dataclass(frozen=True)
class RainEvent:
    """One reported rainfall delta."""

    timestamp: datetime  # UTC
    amount_mm: float


@dataclass
class RainState:
    """Everything the aggregator needs to survive a restart."""

    rolling_log: List[RainEvent] = field(default_factory=list)
    hour_buckets: List[Optional[float]] = field(default_factory=lambda: [None] * HOURS_PER_DAY)
    # Absolute UTC hour each bucket was last written, None if unknown
    bucket_hours: List[Optional[int]] = field(default_factory=lambda: [None] * HOURS_PER_DAY)
    daily_total: Optional[float] = None
    daily_date: Optional[date] = None

    # --- Serialization ---

    def dump_rolling_log(self) -> str:
        events = [
            {"t": int(e.timestamp.timestamp() * 1000), "r": e.amount_mm}
            for e in self.rolling_log
        ]
        return json.dumps({"version": RAIN_STATE_VERSION, "events": events})

    def dump_hour_buckets(self) -> str:
        return json.dumps({
            "version": RAIN_STATE_VERSION,
            "buckets": self.hour_buckets,
            "hours": self.bucket_hours,
        })

    def dump_daily(self) -> str:
        return json.dumps({
            "version": RAIN_STATE_VERSION,
            "total": self.daily_total,
            "date": self.daily_date.isoformat() if self.daily_date else None,
        })

    @staticmethod
    def _decode(blob: str, key: str):
        try:
            data = json.loads(blob)
        except ValueError as e:
            raise AggregationError(f"{key}: not valid JSON ({e})") from e
        if not isinstance(data, dict):
            raise AggregationError(f"{key}: expected an object, got {type(data).__name__}")
        if data.get("version") != RAIN_STATE_VERSION:
            raise AggregationError(f"{key}: unsupported version {data.get('version')!r}")
        return data

    @staticmethod
    def _number(value, key: str, allow_none: bool = True) -> Optional[float]:
        if value is None and allow_none:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise AggregationError(f"{key}: expected a number, got {value!r}")
        if not math.isfinite(value):
            raise AggregationError(f"{key}: non-finite value {value!r}")
        if value < 0:
            raise AggregationError(f"{key}: negative amount {value!r}")
        return float(value)

    @classmethod
    def load_rolling_log(cls, blob: str) -> List[RainEvent]:
        data = cls._decode(blob, KEY_RAIN_1H)
        events = data.get("events")
        if not isinstance(events, list):
            raise AggregationError(f"{KEY_RAIN_1H}: 'events' must be a list")
        log = []
        for entry in events:
            if not isinstance(entry, dict) or "t" not in entry or "r" not in entry:
                raise AggregationError(f"{KEY_RAIN_1H}: malformed event {entry!r}")
            millis = cls._number(entry["t"], KEY_RAIN_1H, allow_none=False)
            amount = cls._number(entry["r"], KEY_RAIN_1H, allow_none=False)
            try:
                when = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as e:
                raise AggregationError(f"{KEY_RAIN_1H}: bad timestamp {millis!r}") from e
            log.append(RainEvent(when, amount))
        return log

    @classmethod
    def load_hour_buckets(cls, blob: str):
        data = cls._decode(blob, KEY_RAIN_24H)
        buckets, hours = data.get("buckets"), data.get("hours")
        if not isinstance(buckets, list) or len(buckets) != HOURS_PER_DAY:
            raise AggregationError(f"{KEY_RAIN_24H}: need {HOURS_PER_DAY} buckets")
        if not isinstance(hours, list) or len(hours) != HOURS_PER_DAY:
            raise AggregationError(f"{KEY_RAIN_24H}: need {HOURS_PER_DAY} bucket hours")
        buckets = [cls._number(b, KEY_RAIN_24H) for b in buckets]
        hours = [None if h is None else int(cls._number(h, KEY_RAIN_24H)) for h in hours]
        return buckets, hours

    @classmethod
    def load_daily(cls, blob: str):
        data = cls._decode(blob, KEY_RAIN_TODAY)
        total = cls._number(data.get("total"), KEY_RAIN_TODAY)
        day = data.get("date")
        if day is None:
            return total, None
        try:
            return total, date.fromisoformat(day)
        except (TypeError, ValueError) as e:
            raise AggregationError(f"{KEY_RAIN_TODAY}: bad date {day!r}") from e


class RainAggregator:
    """Rolling rain windows for one station.

    Example:
        rain = RainAggregator(MemoryStore(), timezone_name="Europe/Helsinki")
        rain.load()
        rain.record_rain(0.3, now)
        rain.purge(now)
        rain.rain_1h, rain.rain_24h, rain.rain_today
    """

    def __init__(self, store: Optional[KeyValueStore] = None, timezone_name: str = "UTC"):
        """Initialize the aggregator.

        Args:
            store: Where the windows are persisted (None keeps them in memory)
            timezone_name: IANA zone of the station, used for local midnight
        """
        self.store = store
        self.tz: tzinfo = ZoneInfo(timezone_name)
        self.state = RainState()
        self.daily_resets = 0

    # --- Persistence ---

    def load(self):
        """Restore the windows from the store.

        A window whose blob is missing starts empty. A corrupt blob is
        reported and that window starts empty too.
        """
        self.state = RainState()
        if self.store is None:
            return

        loaders = (
            (KEY_RAIN_1H, self._load_rolling_log),
            (KEY_RAIN_24H, self._load_hour_buckets),
            (KEY_RAIN_TODAY, self._load_daily),
        )
        for key, loader in loaders:
            blob = self.store.get(key)
            if blob is None:
                continue
            try:
                loader(blob)
            except AggregationError as e:
                print_warning(f"Ignoring stored rain state: {e}")

        print_debug(
            f"Rain state loaded: {len(self.state.rolling_log)} events, "
            f"24h={self.rain_24h}, today={self.rain_today}",
            level=3,
        )

    def _load_rolling_log(self, blob):
        self.state.rolling_log = RainState.load_rolling_log(blob)

    def _load_hour_buckets(self, blob):
        self.state.hour_buckets, self.state.bucket_hours = RainState.load_hour_buckets(blob)

    def _load_daily(self, blob):
        self.state.daily_total, self.state.daily_date = RainState.load_daily(blob)

    def save(self):
        """Write all three windows to the store."""
        if self.store is None:
            return
        self.store.set(KEY_RAIN_1H, self.state.dump_rolling_log())
        self.store.set(KEY_RAIN_24H, self.state.dump_hour_buckets())
        self.store.set(KEY_RAIN_TODAY, self.state.dump_daily())

    # --- Mutations ---

    def local_date(self, when: datetime, local_tz: Optional[tzinfo] = None) -> date:
        return _utc(when).astimezone(local_tz or self.tz).date()

    def _roll_day(self, when: datetime, local_tz: Optional[tzinfo] = None) -> bool:
        """Start a new daily total when 'when' is on a later local date."""
        today = self.local_date(when, local_tz)
        state = self.state
        if state.daily_date is None:
            state.daily_date = today
            return True
        if today > state.daily_date:
            print_debug(f"Local midnight passed ({state.daily_date} -> {today}), rain today reset", level=3)
            state.daily_total = None
            state.daily_date = today
            self.daily_resets += 1
            return True
        return False

    def _clear_stale_buckets(self, when: datetime) -> bool:
        """Clear buckets that no longer belong to the trailing day.

        The bucket for the current UTC hour is cleared as soon as the hour
        starts (it still holds yesterday's value); any bucket last written
        24 hours or more ago is cleared as well, which covers restarts that
        skipped whole hours.
        """
        now_hour = hour_index(when)
        current = _utc(when).hour
        state = self.state
        changed = False
        for i in range(HOURS_PER_DAY):
            written = state.bucket_hours[i]
            stale = written is not None and now_hour - written >= HOURS_PER_DAY
            if i == current and written != now_hour and state.hour_buckets[i] is not None:
                stale = True
            if stale and (state.hour_buckets[i] is not None or written is not None):
                state.hour_buckets[i] = None
                state.bucket_hours[i] = None
                changed = True
        return changed

    def record_rain(self, amount_mm: float, timestamp: Optional[datetime] = None) -> RainEvent:
        """Add a rainfall delta to all three windows and save.

        Args:
            amount_mm: Rain since the previous update, millimetres
            timestamp: When it was measured (default: now, UTC)

        Returns:
            The RainEvent appended to the rolling log

        Raises:
            ValueError: If the amount is negative or not finite
        """
        if not math.isfinite(amount_mm):
            raise ValueError(f"Rain amount must be finite: {amount_mm}")
        if amount_mm < 0:
            raise ValueError(f"Rain amount cannot be negative: {amount_mm}")

        when = _utc(timestamp or datetime.now(timezone.utc))
        amount = round_tenth(amount_mm)
        state = self.state

        self._roll_day(when)
        self._clear_stale_buckets(when)

        event = RainEvent(when, amount)
        state.rolling_log.append(event)

        slot = when.hour
        state.hour_buckets[slot] = round_tenth((state.hour_buckets[slot] or 0.0) + amount)
        state.bucket_hours[slot] = hour_index(when)

        state.daily_total = round_tenth((state.daily_total or 0.0) + amount)

        self.save()
        print_debug(
            f"Rain +{amount}mm: 1h={self.rain_1h} 24h={self.rain_24h} today={self.rain_today}",
            level=3,
        )
        return event

    def purge(self, now: Optional[datetime] = None, local_tz: Optional[tzinfo] = None) -> bool:
        """Drop data that has fallen out of its window.

        Args:
            now: Current time (default: now, UTC)
            local_tz: Override for the station timezone

        Returns:
            True if anything changed (and was saved)
        """
        now = _utc(now or datetime.now(timezone.utc))
        state = self.state
        changed = False

        cutoff = now - timedelta(seconds=RAIN_WINDOW)
        kept = [e for e in state.rolling_log if e.timestamp > cutoff]
        if len(kept) != len(state.rolling_log):
            print_debug(f"Evicted {len(state.rolling_log) - len(kept)} rain events older than 1h", level=4)
            state.rolling_log = kept
            changed = True

        if self._clear_stale_buckets(now):
            changed = True

        if self._roll_day(now, local_tz):
            changed = True

        if changed:
            self.save()
        return changed

    # --- Totals ---

    @property
    def rain_rate(self) -> Optional[float]:
        """Latest update still inside the 1-hour window, or None."""
        if not self.state.rolling_log:
            return None
        return self.state.rolling_log[-1].amount_mm

    @property
    def rain_1h(self) -> Optional[float]:
        if not self.state.rolling_log:
            return None
        return round_tenth(sum(e.amount_mm for e in self.state.rolling_log))

    @property
    def rain_24h(self) -> Optional[float]:
        values = [b for b in self.state.hour_buckets if b is not None]
        if not values:
            return None
        return round_tenth(sum(values))

    @property
    def rain_today(self) -> Optional[float]:
        return self.state.daily_total

    def totals(self) -> dict:
        """All rain outputs, None meaning no data."""
        return {
            "rain_rate": self.rain_rate,
            "rain_1h": self.rain_1h,
            "rain_24h": self.rain_24h,
            "rain_today": self.rain_today,
        }
