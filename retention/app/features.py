"""Per-player behavioural features derived from raw game events."""
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

GAME_FEATURE_CONSUMED = "Game Feature Consumed"
SOCIAL_FEATURE_CONSUMED = "Social Feature Consumed"
GAME_PROGRESSION = "Game Progression"
PROGRESSION_INCREASE_KEY = "Increase"
TUTORIAL_DURATION = "Tutorial Duration"
LEVEL_DURATION = "Level Duration"

PROGRESSION_PER_LEVEL = 5
RETENTION_WINDOW = timedelta(days=1)


@dataclass(frozen=True)
class Event:
    """An instantaneous, untimed game action."""
    player: str
    version: str
    action: str
    timestamp: datetime
    parameters: Tuple[Tuple[str, str], ...] = ()

    def parameter_values(self, key: str) -> List[str]:
        return [value for k, value in self.parameters if k == key]


@dataclass(frozen=True)
class TimedEvent:
    """An event carrying how long the action took."""
    event: Event
    duration: timedelta

    @property
    def player(self) -> str:
        return self.event.player

    @property
    def action(self) -> str:
        return self.event.action

    @property
    def timestamp(self) -> datetime:
        return self.event.timestamp


@dataclass
class PlayerFeatures:
    """Feature row for one player over one extraction window."""
    name: str
    tutorial_momentum_minutes: float = 0.0
    level_momentum_minutes: float = 0.0
    gameplay_consumed: int = 0
    social_activities: int = 0
    progression: float = 0.0
    level: int = 0
    day1_retention: bool = False


@dataclass
class _PlayerAccumulator:
    gameplay: int = 0
    social: int = 0
    progression: float = 0.0
    first: Optional[datetime] = None
    last: Optional[datetime] = None
    tutorial_minutes: float = 0.0
    level_minutes: float = 0.0
    # Starts at 1 before any "Level Duration" event has been seen
    level_divisor: int = 1


def _in_window(timestamp: datetime, begin: datetime, end: datetime) -> bool:
    return begin <= timestamp < end


def _progression_increase(event: Event) -> float:
    total = 0.0
    for raw in event.parameter_values(PROGRESSION_INCREASE_KEY):
        try:
            total += float(raw)
        except (TypeError, ValueError):
            logger.debug(
                "Ignoring non-numeric %s=%r for player %s",
                PROGRESSION_INCREASE_KEY, raw, event.player,
            )
    return total


def eligible_players(events: Iterable[Event], end: datetime) -> List[str]:
    """
    Players whose first event leaves a full day before `end`.

    The first occurrence of a player in event order decides eligibility;
    each eligible player is returned once, in order of first appearance.
    """
    decided = set()
    eligible = []
    for event in events:
        if event.player in decided:
            continue
        decided.add(event.player)
        if event.timestamp + RETENTION_WINDOW <= end:
            eligible.append(event.player)
    return eligible


def extract_player_features(
    events: List[Event],
    timed_events: List[TimedEvent],
    begin: datetime,
    end: datetime,
) -> List[PlayerFeatures]:
    """
    Build one PlayerFeatures row per eligible player.

    Per player, over events inside [begin, end):
    - gameplay_consumed = count of "Game Feature Consumed"
    - social_activities = count of "Social Feature Consumed"
    - progression = sum of the "Increase" parameter of "Game Progression"
    - level = floor(progression / 5)
    - day1_retention = last event at least one day after the first
    - tutorial_momentum_minutes = last "Tutorial Duration" seen, in minutes
    - level_momentum_minutes = sum of "Level Duration" minutes / (1 + count)

    Never raises on odd input; an empty window yields an empty list.
    """
    window_events = [e for e in events if _in_window(e.timestamp, begin, end)]
    accumulators: Dict[str, _PlayerAccumulator] = OrderedDict(
        (player, _PlayerAccumulator()) for player in eligible_players(window_events, end)
    )

    for event in window_events:
        acc = accumulators.get(event.player)
        if acc is None:
            continue

        if event.action == GAME_FEATURE_CONSUMED:
            acc.gameplay += 1
        elif event.action == SOCIAL_FEATURE_CONSUMED:
            acc.social += 1
        elif event.action == GAME_PROGRESSION:
            acc.progression += _progression_increase(event)

        if acc.first is None:
            acc.first = acc.last = event.timestamp
        else:
            acc.first = min(acc.first, event.timestamp)
            acc.last = max(acc.last, event.timestamp)

    for timed in timed_events:
        if not _in_window(timed.timestamp, begin, end):
            continue
        acc = accumulators.get(timed.player)
        if acc is None:
            continue

        minutes = timed.duration.total_seconds() / 60.0
        if timed.action == TUTORIAL_DURATION:
            acc.tutorial_minutes = minutes
        elif timed.action == LEVEL_DURATION:
            acc.level_minutes += minutes
            acc.level_divisor += 1

    features = []
    for player, acc in accumulators.items():
        retained = (acc.last - (acc.first + RETENTION_WINDOW)) >= timedelta(0)
        features.append(PlayerFeatures(
            name=player,
            tutorial_momentum_minutes=acc.tutorial_minutes,
            level_momentum_minutes=acc.level_minutes / acc.level_divisor,
            gameplay_consumed=acc.gameplay,
            social_activities=acc.social,
            progression=acc.progression,
            level=math.floor(acc.progression / PROGRESSION_PER_LEVEL),
            day1_retention=retained,
        ))

    logger.debug("Extracted features for %d eligible players", len(features))
    return features
