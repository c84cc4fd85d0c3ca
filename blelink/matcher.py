"""Policy-driven selection of GATT services and characteristics."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from blelink.constants import logger
from blelink.exceptions import CharacteristicMatchFailed
from blelink.gateway import GattCharacteristic, GattService


class MatchPolicy(ABC):
    """A rule deciding whether a service or characteristic UUID is wanted."""

    @abstractmethod
    def matches(self, uuid: str) -> bool:
        """Return True when `uuid` satisfies this policy."""


@dataclass(frozen=True)
class Exact(MatchPolicy):
    """Whole-string equality, ignoring case.

    Deliberately looser than a plain `==`: bleak reports UUIDs in lowercase,
    while callers often copy them in uppercase from vendor datasheets, and
    the two forms name the same attribute.
    """

    value: str

    def matches(self, uuid: str) -> bool:
        return uuid.lower() == self.value.lower()


@dataclass(frozen=True)
class Pattern(MatchPolicy):
    """Regular-expression search; string patterns are compiled case-insensitively."""

    regex: re.Pattern

    def __init__(self, regex: Union[str, re.Pattern]):
        if isinstance(regex, str):
            regex = re.compile(regex, re.IGNORECASE)
        object.__setattr__(self, "regex", regex)

    def matches(self, uuid: str) -> bool:
        return self.regex.search(uuid) is not None


@dataclass(frozen=True)
class Predicate(MatchPolicy):
    """Arbitrary caller-supplied test."""

    fn: Callable[[str], bool]

    def matches(self, uuid: str) -> bool:
        return bool(self.fn(uuid))


PolicyLike = Union[MatchPolicy, str, re.Pattern, Callable[[str], bool], None]


def as_policy(value: PolicyLike) -> Optional[MatchPolicy]:
    """
    Convert a caller-supplied matcher into a MatchPolicy.

    Strings become `Exact`, compiled regular expressions become `Pattern` and
    callables become `Predicate`. None and empty strings mean "no policy".

    Raises:
        TypeError: If `value` is none of the accepted kinds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, MatchPolicy):
        return value
    if isinstance(value, str):
        return Exact(value)
    if isinstance(value, re.Pattern):
        return Pattern(value)
    if callable(value):
        return Predicate(value)
    raise TypeError(f"Unsupported match policy type: {type(value).__name__}")


def evaluate(policy: Optional[MatchPolicy], uuid: str) -> bool:
    """Evaluate `policy` against `uuid`; a missing policy matches everything."""
    if policy is None:
        return True
    return policy.matches(uuid)


class MatchType(Enum):
    WRITE = "write"
    READ = "read"
    NOTIFY = "notify"
    UUID = "uuid"


@dataclass
class CharacteristicMatch:
    write: Optional[str] = None
    read: Optional[str] = None
    notify: Optional[str] = None
    uuid: Optional[str] = None

    def get(self, match_type: MatchType) -> Optional[str]:
        return getattr(self, match_type.value)


@dataclass(frozen=True)
class ServiceMatch:
    service_uuid: str
    characteristic_uuid: str


def match_characteristics(
    characteristics: Sequence[GattCharacteristic],
    policy: Optional[MatchPolicy] = None,
) -> CharacteristicMatch:
    """
    Pick characteristics from a single service in one pass.

    When `policy` is given and a characteristic's UUID satisfies it, that UUID is
    returned at once with only `uuid` populated. Otherwise the first characteristic
    offering each of write/read/notify is recorded; earlier picks are never replaced.

    Parameters:
        characteristics: Characteristics in discovery order.
        policy: Optional explicit UUID policy.

    Returns:
        CharacteristicMatch: The selected UUIDs; unset capabilities stay None.
    """
    result = CharacteristicMatch()
    for characteristic in characteristics:
        uuid = characteristic.uuid
        if policy is not None and policy.matches(uuid):
            return CharacteristicMatch(uuid=uuid)
        if result.write is None and characteristic.write:
            result.write = uuid
        if result.read is None and characteristic.read:
            result.read = uuid
        if result.notify is None and characteristic.notify:
            result.notify = uuid
    return result


def match_services_characteristics(
    services: Sequence[GattService],
    match_type: Optional[MatchType],
    policy: Optional[MatchPolicy] = None,
) -> ServiceMatch:
    """
    Return the first service (in discovery order) that yields a characteristic for `match_type`.

    `policy` only takes part when `match_type` is `MatchType.UUID`.

    Raises:
        CharacteristicMatchFailed: If `services` is empty, `match_type` is missing,
            or no service yields a match.
    """
    if not services or match_type is None:
        raise CharacteristicMatchFailed()
    uuid_policy = policy if match_type is MatchType.UUID else None
    for service in services:
        result = match_characteristics(service.characteristics, uuid_policy)
        selected = result.get(match_type)
        if selected:
            logger.debug(
                "Matched %s characteristic %s in service %s",
                match_type.value,
                selected,
                service.uuid,
            )
            return ServiceMatch(service_uuid=service.uuid, characteristic_uuid=selected)
    raise CharacteristicMatchFailed(
        f"No {match_type.value} characteristic matched in {len(services)} service(s)"
    )


def selection_for(policy: Optional[MatchPolicy], fallback: MatchType) -> MatchType:
    """An explicit UUID policy takes precedence over capability-based selection."""
    return MatchType.UUID if policy is not None else fallback


__all__ = [
    "CharacteristicMatch",
    "Exact",
    "MatchPolicy",
    "MatchType",
    "Pattern",
    "PolicyLike",
    "Predicate",
    "ServiceMatch",
    "as_policy",
    "evaluate",
    "match_characteristics",
    "match_services_characteristics",
    "selection_for",
]
