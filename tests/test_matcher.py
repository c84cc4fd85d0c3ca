"""Tests for match policies and the characteristic matcher."""

import re

import pytest

from blelink.exceptions import CharacteristicMatchFailed
from blelink.gateway import GattCharacteristic, GattService
from blelink.matcher import (
    Exact,
    MatchType,
    Pattern,
    Predicate,
    as_policy,
    evaluate,
    match_characteristics,
    match_services_characteristics,
    selection_for,
)

from tests.fakes import DATA_SERVICE, INFO_SERVICE, NOTIFY_CHAR, WRITE_CHAR, standard_services


class TestPolicies:
    """Test cases for MatchPolicy variants and coercion."""

    def test_exact_is_case_insensitive(self):
        assert Exact("0000FFF0-0000-1000-8000-00805F9B34FB").matches(DATA_SERVICE)
        assert not Exact("0000fff1").matches(DATA_SERVICE)

    def test_pattern_searches_case_insensitively(self):
        assert Pattern("FFF0").matches(DATA_SERVICE)
        assert not Pattern("^fff0").matches(DATA_SERVICE)

    def test_pattern_keeps_compiled_regex_flags(self):
        policy = Pattern(re.compile("FFF0"))
        assert not policy.matches(DATA_SERVICE)

    def test_predicate(self):
        policy = Predicate(lambda uuid: uuid.startswith("0000180a"))
        assert policy.matches(INFO_SERVICE)
        assert not policy.matches(DATA_SERVICE)

    def test_evaluate_none_matches_everything(self):
        assert evaluate(None, "anything")

    def test_as_policy_coerces_plain_values(self):
        assert as_policy(None) is None
        assert as_policy("") is None
        assert as_policy("abc") == Exact("abc")
        assert isinstance(as_policy(re.compile("fff")), Pattern)
        assert isinstance(as_policy(lambda uuid: True), Predicate)
        policy = Exact("x")
        assert as_policy(policy) is policy

    def test_as_policy_rejects_other_types(self):
        with pytest.raises(TypeError):
            as_policy(42)

    def test_selection_for(self):
        assert selection_for(None, MatchType.WRITE) is MatchType.WRITE
        assert selection_for(Exact("x"), MatchType.WRITE) is MatchType.UUID


class TestMatchCharacteristics:
    """Test cases for match_characteristics."""

    def test_first_capable_characteristic_wins(self):
        characteristics = [
            GattCharacteristic("a", read=True),
            GattCharacteristic("b", write=True, notify=True),
            GattCharacteristic("c", write=True, read=True, notify=True),
        ]
        result = match_characteristics(characteristics)
        assert result.read == "a"
        assert result.write == "b"
        assert result.notify == "b"
        assert result.uuid is None

    def test_policy_match_short_circuits(self):
        characteristics = [
            GattCharacteristic("a", write=True),
            GattCharacteristic("b", read=True),
        ]
        result = match_characteristics(characteristics, Exact("B"))
        assert result.uuid == "b"
        assert result.write is None
        assert result.read is None

    def test_policy_without_match_falls_back_to_capabilities(self):
        result = match_characteristics([GattCharacteristic("a", write=True)], Exact("zzz"))
        assert result.uuid is None
        assert result.write == "a"

    def test_empty_list(self):
        result = match_characteristics([])
        assert (result.write, result.read, result.notify, result.uuid) == (None, None, None, None)


class TestMatchServicesCharacteristics:
    """Test cases for match_services_characteristics."""

    def test_write_selection_skips_services_without_write(self):
        match = match_services_characteristics(standard_services(), MatchType.WRITE)
        assert match.service_uuid == DATA_SERVICE
        assert match.characteristic_uuid == WRITE_CHAR

    def test_notify_selection(self):
        match = match_services_characteristics(standard_services(), MatchType.NOTIFY)
        assert match.characteristic_uuid == NOTIFY_CHAR

    def test_read_selection_takes_first_service(self):
        match = match_services_characteristics(standard_services(), MatchType.READ)
        assert match.service_uuid == INFO_SERVICE

    def test_uuid_selection_uses_policy(self):
        match = match_services_characteristics(standard_services(), MatchType.UUID, Pattern("fff1"))
        assert match.characteristic_uuid == NOTIFY_CHAR

    def test_policy_ignored_for_capability_selection(self):
        match = match_services_characteristics(standard_services(), MatchType.WRITE, Exact(NOTIFY_CHAR))
        assert match.characteristic_uuid == WRITE_CHAR

    def test_no_match_raises(self):
        services = [GattService("s", [GattCharacteristic("c", read=True)])]
        with pytest.raises(CharacteristicMatchFailed):
            match_services_characteristics(services, MatchType.WRITE)

    def test_empty_services_or_missing_type_raise(self):
        with pytest.raises(CharacteristicMatchFailed):
            match_services_characteristics([], MatchType.WRITE)
        with pytest.raises(CharacteristicMatchFailed):
            match_services_characteristics(standard_services(), None)

    def test_error_code(self):
        with pytest.raises(CharacteristicMatchFailed) as excinfo:
            match_services_characteristics([], MatchType.NOTIFY)
        assert excinfo.value.code == -94
