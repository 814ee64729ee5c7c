import re

import pytest

from core.errors import InvalidInput
from core.ids import EntityId, IdKind, generate_id, generate_share_token, normalize_id, parse_share_token


def test_prefixed_id_is_parsed():
    parsed = normalize_id("act_ab12CD34", IdKind.ACTIVITY)
    assert parsed == EntityId(IdKind.ACTIVITY, "ab12CD34")
    assert str(parsed) == "act_ab12CD34"


def test_legacy_token_gets_the_prefix_of_the_expected_kind():
    assert str(normalize_id("ab12cd34", IdKind.RUNNER)) == "usr_ab12cd34"
    assert str(normalize_id("ab12cd34", IdKind.ACTIVITY)) == "act_ab12cd34"


def test_legacy_and_prefixed_forms_are_the_same_id():
    assert normalize_id("ab12cd34", IdKind.EVENT) == normalize_id("evt_ab12cd34", IdKind.EVENT)


def test_surrounding_whitespace_is_ignored():
    assert str(normalize_id("  act_ab12cd34 ", IdKind.ACTIVITY)) == "act_ab12cd34"


@pytest.mark.parametrize("raw", [
    "usr_ab12cd34",        # wrong kind
    "act_ab12cd3",         # too short
    "act_ab12cd345",       # too long
    "act_ab12-d34",        # bad character
    "ab12cd3",
    "",
    None,
    12345678,
])
def test_malformed_activity_ids_are_rejected(raw):
    with pytest.raises(InvalidInput):
        normalize_id(raw, IdKind.ACTIVITY)


def test_entity_id_of_the_wrong_kind_is_rejected():
    with pytest.raises(InvalidInput):
        normalize_id(EntityId(IdKind.RUNNER, "ab12cd34"), IdKind.ACTIVITY)


def test_generated_ids_round_trip():
    for kind in IdKind:
        generated = generate_id(kind)
        assert normalize_id(str(generated), kind) == generated


def test_share_token_format():
    assert re.fullmatch(r"sh_[a-f0-9]{16}", generate_share_token())


def test_generated_share_token_parses_back():
    token = generate_share_token()
    assert parse_share_token(f" {token} ") == token


@pytest.mark.parametrize("raw", ["sh_abc", "act_1a2b3c4d", "1a2b3c4d5e6f7a8b", None, 42])
def test_malformed_share_token(raw):
    with pytest.raises(InvalidInput):
        parse_share_token(raw)
