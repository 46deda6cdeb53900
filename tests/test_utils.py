import json
import re
from datetime import datetime

import pytest

from lanchat.utils import current_timestamp, escape_json, get_json_value


@pytest.mark.parametrize(
    "text",
    ["plain", 'say "hi"', "back\\slash", "line\nbreak", "cr\rlf", "tab\there", "ünïcode"],
)
def test_escape_round_trips_through_json(text):
    assert json.loads('"' + escape_json(text) + '"') == text


def test_escape_quote():
    assert escape_json('a"b') == 'a\\"b'


def test_escape_leaves_other_characters():
    assert escape_json("abc/<>") == "abc/<>"


def test_current_timestamp_format():
    stamp = current_timestamp()
    assert re.fullmatch(r"\d\d:\d\d:\d\d", stamp)
    parsed = datetime.strptime(stamp, "%H:%M:%S")
    assert 0 <= parsed.hour < 24


def test_get_json_value_simple():
    assert get_json_value('{"username":"alice"}', "username") == "alice"


def test_get_json_value_with_spaces_and_many_keys():
    body = '{"userId": "user_3", "text": "hello there"}'
    assert get_json_value(body, "userId") == "user_3"
    assert get_json_value(body, "text") == "hello there"


def test_get_json_value_missing_key():
    assert get_json_value('{"username":"alice"}', "text") == ""


def test_get_json_value_no_colon():
    assert get_json_value('{"username"', "username") == ""


def test_get_json_value_unterminated_string():
    assert get_json_value('{"username":"alice', "username") == ""


def test_get_json_value_no_opening_quote():
    assert get_json_value('{"count":5}', "count") == ""


def test_get_json_value_non_string_value_takes_next_quoted_text():
    assert get_json_value('{"a":1,"b":"x"}', "a") == "b"


def test_get_json_value_empty_string():
    assert get_json_value('{"text":""}', "text") == ""