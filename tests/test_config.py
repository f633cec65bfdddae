import random

import pytest

from config import parse_modes, parse_origins
from topics import GLOBAL_GD_TOPICS, pick_topic


def test_parse_modes():
    assert parse_modes("global:3, Duo:2") == {"global": 3, "duo": 2}
    assert parse_modes("global") == {"global": 3}


@pytest.mark.parametrize("raw", ["", " , ", "solo:1"])
def test_parse_modes_rejects_bad_values(raw):
    with pytest.raises(ValueError):
        parse_modes(raw)


def test_parse_origins():
    assert parse_origins("*") == "*"
    assert parse_origins("https://a.app, https://b.app") == ["https://a.app", "https://b.app"]


def test_pick_topic_comes_from_pool():
    assert pick_topic(random.Random(7)) in GLOBAL_GD_TOPICS
