"""Unit tests for history value rendering."""

from datetime import datetime, timezone

from claimflow.engine.stages import Stage
from claimflow.utils.values import canonical_json, to_history_value, to_metadata


def test_canonical_json_sorts_keys():
    """Canonical JSON sorts keys."""
    assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_scalars_render_as_plain_text():
    assert to_history_value(None) is None
    assert to_history_value(Stage.ESTIMATE_SENT) == "estimate_sent"
    assert to_history_value(True) == "true"
    assert to_history_value(15) == "15"
    assert to_history_value(datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)) == (
        "2025-03-01T09:30:00+00:00"
    )


def test_containers_render_as_canonical_json():
    assert to_history_value({"qty": 2, "part": "bumper"}) == '{"part":"bumper","qty":2}'
    assert to_history_value(["front_left", "spare"]) == '["front_left","spare"]'


def test_metadata_is_json_safe():
    meta = to_metadata({"stage": Stage.ARCHIVED, "positions": {"spare", "front_left"}})
    assert meta == {"positions": ["front_left", "spare"], "stage": "archived"}
    assert to_metadata(None) is None
