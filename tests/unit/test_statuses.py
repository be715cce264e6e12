"""Unit tests for the shared status vocabulary."""

import pytest

from pollux.statuses import (
    get_status_group,
    is_terminal,
    normalize_status,
)


def test_legacy_hyphenated_spelling_normalizes():
    assert normalize_status("in-progress") == "in_progress"
    assert normalize_status(" Waiting ") == "waiting"


def test_active_and_terminal_groups():
    assert get_status_group("active") == ("waiting", "in_progress")
    assert set(get_status_group("terminal")) == {"completed", "cancelled", "expired"}

    with pytest.raises(KeyError):
        get_status_group("unknown")


def test_is_terminal():
    assert is_terminal("expired")
    assert is_terminal("Completed")
    assert not is_terminal("in-progress")
