"""pytest configuration and shared fixtures."""

import pytest


@pytest.fixture
def location_doc():
    """Decoded JSON document shaped like ``Location``."""
    return {
        "name": "home",
        "at": {"x": 4, "y": 5},
    }


@pytest.fixture
def route_doc():
    """Decoded JSON document with list and dict container fields."""
    return {
        "name": "commute",
        "stops": [
            {"x": 0, "y": 0},
            {"x": 3, "y": 4},
        ],
        "by_label": {
            "start": {"x": 0, "y": 0},
            "end": {"x": 3, "y": 4},
        },
    }
