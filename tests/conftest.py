"""
Shared fixtures for the Larder test suite.

Argument fixtures hold realistic call arguments for each creation operation,
so tests only spell out the fields they care about.
"""

import tempfile

import pytest

from larder.registry import CallContext, PreservationRegistry
from larder.store import RegistryDatabase

ALICE = "user:alice"
BOB = "user:bob"


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def database():
    """In-memory registry database."""
    db = RegistryDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def registry(database):
    return PreservationRegistry(database)


@pytest.fixture
def alice():
    return CallContext(caller=ALICE, height=100)


@pytest.fixture
def bob():
    return CallContext(caller=BOB, height=105)


@pytest.fixture
def technique_args():
    return {
        "name": "Lacto-Fermentation",
        "description": "Salt-brined vegetables fermented by lactic acid bacteria",
        "origin_region": "Central Europe",
        "cultural_context": "Winter storage of cabbage",
        "estimated_age_years": 2000,
        "equipment_needed": "Crock, weights",
        "difficulty_level": "beginner",
    }


@pytest.fixture
def teacher_args():
    return {
        "name": "Maria",
        "expertise": "Fermentation",
        "experience_years": 25,
        "region": "Balkans",
        "contact_info": "maria@example.org",
        "bio": "Third-generation pickler",
    }


@pytest.fixture
def class_args():
    return {
        "technique_id": 1,
        "title": "Sauerkraut basics",
        "description": "Hands-on cabbage fermentation",
        "max_participants": 12,
        "duration_hours": 3,
        "prerequisites": "None",
        "materials_needed": "Cabbage, salt",
        "location": "Community kitchen",
        "scheduled_date": 1730000000,
    }


@pytest.fixture
def season_args():
    return {
        "name": "Harvest",
        "start_month": 9,
        "start_day": 1,
        "end_month": 11,
        "end_day": 30,
        "region": "Northern Hemisphere",
        "climate_notes": "Cool nights",
    }


@pytest.fixture
def schedule_args():
    return {
        "technique_id": 1,
        "season_id": 1,
        "food_item": "Cabbage",
        "optimal_start_month": 10,
        "optimal_start_day": 1,
        "optimal_end_month": 10,
        "optimal_end_day": 31,
        "notes": "After first frost",
    }


@pytest.fixture
def event_args():
    return {
        "event_name": "Village kraut day",
        "event_date": 1730500000,
        "location": "Town square",
        "participants": "Open to all",
    }
