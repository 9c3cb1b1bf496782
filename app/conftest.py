"""
Project-wide pytest configuration.

Provides automatic test categorisation and fixtures shared by every app.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full refund lifecycle journeys)
    - test_*_service.py, test_tasks.py, test_store.py, test_gateway.py → integration
    - test_models.py, test_validators.py, test_transitions.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_workflow_service.py",
        "test_statistics_service.py",
        "test_tasks.py",
        "test_store.py",
        "test_gateway.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_validators.py",
        "test_transitions.py",
        "test_state_transitions.py",
        "test_locks.py",
        "test_exceptions.py",
        "test_services.py",
        "test_managers.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
