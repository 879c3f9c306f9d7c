import os
from pathlib import Path

import pytest

# Test layer directories and the marker applied to everything inside them
_LAYER_MARKERS = {
    "domain": pytest.mark.domain,
    "application": pytest.mark.application,
    "integration": pytest.mark.integration,
    "bdd": pytest.mark.bdd,
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Domain config overlay to run against (test, postgresql)",
    )


def pytest_sessionstart(session):
    """Select the config overlay and activate the ordering domain.

    The pushed context makes ``current_domain`` available to fixtures and to
    module-level code imported during collection.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("MARKETPLACE_ADMIN_IDS", "admin-001")

    from ordering.domain import ordering

    ordering.init()
    ordering.domain_context().push()


def pytest_collection_modifyitems(config, items):
    for item in items:
        parts = Path(item.fspath).parts
        for layer, marker in _LAYER_MARKERS.items():
            if layer in parts:
                item.add_marker(marker)
        # HTTP and scenario tests drive the full stack
        if ("integration" in parts or "bdd" in parts) and item.get_closest_marker("fast") is None:
            item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def database():
    from ordering.domain import ordering
    from ordering.utils.db import drop_db, setup_db

    setup_db(ordering)
    yield
    drop_db(ordering)


def _reset_collaborators():
    from ordering.catalogue.lookup import reset_product_lookup
    from ordering.notifications.channel import reset_channel
    from ordering.notifications.directory import reset_admin_directory
    from ordering.payment.gateway import reset_gateway

    reset_gateway()
    reset_channel()
    reset_admin_directory()
    reset_product_lookup()


@pytest.fixture(autouse=True)
def clean_state():
    """Empty every store and forget swapped-in collaborators after each test."""
    yield

    from protean import current_domain

    for provider in current_domain.providers.values():
        provider._data_reset()
    current_domain.event_store.store._data_reset()

    _reset_collaborators()
