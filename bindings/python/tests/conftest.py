import logging
import os

import pytest

from oomariadb import ConnectArgs, Connection

from fake_driver import FakeDriver, FakeServer


def pytest_configure(config):
    logging.getLogger("oomariadb").setLevel(logging.DEBUG)


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def driver(server):
    return FakeDriver(server)


@pytest.fixture
def connect_args():
    return ConnectArgs(host="db.example", user="app", password="secret", database="shop", port=3307)


@pytest.fixture
def conn(driver, connect_args):
    c = Connection(connect_args, driver=driver)
    yield c
    c.disconnect()


@pytest.fixture
def live_conn():
    """A connection to a real server, only when DATABASE_URL is set."""
    if not os.environ.get("DATABASE_URL"):
        pytest.skip("DATABASE_URL not set")
    c = Connection(ConnectArgs.from_env())
    yield c
    c.disconnect()
