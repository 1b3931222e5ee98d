"""
Shared test config
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from csm_engine.test_helpers.helpers import (
    OBSERVABILITY_NAMESPACE,
    TEST_CONFIG_ROOT,
    configure_logging,
    library_config,
)

configure_logging()


@pytest.fixture(autouse=True)
def no_local_kubeconfig():
    """This fixture makes sure the tests run as if KUBECONFIG is not exported in
    the environment, even if it is
    """
    with mock.patch(
        "kubernetes.config.new_client_from_config", side_effect=RuntimeError
    ):
        yield


@pytest.fixture(autouse=True)
def test_library_config():
    """Point the library config at the test template tree"""
    with library_config(
        config_directory=TEST_CONFIG_ROOT,
        observability_namespace=OBSERVABILITY_NAMESPACE,
    ):
        yield
