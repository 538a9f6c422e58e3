"""Test configuration and fixtures."""

import pytest

from tests.helpers import make_layers, make_trees


@pytest.fixture
def five_layers():
    """Five layers of 10 bytes each with one tree per layer."""
    return make_layers([10] * 5), make_trees(5)

