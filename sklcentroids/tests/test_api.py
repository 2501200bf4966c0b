"""Tests for the public surface of sklcentroids."""
import pytest

import sklcentroids
from sklcentroids import CentroidModel, Machine
from sklcentroids import exceptions


def test_public_names():
    assert sorted(sklcentroids.__all__) == ["CentroidModel", "Machine"]
    assert isinstance(sklcentroids.__version__, str)


class _Doubler:
    def forward(self, x):
        return 2 * x

    def forward_unchecked(self, x):
        return 2 * x


def test_machine_is_structural():
    assert isinstance(CentroidModel(), Machine)
    assert isinstance(_Doubler(), Machine)
    assert not isinstance(object(), Machine)
    assert Machine not in CentroidModel.__mro__


@pytest.mark.parametrize(
    "name, builtin",
    [
        ("IndexOutOfRange", IndexError),
        ("DimensionMismatch", ValueError),
        ("ShapeMismatch", ValueError),
        ("EmptyModel", ValueError),
        ("EmptyDataset", ValueError),
        ("InvalidDimension", ValueError),
        ("MalformedConfig", ValueError),
    ],
)
def test_exception_hierarchy(name, builtin):
    exc = getattr(exceptions, name)
    assert issubclass(exc, exceptions.CentroidModelError)
    assert issubclass(exc, builtin)
    assert name in exceptions.__all__


def test_empty_cluster_warning_is_user_warning():
    assert issubclass(exceptions.EmptyClusterWarning, UserWarning)
