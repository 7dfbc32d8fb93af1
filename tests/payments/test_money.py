import pytest
from decimal import Decimal

from domain.payment.exceptions import InvalidAmountException
from domain.payment.money import quantize_major, to_major_unit, to_minor_unit


@pytest.mark.parametrize("major", ["0", "0.01", "99.99", "1234567.89"])
def test_minor_major_round_trip(major):
    assert to_major_unit(to_minor_unit(Decimal(major))) == Decimal(major)


def test_float_input_does_not_drift():
    assert to_minor_unit(99.99) == 9999
    assert to_minor_unit(0.1 + 0.2) == 30


def test_half_up_rounding():
    assert to_minor_unit("0.005") == 1
    assert to_minor_unit("0.004") == 0
    assert to_minor_unit(Decimal("10.125")) == 1013


def test_integer_and_string_inputs():
    assert to_minor_unit(200) == 20000
    assert to_minor_unit(" 12.50 ") == 1250


@pytest.mark.parametrize("bad", [-1, "-0.01", "NaN", "Infinity", "abc", None, True, [1]])
def test_to_minor_unit_rejects_invalid(bad):
    with pytest.raises(InvalidAmountException):
        to_minor_unit(bad)


def test_to_major_unit_has_two_places():
    assert to_major_unit(9999) == Decimal("99.99")
    assert str(to_major_unit(100)) == "1.00"
    assert to_major_unit(0) == Decimal("0.00")


@pytest.mark.parametrize("bad", [-1, 1.5, "100", False])
def test_to_major_unit_rejects_invalid(bad):
    with pytest.raises(InvalidAmountException):
        to_major_unit(bad)


def test_quantize_major():
    assert quantize_major("80") == Decimal("80.00")
    assert quantize_major(0.125) == Decimal("0.13")
