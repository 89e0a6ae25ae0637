import pytest

from objstore.errutil import (
    ErrorRoundTripper,
    MultiError,
    NonNilMultiError,
    RoundTripperError,
    is_mocked_error,
    wrap_with_err_roundtripper,
)


def test_empty_multierror_has_no_error():
    errs = MultiError()
    errs.add(None)
    assert errs.err() is None


def test_single_error_message():
    errs = MultiError()
    errs.add(ValueError("boom"))
    err = errs.err()
    assert isinstance(err, NonNilMultiError)
    assert str(err) == "boom"


def test_multiple_errors_message():
    errs = MultiError()
    errs.add(ValueError("a"))
    errs.add(None)
    errs.add(KeyError("b"))
    assert str(errs.err()).startswith("2 errors: a; ")
    assert len(errs.err()) == 2


def test_nested_multierror_is_flattened():
    inner = MultiError()
    first, second = ValueError("x"), ValueError("y")
    inner.add(first)
    inner.add(second)
    outer = MultiError()
    outer.add(inner.err())
    outer.add(ValueError("z"))
    assert len(outer) == 3
    assert list(outer.err())[:2] == [first, second]


def test_multierror_can_be_raised():
    errs = MultiError()
    cause = RuntimeError("one")
    errs.add(cause)
    with pytest.raises(NonNilMultiError) as info:
        raise errs.err()
    assert str(info.value) == "one"
    assert list(info.value) == [cause]


def test_round_tripper_raises():
    rt = wrap_with_err_roundtripper(object())
    with pytest.raises(RoundTripperError) as info:
        rt.round_trip("request")
    assert str(info.value) == "RoundTripper error"
    assert is_mocked_error(info.value)


def test_custom_error_round_tripper():
    rt = ErrorRoundTripper(OSError("nope"))
    with pytest.raises(OSError, match="nope"):
        rt.round_trip(None)


def test_is_mocked_error_through_cause():
    rt = wrap_with_err_roundtripper(None)
    try:
        try:
            rt.round_trip(None)
        except RoundTripperError as exc:
            raise RuntimeError("create client") from exc
    except RuntimeError as wrapped:
        assert is_mocked_error(wrapped)


def test_is_mocked_error_other_errors():
    assert not is_mocked_error(ValueError("other"))
    assert not is_mocked_error(None)