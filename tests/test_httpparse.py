from datetime import datetime, timedelta, timezone
from email.message import Message

import pytest

from objstore.httpparse import (
    CONTENT_LENGTH_HEADER,
    LAST_MODIFIED_HEADER,
    RFC1123,
    RFC3339,
    HeaderParseError,
    parse_content_length,
    parse_last_modified,
)

UTC = timezone.utc


def _headers(name, value):
    return {name: [value]} if value else {}


@pytest.mark.parametrize(
    "header_value, layout, expected",
    [
        ("2015-11-06T10:07:11.000Z", "", datetime(2015, 11, 6, 10, 7, 11, tzinfo=UTC)),
        ("2015-11-06T10:07:11.000Z", RFC3339, datetime(2015, 11, 6, 10, 7, 11, tzinfo=UTC)),
        ("Fri, 24 Feb 2012 06:07:48 GMT", RFC1123, datetime(2012, 2, 24, 6, 7, 48, tzinfo=UTC)),
    ],
    ids=[
        "empty format string to default RFC3339 format",
        "valid RFC3339 header value",
        "valid RFC1123 header value",
    ],
)
def test_parse_last_modified_valid(header_value, layout, expected):
    actual = parse_last_modified(_headers(LAST_MODIFIED_HEADER, header_value), layout)
    assert actual == expected


@pytest.mark.parametrize(
    "header_value, layout, expected_err",
    [
        ("", "", "Last-Modified header not found"),
        (
            "invalid",
            RFC3339,
            'parse Last-Modified: parsing time "invalid" as "2006-01-02T15:04:05Z07:00": '
            'cannot parse "invalid" as "2006"',
        ),
        (
            "invalid",
            RFC1123,
            'parse Last-Modified: parsing time "invalid" as "Mon, 02 Jan 2006 15:04:05 MST": '
            'cannot parse "invalid" as "Mon"',
        ),
    ],
    ids=["no header", "invalid RFC3339 header value", "invalid RFC1123 header value"],
)
def test_parse_last_modified_errors(header_value, layout, expected_err):
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified(_headers(LAST_MODIFIED_HEADER, header_value), layout)
    assert str(info.value) == expected_err


def test_parse_content_length_valid():
    assert parse_content_length(_headers(CONTENT_LENGTH_HEADER, "12345")) == 12345


@pytest.mark.parametrize(
    "header_value, expected_err",
    [
        ("", "Content-Length header not found"),
        ("invalid", 'convert Content-Length: strconv.ParseInt: parsing "invalid": invalid syntax'),
    ],
    ids=["no header", "invalid header value"],
)
def test_parse_content_length_errors(header_value, expected_err):
    with pytest.raises(HeaderParseError) as info:
        parse_content_length(_headers(CONTENT_LENGTH_HEADER, header_value))
    assert str(info.value) == expected_err


def test_header_with_no_values():
    with pytest.raises(HeaderParseError) as info:
        parse_content_length({CONTENT_LENGTH_HEADER: []})
    assert str(info.value) == "Content-Length header has no values"
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified({LAST_MODIFIED_HEADER: []}, "")
    assert str(info.value) == "Last-Modified header has no values"


def test_plain_string_header_value():
    assert parse_content_length({CONTENT_LENGTH_HEADER: "12345"}) == 12345


def test_message_headers():
    message = Message()
    message["Content-Length"] = "12345"
    message["Last-Modified"] = "Fri, 24 Feb 2012 06:07:48 GMT"
    assert parse_content_length(message) == 12345
    assert parse_last_modified(message, RFC1123) == datetime(2012, 2, 24, 6, 7, 48, tzinfo=UTC)


def test_content_length_sign_and_range():
    assert parse_content_length({CONTENT_LENGTH_HEADER: ["-5"]}) == -5
    with pytest.raises(HeaderParseError) as info:
        parse_content_length({CONTENT_LENGTH_HEADER: ["9223372036854775808"]})
    assert str(info.value) == (
        'convert Content-Length: strconv.ParseInt: parsing "9223372036854775808": value out of range'
    )


def test_numeric_offset():
    actual = parse_last_modified({LAST_MODIFIED_HEADER: ["2015-11-06T10:07:11+02:00"]})
    assert actual == datetime(2015, 11, 6, 8, 7, 11, tzinfo=UTC)
    assert actual.utcoffset() == timedelta(hours=2)


def test_extra_text():
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified({LAST_MODIFIED_HEADER: ["2015-11-06T10:07:11Zjunk"]})
    assert str(info.value).endswith(': extra text: "junk"')


def test_month_out_of_range():
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified({LAST_MODIFIED_HEADER: ["2015-13-06T10:07:11Z"]})
    assert str(info.value) == 'parse Last-Modified: parsing time "2015-13-06T10:07:11Z": month out of range'


def test_day_out_of_range():
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified({LAST_MODIFIED_HEADER: ["2015-02-30T10:07:11Z"]})
    assert str(info.value) == 'parse Last-Modified: parsing time "2015-02-30T10:07:11Z": day out of range'


def test_twelve_hour_clock():
    actual = parse_last_modified({LAST_MODIFIED_HEADER: ["2012-02-24 6:07PM"]}, "2006-01-02 3:04PM")
    assert actual == datetime(2012, 2, 24, 18, 7, tzinfo=UTC)


def test_space_padded_day():
    actual = parse_last_modified(
        {LAST_MODIFIED_HEADER: ["Fri Feb  3 06:07:48 2012"]}, "Mon Jan _2 15:04:05 2006"
    )
    assert actual == datetime(2012, 2, 3, 6, 7, 48, tzinfo=UTC)


def test_literal_mismatch_reports_remaining_value():
    with pytest.raises(HeaderParseError) as info:
        parse_last_modified({LAST_MODIFIED_HEADER: ["2015/11/06T10:07:11Z"]})
    assert 'cannot parse "/11/06T10:07:11Z" as "-"' in str(info.value)