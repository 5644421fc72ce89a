"""Tests for template placeholder substitution."""

from datetime import datetime
from types import SimpleNamespace

from bookingsync.domain.email.rendering import placeholder_values, render
from tests.conftest import TOKYO


def reservation(**info):
    customer = {"name": "Taro Yamada", "email": "taro@example.com", **info}
    return SimpleNamespace(datetime=datetime(2025, 3, 10, 5, 0), customer_info=customer)


def test_date_and_time_are_local():
    values = placeholder_values(reservation(), TOKYO)
    assert values["date"] == "2025-03-10"
    assert values["time"] == "14:00"


def test_missing_optional_fields_render_empty():
    assert render("[{{company}}][{{phone}}]", reservation(), TOKYO) == "[][]"


def test_whitespace_inside_braces_is_allowed():
    assert render("Hi {{ name }}", reservation(), TOKYO) == "Hi Taro Yamada"


def test_unknown_placeholder_left_as_written():
    assert render("{{coupon}} for {{name}}", reservation(), TOKYO) == "{{coupon}} for Taro Yamada"


def test_values_are_html_escaped_in_body():
    body = render("<p>{{message}}</p>", reservation(message="<b>early</b> & quiet"), TOKYO)
    assert body == "<p>&lt;b&gt;early&lt;/b&gt; &amp; quiet</p>"


def test_subject_can_skip_escaping():
    subject = render("{{company}} booking", reservation(company="A&B"), TOKYO, escape=False)
    assert subject == "A&B booking"


def test_empty_text():
    assert render(None, reservation(), TOKYO) == ""
