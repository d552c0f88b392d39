from datetime import datetime, timezone

from hypothesis import given
from hypothesis import strategies as st

from rss_to_note.templating import PLACEHOLDERS, get_environment, render_note_template


def test_render_note_template_substitutes_fields():
    assert render_note_template("{{title}} by {{author}}", {"title": "A", "author": "B"}) == "A by B"


def test_render_note_template_leaves_unknown_placeholders():
    assert render_note_template("{{title}} {{xyz}}", {"title": "A"}) == "A {{xyz}}"


def test_render_note_template_replaces_every_occurrence():
    assert render_note_template("{{link}}|{{link}}", {"link": "L"}) == "L|L"


def test_render_note_template_is_not_recursive():
    rendered = render_note_template(
        "{{content}} {{title}}", {"content": "{{title}}", "title": "T"}
    )

    assert rendered == "{{title}} T"


def test_render_note_template_requires_exact_token():
    assert render_note_template("{{ title }}", {"title": "A"}) == "{{ title }}"


def test_placeholder_names():
    assert PLACEHOLDERS == ("title", "author", "link", "pubDate", "feedName", "content")


@given(st.text())
def test_render_note_template_inserts_values_literally(value):
    assert render_note_template("<{{title}}>", {"title": value}) == f"<{value}>"


def test_get_environment_registers_timestamp_filter():
    env = get_environment()
    assert "timestamp" in env.filters

    moment = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    rendered = env.from_string("{{ value | timestamp }}").render(value=moment)

    assert rendered == moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    assert env.from_string("{{ value | timestamp }}").render(value=None) == ""
