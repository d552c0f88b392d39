import re

from hypothesis import given
from hypothesis import strategies as st

from rss_to_note.models import FeedConfig, GlobalConfig
from rss_to_note.paths import resolve_note_path, resolve_target_folder, sanitize_filename


def test_sanitize_filename_drops_symbols_and_hyphenates_spaces():
    assert sanitize_filename("Hello, World: 2024 edition!") == "Hello-World-2024-edition"
    assert sanitize_filename("a  b   c") == "a-b-c"
    assert sanitize_filename("a  b\tc") == "a-bc"
    assert sanitize_filename("keep_under-score") == "keep_under-score"


def test_sanitize_filename_uses_placeholder_for_empty_stem():
    assert sanitize_filename("!!!") == "Untitled"
    assert sanitize_filename("") == "Untitled"


@given(st.text())
def test_sanitize_filename_only_emits_safe_characters(title):
    assert re.fullmatch(r"[A-Za-z0-9_\-]+", sanitize_filename(title))


def test_resolve_note_path_creates_folder(vault):
    path = resolve_note_path("Foo", "RSS Notes", vault)

    assert path == "RSS Notes/Foo.md"
    assert (vault.root / "RSS Notes").is_dir()


def test_resolve_note_path_appends_counter_on_collision(vault):
    vault.create_folder("RSS Notes")
    vault.create_file("RSS Notes/Foo.md", "existing")

    first = resolve_note_path("Foo", "RSS Notes", vault)
    assert first == "RSS Notes/Foo-1.md"

    vault.create_file(first, "second")
    assert resolve_note_path("Foo", "RSS Notes", vault) == "RSS Notes/Foo-2.md"


def test_resolve_note_path_normalizes_folder(vault):
    assert resolve_note_path("Foo", "/News\\Daily//", vault) == "News/Daily/Foo.md"


def test_resolve_target_folder_modes():
    feed = FeedConfig(id="1", name="Tech", folder="Tech Notes")
    nameless_folder = FeedConfig(id="2", name="Sports", folder="")

    shared = GlobalConfig(folder_structure="shared", shared_folder="Inbox")
    separate = GlobalConfig(folder_structure="separate")

    assert resolve_target_folder(shared, feed) == "Inbox"
    assert resolve_target_folder(separate, feed) == "Tech Notes"
    assert resolve_target_folder(separate, nameless_folder) == "Sports"
