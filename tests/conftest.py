"""
Pytest configuration and fixtures for cptwiki tests.

Provides helper factories for records, registries and wikis, plus common
fixtures built on the in-memory row store.
"""
import pytest

from cptwiki.canon import make_element
from cptwiki.catalog import catalog_registry
from cptwiki.engine import Wiki
from cptwiki.models import (
    ClassDefinition,
    ItemRow,
    PredefinedItem,
    Rule,
    SchemaDefinitions,
    ShapeDefinition,
)
from cptwiki.schema import build_registry, make_rule
from cptwiki.store import MemoryRowStore


# =============================================================================
# Factory Helpers
# =============================================================================

def make_elements(*values, prefix: str = "e"):
    """Array of elements with readable, predictable ids (e0, e1, ...)."""
    return [make_element(value, f"{prefix}{index}") for index, value in enumerate(values)]


def make_definitions(
    classes: dict,
    shapes: dict = None,
    static: dict = None,
    rules: dict = None,
    predefined: list = None,
) -> SchemaDefinitions:
    """
    Definitions from plain CPT strings.

    ``rules`` maps a class or shape name to a tuple of Rule objects.
    """
    rules = rules or {}
    definitions = SchemaDefinitions()
    for name, code in (shapes or {}).items():
        definitions.add_shape(ShapeDefinition(name, code, rules.get(name, ())))
    for key, code in classes.items():
        definitions.add_class(ClassDefinition(key, key.title(), code, rules.get(key, ())))
    for key, code in (static or {}).items():
        definitions.add_class(ClassDefinition(key, key.title(), code, rules.get(key, ()), is_static=True))
    for item in predefined or []:
        definitions.predefined.append(item)
    return definitions


def make_registry(classes: dict, **kwargs):
    """Registry compiled from plain CPT strings."""
    return build_registry(make_definitions(classes, **kwargs))


def make_song_registry():
    """Small song/author registry mirroring the catalog's song rule."""
    return make_registry(
        classes={
            "song": """
                names {NAME}[];
                unofficialNames {UNOFFICIAL_NAME}[];
                authors ID(author)[];
                link TEXTSHORT *;
            """,
            "author": "name TEXTSHORT QUERY; bio TEXTLONG *;",
        },
        shapes={
            "NAME": "name TEXTSHORT QUERY; note TEXTLONG *;",
            "UNOFFICIAL_NAME": "name TEXTSHORT QUERY;",
        },
        static={"main_page": "text TEXTLONG *;"},
        rules={
            "song": (make_rule(
                "any_non_empty",
                "A song must have at least one name or one unofficial name",
                {"fields": ["names", "unofficialNames"]},
            ),),
        },
        predefined=[PredefinedItem("author", 1, {"name": "Unknown"})],
    )


def make_note_registry():
    """Single-class registry for history tests."""
    return make_registry(classes={"note": "title TEXTSHORT QUERY; body TEXTLONG; tags TEXT[];"})


def make_note(title: str, body: str = None, tags=()):
    return {"title": title, "body": body, "tags": make_elements(*tags, prefix="t")}


def make_song(*names, authors=(), link=None, unofficial=()):
    return {
        "names": make_elements(*({"name": n, "note": None} for n in names), prefix="n"),
        "unofficialNames": make_elements(*({"name": n} for n in unofficial), prefix="u"),
        "authors": make_elements(*authors, prefix="a"),
        "link": link,
    }


def make_record(cls: str, data: dict, item_id: int = None) -> ItemRow:
    return ItemRow(id=item_id, cls=cls, data=data)


def failing_rule(message: str = "boom") -> Rule:
    def check(data):
        raise RuntimeError(message)
    return Rule(check=check, message="never reported", name="failing")


class FakeClock:
    """Millisecond clock that advances by ``step`` on every call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def catalog():
    """The built-in catalog registry (compiled once)."""
    return catalog_registry()


@pytest.fixture
def song_registry():
    return make_song_registry()


@pytest.fixture
def note_registry():
    return make_note_registry()


@pytest.fixture
def store():
    return MemoryRowStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def song_wiki(song_registry, store, clock, tmp_path):
    """Initialized wiki over the song registry with a backup directory."""
    wiki = Wiki(song_registry, store, backup_dir=tmp_path / "backups", clock=clock)
    wiki.initialize()
    return wiki


@pytest.fixture
def note_wiki(note_registry, store, clock, tmp_path):
    """Wiki over the note registry; nothing created yet."""
    return Wiki(note_registry, store, backup_dir=tmp_path / "backups", clock=clock)
