import pytest

from src.core.codegraph.entities import EntityKey, EntityKind
from src.core.errors import MalformedEntityError
from src.core.graph_persistence import GraphStore
from src.core.models_v2.base import utcnow

PROJECT = "shop"
SCOPE_KEY = "shop:main"


def test_first_upsert_creates_entities(graph_engine, nodes):
    report = graph_engine.upsert_entities(PROJECT, [
        {"kind": "Function", "name": "login", "body": "def login(): pass"},
        {"kind": "Class", "name": "User", "body": "class User: pass"},
    ])

    assert report.scope.key == SCOPE_KEY
    assert report.entities.created == [
        EntityKey(EntityKind.FUNCTION, "login"),
        EntityKey(EntityKind.CLASS, "User"),
    ]
    assert report.entities.updated == []
    assert report.entities.unchanged == []
    assert len(nodes(SCOPE_KEY)) == 2


def test_upsert_is_idempotent(graph_engine, nodes):
    entity = {"kind": "Function", "name": "login", "body": "def login(): return True"}

    graph_engine.upsert_entities(PROJECT, [entity])
    second = graph_engine.upsert_entities(PROJECT, [entity])

    assert second.entities.created == []
    assert second.entities.updated == []
    assert second.entities.unchanged == [EntityKey(EntityKind.FUNCTION, "login")]
    assert len(nodes(SCOPE_KEY, kind="Function", name="login")) == 1


def test_identity_key_stays_unique_and_keeps_last_body(graph_engine, nodes):
    for version in range(5):
        graph_engine.upsert_entities(PROJECT, [
            {"kind": "Function", "name": "login", "body": f"def login(): return {version}"}
        ])

    matching = nodes(SCOPE_KEY, kind="Function", name="login")
    assert len(matching) == 1
    assert matching[0].body == "def login(): return 4"


def test_update_bumps_updated_at_but_not_created_at(graph_engine, nodes):
    graph_engine.upsert_entities(PROJECT, [{"kind": "Function", "name": "login", "body": "v1"}])
    first = nodes(SCOPE_KEY, name="login")[0]

    report = graph_engine.upsert_entities(PROJECT, [{"kind": "Function", "name": "login", "body": "v2"}])
    second = nodes(SCOPE_KEY, name="login")[0]

    assert report.entities.updated == [EntityKey(EntityKind.FUNCTION, "login")]
    assert second.created_at == first.created_at
    assert second.updated_at >= second.created_at
    assert second.updated_at >= first.updated_at


def test_same_name_different_kind_are_distinct(graph_engine, nodes):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "Function", "name": "Button", "body": "function Button() {}"},
        {"kind": "Component", "name": "Button", "body": "const Button = () => <button/>"},
    ])

    assert {node.kind for node in nodes(SCOPE_KEY, name="Button")} == {"Function", "Component"}


def test_duplicate_in_batch_last_occurrence_wins(graph_engine, nodes):
    report = graph_engine.upsert_entities(PROJECT, [
        {"kind": "Function", "name": "login", "body": "first"},
        {"kind": "Function", "name": "login", "body": "second"},
    ])

    assert len(report.entities.created) == 1
    assert nodes(SCOPE_KEY, name="login")[0].body == "second"


def test_file_identity_is_its_path(graph_engine, nodes):
    graph_engine.upsert_entities(PROJECT, [{"kind": "File", "path": "src/auth.ts", "body": "export {}"}])

    files = nodes(SCOPE_KEY, kind="File")
    assert [(f.name, f.path) for f in files] == [("src/auth.ts", "src/auth.ts")]


def test_missing_base_class_becomes_placeholder(graph_engine, nodes, edges):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "Class", "name": "Admin", "body": "class Admin(User): pass", "extends": ["User"]},
    ])

    user = nodes(SCOPE_KEY, kind="Class", name="User")
    assert len(user) == 1
    assert user[0].is_placeholder is True
    assert user[0].body is None
    assert edges(SCOPE_KEY, "EXTENDS") == [("EXTENDS", "Admin", "User", {})]


def test_real_upsert_fills_placeholder_without_touching_edges(graph_engine, nodes, edges):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "Class", "name": "Admin", "body": "class Admin(User): pass", "extends": ["User"]},
    ])
    placeholder_id = nodes(SCOPE_KEY, kind="Class", name="User")[0].id

    report = graph_engine.upsert_entities(PROJECT, [
        {"kind": "Class", "name": "User", "body": "class User: pass"},
    ])

    user = nodes(SCOPE_KEY, kind="Class", name="User")
    assert report.entities.updated == [EntityKey(EntityKind.CLASS, "User")]
    assert len(user) == 1
    assert user[0].id == placeholder_id
    assert user[0].is_placeholder is False
    assert user[0].body == "class User: pass"
    assert edges(SCOPE_KEY, "EXTENDS") == [("EXTENDS", "Admin", "User", {})]


def test_malformed_entity_rejects_whole_batch(graph_engine, nodes):
    with pytest.raises(MalformedEntityError) as excinfo:
        graph_engine.upsert_entities(PROJECT, [
            {"kind": "Function", "name": "login", "body": "ok"},
            {"kind": "Function", "body": "no name"},
        ])

    assert excinfo.value.index == 1
    assert excinfo.value.identity == ("Function", None)
    assert nodes(SCOPE_KEY) == []


def test_unknown_kind_is_malformed(graph_engine):
    with pytest.raises(MalformedEntityError) as excinfo:
        graph_engine.upsert_entities(PROJECT, [{"kind": "Macro", "name": "m"}])

    assert excinfo.value.identity == ("Macro", "m")


def test_reference_not_allowed_for_kind_is_malformed(graph_engine):
    with pytest.raises(MalformedEntityError, match="cannot declare 'imports'"):
        graph_engine.upsert_entities(PROJECT, [
            {"kind": "Function", "name": "f", "imports": [{"source": "react", "names": ["useState"]}]},
        ])


def test_kind_names_are_case_insensitive(graph_engine, nodes):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "function", "name": "a", "body": "a"},
        {"kind": "EXPORTED_ITEM", "name": "b"},
    ])

    assert {node.kind for node in nodes(SCOPE_KEY)} == {"Function", "ExportedItem"}


def test_concurrent_insert_of_same_identity_last_writer_wins(graph_engine, nodes, monkeypatch):
    graph_engine.upsert_entities(PROJECT, [{"kind": "Function", "name": "f", "body": "FIRST"}])
    first = nodes(SCOPE_KEY, name="f")[0]

    # The second writer read the scope before the first one committed.
    monkeypatch.setattr(GraphStore, "fetch_nodes", lambda self, scope, keys: {})
    report = graph_engine.upsert_entities(PROJECT, [{"kind": "Function", "name": "f", "body": "SECOND"}])
    monkeypatch.undo()

    stored = nodes(SCOPE_KEY, name="f")
    assert [node.body for node in stored] == ["SECOND"]
    assert stored[0].id == first.id
    assert stored[0].created_at == first.created_at
    assert report.entities.created == []
    assert report.entities.updated == [EntityKey(EntityKind.FUNCTION, "f")]


def test_placeholder_insert_never_overwrites_an_indexed_body(graph_engine, session_factory, nodes):
    graph_engine.upsert_entities(PROJECT, [{"kind": "Class", "name": "User", "body": "class User: pass"}])

    with session_factory() as session:
        store = GraphStore(session)
        with store.transaction():
            store.insert_nodes([{
                "scope_key": SCOPE_KEY,
                "kind": "Class",
                "name": "User",
                "body": None,
                "path": None,
                "language": None,
                "attributes": {},
                "is_placeholder": True,
                "created_at": utcnow(),
                "updated_at": utcnow(),
            }])

    user = nodes(SCOPE_KEY, kind="Class", name="User")
    assert len(user) == 1
    assert user[0].is_placeholder is False
    assert user[0].body == "class User: pass"
