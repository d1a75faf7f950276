import pytest

from src.core.codegraph.entities import EdgeType, EntityKey, EntityKind, coerce_entities
from src.core.codegraph.relationship_builder import RelationshipBuilder
from src.core.errors import MalformedEntityError

PROJECT = "web"
SCOPE_KEY = "web:main"

AUTH_FILE = {
    "kind": "File",
    "path": "src/auth.tsx",
    "body": "import React, { useState } from 'react';",
    "language": "typescript",
    "imports": [{"source": "react", "names": ["React", "useState"]}],
    "exports": [{"name": "LoginForm", "export_type": "default"}],
}


def test_derive_maps_reference_fields_to_edge_types():
    entities = coerce_entities([
        AUTH_FILE,
        {"kind": "Component", "name": "LoginForm", "file_path": "src/auth.tsx",
         "hooks": ["useAuth"], "calls": ["validate"], "instantiates": ["Session"]},
        {"kind": "Hook", "name": "useAuth", "file_path": "src/auth.tsx"},
        {"kind": "Class", "name": "Admin", "extends": ["User"], "implements": ["Auditable"]},
        {"kind": "Interface", "name": "Auditable", "extends": ["Loggable"]},
    ])

    derived = {(spec.edge_type, spec.source, spec.target) for spec in RelationshipBuilder(None).derive(entities)}

    file_key = EntityKey(EntityKind.FILE, "src/auth.tsx")
    assert derived == {
        (EdgeType.IMPORTS, file_key, EntityKey(EntityKind.MODULE, "react")),
        (EdgeType.EXPORTS, file_key, EntityKey(EntityKind.EXPORTED_ITEM, "LoginForm")),
        (EdgeType.CONTAINS, file_key, EntityKey(EntityKind.COMPONENT, "LoginForm")),
        (EdgeType.USES, file_key, EntityKey(EntityKind.HOOK, "useAuth")),
        (EdgeType.USES, EntityKey(EntityKind.COMPONENT, "LoginForm"), EntityKey(EntityKind.HOOK, "useAuth")),
        (EdgeType.CALLS, EntityKey(EntityKind.COMPONENT, "LoginForm"), EntityKey(EntityKind.FUNCTION, "validate")),
        (EdgeType.INSTANTIATES, EntityKey(EntityKind.COMPONENT, "LoginForm"), EntityKey(EntityKind.CLASS, "Session")),
        (EdgeType.EXTENDS, EntityKey(EntityKind.CLASS, "Admin"), EntityKey(EntityKind.CLASS, "User")),
        (EdgeType.IMPLEMENTS, EntityKey(EntityKind.CLASS, "Admin"), EntityKey(EntityKind.INTERFACE, "Auditable")),
        (EdgeType.EXTENDS, EntityKey(EntityKind.INTERFACE, "Auditable"), EntityKey(EntityKind.INTERFACE, "Loggable")),
    }


def test_repeated_imports_of_one_module_are_merged():
    entities = coerce_entities([{
        "kind": "File",
        "path": "src/app.ts",
        "imports": [
            {"source": "react", "names": ["useState"]},
            {"source": "react", "names": ["useEffect", "useState"]},
        ],
    }])

    specs = RelationshipBuilder(None).derive(entities)

    assert len(specs) == 1
    assert specs[0].properties == {"imports": ["useState", "useEffect"]}


def test_import_edge_carries_bindings(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [AUTH_FILE])

    assert edges(SCOPE_KEY, "IMPORTS") == [
        ("IMPORTS", "src/auth.tsx", "react", {"imports": ["React", "useState"]})
    ]
    assert edges(SCOPE_KEY, "EXPORTS") == [
        ("EXPORTS", "src/auth.tsx", "LoginForm", {"export_type": "default"})
    ]


def test_reindexing_does_not_duplicate_edges(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [AUTH_FILE])
    report = graph_engine.upsert_entities(PROJECT, [AUTH_FILE])

    assert report.relationships.created == []
    assert len(report.relationships.unchanged) == 2
    assert len(edges(SCOPE_KEY)) == 2


def test_changed_properties_update_the_existing_edge(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [AUTH_FILE])
    changed = dict(AUTH_FILE, imports=[{"source": "react", "names": ["React"]}])

    report = graph_engine.upsert_entities(PROJECT, [changed])

    assert [spec.edge_type for spec in report.relationships.updated] == [EdgeType.IMPORTS]
    assert edges(SCOPE_KEY, "IMPORTS") == [("IMPORTS", "src/auth.tsx", "react", {"imports": ["React"]})]


def test_endpoints_are_created_as_placeholders(graph_engine, nodes):
    graph_engine.upsert_entities(PROJECT, [AUTH_FILE])

    module = nodes(SCOPE_KEY, kind="Module", name="react")
    exported = nodes(SCOPE_KEY, kind="ExportedItem", name="LoginForm")
    assert module[0].is_placeholder and exported[0].is_placeholder
    assert nodes(SCOPE_KEY, kind="File")[0].is_placeholder is False


def test_derive_alone_creates_missing_source_as_placeholder(graph_engine, nodes, edges):
    report = graph_engine.derive_relationships(PROJECT, [
        {"kind": "Function", "name": "checkout", "calls": ["pay"]},
    ])

    assert len(report.created) == 1
    assert nodes(SCOPE_KEY, kind="Function", name="checkout")[0].is_placeholder is True
    assert edges(SCOPE_KEY) == [("CALLS", "checkout", "pay", {})]


def test_self_call_is_a_single_edge(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "Function", "name": "walk", "body": "walk(node.next)", "calls": ["walk", "walk"]},
    ])

    assert edges(SCOPE_KEY) == [("CALLS", "walk", "walk", {})]


def test_edges_stay_inside_their_branch(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [AUTH_FILE], branch="feature")

    assert edges(SCOPE_KEY) == []
    assert len(edges("web:feature")) == 2


def test_relationships_can_be_skipped(graph_engine, edges):
    report = graph_engine.upsert_entities(PROJECT, [AUTH_FILE], derive_relationships=False)

    assert report.relationships is None
    assert edges(SCOPE_KEY) == []


def test_custom_hook_can_use_other_hooks(graph_engine, edges):
    graph_engine.upsert_entities(PROJECT, [
        {"kind": "Hook", "name": "useSession", "body": "useState(); useAuth()", "hooks": ["useState", "useAuth"]},
    ])

    assert edges(SCOPE_KEY, "USES") == [
        ("USES", "useSession", "useState", {}),
        ("USES", "useSession", "useAuth", {}),
    ]


def test_hooks_are_rejected_on_classes(graph_engine):
    with pytest.raises(MalformedEntityError, match="cannot declare 'hooks'"):
        graph_engine.upsert_entities(PROJECT, [{"kind": "Class", "name": "Store", "hooks": ["useState"]}])
