import pytest

from src.core.codegraph.differential_validator import Classification


@pytest.fixture
def repo(tmp_path):
    (tmp_path / "a_service.py").write_text(
        "from z_base import Base\n\n\nclass Service(Base):\n    def run(self):\n        return make()\n"
    )
    (tmp_path / "z_base.py").write_text(
        "class Base:\n    pass\n\n\ndef make():\n    return Base()\n"
    )
    (tmp_path / "broken.py").write_text("def broken(:\n")
    (tmp_path / "notes.txt").write_text("not python")
    hidden = tmp_path / ".venv"
    hidden.mkdir()
    (hidden / "vendored.py").write_text("def vendored():\n    pass\n")
    return tmp_path


def test_index_repository_walks_python_files(graph_engine, repo):
    report = graph_engine.index_repository("demo", repo)

    assert report.files_indexed == ["a_service.py", "z_base.py"]
    assert list(report.files_skipped) == ["broken.py"]
    assert report.entities_created > 0


def test_references_across_files_are_resolved(graph_engine, nodes, edges, repo):
    graph_engine.index_repository("demo", repo)

    base = nodes("demo:main", kind="Class", name="Base")
    assert len(base) == 1
    assert base[0].is_placeholder is False
    assert ("EXTENDS", "Service", "Base", {}) in edges("demo:main", "EXTENDS")
    assert ("INSTANTIATES", "make", "Base", {}) in edges("demo:main", "INSTANTIATES")


def test_hidden_directories_are_skipped(graph_engine, nodes, repo):
    graph_engine.index_repository("demo", repo)

    assert nodes("demo:main", name="vendored") == []
    assert nodes("demo:main", kind="File", name=".venv/vendored.py") == []


def test_reindexing_is_idempotent(graph_engine, repo):
    graph_engine.index_repository("demo", repo)
    second = graph_engine.index_repository("demo", repo)

    assert second.entities_created == 0
    assert second.entities_updated == 0
    assert second.relationships_created == 0


def test_indexed_code_validates_as_matching(graph_engine, repo):
    graph_engine.index_repository("demo", repo, branch="feature")

    report = graph_engine.classify_candidates(
        "demo",
        [{"kind": "Function", "name": "make", "body": "def make():\n    # factory\n    return Base()"}],
        branch="feature",
    )

    assert report.results[0].status == Classification.MATCHING


def test_missing_repository_root(graph_engine, tmp_path):
    with pytest.raises(ValueError):
        graph_engine.index_repository("demo", tmp_path / "missing")
