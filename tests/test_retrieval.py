"""Tests for image-to-image retrieval."""

from pathlib import Path

import pytest

from ilytix.dedup.hash import Method
from ilytix.dedup.index import IndexKind, Match
from ilytix.dedup.model import build_corpus
from ilytix.errors import InsufficientCorpus, QueryDecodeError
from ilytix.retrieval import QUERY_ID, RetrievalEngine


@pytest.fixture
def synthetic_corpus(make_fingerprint):
    """Five items at distances 2, 1, 10, 20 and 40 from the all-zero query."""
    return [
        make_fingerprint(0, [0, 1]),
        make_fingerprint(1, [2]),
        make_fingerprint(2, range(10)),
        make_fingerprint(3, range(20)),
        make_fingerprint(4, range(40)),
    ]


class TestRetrievalEngine:
    def test_search_ranks_within_threshold(self, synthetic_corpus, make_fingerprint):
        engine = RetrievalEngine(thresh=3.0)
        engine.build(synthetic_corpus)

        assert engine.search(make_fingerprint(QUERY_ID)) == [Match(1, 1), Match(0, 2)]

    def test_search_threshold_widens_result(self, synthetic_corpus, make_fingerprint):
        engine = RetrievalEngine(thresh=20.0)
        engine.build(synthetic_corpus)

        assert [m.id for m in engine.search(make_fingerprint(QUERY_ID))] == [1, 0, 2, 3]

    def test_search_no_match(self, synthetic_corpus, make_fingerprint):
        engine = RetrievalEngine(thresh=3.0)
        engine.build(synthetic_corpus)

        assert engine.search(make_fingerprint(QUERY_ID, range(100, 200))) == []

    def test_search_ties_by_id(self, make_fingerprint):
        engine = RetrievalEngine(thresh=1.0)
        engine.build([make_fingerprint(9, [1]), make_fingerprint(3, [2]), make_fingerprint(5, [])])

        assert engine.search(make_fingerprint(QUERY_ID)) == [Match(5, 0), Match(3, 1), Match(9, 1)]

    def test_nsw_backend(self, synthetic_corpus, make_fingerprint):
        engine = RetrievalEngine(thresh=3.0, index_kind=IndexKind.NSW)
        engine.build(synthetic_corpus)

        assert engine.search(make_fingerprint(QUERY_ID)) == [Match(1, 1), Match(0, 2)]

    def test_build_reports_index_size(self, synthetic_corpus):
        index = RetrievalEngine().build(synthetic_corpus)
        assert index.size == 5
        assert len(index) == 5
        assert 4 in index and 5 not in index
        assert index.capacity >= 5
        assert index.dimensions == Method.BLOCKHASH.bits == 256
        assert index.shape == Method.BLOCKHASH.shape

    @pytest.mark.parametrize("count", [0, 1])
    def test_build_needs_two_items(self, count, make_fingerprint):
        engine = RetrievalEngine()
        with pytest.raises(InsufficientCorpus):
            engine.build([make_fingerprint(i) for i in range(count)])
        with pytest.raises(RuntimeError):
            engine.index

    def test_search_before_build(self, make_fingerprint):
        with pytest.raises(RuntimeError):
            RetrievalEngine().search(make_fingerprint(QUERY_ID))

    def test_negative_threshold(self):
        with pytest.raises(ValueError):
            RetrievalEngine(thresh=-0.5)


class TestRetrieveFiles:
    def test_retrieve_from_files(self, tmp_path, make_pattern):
        folder = tmp_path / "corpus"
        folder.mkdir()
        paths = [
            make_pattern(folder / "a.png", seed=1),
            make_pattern(folder / "b.png", seed=2),
            make_pattern(folder / "c.bmp", seed=1, size=256),
        ]
        query = make_pattern(tmp_path / "query.jpg", seed=1, fmt='PNG')
        corpus = build_corpus(paths)

        matches = RetrievalEngine(thresh=3.0).retrieve(corpus.fingerprints, query)

        assert [m.id for m in matches] == [0, 2]
        assert all(m.distance == 0 for m in matches)
        assert corpus.path_of(matches[1].id).name == "c.bmp"

    def test_query_fingerprint(self, tmp_path, make_pattern):
        query = make_pattern(tmp_path / "q.png", seed=3)

        fp = RetrievalEngine().fingerprint_query(query)

        assert fp.id == QUERY_ID
        assert fp.source_path == query
        assert fp.file_size == query.stat().st_size

    def test_undecodable_query(self, tmp_path):
        query = tmp_path / "q.png"
        query.write_bytes(b"garbage")

        with pytest.raises(QueryDecodeError) as excinfo:
            RetrievalEngine().fingerprint_query(query)
        assert excinfo.value.path == query

    def test_missing_query(self, tmp_path):
        with pytest.raises(QueryDecodeError):
            RetrievalEngine().fingerprint_query(Path(tmp_path / "nowhere.png"))
