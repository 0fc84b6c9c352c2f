"""
Unit tests for MatchEngine: nearest identity, threshold and tie-break.
"""
import math

import numpy as np
import pytest

from core.embedding_index import EmbeddingIndex
from core.errors import ConfigError, DetectionError
from core.match_engine import MatchEngine, calculate_distances
from core.models import Identity

from fakes import FakeFaceModel, face, make_image


def _identity(identity_id):
    return Identity(id=identity_id, display_name=identity_id.upper(), reference_images=(f"{identity_id}.jpg",))


def _index(**embeddings):
    return EmbeddingIndex([(_identity(k), np.asarray(v, dtype=np.float64)) for k, v in embeddings.items()])


class TestDistances:

    def test_euclidean(self):
        refs = np.array([[0.0, 0.0], [3.0, 4.0]])
        np.testing.assert_allclose(calculate_distances(refs, np.array([0.0, 0.0])), [0.0, 5.0])

    def test_cosine(self):
        refs = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])
        np.testing.assert_allclose(calculate_distances(refs, np.array([2.0, 0.0]), 'cosine'),
                                   [0.0, 1.0, 2.0], atol=1e-6)

    def test_unknown_metric(self):
        with pytest.raises(ConfigError):
            calculate_distances(np.zeros((1, 2)), np.zeros(2), 'manhattan')
        with pytest.raises(ConfigError):
            MatchEngine(FakeFaceModel(), metric='manhattan')


class TestBestMatch:

    def test_selects_minimum_distance_identity(self):
        engine = MatchEngine(FakeFaceModel())
        index = _index(a=[[1.0, 0.0]], b=[[0.1, 0.0]], c=[[0.5, 0.0]])
        identity, distance = engine.best_match(np.array([0.0, 0.0]), index)
        assert identity.id == "b"
        assert distance == pytest.approx(0.1)

    def test_uses_closest_of_several_references(self):
        engine = MatchEngine(FakeFaceModel())
        index = _index(a=[[0.5, 0.0], [0.05, 0.0]], b=[[0.1, 0.0]])
        identity, distance = engine.best_match(np.array([0.0, 0.0]), index)
        assert identity.id == "a"
        assert distance == pytest.approx(0.05)

    def test_threshold_is_inclusive(self):
        engine = MatchEngine(FakeFaceModel(), threshold=0.6)
        index = _index(a=[[0.6, 0.0, 0.0]])
        identity, distance = engine.best_match(np.array([0.0, 0.0, 0.0]), index)
        assert distance == 0.6
        assert identity is not None and identity.id == "a"

    def test_above_threshold_is_unknown(self):
        engine = MatchEngine(FakeFaceModel(), threshold=0.6)
        index = _index(a=[[0.61, 0.0]])
        identity, distance = engine.best_match(np.array([0.0, 0.0]), index)
        assert identity is None
        assert distance == pytest.approx(0.61)

    def test_exact_tie_goes_to_first_in_index_order(self):
        engine = MatchEngine(FakeFaceModel())
        index = _index(second=[[0.0, 0.3]], first=[[0.3, 0.0]])
        identity, _ = engine.best_match(np.array([0.0, 0.0]), index)
        assert identity.id == "second"

    def test_embedding_size_mismatch_is_reported_once(self, caplog):
        engine = MatchEngine(FakeFaceModel())
        index = _index(a=[[0.0, 0.0, 0.0]])
        for _ in range(5):
            identity, _ = engine.best_match(np.array([0.0, 0.0]), index)
            assert identity is None
        mismatches = [r for r in caplog.records if "does not match" in r.getMessage()]
        assert len(mismatches) == 1

    def test_empty_index_is_always_unknown(self):
        engine = MatchEngine(FakeFaceModel())
        identity, distance = engine.best_match(np.array([0.0, 0.0]), EmbeddingIndex())
        assert identity is None
        assert math.isinf(distance)


class TestMatch:

    def test_labels_every_detection(self):
        model = FakeFaceModel({7: [face([0.2, 0.0], bbox=(1, 2, 3, 4)), face([5.0, 5.0])]})
        engine = MatchEngine(model)
        results = engine.match(make_image(7), _index(a=[[0.0, 0.0]]))

        assert len(results) == 2
        assert results[0].identity.id == "a"
        assert results[0].detection.bbox == (1, 2, 3, 4)
        assert results[0].label == "A (0.20)"
        assert results[1].identity is None
        assert results[1].label == "unknown"

    def test_no_faces_no_results(self):
        engine = MatchEngine(FakeFaceModel())
        assert engine.match(make_image(1), _index(a=[[0.0]])) == []

    def test_model_failure_raises_detection_error(self):
        engine = MatchEngine(FakeFaceModel({3: RuntimeError("gpu fell over")}))
        with pytest.raises(DetectionError):
            engine.match(make_image(3), _index(a=[[0.0]]))

    def test_empty_index_still_reports_faces(self):
        engine = MatchEngine(FakeFaceModel({1: [face([0.0, 0.0])]}))
        results = engine.match(make_image(1), EmbeddingIndex())
        assert len(results) == 1
        assert not results[0].matched
