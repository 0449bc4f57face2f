"""Tests for segment normalization and speaker label resolution."""

from __future__ import annotations

import pytest

from rescribe.transcription.models import Assigned, DiarizationSegment, Segment, Unassigned, Word
from rescribe.transcription.normalize import normalize, speaker_label


class TestSpeakerLabel:
    @pytest.mark.parametrize("index", [0, 1, 7, 42, 1000])
    def test_unassigned_uses_index(self, index):
        assert speaker_label(Unassigned(index=index)) == f"speaker{index}"

    def test_assigned_uses_id_not_label(self):
        assert speaker_label(Assigned(id="spk_1", label="Alice")) == "spk_1"

    def test_assigned_without_label(self):
        assert speaker_label(Assigned(id="abc")) == "abc"

    def test_unknown_type_rejected(self):
        with pytest.raises(TypeError):
            speaker_label("speaker0")


class TestNormalize:
    def test_mixed_identities(self, mixed_segments):
        _words, diarization = normalize(mixed_segments)
        assert [d.speaker_label for d in diarization] == ["speaker0", "spk_1"]
        assert all(d.speaker_label != "Alice" for d in diarization)

    def test_segment_without_speaker_keeps_words(self, mixed_segments):
        words, diarization = normalize(mixed_segments)
        assert len(diarization) == 2
        assert words[-1] == Word(text="Okay.", start=3.0, end=3.5, confidence=0.6, speaker=None)

    def test_words_inherit_segment_bounds_and_speaker(self, cloud_segments):
        words, diarization = normalize(cloud_segments)
        assert [w.text for w in words] == ["Hello", "there,", "everyone."]
        assert all(w.start == 0.0 and w.end == 4.2 for w in words)
        assert all(w.speaker == "spk_1" for w in words)
        assert [w.confidence for w in words] == [0.99, 0.95, 0.9]
        assert diarization == [DiarizationSegment(start=0.0, end=4.2, speaker_label="spk_1")]

    def test_order_preserved_without_resorting(self):
        segments = [
            Segment(start=2.0, end=3.0, words=[("b", 1.0)], speaker=Unassigned(index=1)),
            Segment(start=1.0, end=2.0, words=[("a", 1.0)], speaker=Unassigned(index=0)),
        ]
        words, diarization = normalize(segments)
        assert [w.text for w in words] == ["b", "a"]
        assert [d.start for d in diarization] == [2.0, 1.0]

    def test_duplicates_kept(self):
        seg = Segment(start=0.0, end=1.0, words=[("hi", 0.5)], speaker=Unassigned(index=0))
        words, diarization = normalize([seg, seg])
        assert len(words) == 2
        assert len(diarization) == 2

    def test_empty(self):
        assert normalize([]) == ([], [])

    def test_segment_without_words_still_diarized(self):
        seg = Segment(start=0.0, end=1.0, words=[], speaker=Unassigned(index=3))
        words, diarization = normalize([seg])
        assert words == []
        assert diarization == [DiarizationSegment(start=0.0, end=1.0, speaker_label="speaker3")]
