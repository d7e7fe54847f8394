"""
Tests for feature serialization and on-disk persistence.
"""

import json

import pytest

from haarboost.exceptions import MalformedSerializedFeature, UnknownFeatureType
from haarboost.features import CandidateConfiguration, FeatureRegistry, HaarFeatureType, Rectangle, SelectedFeature
from haarboost.training import FeaturePersistence, FeatureSerializer, TagReader
from haarboost.training.model_persistence import CLOSE, OPEN, TEXT, Token, tokenize

RECORD = (
    "<type>2v</type>\n"
    "<rect>\n"
    "  <x>12</x>\n"
    "  <y>4</y>\n"
    "  <width>8</width>\n"
    "  <height>16</height>\n"
    "</rect>\n"
)


def selected_feature(registry, code='2v', rect=(12, 4, 8, 16), score=None):
    return SelectedFeature(CandidateConfiguration(code, Rectangle(*rect)), registry.get_feature(code), score)


@pytest.fixture
def serializer(registry):
    return FeatureSerializer(registry)


class TestTokenize:

    def test_tokens(self):
        assert tokenize("<a> 12 </a>\n<b></b>") == [
            Token(OPEN, 'a'), Token(TEXT, '12'), Token(CLOSE, 'a'), Token(OPEN, 'b'), Token(CLOSE, 'b')]

    def test_stray_bracket_is_text(self):
        assert Token(TEXT, '<') in tokenize("<x>< 3</x>")


class TestTagReader:

    def test_cursor_only_moves_forward(self):
        reader = TagReader.from_text("<x>1</x><y>2</y>")
        assert reader.seek_and_parse_int('y') == 2
        assert reader.cursor == 6
        assert reader.at_end()
        with pytest.raises(MalformedSerializedFeature):
            reader.seek_and_parse_int('x')

    def test_skips_unrelated_tags(self):
        reader = TagReader.from_text("<note>hello</note><x>-7</x>")
        assert reader.seek_and_parse_int('x') == -7

    @pytest.mark.parametrize("text", [
        "<x>abc</x>",
        "<x>1.5</x>",
        "<x>40000</x>",
        "<x></x>",
        "<x>1",
        "<x><y>1</y></x>",
    ])
    def test_malformed_values(self, text):
        with pytest.raises(MalformedSerializedFeature) as exc_info:
            TagReader.from_text(text).seek_and_parse_int('x')
        assert exc_info.value.tag == 'x'
        assert exc_info.value.stage == 'load'

    def test_has_ahead(self):
        reader = TagReader.from_text("<type>2v</type>")
        assert reader.has_ahead('type')
        reader.seek_enclosed_value('type')
        assert not reader.has_ahead('type')


class TestFeatureSerializer:

    def test_save_format(self, registry, serializer):
        assert serializer.dumps(selected_feature(registry)) == RECORD

    def test_save_nested_depth(self, registry, serializer):
        text = serializer.dumps(selected_feature(registry, '4q', (0, 1, 2, 4)), depth=2)
        lines = text.splitlines()
        assert lines[0] == "    <type>4q</type>"
        assert lines[2] == "      <x>0</x>"
        assert lines[-1] == "    </rect>"

    @pytest.mark.parametrize("code, rect", [
        ('2v', (0, 0, 2, 1)),
        ('2h', (3, 5, 1, 4)),
        ('3v', (10, 0, 9, 2)),
        ('3h', (0, 7, 5, 3)),
        ('4q', (31, 31, 32, 32)),
    ])
    def test_round_trip(self, registry, serializer, code, rect):
        loaded = serializer.loads(serializer.dumps(selected_feature(registry, code, rect, score=0.25)))
        assert loaded.code == code
        assert loaded.rect.as_tuple() == rect
        assert loaded.feature_type is registry.get_feature(code)
        assert loaded.score is None

    def test_round_trip_uses_registered_code(self):
        registry = FeatureRegistry()
        registry.register_type('cs', HaarFeatureType('center', 'center surround', [[1, 1, 1], [1, -8, 1], [1, 1, 1]]))
        serializer = FeatureSerializer(registry)

        text = serializer.dumps(selected_feature(registry, 'cs', (2, 2, 6, 6)))
        assert text.startswith("<type>cs</type>")
        loaded = serializer.loads(text)
        assert loaded.code == 'cs'
        assert loaded.rect == Rectangle(2, 2, 6, 6)

    def test_indentation_is_ignored(self, serializer):
        loaded = serializer.loads("<type>3h</type><rect><x>1</x><y>2</y><width>3</width><height>6</height></rect>")
        assert loaded.rect == Rectangle(1, 2, 3, 6)

    def test_unknown_type(self, serializer):
        with pytest.raises(UnknownFeatureType) as exc_info:
            serializer.loads(RECORD.replace('2v', '9z'))
        assert exc_info.value.code == '9z'
        assert exc_info.value.stage == 'load'

    def test_missing_field(self, serializer):
        with pytest.raises(MalformedSerializedFeature) as exc_info:
            serializer.loads(RECORD.replace("  <x>12</x>\n", ""))
        assert exc_info.value.tag == 'x'

    def test_fields_out_of_order(self, serializer):
        text = "<type>2v</type><rect><y>4</y><x>12</x><width>8</width><height>16</height></rect>"
        with pytest.raises(MalformedSerializedFeature):
            serializer.loads(text)

    def test_negative_field(self, serializer):
        with pytest.raises(MalformedSerializedFeature) as exc_info:
            serializer.loads(RECORD.replace("<width>8</width>", "<width>-8</width>"))
        assert exc_info.value.tag == 'rect'

    def test_missing_type(self, serializer):
        with pytest.raises(MalformedSerializedFeature) as exc_info:
            serializer.loads("<rect><x>1</x></rect>")
        assert exc_info.value.tag == 'type'

    def test_load_all_consecutive_records(self, registry, serializer):
        text = (serializer.dumps(selected_feature(registry, '2v', (0, 0, 2, 2)), depth=1)
                + serializer.dumps(selected_feature(registry, '3v', (1, 1, 3, 3)), depth=1))
        loaded = serializer.load_all(f"<model>\n{text}</model>\n")
        assert [(f.code, f.rect.as_tuple()) for f in loaded] == [('2v', (0, 0, 2, 2)), ('3v', (1, 1, 3, 3))]


class TestFeaturePersistence:

    def test_save_and_load(self, registry, serializer, tmp_path):
        persistence = FeaturePersistence(tmp_path / "features", serializer)
        path = persistence.save_feature(selected_feature(registry, score=0.125), round_index=3,
                                        metadata={'num_examples': 3})

        assert path.name.startswith("haar_feature_r0003_2v_")
        assert path.read_text(encoding='utf-8') == RECORD
        assert persistence.list_available_features() == [path]

        info = json.loads(path.with_suffix('.json').read_text())
        assert info['rect'] == {'x': 12, 'y': 4, 'width': 8, 'height': 16}
        assert info['score'] == 0.125
        assert info['round'] == 3
        assert info['num_examples'] == 3

        loaded = persistence.load_feature(path)
        assert loaded.candidate == CandidateConfiguration('2v', Rectangle(12, 4, 8, 16))

    def test_load_missing_file(self, serializer, tmp_path):
        with pytest.raises(FileNotFoundError):
            FeaturePersistence(tmp_path, serializer).load_feature(tmp_path / "missing.xml")
