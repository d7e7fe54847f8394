"""
Saving and loading of selected features.

A selected feature is written as a small tagged text record::

    <type>2v</type>
    <rect>
      <x>12</x>
      <y>4</y>
      <width>8</width>
      <height>16</height>
    </rect>

Loading pre-tokenizes the text and reads it with a forward-only cursor:
``type`` is sought first and resolved through the feature registry, then
``x``, ``y``, ``width`` and ``height`` in that order. Indentation carries no
meaning.
"""

import io
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, TextIO

from ..exceptions import HaarLearnerError, MalformedSerializedFeature, UnknownFeatureType
from ..features.geometry import Rectangle, check_int16
from ..features.haar_features import CandidateConfiguration, SelectedFeature
from ..features.registry import FeatureRegistry

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r'<(/?)([A-Za-z_][\w\-]*)>|([^<]+)')

OPEN = 'open'
CLOSE = 'close'
TEXT = 'text'

RECT_FIELDS = ('x', 'y', 'width', 'height')


class Token(NamedTuple):
    kind: str
    value: str


def tokenize(text: str) -> List[Token]:
    """
    Split tagged text into open tags, close tags and stripped text values.

    Whitespace between tags is dropped. A stray '<' that does not start a tag
    is kept as text so the reader reports it as a malformed value.
    """
    tokens = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            # '<' not followed by a valid tag name
            tokens.append(Token(TEXT, text[position]))
            position += 1
            continue
        slash, name, value = match.groups()
        if name is not None:
            tokens.append(Token(CLOSE if slash else OPEN, name))
        elif value.strip():
            tokens.append(Token(TEXT, value.strip()))
        position = match.end()
    return tokens


class TagReader:
    """
    Forward-only reader over a token sequence.

    The cursor only ever moves forward; a value that was skipped while
    seeking a later tag can not be read anymore.
    """

    def __init__(self, tokens: Iterable[Token]):
        self.tokens = list(tokens)
        self._cursor = 0

    @classmethod
    def from_text(cls, text: str) -> 'TagReader':
        return cls(tokenize(text))

    @classmethod
    def from_stream(cls, stream: TextIO) -> 'TagReader':
        return cls.from_text(stream.read())

    @property
    def cursor(self) -> int:
        return self._cursor

    def at_end(self) -> bool:
        return self._cursor >= len(self.tokens)

    def _advance(self, position: int) -> None:
        if position < self._cursor:
            raise RuntimeError(f"Tag reader can not move back from {self._cursor} to {position}")
        self._cursor = position

    def has_ahead(self, tag: str) -> bool:
        """Whether an opening ``tag`` is still ahead of the cursor."""
        return any(token == (OPEN, tag) for token in self.tokens[self._cursor:])

    def seek_enclosed_value(self, tag: str) -> str:
        """
        Move past the next ``<tag>value</tag>`` and return ``value``.

        Raises:
            MalformedSerializedFeature: If the tag is not ahead of the cursor
                or does not enclose a single value
        """
        for index in range(self._cursor, len(self.tokens)):
            if self.tokens[index] != (OPEN, tag):
                continue
            following = self.tokens[index + 1:index + 3]
            if following and following[0] == (CLOSE, tag):
                self._advance(index + 2)
                return ''
            if len(following) == 2 and following[0].kind == TEXT and following[1] == (CLOSE, tag):
                self._advance(index + 3)
                return following[0].value
            raise MalformedSerializedFeature("expected a single value followed by the closing tag", tag)
        raise MalformedSerializedFeature("tag not found after the current position", tag)

    def seek_and_parse_int(self, tag: str) -> int:
        """Seek ``tag`` and parse its value as a signed 16-bit integer."""
        value = self.seek_enclosed_value(tag)
        try:
            return check_int16(tag, int(value))
        except ValueError as e:
            raise MalformedSerializedFeature(f"invalid integer value {value!r} ({e})", tag) from e


class FeatureSerializer:
    """Writes and reads selected features in the tagged text format."""

    def __init__(self, registry: FeatureRegistry, indent: str = '  '):
        self.registry = registry
        self.indent = indent

    def standard_tag(self, name: str, value: Any, depth: int) -> str:
        return f"{self.indent * depth}<{name}>{value}</{name}>"

    def save(self, selected: SelectedFeature, stream: TextIO, depth: int = 0) -> None:
        """
        Write a selected feature.

        Args:
            selected: Feature to save
            stream: Text stream to write to
            depth: Indentation depth of the record inside an enclosing document
        """
        if selected is None:
            raise HaarLearnerError("No feature has been selected", stage='save')

        rect = selected.rect
        lines = [self.standard_tag('type', selected.code, depth),
                 f"{self.indent * depth}<rect>"]
        lines += [self.standard_tag(name, getattr(rect, name), depth + 1) for name in RECT_FIELDS]
        lines.append(f"{self.indent * depth}</rect>")
        stream.write('\n'.join(lines) + '\n')

    def dumps(self, selected: SelectedFeature, depth: int = 0) -> str:
        buffer = io.StringIO()
        self.save(selected, buffer, depth)
        return buffer.getvalue()

    def load(self, reader: TagReader) -> SelectedFeature:
        """
        Read the next feature record from ``reader``.

        Raises:
            UnknownFeatureType: If the type code is not registered
            MalformedSerializedFeature: If a tag is missing, out of order or unparsable
        """
        code = reader.seek_enclosed_value('type')
        try:
            feature_type = self.registry.get_feature(code)
        except UnknownFeatureType:
            raise UnknownFeatureType(code, stage='load') from None

        values = [reader.seek_and_parse_int(name) for name in RECT_FIELDS]
        try:
            rect = Rectangle(*values)
        except ValueError as e:
            raise MalformedSerializedFeature(str(e), 'rect') from e
        return SelectedFeature(CandidateConfiguration(code, rect), feature_type)

    def loads(self, text: str) -> SelectedFeature:
        return self.load(TagReader.from_text(text))

    def load_all(self, text: str) -> List[SelectedFeature]:
        """Read every consecutive feature record of a document with one cursor."""
        reader = TagReader.from_text(text)
        features = []
        while reader.has_ahead('type'):
            features.append(self.load(reader))
        return features


class FeaturePersistence:
    """
    Stores selected features on disk.

    Each feature is saved as a tagged text record with a JSON metadata file
    next to it (score, sampling policy, round index).
    """

    def __init__(self, models_dir: Path, serializer: FeatureSerializer):
        self.models_dir = Path(models_dir)
        self.models_dir.mkdir(parents=True, exist_ok=True)
        self.serializer = serializer

    def save_feature(self, selected: SelectedFeature, round_index: Optional[int] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> Path:
        """
        Save a selected feature to a timestamped file.

        Returns:
            Path to the feature record
        """
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        round_tag = f"r{round_index:04d}_" if round_index is not None else ''
        stem = f"haar_feature_{round_tag}{selected.code}_{timestamp}"

        feature_path = self.models_dir / f"{stem}.xml"
        with open(feature_path, 'w', encoding='utf-8') as f:
            self.serializer.save(selected, f)

        info = {
            'type': selected.code,
            'rect': dict(zip(RECT_FIELDS, selected.rect.as_tuple())),
            'score': selected.score,
            'round': round_index,
            'saved_at': timestamp,
        }
        info.update(metadata or {})
        with open(self.models_dir / f"{stem}.json", 'w') as f:
            json.dump(info, f, indent=2, default=str)

        logger.info(f"Feature saved: {feature_path.name}")
        return feature_path

    def load_feature(self, feature_path: Path) -> SelectedFeature:
        feature_path = Path(feature_path)
        if not feature_path.exists():
            raise FileNotFoundError(f"Feature file not found: {feature_path}")

        with open(feature_path, 'r', encoding='utf-8') as f:
            selected = self.serializer.load(TagReader.from_stream(f))

        logger.info(f"Feature loaded: {selected.code} {selected.rect.as_tuple()} from {feature_path.name}")
        return selected

    def list_available_features(self, pattern: str = "haar_feature_*.xml") -> List[Path]:
        return sorted(self.models_dir.glob(pattern))
