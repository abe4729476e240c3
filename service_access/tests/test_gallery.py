"""
Unit tests for gallery assembly.
"""

import pytest
from unittest.mock import patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.test_helpers import access_data_factory
from service_access.app.catalog.gallery import assemble_gallery, order_gallery, serialize_gallery
from service_access.app.catalog.models import MediaItem, MediaKind


class TestAssembleGallery:
    """Test cases for assemble_gallery."""

    @pytest.fixture
    def three_items(self):
        """Three well-formed media records."""
        return access_data_factory.media_records([0, 1, 2])

    @pytest.mark.parametrize("raw", [None, "", "   ", "\n\t"])
    def test_empty_input(self, raw):
        """Test missing or blank input yields no items."""
        assert assemble_gallery(raw) == []

    def test_orders_by_ordinal(self):
        """Test items come back sorted by ordinal."""
        raw = access_data_factory.raw_gallery(access_data_factory.media_records([2, 0, 1]))

        items = assemble_gallery(raw)

        assert [item.ordinal for item in items] == [0, 1, 2]

    def test_equal_ordinals_keep_input_order(self):
        """Test ordering is stable for duplicate ordinals."""
        raw = access_data_factory.raw_gallery([
            {"type": "image", "url": "https://a/first.jpg", "order_index": 1},
            {"type": "image", "url": "https://a/zero.jpg", "order_index": 0},
            {"type": "video", "url": "https://a/second.mp4", "order_index": 1},
        ])

        items = assemble_gallery(raw)

        assert [item.url for item in items] == [
            "https://a/zero.jpg",
            "https://a/first.jpg",
            "https://a/second.mp4",
        ]

    def test_urls_with_delimiters_survive(self):
        """Test field values containing commas and brace sequences decode intact."""
        tricky = 'https://cdn.example.com/a,b},{c"d?x={1}'
        raw = access_data_factory.raw_gallery([
            {"type": "image", "url": tricky, "order_index": 0},
            {"type": "video", "url": "https://cdn.example.com/v.mp4", "order_index": 1},
        ])

        items = assemble_gallery(raw)

        assert len(items) == 2
        assert items[0].url == tricky
        assert items[1].kind == MediaKind.VIDEO

    def test_corrupt_record_is_dropped(self, three_items):
        """Test one undecodable record among three leaves the other two."""
        raw = access_data_factory.raw_gallery([
            three_items[0],
            '{"type": "image", "url": broken',
            three_items[2],
        ])

        items = assemble_gallery(raw, product_id=7)

        assert [item.ordinal for item in items] == [0, 2]

    def test_corrupt_record_is_logged(self, three_items):
        """Test a dropped record produces a warning."""
        raw = access_data_factory.raw_gallery([three_items[0], "{not json}"])

        with patch("service_access.app.catalog.gallery.logger") as mock_logger:
            items = assemble_gallery(raw, product_id=7)

        assert len(items) == 1
        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["product_id"] == 7

    @pytest.mark.parametrize("bad", [
        {"type": "audio", "url": "https://a/x.mp3", "order_index": 0},
        {"type": "image", "url": "", "order_index": 0},
        {"type": "image", "url": "https://a/x.jpg", "order_index": -1},
        {"type": "image", "url": "https://a/x.jpg", "order_index": "1"},
        ["not", "an", "object"],
    ])
    def test_invalid_records_are_dropped(self, three_items, bad):
        """Test records that decode but fail validation are skipped."""
        raw = access_data_factory.raw_gallery([three_items[0], bad, three_items[1]])

        items = assemble_gallery(raw)

        assert [item.ordinal for item in items] == [0, 1]

    def test_accepts_kind_and_ordinal_keys(self):
        """Test the alternate field names are understood."""
        raw = '{"kind": "video", "url": "https://a/v.mp4", "ordinal": 3}'

        items = assemble_gallery(raw)

        assert items == [MediaItem(MediaKind.VIDEO, "https://a/v.mp4", 3)]

    def test_whitespace_between_records(self, three_items):
        """Test separators may be padded."""
        raw = " , ".join(serialize_gallery([MediaItem.from_record(r)]) for r in three_items)

        assert len(assemble_gallery(raw)) == 3


class TestOrderGallery:
    """Test cases for order_gallery."""

    def test_does_not_mutate_input(self):
        """Test ordering returns a new list."""
        items = [MediaItem(MediaKind.IMAGE, "https://a/1", 1), MediaItem(MediaKind.IMAGE, "https://a/0", 0)]

        ordered = order_gallery(items)

        assert [i.ordinal for i in ordered] == [0, 1]
        assert [i.ordinal for i in items] == [1, 0]
