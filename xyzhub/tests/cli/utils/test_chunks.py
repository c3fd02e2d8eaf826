import math

import pytest

from xyzhub.cli.cli.utils.chunks import chunkify


class TestChunkify:
    """Tests for chunkify"""

    def test_five_items_size_two(self):
        assert [len(c) for c in chunkify(list(range(5)), 2)] == [2, 2, 1]

    def test_empty_input(self):
        assert chunkify([], 3) == []

    def test_exact_multiple(self):
        assert chunkify([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_chunk_larger_than_input(self):
        assert chunkify(["a", "b"], 200) == [["a", "b"]]

    @pytest.mark.parametrize("size,chunk_size", [(1, 1), (7, 3), (1000, 200), (201, 200)])
    def test_sizes_and_order(self, size, chunk_size):
        items = list(range(size))
        chunks = chunkify(items, chunk_size)
        assert len(chunks) == math.ceil(size / chunk_size)
        assert all(len(c) <= chunk_size for c in chunks)
        assert [item for chunk in chunks for item in chunk] == items
