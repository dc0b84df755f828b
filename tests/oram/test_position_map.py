import pytest

from oblivstore.oram import PositionMap


class TestPositionMap:
    def test_unassigned(self):
        pos_map = PositionMap(leaf_range=8)
        assert pos_map.get(3) is None
        assert 3 not in pos_map
        assert len(pos_map) == 0

    def test_set_get(self):
        pos_map = PositionMap(leaf_range=8)
        pos_map.set(key=3, leaf=7)
        assert pos_map.get(3) == 7
        assert 3 in pos_map
        # Setting again moves the key.
        pos_map.set(key=3, leaf=0)
        assert pos_map.get(3) == 0
        assert len(pos_map) == 1

    def test_leaf_out_of_range(self):
        pos_map = PositionMap(leaf_range=8)
        with pytest.raises(IndexError):
            pos_map.set(key=0, leaf=8)
        with pytest.raises(IndexError):
            pos_map.set(key=0, leaf=-1)

    def test_remove(self):
        pos_map = PositionMap(leaf_range=8)
        pos_map.set(key=1, leaf=1)
        pos_map.remove(1)
        assert pos_map.get(1) is None
        # Removing an unassigned key is harmless.
        pos_map.remove(1)

    def test_clear(self):
        pos_map = PositionMap(leaf_range=8)
        for key in range(5):
            pos_map.set(key=key, leaf=key)
        pos_map.clear()
        assert len(pos_map) == 0
