import os
import random
import threading

import pytest

from oblivstore import initialize
from oblivstore.dependency import (
    AesGcm,
    BackingStoreError,
    ConfigurationError,
    EncryptionError,
    InteractLocalServer,
    OramClosedError,
    StashOverflowError,
    TREE_READ_BUCKET,
    TREE_WRITE_BUCKET,
)
from oblivstore.oram import PathOram

# Set a global parameter for the number of data the server should store.
NUM_DATA = pow(2, 6)


def create_oram(client=None, **kwargs) -> PathOram:
    """Create a path oram and initialize its server storage."""
    oram = PathOram(num_data=kwargs.pop("num_data", NUM_DATA), client=client or InteractLocalServer(), **kwargs)
    oram.init_server_storage()
    return oram


def corrupt_slot(server: InteractLocalServer, index: int, slot: int = 0, label: str = "oram") -> None:
    """Flip one byte of a stored ciphertext."""
    tree = server.get_storage(label)
    bucket = tree.read_bucket(index=index)
    tampered = bytearray(bucket[slot])
    tampered[-1] ^= 0xFF
    bucket[slot] = bytes(tampered)
    tree.write_bucket(index=index, bucket=bucket)


class TestPathOram:
    def test_round_trip(self):
        oram = create_oram()
        oram.write(5, b"hello")
        assert oram.read(5) == b"hello"

    def test_round_trip_with_interleaving(self):
        oram = create_oram()
        oram.write(5, b"hello")
        # Touch other keys in between.
        for key in range(NUM_DATA):
            if key != 5:
                oram.write(key, str(key).encode())
                oram.read((key * 7) % NUM_DATA)
        assert oram.read(5) == b"hello"

    def test_write_all_then_read_all(self):
        oram = create_oram()
        for i in range(NUM_DATA):
            oram.write(i, i.to_bytes(4, "big"))
        for i in range(NUM_DATA):
            assert oram.read(i) == i.to_bytes(4, "big")

    def test_overwrite(self):
        oram = create_oram()
        oram.write(1, b"original")
        oram.write(1, b"updated")
        assert oram.read(1) == b"updated"

    def test_random_queries(self):
        oram = create_oram()
        expected = {}
        for _ in range(NUM_DATA * 5):
            key = random.randrange(NUM_DATA)
            if random.random() < 0.5:
                expected[key] = os.urandom(random.randint(0, 64))
                oram.write(key, expected[key])
            else:
                assert oram.read(key) == expected.get(key)

    def test_payload_length_is_preserved(self):
        oram = create_oram(data_size=16)
        oram.write(0, b"")
        oram.write(1, b"\x00" * 16)
        oram.write(2, b"ab\x00")
        assert oram.read(0) == b""
        assert oram.read(1) == b"\x00" * 16
        assert oram.read(2) == b"ab\x00"

    def test_operate_on_key(self):
        oram = create_oram()
        assert oram.operate_on_key(op="w", key=3, value=b"three") is None
        assert oram.operate_on_key(op="r", key=3) == b"three"
        assert oram.operate_on_key(op="d", key=3) is None
        assert oram.operate_on_key(op="r", key=3) is None

    def test_not_found(self):
        oram = create_oram()
        assert oram.read(7) is None
        # Reading a missing key is not a fault; the oram keeps working.
        oram.write(7, b"seven")
        assert oram.read(7) == b"seven"

    def test_delete(self):
        oram = create_oram()
        oram.write(4, b"four")
        oram.write(5, b"five")
        oram.delete(4)
        assert oram.read(4) is None
        assert oram.read(5) == b"five"
        # Deleting twice is harmless, and a deleted key can be written again.
        oram.delete(4)
        oram.write(4, b"again")
        assert oram.read(4) == b"again"

    def test_delete_unmaps_key(self):
        oram = create_oram()
        oram.write(2, b"two")
        oram.delete(2)
        assert oram._pos_map.get(2) is None
        assert 2 not in oram._stash

    def test_invalid_requests(self):
        oram = create_oram(data_size=8)
        with pytest.raises(IndexError):
            oram.read(NUM_DATA)
        with pytest.raises(IndexError):
            oram.read(-1)
        with pytest.raises(ValueError):
            oram.write(0, b"x" * 9)
        with pytest.raises(TypeError):
            oram.write(0, "text")
        with pytest.raises(ValueError):
            oram.access(op="rw", key=0)
        # None of the rejected requests counted as an access.
        assert oram.access_count == 0

    def test_with_given_key(self):
        key = os.urandom(32)
        oram = create_oram(aes_key=key, num_key_bytes=32)
        oram.write(1, b"one")
        assert oram.read(1) == b"one"

    def test_with_given_encryptor(self):
        oram = create_oram(encryptor=AesGcm(key_byte_length=24))
        oram.write(1, b"one")
        assert oram.read(1) == b"one"

    def test_with_file(self, test_file):
        oram = create_oram(filename=str(test_file))
        for i in range(NUM_DATA):
            oram.write(i, i.to_bytes(2, "big"))
        for i in range(NUM_DATA):
            assert oram.read(i) == i.to_bytes(2, "big")
        oram.close()

    def test_single_block(self):
        oram = create_oram(num_data=1)
        assert oram.level == 1
        assert oram.read(0) is None
        oram.write(0, b"only")
        assert oram.read(0) == b"only"

    def test_multiple_orams_on_one_server(self):
        server = InteractLocalServer()
        first = create_oram(client=server, name="first")
        second = create_oram(client=server, name="second")
        first.write(0, b"first")
        second.write(0, b"second")
        assert first.read(0) == b"first"
        assert second.read(0) == b"second"


class TestConfiguration:
    @pytest.mark.parametrize("kwargs", [
        {"num_data": 0},
        {"num_data": -4},
        {"bucket_size": 0},
        {"data_size": -1},
        {"stash_scale": 0},
        {"num_key_bytes": 12},
    ])
    def test_rejected(self, kwargs):
        server = InteractLocalServer()
        params = {"num_data": 16, **kwargs}
        with pytest.raises(ConfigurationError):
            PathOram(client=server, **params)
        # Nothing reached the server.
        with pytest.raises(KeyError):
            server.get_storage("oram")

    def test_geometry(self):
        oram = create_oram(num_data=16, bucket_size=4)
        stats = oram.stats()
        assert stats.height == 5
        assert stats.num_leaves == 16
        assert stats.bucket_size == 4
        assert stats.total_buckets == 31
        assert stats.stash_size == 0
        assert stats.access_complexity == "O(log N) = O(5)"

    def test_non_power_of_two(self):
        oram = create_oram(num_data=100)
        assert oram.level == 8
        assert oram.leaf_range == 128


class TestObliviousness:
    def test_fixed_bandwidth(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16, bucket_size=4)
        height = oram.level
        oram.write(3, b"three")

        # Existing keys, missing keys and deleted keys all cost exactly one path read and one path write.
        for op, key, value in [("r", 3, None), ("r", 9, None), ("w", 3, b"new"), ("w", 12, b"x"),
                               ("d", 12, None), ("r", 12, None), ("d", 15, None)]:
            recording_server.reset()
            oram.access(op=op, key=key, value=value)

            reads = [entry for entry in recording_server.log if entry[1] == TREE_READ_BUCKET]
            writes = [entry for entry in recording_server.log if entry[1] == TREE_WRITE_BUCKET]
            assert len(reads) == height
            assert len(writes) == height
            # All reads come before all writes, and both touch the same path.
            assert recording_server.log[:height] == reads
            assert sorted(index for _, _, index in reads) == sorted(index for _, _, index in writes)
            # The path starts at the root and walks down parent to child.
            read_indices = [index for _, _, index in reads]
            assert read_indices[0] == 0
            for parent, child in zip(read_indices, read_indices[1:]):
                assert (child - 1) // 2 == parent

    def test_buckets_are_always_full(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16, bucket_size=4)
        tree = recording_server.get_storage("oram")
        for i in range(16):
            oram.write(i, os.urandom(i))
        # Every bucket holds exactly Z slots of the same length, occupied or not.
        for index in range(tree.size):
            bucket = tree.read_bucket(index=index)
            assert len(bucket) == 4
            assert all(len(slot) == oram.slot_size for slot in bucket)

    def test_ciphertexts_never_repeat(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16, bucket_size=4)
        tree = recording_server.get_storage("oram")
        before = tree.read_bucket(index=0)
        # Reading a missing key changes nothing logically, yet the root is rewritten with fresh ciphertexts.
        oram.read(1)
        after = tree.read_bucket(index=0)
        assert not set(before) & set(after)

    def test_rerandomization(self):
        oram = create_oram(num_data=1024)
        oram.write(0, b"zero")

        trials = 1000
        changed = 0
        for _ in range(trials):
            before = oram._pos_map.get(0)
            oram.read(0)
            after = oram._pos_map.get(0)
            changed += before != after

        # With 1024 leaves a repeat happens about once in a thousand reads.
        assert changed >= 0.99 * trials

    def test_stash_bound(self):
        oram = create_oram(num_data=256, bucket_size=4, data_size=8, stash_scale=10)
        bound = 10 * oram.level
        expected = {}

        for _ in range(10000):
            key = random.randrange(256)
            if random.random() < 0.5:
                expected[key] = os.urandom(8)
                oram.write(key, expected[key])
            else:
                assert oram.read(key) == expected.get(key)
            assert oram.stash_size <= bound

        assert oram.max_stash <= bound
        assert oram.stats().access_count == 10000

    def test_serialized_accesses(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16, bucket_size=4)
        recording_server.delay = 0.0005
        height = oram.level
        num_threads, num_ops = 4, 10

        def worker(offset):
            for i in range(num_ops):
                key = (offset * num_ops + i) % 16
                oram.write(key, str(key).encode())
                oram.read(key)

        threads = [threading.Thread(target=worker, args=(offset,)) for offset in range(num_threads)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        log = recording_server.log
        assert len(log) == num_threads * num_ops * 2 * 2 * height

        # Cut the log into accesses; each one is H reads then H writes, all from the same thread.
        for start in range(0, len(log), 2 * height):
            access = log[start:start + 2 * height]
            assert len({thread_id for thread_id, _, _ in access}) == 1
            assert [query_type for _, query_type, _ in access] == \
                [TREE_READ_BUCKET] * height + [TREE_WRITE_BUCKET] * height


class TestFailures:
    def test_tamper_detection(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16)
        oram.write(5, b"hello")
        # The root is on every path, so the next read of key 5 has to decrypt it.
        corrupt_slot(recording_server, index=0)
        recording_server.reset()

        with pytest.raises(EncryptionError):
            oram.read(5)
        # The failure happened before anything was written back.
        assert not [entry for entry in recording_server.log if entry[1] == TREE_WRITE_BUCKET]

    def test_tamper_on_leaf_bucket(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16)
        oram.write(5, b"hello")
        leaf_index = oram.leaf_range - 1 + oram._pos_map.get(5)
        for slot in range(oram.bucket_size):
            corrupt_slot(recording_server, index=leaf_index, slot=slot)

        with pytest.raises(EncryptionError):
            oram.read(5)

    def test_read_failure_keeps_oram_usable(self, recording_server):
        oram = create_oram(client=recording_server)
        oram.write(1, b"one")
        stash_before = oram.stash_size

        # Fail the third bucket read of the next access.
        recording_server.reset()
        recording_server.fail_read_at = 3
        with pytest.raises(BackingStoreError):
            oram.read(1)
        assert oram.stash_size == stash_before
        assert not oram.failed

        # Once the server recovers, the data is still there.
        recording_server.reset()
        assert oram.read(1) == b"one"

    def test_write_failure_poisons_oram(self, recording_server):
        oram = create_oram(client=recording_server)
        oram.write(1, b"one")

        # Fail the second bucket write of the next access, after the leaf bucket was already written.
        recording_server.reset()
        recording_server.fail_write_at = 2
        with pytest.raises(BackingStoreError):
            oram.write(2, b"two")
        assert oram.failed

        # Even after the server recovers, the oram refuses to continue.
        recording_server.reset()
        with pytest.raises(BackingStoreError):
            oram.read(1)
        assert not recording_server.log

    def test_stash_overflow(self, monkeypatch):
        # Map every block to leaf 0; its path has room for 5 blocks and the stash for 5 more.
        oram = create_oram(num_data=16, bucket_size=1, stash_scale=1)
        monkeypatch.setattr(oram, "_get_new_leaf", lambda: 0)
        with pytest.raises(StashOverflowError):
            for key in range(16):
                oram.write(key, b"x")
        assert oram.failed
        with pytest.raises(StashOverflowError):
            oram.read(0)

    def test_malformed_bucket_from_server(self, recording_server):
        oram = create_oram(client=recording_server, num_data=16)
        tree = recording_server.get_storage("oram")
        # Bypass the storage checks to shorten the root bucket.
        tree.storage._Storage__internal_data[0] = tree.read_bucket(index=0)[:-1]
        with pytest.raises(BackingStoreError):
            oram.read(0)

    def test_leaf_out_of_range(self, recording_server, monkeypatch):
        oram = create_oram(client=recording_server, num_data=16)
        recording_server.reset()
        # A leaf past the last one must be refused before any bucket is requested.
        monkeypatch.setattr(oram, "_get_new_leaf", lambda: oram.leaf_range)
        with pytest.raises(IndexError):
            oram.read(0)
        assert not recording_server.log
        assert oram.stash_size == 0


class TestTeardown:
    def test_close(self):
        oram = create_oram()
        oram.write(1, b"one")
        oram.close()
        assert oram.closed
        assert oram.stash_size == 0
        with pytest.raises(OramClosedError):
            oram.read(1)
        with pytest.raises(OramClosedError):
            oram.init_server_storage()
        # Closing twice is allowed.
        oram.close()

    def test_close_releases_storage(self, test_file):
        server = InteractLocalServer()
        oram = create_oram(client=server, filename=str(test_file))
        oram.close()
        with pytest.raises(KeyError):
            server.get_storage("oram")

    def test_context_manager(self):
        with create_oram() as oram:
            oram.write(1, b"one")
            assert oram.read(1) == b"one"
        assert oram.closed


class TestInitialize:
    def test_initialize(self):
        oram = initialize(num_blocks=16, bucket_capacity=4)
        oram.write(5, b"hello")
        assert oram.read(5) == b"hello"
        assert oram.stats().height == 5

    def test_initialize_with_options(self, test_file):
        server = InteractLocalServer()
        oram = initialize(num_blocks=8, bucket_capacity=2, client=server, data_size=4, filename=str(test_file))
        oram.write(0, b"abcd")
        assert oram.read(0) == b"abcd"
        assert server.get_storage("oram").bucket_size == 2
        oram.close()

    def test_initialize_rejects_bad_parameters(self):
        with pytest.raises(ConfigurationError):
            initialize(num_blocks=0)
        with pytest.raises(ConfigurationError):
            initialize(num_blocks=16, bucket_capacity=0)
