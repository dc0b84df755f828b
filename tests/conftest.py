import threading
import time

import pytest

from oblivstore.dependency import InteractLocalServer, TREE_READ_BUCKET, TREE_WRITE_BUCKET


class RecordingServer(InteractLocalServer):
    """A local server that records every bucket query it answers and can be made slow or faulty."""

    def __init__(self):
        super().__init__()
        # Each entry is (thread id, query type, bucket index).
        self.log = []
        # Seconds to sleep inside every query, to widen the window for interleaving.
        self.delay = 0.0
        # Raise OSError on the n-th read or write from now on, counting from 1; None disables the fault.
        self.fail_read_at = None
        self.fail_write_at = None
        self.__reads = 0
        self.__writes = 0

    def execute_query(self, query):
        if query.query_type == TREE_READ_BUCKET:
            self.__reads += 1
            if self.fail_read_at is not None and self.__reads >= self.fail_read_at:
                raise OSError("Simulated read failure.")
        elif query.query_type == TREE_WRITE_BUCKET:
            self.__writes += 1
            if self.fail_write_at is not None and self.__writes >= self.fail_write_at:
                raise OSError("Simulated write failure.")

        self.log.append((threading.get_ident(), query.query_type, query.payload.index))
        if self.delay:
            time.sleep(self.delay)
        return super().execute_query(query)

    def reset(self):
        """Forget the recorded queries and the fault counters."""
        self.log = []
        self.fail_read_at = None
        self.fail_write_at = None
        self.__reads = 0
        self.__writes = 0


@pytest.fixture
def test_file(tmp_path):
    """Provide a temp file path under pytest's temp directory."""
    return tmp_path / "test.bin"


@pytest.fixture
def recording_server():
    """Provide a local server that records the bucket queries it answers."""
    return RecordingServer()
