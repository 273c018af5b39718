"""Reader-writer lock shared by the registry and the injection planner.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so mutations are not starved by a
    steady stream of navigations. Both sides are reentrant for a thread
    that already holds them, and the writer may also take the read side.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._read_depth = {}
        self._writers_waiting = 0
        self._writer = None
        self._writer_depth = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                # Writer reading its own state
                self._writer_depth += 1
                owned = True
            elif me in self._read_depth:
                # Nested read must not wait behind a queued writer
                self._read_depth[me] += 1
                owned = False
            else:
                while self._writer is not None or self._writers_waiting:
                    self._cond.wait()
                self._read_depth[me] = 1
                self._readers += 1
                owned = False
        try:
            yield
        finally:
            with self._cond:
                if owned:
                    self._writer_depth -= 1
                else:
                    self._read_depth[me] -= 1
                    if self._read_depth[me] == 0:
                        del self._read_depth[me]
                        self._readers -= 1
                        if self._readers == 0:
                            self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._writer_depth += 1
            else:
                self._writers_waiting += 1
                try:
                    while self._writer is not None or self._readers:
                        self._cond.wait()
                finally:
                    self._writers_waiting -= 1
                self._writer = me
                self._writer_depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._writer_depth -= 1
                if self._writer_depth == 0:
                    self._writer = None
                    self._cond.notify_all()
