import contextlib
import threading


class ReadWriteLock:
    """Many readers or one writer. Waiting writers hold back new readers.

    Not re-entrant: a thread holding the lock must not acquire it again.
    """

    def __init__(self):
        self.condition = threading.Condition(threading.Lock())
        self.active_readers = 0
        self.waiting_writers = 0
        self.writer_active = False

    def acquire_read(self):
        with self.condition:
            while self.writer_active or self.waiting_writers > 0:
                self.condition.wait()
            self.active_readers = self.active_readers + 1

    def release_read(self):
        with self.condition:
            self.active_readers = self.active_readers - 1
            if self.active_readers == 0:
                self.condition.notify_all()

    def acquire_write(self):
        with self.condition:
            self.waiting_writers = self.waiting_writers + 1
            try:
                while self.writer_active or self.active_readers > 0:
                    self.condition.wait()
            finally:
                self.waiting_writers = self.waiting_writers - 1
            self.writer_active = True

    def release_write(self):
        with self.condition:
            self.writer_active = False
            self.condition.notify_all()

    @contextlib.contextmanager
    def reading(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextlib.contextmanager
    def writing(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
