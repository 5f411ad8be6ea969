"""
File logging with one log file per calendar day.

A day's file is renamed to a timestamped `.old.log` sibling once it reaches the
size limit, and a fresh file is started for the rest of the day.
"""

import os
from datetime import datetime
from logging.handlers import RotatingFileHandler


DEFAULT_MAX_BYTES = 100 * 1024 * 1024  # 100MB


class DailySizeRotatingFileHandler(RotatingFileHandler):
    """
    RotatingFileHandler writing to `<prefix>_<YYYY-MM-DD>.log` in `log_dir`.

    Rotation renames the current file to `<prefix>_<YYYY-MM-DD>_<HHMMSS>.old.log`
    instead of the numbered `.1`, `.2` backups of the base class.
    """

    def __init__(self, log_dir, prefix='dbbackup', max_bytes=DEFAULT_MAX_BYTES,
                 encoding='utf-8', clock=None):
        self.log_dir = str(log_dir)
        self.prefix = prefix
        self.clock = clock or datetime.now
        os.makedirs(self.log_dir, exist_ok=True)
        super().__init__(self._filename_for_today(), maxBytes=max_bytes, encoding=encoding)

    def _filename_for_today(self) -> str:
        day = self.clock().strftime('%Y-%m-%d')
        return os.path.abspath(os.path.join(self.log_dir, f"{self.prefix}_{day}.log"))

    def emit(self, record):
        # Switch to the new day's file when the date changed mid-run
        filename = self._filename_for_today()
        if filename != self.baseFilename:
            self.acquire()
            try:
                if self.stream:
                    self.stream.close()
                    self.stream = None
                self.baseFilename = filename
            finally:
                self.release()
        super().emit(record)

    def shouldRollover(self, record):
        if self.maxBytes <= 0:
            return False
        if self.stream is None:
            self.stream = self._open()
        self.stream.seek(0, os.SEEK_END)
        return self.stream.tell() >= self.maxBytes

    def rotation_filename(self, default_name):
        root, _ = os.path.splitext(self.baseFilename)
        stamp = self.clock().strftime('%H%M%S')
        candidate = f"{root}_{stamp}.old.log"
        counter = 1
        while os.path.exists(candidate):
            candidate = f"{root}_{stamp}_{counter}.old.log"
            counter += 1
        return candidate

    def doRollover(self):
        if self.stream:
            self.stream.close()
            self.stream = None
        if os.path.exists(self.baseFilename):
            self.rotate(self.baseFilename, self.rotation_filename(self.baseFilename))
        self.stream = self._open()
