"""
Wrappers that narrow what a backend exposes.
"""


class BasicOnly:
    """
    Exposes only the Basic contract of another backend.

    Useful to mount a backend with its optional capabilities switched off.
    """
    def __init__(self, underlying):
        self.underlying = underlying

    def stat(self, path: str):
        return self.underlying.stat(path)

    def open_file(self, path: str, flags: int, mode: int):
        return self.underlying.open_file(path, flags, mode)

    def remove(self, path: str) -> None:
        self.underlying.remove(path)

    def rename(self, old_path: str, new_path: str) -> None:
        self.underlying.rename(old_path, new_path)
