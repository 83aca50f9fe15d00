"""
Mount configuration, stored as JSON.
"""
from typing import Optional

from serde import serde
from serde.json import from_json, to_json

from .backends import BACKENDS

BINDINGS = ("fusepy", "pyfuse3")


@serde
class Config:
    mountpoint: str = ""
    basepath: str = ""
    backend: str = "os"
    binding: str = "fusepy"
    foreground: bool = True
    allow_other: bool = False
    read_only: bool = False
    audit: bool = False
    debug: bool = False

    def validate(self) -> "Config":
        if self.backend not in BACKENDS:
            raise ValueError(f"unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}")
        if self.binding not in BINDINGS:
            raise ValueError(f"unknown binding {self.binding!r}, expected one of {', '.join(BINDINGS)}")
        if self.backend == "os" and not self.basepath:
            raise ValueError("the os backend needs a basepath")
        if not self.mountpoint:
            raise ValueError("no mountpoint given")
        return self


def load_config(path: str) -> Config:
    with open(path, "r") as f:
        return from_json(Config, f.read())


def save_config(config: Config, path: str) -> None:
    with open(path, "w") as f:
        f.write(to_json(config))


def merge(config: Optional[Config], **overrides) -> Config:
    """
    Apply command line overrides on top of a loaded config.

    Overrides that are None are ignored.
    """
    values = {}
    if config is not None:
        values.update(vars(config))
    values.update({k: v for k, v in overrides.items() if v is not None})
    if not values.get("mountpoint"):
        raise ValueError("no mountpoint given")
    return Config(**values)
