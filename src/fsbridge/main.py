"""
Main entry point: mount a backing filesystem through FUSE.
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from serde import SerdeError

from .backends import BACKENDS, open_backend
from .config import BINDINGS, Config, load_config, merge, save_config
from .hooks import audit, chain, read_only
from .root import Root

log = logging.getLogger("fsbridge")


def init_logging(debug: bool = False) -> None:
    formatter = logging.Formatter('%(asctime)s.%(msecs)03d %(threadName)s: '
                                  '[%(name)s] %(message)s', datefmt="%Y-%m-%d %H:%M:%S")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="fsbridge", description="Mount a pluggable filesystem through FUSE")
    parser.add_argument("mountpoint", nargs="?", help="Directory to mount the filesystem at")
    parser.add_argument("-c", "--config", help="JSON config file")
    parser.add_argument("--basepath", help="Directory served by the os backend")
    parser.add_argument("--backend", choices=BACKENDS)
    parser.add_argument("--binding", choices=BINDINGS)
    parser.add_argument("--background", dest="foreground", action="store_false", default=None,
                        help="Detach from the terminal (fusepy binding only)")
    parser.add_argument("--allow-other", action="store_true", default=None)
    parser.add_argument("--read-only", action="store_true", default=None)
    parser.add_argument("--audit", action="store_true", default=None, help="Log every request")
    parser.add_argument("--debug", action="store_true", default=None)
    parser.add_argument("--write-config", metavar="FILE", help="Save the effective config and exit")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    config = load_config(args.config) if args.config else None
    return merge(
        config,
        mountpoint=args.mountpoint,
        basepath=args.basepath,
        backend=args.backend,
        binding=args.binding,
        foreground=args.foreground,
        allow_other=args.allow_other,
        read_only=args.read_only,
        audit=args.audit,
        debug=args.debug,
    ).validate()


def build_root(config: Config) -> Root:
    hook = chain(
        read_only if config.read_only else None,
        audit() if config.audit else None,
    )
    return Root(open_backend(config.backend, config.basepath), hook)


def mount(config: Config) -> None:
    root = build_root(config)
    log.info("Mounting %s backend at %s via %s", config.backend, config.mountpoint, config.binding)
    if config.binding == "pyfuse3":
        from .fuse_binding import mount as mount_pyfuse3
        mount_pyfuse3(root, config.mountpoint, debug=config.debug, allow_other=config.allow_other)
    else:
        from .fuse_interface import mount as mount_fusepy
        kwargs = {"allow_other": True} if config.allow_other else {}
        mount_fusepy(root, config.mountpoint, foreground=config.foreground, **kwargs)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except (OSError, ValueError, SerdeError) as e:
        print(f"fsbridge: {e}", file=sys.stderr)
        return 2
    if args.write_config:
        save_config(config, args.write_config)
        return 0

    init_logging(config.debug)
    if not os.path.isdir(config.mountpoint):
        log.error("Mount point %s is not a directory", config.mountpoint)
        return 1
    mount(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
