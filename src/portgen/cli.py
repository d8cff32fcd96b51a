import argparse
import sys
from typing import List, Optional

from loguru import logger

from portgen.api import Generator
from portgen.compiler.pipeline import GeneratorConfig
from portgen.compiler.sink import FileSink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portgen",
        description="Generate port dispatch companions for annotated dataflow node classes.",
    )
    parser.add_argument("files", nargs="+", help="Python source files declaring node classes")
    parser.add_argument("--root", default=None, help="import root used to derive module names (default: cwd)")
    parser.add_argument("--out", default=None, help="output root (default: same as --root)")
    parser.add_argument("--strict", action="store_true", help="treat warnings as errors")
    parser.add_argument(
        "--lazy-inputs",
        action="store_true",
        help="do not pull upstream nodes before reading scalar inputs",
    )
    parser.add_argument(
        "--value-type",
        action="append",
        default=[],
        metavar="NAME",
        help="additional type name treated as a value type (repeatable)",
    )
    return parser


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = GeneratorConfig.from_env()
    if args.strict:
        config.mode = "strict"
    if args.lazy_inputs:
        config.eager_inputs = False
    config.value_types = config.value_types + tuple(n for n in args.value_type if n not in config.value_types)

    root = args.root or "."
    out = args.out or root

    generator = Generator(config)
    generator.add_paths(args.files, root=root)
    result = generator.generate(FileSink(out))

    print(generator.report)
    logger.info("portgen finished success={success}", success=result.success)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(run())
