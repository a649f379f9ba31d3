import argparse
import logging
from pathlib import Path
from .lexer import Lexer, LexError
from .parser import Parser, ParseError
from .ast import dump
from .codegen_vm import CodeGenVM, CompileError
from .bytecode import format_program
from stackvm.vm import StackVM, VMError
import sys


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="stackc", description="Compile and run a C-like program on the stack VM")
    ap.add_argument("source", type=Path, help="Source file")
    ap.add_argument("--tokens", action="store_true", help="Print the token stream and stop")
    ap.add_argument("--ast", action="store_true", help="Print the syntax tree and stop")
    ap.add_argument("--bytecode", action="store_true", help="Print the generated instructions and stop")
    ap.add_argument("--trace", action="store_true", help="Log every VM step to stderr")
    return ap


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(message)s", stream=sys.stderr)
    if args.trace:
        logging.getLogger("stackvm.vm").setLevel(logging.DEBUG)

    try:
        src_text = args.source.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {args.source}: {e.strerror or e}", file=sys.stderr)
        return 1

    try:
        tokens = Lexer(src_text).tokenize()
        if args.tokens:
            for tok in tokens:
                print(repr(tok))
            return 0
        tree = Parser(tokens).parse()
        if args.ast:
            print(dump(tree))
            return 0
        program = CodeGenVM().generate(tree)
    except (LexError, ParseError) as e:
        print(f"Syntax error at {args.source}:{e.line}:{e.col}: {e}", file=sys.stderr)
        return 1
    except CompileError as e:
        print(f"Compile error in {args.source}: {e}", file=sys.stderr)
        return 1

    if args.bytecode:
        print(format_program(program))
        return 0

    vm = StackVM(program, trace=args.trace)
    try:
        vm.run()
    except VMError as e:
        sys.stdout.flush()
        print(f"Runtime error in {args.source}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
