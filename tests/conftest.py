import pytest

from stackc.lexer import Lexer
from stackc.parser import Parser
from stackc.codegen_vm import CodeGenVM
from stackvm.vm import StackVM


def compile_source(src):
    tokens = Lexer(src).tokenize()
    return CodeGenVM().generate(Parser(tokens).parse())


@pytest.fixture
def run():
    """Compile and execute source text; returns (ExecutionResult, output)."""
    def _run(src, trace=False):
        out = []
        vm = StackVM(compile_source(src), trace=trace, output_callback=out.append)
        return vm.run(), "".join(out)
    return _run


@pytest.fixture
def compile_src():
    return compile_source
