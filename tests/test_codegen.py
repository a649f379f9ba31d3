import pytest

from stackc import ast as A
from stackc.bytecode import OpCode, JUMP_OPS
from stackc.codegen_vm import CodeGenVM, CompileError, CompileErrorKind
from stackc.lexer import Lexer
from stackc.parser import Parser


def listing(program):
    return [(i.op, i.arg) for i in program]


def test_return_expression(compile_src):
    assert listing(compile_src("return 2 + 3;")) == [
        (OpCode.ENT, 0),
        (OpCode.IMM, 2),
        (OpCode.IMM, 3),
        (OpCode.ADD, None),
        (OpCode.PSH, None),
        (OpCode.EXIT, None),
        # epilogue
        (OpCode.IMM, 0),
        (OpCode.PSH, None),
        (OpCode.EXIT, None),
    ]


def test_declaration_reserves_outer_frame(compile_src):
    code = compile_src("int x = 5; x = 10; return x;")
    assert listing(code)[:11] == [
        (OpCode.ENT, 1),
        (OpCode.LEA, 0), (OpCode.IMM, 5), (OpCode.SI, None),
        (OpCode.LEA, 0), (OpCode.IMM, 10), (OpCode.SI, None),
        (OpCode.LEA, 0), (OpCode.LI, None),
        (OpCode.PSH, None), (OpCode.EXIT, None),
    ]


def test_redeclaration_takes_a_new_slot(compile_src):
    code = compile_src("int a = 1; int a = 2; return a;")
    assert code[0].arg == 2
    assert [i.arg for i in code if i.op is OpCode.LEA] == [0, 1, 1]


def test_if_else_targets(compile_src):
    code = compile_src("if (1 < 2) { return 42; } else { return 0; }")
    assert code[4].op is OpCode.BZ and code[4].arg == 9
    assert code[8].op is OpCode.JMP and code[8].arg == 12
    assert code[9].op is OpCode.IMM and code[9].arg == 0


def test_if_without_else_resumes_after_then(compile_src):
    code = compile_src('if (0) { printf("no"); } return 1;')
    assert listing(code)[1:5] == [
        (OpCode.IMM, 0), (OpCode.BZ, 4), (OpCode.PRINTF, "no"), (OpCode.IMM, 1),
    ]


def test_while_targets(compile_src):
    code = compile_src("int i = 0; while (i < 3) i = i + 1; return i;")
    assert code[8].op is OpCode.BZ and code[8].arg == 16
    assert code[15].op is OpCode.JMP and code[15].arg == 4


def test_call_resolves_to_true_entry_address():
    gen = CodeGenVM()
    code = gen.generate(Parser(Lexer(
        "int add(int a, int b) { return a + b; } return add(2, 3);").tokenize()).parse())
    entry = gen.functions["add"].address
    # the skip jump sits between the outer ENT and the function
    assert entry == 2
    assert code[1].op is OpCode.JMP
    assert code[entry].op is OpCode.ENT and code[entry].arg == 2
    jsr = [i for i in code if i.op is OpCode.JSR]
    assert len(jsr) == 1 and jsr[0].arg == entry
    # the function's position in the statement list would have been 0
    assert jsr[0].arg != 0


def test_function_prologue_copies_arguments(compile_src):
    code = compile_src("int add(int a, int b) { return a + b; } return add(2, 3);")
    assert listing(code)[2:11] == [
        (OpCode.ENT, 2),
        (OpCode.LEA, 0), (OpCode.LEA, -4), (OpCode.LI, None), (OpCode.SI, None),
        (OpCode.LEA, 1), (OpCode.LEA, -3), (OpCode.LI, None), (OpCode.SI, None),
    ]
    assert (OpCode.LEV, 2) in listing(code)


def test_forward_call_is_patched(compile_src):
    code = compile_src("return twice(4); int twice(int n) { return n + n; }")
    jsr = next(i for i in code if i.op is OpCode.JSR)
    assert code[jsr.arg].op is OpCode.ENT
    assert all(i.arg >= 0 for i in code if i.op in JUMP_OPS)


def test_main_called_from_epilogue(compile_src):
    code = compile_src("int main() { return 42; }")
    assert listing(code)[-3:] == [(OpCode.JSR, 2), (OpCode.PSH, None), (OpCode.EXIT, None)]


def test_epilogue_skips_main_already_called(compile_src):
    code = compile_src("int main() { return 1; } int r = main();")
    assert [n for n, i in enumerate(code) if i.op is OpCode.JSR] == [len(code) - 5]
    assert listing(code)[-3:] == [(OpCode.IMM, 0), (OpCode.PSH, None), (OpCode.EXIT, None)]


def test_epilogue_calls_main_that_recurses(compile_src):
    code = compile_src("int main() { if (0) return main(); return 3; }")
    assert listing(code)[-3:] == [(OpCode.JSR, 2), (OpCode.PSH, None), (OpCode.EXIT, None)]


def test_main_with_parameters_rejected(compile_src):
    with pytest.raises(CompileError, match="'main' must take no parameters"):
        compile_src("int main(int argc) { return argc; }")


def test_builtin_call_lowers_to_opcode(compile_src):
    code = compile_src("return open(1, 2) + free(7);")
    ops = [i.op for i in code]
    assert OpCode.OPEN in ops and OpCode.FREE in ops
    assert OpCode.JSR not in ops


def test_ast_is_not_mutated():
    tree = A.Sequence((A.Declaration("x", A.NumberLiteral(1)), A.Return(A.VariableRef("x"))))
    before = repr(tree)
    CodeGenVM().generate(tree)
    assert repr(tree) == before


@pytest.mark.parametrize("src, kind, name", [
    ("return y;", CompileErrorKind.UNDECLARED_VARIABLE, "y"),
    ("y = 1;", CompileErrorKind.UNDECLARED_VARIABLE, "y"),
    ("int x = 1; int f() { return x; } return f();", CompileErrorKind.UNDECLARED_VARIABLE, "x"),
    ("return g(1);", CompileErrorKind.UNRESOLVED_CALL, "g"),
    ("int f(int a) { return a; } return f(1, 2);", CompileErrorKind.ARITY_MISMATCH, "f"),
    ("return close(1, 2);", CompileErrorKind.ARITY_MISMATCH, "close"),
    ("int main(int argc) { return argc; }", CompileErrorKind.ARITY_MISMATCH, "main"),
    ("int f() { return 1; } int f() { return 2; }", CompileErrorKind.DUPLICATE_FUNCTION, "f"),
    ("int open(int a) { return a; }", CompileErrorKind.DUPLICATE_FUNCTION, "open"),
])
def test_compile_errors(compile_src, src, kind, name):
    with pytest.raises(CompileError) as exc:
        compile_src(src)
    assert exc.value.kind is kind
    assert exc.value.name == name
    assert name in str(exc.value)


def test_unresolved_call_message(compile_src):
    with pytest.raises(CompileError, match="Unresolved call to 'missing'"):
        compile_src("int f() { return missing(); } return f();")


def test_nested_function_rejected():
    inner = A.FunctionDef("inner", (), A.Sequence(()))
    tree = A.Sequence((A.FunctionDef("outer", (), A.Sequence((inner,))),))
    with pytest.raises(CompileError) as exc:
        CodeGenVM().generate(tree)
    assert exc.value.kind is CompileErrorKind.NESTED_FUNCTION
    assert exc.value.name == "inner"
